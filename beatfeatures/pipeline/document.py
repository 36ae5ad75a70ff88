"""In-memory representation of a parsed beat map.

Produced by ``beatmap_parser`` and consumed read-only by the extractor.
A ``Document`` is owned by the task that fetched it and is never shared.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Tuple

from .errors import MissingTierError
from .models import DifficultyTier

STANDARD = "Standard"

# Cut direction 8 is "any": the note is a dot.
CUT_DIRECTION_ANY = 8


class NoteType(IntEnum):
    RED = 0
    BLUE = 1
    BOMB = 3


@dataclass(frozen=True)
class Note:
    time: float
    line_index: int
    line_layer: int
    note_type: NoteType
    cut_direction: int

    @property
    def is_bomb(self) -> bool:
        return self.note_type == NoteType.BOMB

    @property
    def is_dot(self) -> bool:
        return self.cut_direction == CUT_DIRECTION_ANY


@dataclass(frozen=True)
class Obstacle:
    time: float
    duration: float
    line_index: int
    width: int
    height: int = 5


@dataclass
class DifficultyData:
    notes: List[Note] = field(default_factory=list)
    obstacles: List[Obstacle] = field(default_factory=list)

    def last_beat(self) -> float:
        times = [n.time for n in self.notes] + [o.time + o.duration for o in self.obstacles]
        return max(times) if times else 0.0


@dataclass(frozen=True)
class DifficultyBeatmap:
    tier: DifficultyTier
    filename: str
    note_jump_speed: float


@dataclass
class Document:
    song_name: str
    bpm: float
    length: float
    # characteristic -> tier -> ...
    beatmaps: Dict[str, Dict[DifficultyTier, DifficultyBeatmap]] = field(default_factory=dict)
    difficulties: Dict[str, Dict[DifficultyTier, DifficultyData]] = field(default_factory=dict)

    def resolve(
        self, characteristic: str, tier: DifficultyTier, reference: str = ""
    ) -> Tuple[DifficultyBeatmap, DifficultyData]:
        """Return the info entry and note data for one characteristic/tier pair."""
        beatmaps = self.beatmaps.get(characteristic)
        data = self.difficulties.get(characteristic)
        if beatmaps is None or data is None:
            raise MissingTierError(reference, f"no {characteristic} maps")
        if tier not in beatmaps or tier not in data:
            raise MissingTierError(reference, f"no {tier.value} difficulty in {characteristic} maps")
        return beatmaps[tier], data[tier]
