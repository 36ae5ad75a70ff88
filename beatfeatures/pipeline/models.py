# beatfeatures/pipeline/models.py
"""Dataclasses and enums shared by the pipeline stages.

Inputs (``RatedItem``), per-item results (``ItemOutcome``) and the run
summary (``RunReport``) live here, together with ``FeatureRow`` and the
``FeatureConfig`` that decides which optional columns a run emits.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import InvalidDifficultyError, ItemError


class DifficultyTier(str, Enum):
    EASY = "Easy"
    NORMAL = "Normal"
    HARD = "Hard"
    EXPERT = "Expert"
    EXPERT_PLUS = "ExpertPlus"

    @property
    def one_hot_column(self) -> str:
        return _TIER_COLUMNS[self]

    @classmethod
    def from_label(cls, label: str, reference: str = "") -> "DifficultyTier":
        """Map an input label onto a tier.

        Labels are matched exactly, as they appear in map files. Anything
        else (e.g. "Medium") is an ``InvalidDifficultyError``.
        """
        for tier in cls:
            if tier.value == label:
                return tier
        raise InvalidDifficultyError(reference, f"invalid difficulty label {label!r}")


_TIER_COLUMNS = {
    DifficultyTier.EASY: "is_easy",
    DifficultyTier.NORMAL: "is_normal",
    DifficultyTier.HARD: "is_hard",
    DifficultyTier.EXPERT: "is_expert",
    DifficultyTier.EXPERT_PLUS: "is_expert_plus",
}

ONE_HOT_COLUMNS = [_TIER_COLUMNS[t] for t in DifficultyTier]
ENTROPY_COLUMNS = ["entropy", "entropy_no_dispersion", "entropy_dispersion"]


@dataclass(frozen=True)
class RatedItem:
    """One unit of work: a map reference, the difficulty to analyze and its rating."""

    reference: str
    difficulty_label: str
    rating: float


@dataclass(frozen=True)
class FeatureConfig:
    """Optional feature groups. The column order is fixed per configuration."""

    one_hot_tier: bool = True
    dot_ratio: bool = True
    entropy_features: bool = False

    def columns(self) -> List[str]:
        cols = ["rating"]
        if self.one_hot_tier:
            cols.extend(ONE_HOT_COLUMNS)
        cols.extend(["length", "bpm", "note_jump_speed", "note_count", "bomb_count", "notes_per_second"])
        if self.dot_ratio:
            cols.append("dots_per_note")
        cols.append("obstacle_count")
        if self.entropy_features:
            cols.extend(ENTROPY_COLUMNS)
        return cols


@dataclass(frozen=True)
class FeatureRow:
    rating: float
    length: float
    bpm: float
    note_jump_speed: float
    note_count: int
    bomb_count: int
    notes_per_second: float
    obstacle_count: int
    tier: Optional[DifficultyTier] = None
    dots_per_note: Optional[float] = None
    entropy: Optional[float] = None
    entropy_no_dispersion: Optional[float] = None
    entropy_dispersion: Optional[float] = None

    def one_hot(self) -> Dict[str, int]:
        return {col: int(self.tier is not None and col == self.tier.one_hot_column) for col in ONE_HOT_COLUMNS}

    def to_record(self, config: FeatureConfig) -> "OrderedDict[str, Any]":
        """Return the row as an ordered mapping restricted to ``config.columns()``."""
        values: Dict[str, Any] = asdict(self)
        values.pop("tier")
        values.update(self.one_hot())
        return OrderedDict((col, values[col]) for col in config.columns())


@dataclass(frozen=True)
class ItemOutcome:
    """Result of one task: either a row or the ItemError that prevented it."""

    item: RatedItem
    row: Optional[FeatureRow] = None
    error: Optional[ItemError] = None
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.row is not None and self.error is None


@dataclass
class ItemFailure:
    reference: str
    difficulty_label: str
    kind: str
    message: str

    @classmethod
    def from_outcome(cls, outcome: ItemOutcome) -> "ItemFailure":
        err = outcome.error
        return cls(
            reference=outcome.item.reference,
            difficulty_label=outcome.item.difficulty_label,
            kind=getattr(err, "kind", "internal"),
            message=getattr(err, "message", str(err)),
        )


class RunStatus(str, Enum):
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"


@dataclass
class RunReport:
    status: RunStatus = RunStatus.COMPLETED
    total: int = 0
    written: int = 0
    failures: List[ItemFailure] = field(default_factory=list)
    elapsed_s: float = 0.0
    discipline: str = ""
    workers: int = 0
    cancel_reason: Optional[str] = None

    @property
    def pending(self) -> int:
        """Items that never reached a terminal outcome (only after an interrupt)."""
        return max(self.total - self.written - len(self.failures), 0)

    def failed_references(self) -> List[str]:
        return [f.reference for f in self.failures]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "total": self.total,
            "written": self.written,
            "failed": len(self.failures),
            "pending": self.pending,
            "elapsed_s": self.elapsed_s,
            "discipline": self.discipline,
            "workers": self.workers,
            "cancel_reason": self.cancel_reason,
            "failures": [asdict(f) for f in self.failures],
        }
