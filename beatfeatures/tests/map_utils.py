"""Builders for documents, map files and fake parse collaborators used across tests."""
import json
import threading
from pathlib import Path

import numpy as np
import soundfile as sf

from beatfeatures.pipeline.document import (
    STANDARD,
    DifficultyBeatmap,
    DifficultyData,
    Document,
    Note,
    NoteType,
    Obstacle,
)
from beatfeatures.pipeline.errors import ParseError
from beatfeatures.pipeline.models import DifficultyTier


def make_notes(normal=0, dots=0, bombs=0):
    """Build `normal` arrow notes, `dots` dot notes and `bombs` bombs, spread over lanes."""
    notes = []
    t = 0.0
    for i in range(normal):
        notes.append(Note(time=t, line_index=i % 4, line_layer=i % 3, note_type=NoteType(i % 2), cut_direction=i % 8))
        t += 1.0
    for i in range(dots):
        notes.append(Note(time=t, line_index=i % 4, line_layer=0, note_type=NoteType.BLUE, cut_direction=8))
        t += 1.0
    for i in range(bombs):
        notes.append(Note(time=t, line_index=i % 4, line_layer=2, note_type=NoteType.BOMB, cut_direction=0))
        t += 1.0
    return notes


def make_document(
    notes=None,
    obstacles=0,
    tier=DifficultyTier.HARD,
    length=60.0,
    bpm=120.0,
    njs=16.0,
    characteristic=STANDARD,
):
    data = DifficultyData(
        notes=list(notes or []),
        obstacles=[Obstacle(time=float(i), duration=1.0, line_index=0, width=1) for i in range(obstacles)],
    )
    beatmap = DifficultyBeatmap(tier=tier, filename=f"{tier.value}{characteristic}.dat", note_jump_speed=njs)
    return Document(
        song_name="Test Song",
        bpm=bpm,
        length=length,
        beatmaps={characteristic: {tier: beatmap}},
        difficulties={characteristic: {tier: data}},
    )


class FakeSource:
    """Deterministic parse collaborator keyed by reference.

    References missing from `documents` raise ParseError. `gate` holds
    callers inside parse until it is set.
    """

    def __init__(self, documents, gate=None):
        self.documents = dict(documents)
        self.gate = gate
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, reference):
        with self._lock:
            self.calls.append(reference)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        doc = self.documents.get(reference)
        if doc is None:
            raise ParseError(reference, "unreachable")
        return doc


def info_v2(difficulties, song_filename="song.wav", bpm=120.0):
    return {
        "_version": "2.0.0",
        "_songName": "Fixture Song",
        "_beatsPerMinute": bpm,
        "_songFilename": song_filename,
        "_difficultyBeatmapSets": [
            {
                "_beatmapCharacteristicName": "Standard",
                "_difficultyBeatmaps": [
                    {
                        "_difficulty": label,
                        "_difficultyRank": rank,
                        "_beatmapFilename": f"{label}Standard.dat",
                        "_noteJumpMovementSpeed": njs,
                        "_noteJumpStartBeatOffset": 0,
                    }
                    for label, rank, njs in difficulties
                ],
            }
        ],
    }


def difficulty_v2(normal=10, dots=2, bombs=1, obstacles=3):
    notes = []
    for i in range(normal):
        notes.append(
            {
                "_time": float(i),
                "_lineIndex": i % 4,
                "_lineLayer": i % 3,
                "_type": i % 2,
                "_cutDirection": 8 if i < dots else 1,
            }
        )
    for i in range(bombs):
        notes.append({"_time": float(normal + i), "_lineIndex": 0, "_lineLayer": 0, "_type": 3, "_cutDirection": 0})
    return {
        "_version": "2.2.0",
        "_notes": notes,
        "_obstacles": [
            {"_time": float(i), "_lineIndex": 0, "_type": 0, "_duration": 1.0, "_width": 1} for i in range(obstacles)
        ],
        "_events": [],
    }


def write_map_dir(root: Path, bpm=120.0, hard=None, expert=None, audio_seconds=None) -> Path:
    """Write an unpacked v2 map with Hard and Expert Standard difficulties."""
    root.mkdir(parents=True)
    (root / "Info.dat").write_text(
        json.dumps(info_v2([("Hard", 5, 16.0), ("Expert", 7, 18.0)], bpm=bpm)), encoding="utf-8"
    )
    (root / "HardStandard.dat").write_text(json.dumps(hard or difficulty_v2()), encoding="utf-8")
    (root / "ExpertStandard.dat").write_text(
        json.dumps(expert or difficulty_v2(normal=20, dots=0, bombs=4, obstacles=0)), encoding="utf-8"
    )
    if audio_seconds is not None:
        sr = 8000
        sf.write(str(root / "song.wav"), np.zeros(int(sr * audio_seconds), dtype=np.float32), sr)
    return root
