"""Shannon entropy over keyed note distributions."""
from __future__ import annotations

from collections import Counter
from typing import Hashable, Iterable, Sequence, Tuple

import numpy as np

from .document import Note


def shannon_entropy(counts: Iterable[int]) -> float:
    """Entropy in bits of a distribution given by raw counts.

    An empty distribution has entropy 0 (no terms summed).
    """
    arr = np.asarray([c for c in counts if c > 0], dtype=np.float64)
    if arr.size == 0:
        return 0.0
    p = arr / arr.sum()
    # + 0.0 turns -0.0 (single key) into 0.0
    return float(-np.sum(p * np.log2(p))) + 0.0


class EntropyAccumulator:
    """Frequency counter over hashable keys with an entropy readout."""

    def __init__(self) -> None:
        self._counts: Counter = Counter()

    def add(self, key: Hashable) -> None:
        self._counts[key] += 1

    def update(self, keys: Iterable[Hashable]) -> None:
        for key in keys:
            self.add(key)

    @property
    def total(self) -> int:
        return sum(self._counts.values())

    @property
    def distinct(self) -> int:
        return len(self._counts)

    def entropy(self) -> float:
        return shannon_entropy(self._counts.values())


def note_entropies(notes: Sequence[Note]) -> Tuple[float, float, float]:
    """Return (entropy, entropy_no_dispersion, entropy_dispersion) for a difficulty.

    Bombs are part of every distribution, so the denominator is the total
    note count including bombs.
    """
    full = EntropyAccumulator()
    reduced = EntropyAccumulator()
    positional = EntropyAccumulator()
    for note in notes:
        kind = int(note.note_type)
        full.add((kind, note.cut_direction, note.line_index, note.line_layer))
        reduced.add((kind, note.cut_direction))
        positional.add((note.line_index, note.line_layer))
    return full.entropy(), reduced.entropy(), positional.entropy()
