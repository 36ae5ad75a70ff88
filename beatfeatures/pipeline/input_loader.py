"""Load the rated item list.

The input is a JSON array of objects::

    [{"download": "https://...", "difficulty": "Hard", "rating": 4.5}, ...]

``reference`` and ``difficulty_label`` are accepted as aliases. Structural
problems are fatal; difficulty labels are checked per item later.
"""
from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, List, Mapping

from .errors import FatalInputError
from .models import RatedItem

_REFERENCE_KEYS = ("download", "reference")
_DIFFICULTY_KEYS = ("difficulty", "difficulty_label")


def _pick(entry: Mapping[str, Any], keys, index: int) -> Any:
    for key in keys:
        if key in entry:
            return entry[key]
    raise FatalInputError(f"Item {index}: missing field {keys[0]!r}")


def parse_rated_items(data: Any) -> List[RatedItem]:
    if not isinstance(data, list):
        raise FatalInputError("Input must be a JSON array of rated items")
    items: List[RatedItem] = []
    for index, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise FatalInputError(f"Item {index}: expected an object, got {type(entry).__name__}")
        reference = _pick(entry, _REFERENCE_KEYS, index)
        label = _pick(entry, _DIFFICULTY_KEYS, index)
        rating = _pick(entry, ("rating",), index)
        if not isinstance(reference, str) or not reference.strip():
            raise FatalInputError(f"Item {index}: reference must be a non-empty string")
        if not isinstance(label, str):
            raise FatalInputError(f"Item {index}: difficulty must be a string")
        if isinstance(rating, bool) or not isinstance(rating, (int, float)) or not math.isfinite(rating):
            raise FatalInputError(f"Item {index}: rating must be a finite number, got {rating!r}")
        items.append(RatedItem(reference=reference.strip(), difficulty_label=label, rating=float(rating)))
    return items


def load_rated_items(path: str | Path) -> List[RatedItem]:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise FatalInputError(f"Invalid input file {path}: {exc}") from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise FatalInputError(f"Invalid input contents in {path}: {exc}") from exc
    return parse_rated_items(data)
