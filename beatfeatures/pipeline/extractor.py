"""Per-item feature computation.

``extract`` is pure: Document + tier + rating in, FeatureRow out.
``extract_item`` wraps it with label resolution and the parse
collaborator and turns ItemErrors into failed outcomes.
"""
from __future__ import annotations

import logging
import time
from typing import Callable

import numpy as np

from .document import STANDARD, Document
from .entropy import note_entropies
from .errors import ItemError
from .models import DifficultyTier, FeatureConfig, FeatureRow, ItemOutcome, RatedItem

logger = logging.getLogger(__name__)

ParseFn = Callable[[str], Document]


def _ieee_div(num: float, den: float) -> float:
    # 0/0 -> nan, x/0 -> inf, as plain IEEE-754 division
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.float64(num) / np.float64(den))


def extract(
    doc: Document,
    tier: DifficultyTier,
    rating: float,
    config: FeatureConfig,
    *,
    characteristic: str = STANDARD,
    reference: str = "",
) -> FeatureRow:
    beatmap, data = doc.resolve(characteristic, tier, reference)

    note_count = 0
    bomb_count = 0
    dot_count = 0
    for note in data.notes:
        if note.is_bomb:
            bomb_count += 1
            continue
        note_count += 1
        if note.is_dot:
            dot_count += 1

    entropy = entropy_no_dispersion = entropy_dispersion = None
    if config.entropy_features:
        entropy, entropy_no_dispersion, entropy_dispersion = note_entropies(data.notes)

    return FeatureRow(
        rating=float(rating),
        length=float(doc.length),
        bpm=float(doc.bpm),
        note_jump_speed=float(beatmap.note_jump_speed),
        note_count=note_count,
        bomb_count=bomb_count,
        notes_per_second=_ieee_div(note_count, doc.length),
        obstacle_count=len(data.obstacles),
        tier=tier if config.one_hot_tier else None,
        dots_per_note=_ieee_div(dot_count, note_count) if config.dot_ratio else None,
        entropy=entropy,
        entropy_no_dispersion=entropy_no_dispersion,
        entropy_dispersion=entropy_dispersion,
    )


def extract_item(
    item: RatedItem,
    parse: ParseFn,
    config: FeatureConfig,
    *,
    characteristic: str = STANDARD,
) -> ItemOutcome:
    """Fetch, parse and extract one item. ItemErrors become failed outcomes."""
    start = time.perf_counter()
    try:
        tier = DifficultyTier.from_label(item.difficulty_label, item.reference)
        logger.info("Parsing info for %s (%s)", item.reference, tier.value)
        doc = parse(item.reference)
        row = extract(
            doc, tier, item.rating, config, characteristic=characteristic, reference=item.reference
        )
    except ItemError as exc:
        logger.warning("Skipping %s: %s", item.reference, exc.message)
        return ItemOutcome(item=item, error=exc, duration_s=time.perf_counter() - start)
    logger.info("Parsed info for %s: %s", item.reference, row)
    return ItemOutcome(item=item, row=row, duration_s=time.perf_counter() - start)
