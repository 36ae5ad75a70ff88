"""Feature extraction pipeline.

Stages, leaf first: ``extractor`` (with ``entropy``) computes one row
from a parsed ``document``; ``worker_pool`` runs one task per item and
feeds a ``sink``; ``interrupt`` cancels a run cooperatively; ``run``
wires everything for one output file.
"""

from __future__ import annotations

from .errors import (
    FatalInputError,
    InvalidDifficultyError,
    ItemError,
    MissingTierError,
    ParseError,
    PipelineError,
    WriteError,
)
from .extractor import extract, extract_item
from .models import DifficultyTier, FeatureConfig, FeatureRow, ItemOutcome, RatedItem, RunReport, RunStatus
from .run import run_extraction, write_report
from .worker_pool import CancellationToken, WorkerPool

__all__ = [
    "CancellationToken",
    "DifficultyTier",
    "FatalInputError",
    "FeatureConfig",
    "FeatureRow",
    "InvalidDifficultyError",
    "ItemError",
    "ItemOutcome",
    "MissingTierError",
    "ParseError",
    "PipelineError",
    "RatedItem",
    "RunReport",
    "RunStatus",
    "WorkerPool",
    "WriteError",
    "extract",
    "extract_item",
    "run_extraction",
    "write_report",
]
