"""Error taxonomy for the extraction pipeline.

Three families matter to the run:

- ``FatalInputError``: the run cannot start (bad item list, bad config,
  invalid pool size).
- ``ItemError``: one item cannot produce a row. Recorded and skipped; the
  run continues.
- ``WriteError``: a row could not be persisted. Fatal, the run stops.
"""
from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for every error raised by the pipeline."""


class FatalInputError(PipelineError):
    """Raised before any worker starts when the run inputs are unusable."""


class ConfigError(FatalInputError):
    """Raised when the configuration is invalid."""


class ItemError(PipelineError):
    """Per-item failure. Never aborts the run."""

    kind = "item"

    def __init__(self, reference: str, message: str) -> None:
        super().__init__(f"{reference}: {message}")
        self.reference = reference
        self.message = message


class ParseError(ItemError):
    """The document for a reference could not be fetched or parsed."""

    kind = "parse"


class MissingTierError(ItemError):
    """The document has no data for the requested characteristic or tier."""

    kind = "missing_tier"


class InvalidDifficultyError(ItemError):
    """The item's difficulty label is not a known tier."""

    kind = "invalid_difficulty"


class WriteError(PipelineError):
    """Persisting output failed."""

    def __init__(self, message: str, reference: Optional[str] = None) -> None:
        super().__init__(message)
        self.reference = reference


class TaskError(ItemError):
    """An unexpected exception escaped the per-item task."""

    kind = "internal"
