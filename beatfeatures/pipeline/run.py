"""Wire the stages together for one extraction run."""
from __future__ import annotations

import functools
import json
import logging
from pathlib import Path
from typing import Optional, Sequence

from .config_struct import ExtractionConfig, validate_config
from .extractor import ParseFn, extract_item
from .fetch import DocumentSource
from .instrumentation import PipelineLogger
from .models import ItemOutcome, RatedItem, RunReport
from .sink import CsvRowWriter, make_sink
from .worker_pool import CancellationToken, WorkerPool

logger = logging.getLogger(__name__)


def run_extraction(
    items: Sequence[RatedItem],
    output_path: str | Path,
    config: Optional[ExtractionConfig] = None,
    *,
    parse: Optional[ParseFn] = None,
    token: Optional[CancellationToken] = None,
    event_log: Optional[PipelineLogger] = None,
) -> RunReport:
    """Extract one row per item into ``output_path`` (CSV).

    ``parse`` defaults to a ``DocumentSource`` built from ``config.fetch``.
    Per-item failures are listed in the returned report; ``WriteError``
    propagates.
    """
    config = validate_config(config or ExtractionConfig())
    features = config.features.to_feature_config()
    parse = parse or DocumentSource(config.fetch)
    pool = WorkerPool(
        config.pool.workers,
        grace_period_s=config.pool.grace_period_s,
        poll_interval_s=config.pool.poll_interval_s,
    )
    writer = CsvRowWriter.open(output_path, features.columns(), delimiter=config.io.delimiter)
    sink = make_sink(config.pool.discipline, writer, features, flush_every=config.io.flush_every)

    task = functools.partial(
        extract_item, parse=parse, config=features, characteristic=config.fetch.characteristic
    )

    on_outcome = None
    if event_log is not None:
        event_log.emit_config("run", config, {"items": len(items), "columns": features.columns()})

        def on_outcome(outcome: ItemOutcome, written: bool) -> None:
            payload = {"reference": outcome.item.reference, "written": written}
            if outcome.error is not None:
                payload["error"] = str(outcome.error)
                payload["kind"] = outcome.error.kind
            event_log.log_event("item", "ok" if outcome.ok else "failed", payload)
            event_log.record_timing("item", outcome.duration_s)

    logger.info(
        "Extracting %d items with %d workers (%s discipline) into %s",
        len(items),
        pool.workers,
        sink.discipline,
        output_path,
    )
    report = pool.run(items, task, sink, token=token, on_outcome=on_outcome)

    if report.failures:
        logger.warning(
            "Skipped %d of %d items: %s",
            len(report.failures),
            report.total,
            ", ".join(report.failed_references()),
        )
    logger.info(
        "Run %s: %d rows written, %d failed, %d not processed in %.2fs",
        report.status.value,
        report.written,
        len(report.failures),
        report.pending,
        report.elapsed_s,
    )
    if event_log is not None:
        event_log.log_event("run", "end", report.to_dict())
        event_log.finalize()
    return report


def write_report(report: RunReport, path: str | Path) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2)
