"""Command line entry point.

    beatfeatures ratings.json features.csv 8 --preset full

Exit status: 0 on success, 1 on fatal input/config/write errors, 2 when
items were skipped and skipped items are configured to fail the run,
130 when interrupted.
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from beatfeatures.pipeline.config_loader import ConfigLoader, parse_override
from beatfeatures.pipeline.errors import FatalInputError, WriteError
from beatfeatures.pipeline.input_loader import load_rated_items
from beatfeatures.pipeline.instrumentation import PipelineLogger
from beatfeatures.pipeline.interrupt import InterruptGuard
from beatfeatures.pipeline.models import RunStatus
from beatfeatures.pipeline.run import run_extraction, write_report
from beatfeatures.pipeline.worker_pool import CancellationToken

logger = logging.getLogger("beatfeatures")

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_ITEMS_FAILED = 2
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="beatfeatures",
        description="Extract per-difficulty features from rated Beat Saber maps into a CSV file.",
    )
    parser.add_argument("input", help="JSON array of {download, difficulty, rating} objects")
    parser.add_argument("output", help="Output CSV path")
    parser.add_argument("workers", nargs="?", type=int, default=None, help="Worker pool size (overrides pool.workers)")
    parser.add_argument(
        "--discipline",
        choices=["locked", "channel"],
        default=None,
        help="locked: workers write under a lock; channel: workers send rows to a single writer",
    )
    parser.add_argument("--preset", default=None, help="Config preset name (basic, patterns, full)")
    parser.add_argument("--config-dir", default=None, help="Directory holding default.toml and presets/")
    parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a config value, e.g. --set pool.grace_period_s=2",
    )
    parser.add_argument("--entropy", action="store_true", help="Add the three entropy columns")
    parser.add_argument("--no-one-hot", action="store_true", help="Drop the difficulty indicator columns")
    parser.add_argument("--no-dots", action="store_true", help="Drop the dots_per_note column")
    parser.add_argument("--report", default=None, help="Write the run report as JSON to this path")
    parser.add_argument("--events-dir", default=None, help="Directory for the JSONL event log")
    parser.add_argument("--strict", action="store_true", help="Exit with status 2 if any item was skipped")
    parser.add_argument("--log-level", default=None, help="Logging level (default from config)")
    return parser


def _collect_overrides(args: argparse.Namespace) -> List[tuple]:
    overrides = [parse_override(raw) for raw in args.overrides]
    if args.workers is not None:
        overrides.append(("pool.workers", args.workers))
    if args.discipline:
        overrides.append(("pool.discipline", args.discipline))
    if args.entropy:
        overrides.append(("features.entropy_features", True))
    if args.no_one_hot:
        overrides.append(("features.one_hot_tier", False))
    if args.no_dots:
        overrides.append(("features.dot_ratio", False))
    if args.events_dir:
        overrides.append(("logging.events_dir", args.events_dir))
    if args.strict:
        overrides.append(("errors.fail_on_item_error", True))
    if args.log_level:
        overrides.append(("logging.level", args.log_level.upper()))
    return overrides


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    try:
        config = ConfigLoader().load(args.config_dir, preset=args.preset, overrides=_collect_overrides(args))
        logging.getLogger().setLevel(str(config.logging.level).upper())
        items = load_rated_items(args.input)
        event_log = PipelineLogger(base_dir=config.logging.events_dir) if config.logging.events_dir else None
    except (FatalInputError, ValueError, OSError) as exc:
        logger.error("%s", exc)
        return EXIT_FATAL

    token = CancellationToken()
    try:
        with InterruptGuard(token):
            report = run_extraction(items, args.output, config, token=token, event_log=event_log)
    except (FatalInputError, WriteError) as exc:
        logger.error("Run aborted: %s", exc)
        return EXIT_FATAL
    except KeyboardInterrupt:
        # second signal: the output was closed on the way out, no report
        logger.error("Forced exit on repeated interrupt")
        return EXIT_INTERRUPTED

    if args.report:
        try:
            write_report(report, args.report)
        except OSError as exc:
            logger.error("Can't write report %s: %s", args.report, exc)
            return EXIT_FATAL

    if report.status == RunStatus.INTERRUPTED:
        return EXIT_INTERRUPTED
    if report.failures and config.errors.fail_on_item_error:
        return EXIT_ITEMS_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
