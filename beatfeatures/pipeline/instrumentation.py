"""Lightweight structured event log for extraction runs.

Workers and the coordinator emit JSONL events here so a run can be
inspected after the fact without parsing console output. All writes are
best-effort: a failing event log must never fail the run.
"""
from __future__ import annotations

import json
import logging
import os
import threading
import time
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def _json_default(o: Any) -> Any:
    if is_dataclass(o):
        return asdict(o)
    v = getattr(o, "value", None)
    if v is not None:
        return v
    return str(o)


class PipelineLogger:
    """Structured logger that emits JSONL events and timing summaries."""

    def __init__(self, base_dir: str = "results", run_name: Optional[str] = None):
        self.base_dir = base_dir
        self.run_name = run_name or f"run_{int(time.time())}"
        self.run_dir = os.path.join(self.base_dir, self.run_name)
        os.makedirs(self.run_dir, exist_ok=True)
        self.logs_path = os.path.join(self.run_dir, "logs.jsonl")
        self.timing_path = os.path.join(self.run_dir, "timing.json")
        self._timing: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._start_time = time.perf_counter()
        self.log_event("run", "start", {"run_dir": self.run_dir})

    def log_event(self, stage: str, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        entry: Dict[str, Any] = {
            "stage": stage,
            "event": event,
            "timestamp": time.time(),
            "thread": threading.current_thread().name,
        }
        if payload:
            entry.update(payload)
        try:
            line = json.dumps(entry, default=_json_default)
            with self._lock:
                with open(self.logs_path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except (OSError, TypeError, ValueError) as exc:
            # Never break extraction due to logging failures
            logger.debug("Event log write failed: %s", exc)

    def record_timing(self, stage: str, duration_s: float, metadata: Optional[Dict[str, Any]] = None) -> None:
        with self._lock:
            self._timing[stage] = self._timing.get(stage, 0.0) + float(duration_s)
        payload = {"duration_s": float(duration_s)}
        if metadata:
            payload.update(metadata)
        self.log_event(stage, "timing", payload)

    def emit_config(self, stage: str, config_obj: Any, extras: Optional[Dict[str, Any]] = None) -> None:
        payload: Dict[str, Any] = {"config": asdict(config_obj) if is_dataclass(config_obj) else str(config_obj)}
        if extras:
            payload.update(extras)
        self.log_event(stage, "config", payload)

    def finalize(self) -> None:
        with self._lock:
            if "total" not in self._timing:
                self._timing["total"] = float(time.perf_counter() - self._start_time)
            timing = dict(self._timing)
        try:
            with open(self.timing_path, "w", encoding="utf-8") as f:
                json.dump(timing, f, indent=2)
        except OSError as exc:
            logger.debug("Timing summary write failed: %s", exc)
