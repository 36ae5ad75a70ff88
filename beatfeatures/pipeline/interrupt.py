"""Operator interrupt handling.

``InterruptGuard`` turns SIGINT/SIGTERM into a cancellation of the run's
token instead of killing the process, so the coordinator can stop
dispatching, flush what was written and report. A second signal while
the run is already cancelled raises ``KeyboardInterrupt`` to force out.
"""
from __future__ import annotations

import logging
import signal
import threading
from typing import Any, Dict, Optional

from .worker_pool import CancellationToken

logger = logging.getLogger(__name__)

_SIGNAL_NAMES = ("SIGINT", "SIGTERM")


class InterruptGuard:
    def __init__(self, token: CancellationToken) -> None:
        self.token = token
        self.triggered: Optional[int] = None
        self._previous: Dict[int, Any] = {}
        self._installed = False

    def _handle(self, signum, frame) -> None:
        if not self.token.cancel(f"signal {signal.Signals(signum).name}"):
            raise KeyboardInterrupt
        self.triggered = signum
        logger.warning("Received %s, finishing in-flight items and flushing output", signal.Signals(signum).name)

    def install(self) -> "InterruptGuard":
        if self._installed:
            raise RuntimeError("InterruptGuard is already installed")
        if threading.current_thread() is not threading.main_thread():
            # signal handlers can only be set from the main thread
            logger.debug("Not in main thread; interrupt handling disabled")
            return self
        for name in _SIGNAL_NAMES:
            signum = getattr(signal, name, None)
            if signum is None:
                continue
            self._previous[signum] = signal.signal(signum, self._handle)
        self._installed = True
        return self

    def uninstall(self) -> None:
        for signum, previous in self._previous.items():
            signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        self._previous.clear()
        self._installed = False

    def __enter__(self) -> "InterruptGuard":
        return self.install()

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.uninstall()
        return False
