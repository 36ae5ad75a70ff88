"""Result sinks: how finished rows reach the output file.

Two disciplines share one interface:

``locked``
    Workers write their own rows to the shared writer under a lock, then
    post a completion signal for the coordinator. Rows appear in
    completion order.

``channel``
    Workers only post outcomes on a queue. The coordinator thread drains
    the queue and is the only one that touches the writer.

In both cases the coordinator sees exactly one ``Delivery`` per finished
item and calls ``settle`` on it, which is where write failures surface.
"""
from __future__ import annotations

import abc
import csv
import io
import logging
import math
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Mapping, Optional, TextIO

from .errors import ConfigError, WriteError
from .models import FeatureConfig, ItemOutcome

logger = logging.getLogger(__name__)


def _format_value(value: Any) -> Any:
    if isinstance(value, float) and math.isnan(value):
        return "NaN"
    return value


class CsvRowWriter:
    """CSV writer with a fixed column set. Each row is emitted with a single ``write`` call."""

    def __init__(self, stream: TextIO, columns: List[str], delimiter: str = ",", owns_stream: bool = False) -> None:
        self._stream = stream
        self.columns = list(columns)
        self.delimiter = delimiter
        self._owns_stream = owns_stream
        self.rows_written = 0
        self._header_written = False

    @classmethod
    def open(cls, path: str | Path, columns: List[str], delimiter: str = ",") -> "CsvRowWriter":
        try:
            stream = open(path, "w", newline="", encoding="utf-8")
        except OSError as exc:
            raise WriteError(f"Invalid output file {path}: {exc}") from exc
        return cls(stream, columns, delimiter=delimiter, owns_stream=True)

    def _emit(self, values: List[Any]) -> None:
        buf = io.StringIO()
        csv.writer(buf, delimiter=self.delimiter).writerow(values)
        try:
            self._stream.write(buf.getvalue())
        except (OSError, ValueError) as exc:
            raise WriteError(f"Can't write to output: {exc}") from exc

    def write_header(self) -> None:
        if not self._header_written:
            self._emit(self.columns)
            self._header_written = True

    def write(self, record: Mapping[str, Any]) -> None:
        if list(record.keys()) != self.columns:
            raise WriteError(f"Row columns {list(record.keys())} do not match header {self.columns}")
        self.write_header()
        self._emit([_format_value(record[c]) for c in self.columns])
        self.rows_written += 1

    def flush(self) -> None:
        try:
            self._stream.flush()
        except (OSError, ValueError) as exc:
            raise WriteError(f"Can't flush output: {exc}") from exc

    def close(self) -> None:
        self.write_header()
        self.flush()
        if self._owns_stream:
            self._stream.close()


@dataclass
class Delivery:
    outcome: ItemOutcome
    written: bool = False
    error: Optional[WriteError] = None


class ResultSink(abc.ABC):
    discipline = ""

    def __init__(self, writer: CsvRowWriter, config: FeatureConfig, flush_every: int = 0) -> None:
        self.writer = writer
        self.config = config
        self.flush_every = int(flush_every)
        self._deliveries: "queue.Queue[Delivery]" = queue.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abc.abstractmethod
    def deliver(self, outcome: ItemOutcome) -> None:
        """Called from a worker thread once per finished item."""

    @abc.abstractmethod
    def settle(self, delivery: Delivery) -> bool:
        """Called from the coordinator. Returns True when the row was written."""

    @abc.abstractmethod
    def flush(self) -> None:
        ...

    @abc.abstractmethod
    def close(self) -> None:
        ...

    def next_delivery(self, timeout: float) -> Optional[Delivery]:
        try:
            return self._deliveries.get(timeout=timeout)
        except queue.Empty:
            return None

    def _write_row(self, outcome: ItemOutcome) -> None:
        self.writer.write(outcome.row.to_record(self.config))
        if self.flush_every and self.writer.rows_written % self.flush_every == 0:
            self.writer.flush()


class LockedWriterSink(ResultSink):
    """Workers write directly to the shared writer under a mutex."""

    discipline = "locked"

    def __init__(self, writer: CsvRowWriter, config: FeatureConfig, flush_every: int = 0) -> None:
        super().__init__(writer, config, flush_every)
        self._lock = threading.Lock()
        with self._lock:
            self.writer.write_header()

    def deliver(self, outcome: ItemOutcome) -> None:
        delivery = Delivery(outcome)
        # posted under the lock so every written row is queued before close() returns
        with self._lock:
            if self._closed:
                logger.debug("Dropping late outcome for %s", outcome.item.reference)
                return
            if outcome.ok:
                try:
                    self._write_row(outcome)
                    delivery.written = True
                except WriteError as exc:
                    exc.reference = outcome.item.reference
                    delivery.error = exc
            self._deliveries.put(delivery)

    def settle(self, delivery: Delivery) -> bool:
        if delivery.error is not None:
            raise delivery.error
        return delivery.written

    def flush(self) -> None:
        with self._lock:
            self.writer.flush()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self.writer.close()


class ChannelSink(ResultSink):
    """Workers post outcomes; only the coordinator writes."""

    discipline = "channel"

    def __init__(self, writer: CsvRowWriter, config: FeatureConfig, flush_every: int = 0) -> None:
        super().__init__(writer, config, flush_every)
        self.writer.write_header()

    def deliver(self, outcome: ItemOutcome) -> None:
        if self._closed:
            logger.debug("Dropping late outcome for %s", outcome.item.reference)
            return
        self._deliveries.put(Delivery(outcome))

    def settle(self, delivery: Delivery) -> bool:
        outcome = delivery.outcome
        if not outcome.ok or self._closed:
            return False
        try:
            self._write_row(outcome)
        except WriteError as exc:
            exc.reference = outcome.item.reference
            raise
        return True

    def flush(self) -> None:
        self.writer.flush()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.writer.close()


_SINKS = {cls.discipline: cls for cls in (LockedWriterSink, ChannelSink)}


def make_sink(discipline: str, writer: CsvRowWriter, config: FeatureConfig, flush_every: int = 0) -> ResultSink:
    try:
        cls = _SINKS[discipline]
    except KeyError:
        raise ConfigError(f"Unknown result discipline {discipline!r}") from None
    return cls(writer, config, flush_every=flush_every)
