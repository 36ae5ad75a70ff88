import csv
import io
import math

import pytest

from beatfeatures.pipeline.errors import ConfigError, ParseError, WriteError
from beatfeatures.pipeline.models import DifficultyTier, FeatureConfig, FeatureRow, ItemOutcome, RatedItem
from beatfeatures.pipeline.sink import ChannelSink, CsvRowWriter, LockedWriterSink, make_sink

CONFIG = FeatureConfig(one_hot_tier=True, dot_ratio=True)


class RecordingStream(io.StringIO):
    """StringIO that records write calls and can start failing after `fail_after` writes."""

    def __init__(self, fail_after=None):
        super().__init__()
        self.writes = []
        self.flushes = 0
        self.fail_after = fail_after

    def write(self, s):
        if self.fail_after is not None and len(self.writes) >= self.fail_after:
            raise OSError("disk full")
        self.writes.append(s)
        return super().write(s)

    def flush(self):
        self.flushes += 1
        super().flush()


def _ok(reference="A", dots=0.2):
    row = FeatureRow(
        rating=4.5,
        length=60.0,
        bpm=120.0,
        note_jump_speed=16.0,
        note_count=10,
        bomb_count=1,
        notes_per_second=10 / 60,
        obstacle_count=3,
        tier=DifficultyTier.HARD,
        dots_per_note=dots,
    )
    return ItemOutcome(item=RatedItem(reference, "Hard", 4.5), row=row)


def _failed(reference="B"):
    return ItemOutcome(item=RatedItem(reference, "Hard", 1.0), error=ParseError(reference, "unreachable"))


def _rows(stream):
    return list(csv.DictReader(io.StringIO(stream.getvalue())))


def test_writer_emits_header_once_and_one_write_per_row():
    stream = RecordingStream()
    writer = CsvRowWriter(stream, CONFIG.columns())
    writer.write(_ok().row.to_record(CONFIG))
    writer.write(_ok().row.to_record(CONFIG))
    writer.close()
    assert len(stream.writes) == 3
    assert stream.writes[0].rstrip("\r\n").split(",") == CONFIG.columns()
    assert all(w.endswith("\n") for w in stream.writes)
    assert writer.rows_written == 2


def test_writer_spells_nan():
    stream = RecordingStream()
    writer = CsvRowWriter(stream, CONFIG.columns())
    writer.write(_ok(dots=float("nan")).row.to_record(CONFIG))
    row = _rows(stream)[0]
    assert row["dots_per_note"] == "NaN"
    assert math.isnan(float(row["dots_per_note"]))


def test_writer_rejects_mismatched_columns():
    writer = CsvRowWriter(RecordingStream(), FeatureConfig(dot_ratio=False).columns())
    with pytest.raises(WriteError):
        writer.write(_ok().row.to_record(CONFIG))


def test_writer_open_reports_bad_path(tmp_path):
    with pytest.raises(WriteError):
        CsvRowWriter.open(tmp_path / "missing" / "out.csv", CONFIG.columns())


def test_locked_sink_writes_in_worker_and_signals():
    stream = RecordingStream()
    sink = LockedWriterSink(CsvRowWriter(stream, CONFIG.columns()), CONFIG)
    sink.deliver(_ok("A"))
    assert len(_rows(stream)) == 1

    sink.deliver(_failed("B"))
    first = sink.next_delivery(0.1)
    second = sink.next_delivery(0.1)
    assert sink.settle(first) is True
    assert sink.settle(second) is False
    assert sink.next_delivery(0.01) is None


def test_channel_sink_only_writes_on_settle():
    stream = RecordingStream()
    sink = ChannelSink(CsvRowWriter(stream, CONFIG.columns()), CONFIG)
    sink.deliver(_ok("A"))
    assert _rows(stream) == []
    delivery = sink.next_delivery(0.1)
    assert sink.settle(delivery) is True
    assert len(_rows(stream)) == 1


@pytest.mark.parametrize("discipline", ["locked", "channel"])
def test_write_failures_surface_on_settle(discipline):
    stream = RecordingStream(fail_after=1)  # header succeeds
    sink = make_sink(discipline, CsvRowWriter(stream, CONFIG.columns()), CONFIG)
    sink.deliver(_ok("A"))
    delivery = sink.next_delivery(0.1)
    with pytest.raises(WriteError) as info:
        sink.settle(delivery)
    assert info.value.reference == "A"


@pytest.mark.parametrize("discipline", ["locked", "channel"])
def test_closed_sink_drops_late_rows(discipline):
    stream = RecordingStream()
    sink = make_sink(discipline, CsvRowWriter(stream, CONFIG.columns()), CONFIG)
    sink.close()
    assert sink.closed
    sink.deliver(_ok("late"))
    assert sink.next_delivery(0.01) is None
    assert _rows(stream) == []


def test_periodic_flush():
    stream = RecordingStream()
    sink = LockedWriterSink(CsvRowWriter(stream, CONFIG.columns()), CONFIG, flush_every=2)
    for ref in "ABCD":
        sink.deliver(_ok(ref))
    assert stream.flushes == 2


def test_unknown_discipline():
    with pytest.raises(ConfigError):
        make_sink("async", CsvRowWriter(RecordingStream(), CONFIG.columns()), CONFIG)
