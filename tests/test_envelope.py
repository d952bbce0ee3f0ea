import io
import json
from datetime import datetime, timedelta, timezone

import pytest

from ec2im.envelope import (
    Envelope,
    TimestampFormat,
    build_error,
    build_success,
    render_timestamp,
    write_envelope,
)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _from_millis(millis: int) -> datetime:
    return EPOCH + timedelta(milliseconds=millis)


def test_success_envelope_unix_wire_shape():
    envelope = build_success(
        "i-0b22a22eec53b9321", _from_millis(1764029142997), TimestampFormat.UNIX
    )

    assert envelope.to_json() == (
        '{"timestamp":1764029142997,"status":"success","value":"i-0b22a22eec53b9321"}'
    )


def test_error_envelope_iso_wire_shape():
    # Naive datetimes are local wall-clock time, so the rendering is TZ independent.
    now = datetime(2025, 11, 25, 0, 6, 11, 614000)

    envelope = build_error(
        "path not found: meta-data/does-not-exist", now, TimestampFormat.ISO
    )

    assert envelope.to_json() == (
        '{"timestamp":"2025-11-25T00:06:11.614","status":"error","value":null,'
        '"reason":"path not found: meta-data/does-not-exist"}'
    )


def test_success_has_no_reason_key():
    payload = build_success("v", _from_millis(0), TimestampFormat.ISO).as_dict()

    assert list(payload) == ["timestamp", "status", "value"]
    assert payload["status"] == "success"


def test_error_keys_and_values():
    payload = build_error("connection timed out", _from_millis(0), TimestampFormat.UNIX).as_dict()

    assert list(payload) == ["timestamp", "status", "value", "reason"]
    assert payload["value"] is None
    assert payload["reason"] == "connection timed out"


def test_error_reason_never_empty():
    envelope = build_error("", _from_millis(0), TimestampFormat.UNIX)

    assert envelope.reason


def test_iso_render_has_millisecond_precision_and_no_offset():
    rendered = render_timestamp(datetime(2024, 6, 1, 12, 30, 5, 123999), TimestampFormat.ISO)

    assert rendered == "2024-06-01T12:30:05.123"


def test_unix_render_is_integer_millis():
    rendered = render_timestamp(_from_millis(1717245005123), TimestampFormat.UNIX)

    assert rendered == 1717245005123
    assert isinstance(rendered, int)


def test_iso_and_unix_denote_same_millisecond():
    instant = datetime(2024, 6, 1, 12, 30, 5, 123456, tzinfo=timezone.utc)

    iso_value = render_timestamp(instant, TimestampFormat.ISO)
    unix_value = render_timestamp(instant, TimestampFormat.UNIX)

    # The iso string is local wall-clock time without an offset.
    parsed_local = datetime.fromisoformat(iso_value).astimezone()
    assert (parsed_local - EPOCH) // timedelta(milliseconds=1) == unix_value
    assert unix_value == 1717245005123


def test_multiline_value_serialized_on_one_line():
    envelope = build_success("ami\nroot", _from_millis(0), TimestampFormat.UNIX)

    line = envelope.to_json()

    assert "\n" not in line
    assert json.loads(line)["value"] == "ami\nroot"


class FlushRecordingStream(io.StringIO):
    """StringIO that records the buffer contents at every flush."""

    def __init__(self):
        super().__init__()
        self.flushed: list[str] = []

    def flush(self):
        self.flushed.append(self.getvalue())
        super().flush()


def test_write_envelope_emits_one_line():
    stream = FlushRecordingStream()
    write_envelope(Envelope(timestamp=1, status="success", value="x"), stream)

    assert stream.getvalue() == '{"timestamp":1,"status":"success","value":"x"}\n'
    # Each line is flushed as soon as it is complete.
    assert stream.flushed == [stream.getvalue()]


def test_write_envelope_flushes_each_line():
    stream = FlushRecordingStream()
    write_envelope(Envelope(timestamp=1, status="success", value="a"), stream)
    write_envelope(Envelope(timestamp=2, status="error", reason="boom"), stream)

    assert len(stream.flushed) == 2
    assert stream.flushed[0].count("\n") == 1
    assert stream.flushed[1].count("\n") == 2


@pytest.mark.parametrize(
    "raw, expected",
    [("iso", TimestampFormat.ISO), ("UNIX", TimestampFormat.UNIX), (TimestampFormat.UNIX, TimestampFormat.UNIX)],
)
def test_timestamp_format_parse(raw, expected):
    assert TimestampFormat.parse(raw) is expected


def test_timestamp_format_parse_rejects_unknown():
    with pytest.raises(ValueError, match="Unknown timestamp format"):
        TimestampFormat.parse("rfc3339")
