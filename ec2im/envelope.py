"""Output envelope construction and serialization.

Every fetch outcome becomes one :class:`Envelope`, serialized as a single line
of compact JSON. Field order and presence are part of the output contract:
``timestamp, status, value`` always, ``reason`` only on error.
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional, TextIO, Union

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND = timedelta(milliseconds=1)

Timestamp = Union[str, int]


class TimestampFormat(str, Enum):
    ISO = "iso"
    UNIX = "unix"

    @classmethod
    def parse(cls, value: Union[str, "TimestampFormat"]) -> "TimestampFormat":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(item.value for item in cls)
            raise ValueError(
                f"Unknown timestamp format {value!r} (expected one of: {choices})"
            ) from None


def _as_local(instant: datetime) -> datetime:
    # Naive datetimes are interpreted as local wall-clock time.
    return instant.astimezone()


def render_timestamp(instant: datetime, fmt: TimestampFormat) -> Timestamp:
    """Render ``instant`` in the requested format.

    ``iso`` yields local wall-clock time as ``YYYY-MM-DDTHH:MM:SS.mmm`` with no
    offset suffix; ``unix`` yields integer milliseconds since the epoch. Both
    truncate to the millisecond.
    """
    local = _as_local(instant)
    if fmt is TimestampFormat.UNIX:
        return (local - _EPOCH) // _MILLISECOND
    return local.replace(tzinfo=None).isoformat(timespec="milliseconds")


@dataclass(frozen=True, slots=True)
class Envelope:
    timestamp: Timestamp
    status: str
    value: Optional[str] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "timestamp": self.timestamp,
            "status": self.status,
            "value": self.value,
        }
        if self.status == STATUS_ERROR:
            payload["reason"] = self.reason
        return payload

    def to_json(self) -> str:
        return json.dumps(self.as_dict(), separators=(",", ":"))


def build_success(value: str, now: datetime, fmt: TimestampFormat) -> Envelope:
    return Envelope(
        timestamp=render_timestamp(now, fmt), status=STATUS_SUCCESS, value=value
    )


def build_error(reason: str, now: datetime, fmt: TimestampFormat) -> Envelope:
    return Envelope(
        timestamp=render_timestamp(now, fmt),
        status=STATUS_ERROR,
        value=None,
        reason=reason or "unknown error",
    )


def write_envelope(envelope: Envelope, stream: Optional[TextIO] = None) -> None:
    """Write ``envelope`` as one line and flush so consumers never see partial lines."""
    target = stream if stream is not None else sys.stdout
    target.write(envelope.to_json() + "\n")
    target.flush()
