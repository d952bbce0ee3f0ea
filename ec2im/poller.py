"""Fixed-cadence polling of a single metadata path.

Design principles:
- One fetch in flight at a time; ticks never overlap
- Start-to-start cadence with no catch-up after a slow fetch
- A failed tick emits an error envelope and the loop keeps going
- Cancellation waits for the in-flight tick to emit before stopping
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from .client import MetadataClient, MetadataError
from .envelope import (
    Envelope,
    TimestampFormat,
    build_error,
    build_success,
    write_envelope,
)

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Emitter = Callable[[Envelope], None]


def _local_now() -> datetime:
    return datetime.now().astimezone()


class PollConfigError(ValueError):
    """Raised when a poll run is configured with invalid values."""


class PollerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class PollConfig:
    """Immutable description of a poll run.

    Attributes:
        path: Metadata path to fetch on every tick
        interval_ms: Milliseconds between the starts of consecutive ticks
        format: Timestamp format applied to every emitted envelope
    """
    path: str
    interval_ms: int
    format: TimestampFormat = TimestampFormat.ISO

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000.0

    def validate(self) -> None:
        if not self.path:
            raise PollConfigError("Metadata path cannot be empty")
        if isinstance(self.interval_ms, bool) or not isinstance(self.interval_ms, int):
            raise PollConfigError(
                f"Poll interval must be an integer number of milliseconds, got {self.interval_ms!r}"
            )
        if self.interval_ms <= 0:
            raise PollConfigError(
                f"Poll interval must be positive, got {self.interval_ms} ms"
            )


async def fetch_envelope(
    client: MetadataClient,
    path: str,
    fmt: TimestampFormat,
    *,
    clock: Clock = _local_now,
) -> Envelope:
    """Fetch ``path`` once and wrap the outcome in an envelope.

    The timestamp is read when the fetch begins.
    """
    started_at = clock()
    try:
        value = await client.fetch(path)
    except MetadataError as exc:
        LOGGER.warning("Fetching %s failed: %s", path, exc)
        return build_error(str(exc), started_at, fmt)
    return build_success(value, started_at, fmt)


class Poller:
    """Drives repeated fetches of one path and emits an envelope per tick."""

    def __init__(
        self,
        client: MetadataClient,
        config: PollConfig,
        *,
        emit: Emitter = write_envelope,
        clock: Clock = _local_now,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        self._client = client
        self.config = config
        self._emit = emit
        self._clock = clock
        self._stop_event = stop_event
        self.state = PollerState.IDLE
        self.ticks = 0

    def stop(self) -> None:
        """Request the loop to stop after the current tick, if any."""
        if self._stop_event is None:
            self._stop_event = asyncio.Event()
        self._stop_event.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    async def tick(self) -> Envelope:
        envelope = await fetch_envelope(
            self._client, self.config.path, self.config.format, clock=self._clock
        )
        self._emit(envelope)
        self.ticks += 1
        return envelope

    async def run(self, max_ticks: Optional[int] = None) -> int:
        """Run ticks until stopped, or until ``max_ticks`` have been emitted.

        Returns the number of ticks emitted by this run.
        """
        try:
            self.config.validate()
        except PollConfigError:
            self.state = PollerState.STOPPED
            raise

        if max_ticks is not None and max_ticks <= 0:
            raise PollConfigError(f"max_ticks must be positive, got {max_ticks}")

        if self._stop_event is None:
            self._stop_event = asyncio.Event()
        stop_event = self._stop_event

        loop = asyncio.get_running_loop()
        interval = self.config.interval_seconds
        emitted = 0
        self.state = PollerState.RUNNING
        LOGGER.info(
            "Polling %s every %d ms", self.config.path, self.config.interval_ms
        )

        try:
            while not stop_event.is_set():
                started = loop.time()
                await self.tick()
                emitted += 1

                if max_ticks is not None and emitted >= max_ticks:
                    break

                remaining = interval - (loop.time() - started)
                if remaining <= 0:
                    LOGGER.debug(
                        "Tick took longer than the %d ms interval; starting next tick now",
                        self.config.interval_ms,
                    )
                    continue

                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=remaining)
                    break  # Stop event was set
                except asyncio.TimeoutError:
                    continue
        finally:
            self.state = PollerState.STOPPED
            LOGGER.info("Polling %s stopped after %d ticks", self.config.path, emitted)

        return emitted
