"""Runtime wiring for the one-shot and polling modes."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Optional, TextIO

from .client import MetadataClient
from .config import Ec2imConfig
from .envelope import Envelope, TimestampFormat, write_envelope
from .poller import PollConfig, Poller, fetch_envelope
from .transport import AiohttpTransport, HttpTransport

LOGGER = logging.getLogger(__name__)

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def build_client(
    config: Ec2imConfig,
    transport: HttpTransport,
    *,
    timeout_seconds: Optional[float] = None,
) -> MetadataClient:
    return MetadataClient(
        transport,
        endpoint=config.imds.endpoint,
        token_ttl_seconds=config.imds.token_ttl_seconds,
        timeout_seconds=timeout_seconds or config.imds.timeout_seconds,
        refresh_margin_seconds=config.imds.token_refresh_margin_seconds,
    )


def poll_timeout(config: Ec2imConfig, interval_ms: int) -> float:
    """Network timeout for poll mode: never longer than one interval."""
    return min(config.imds.timeout_seconds, interval_ms / 1000.0)


async def get_once(
    config: Ec2imConfig,
    path: str,
    fmt: TimestampFormat,
    *,
    stream: Optional[TextIO] = None,
    transport: Optional[HttpTransport] = None,
) -> Envelope:
    """Fetch ``path`` once and write a single envelope."""
    LOGGER.info("Querying %s", path)
    async with contextlib.AsyncExitStack() as stack:
        if transport is None:
            transport = await stack.enter_async_context(AiohttpTransport())
        client = build_client(config, transport)
        envelope = await fetch_envelope(client, path, fmt)
    write_envelope(envelope, stream)
    return envelope


async def poll_forever(
    config: Ec2imConfig,
    poll_config: PollConfig,
    *,
    stream: Optional[TextIO] = None,
    transport: Optional[HttpTransport] = None,
    max_ticks: Optional[int] = None,
) -> int:
    """Poll until a shutdown signal arrives (or ``max_ticks`` is reached)."""
    poll_config.validate()
    LOGGER.info("Polling %s", poll_config.path)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in _SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError, ValueError):
            # Not supported on this platform/thread; KeyboardInterrupt still applies.
            continue
        installed.append(sig)

    try:
        async with contextlib.AsyncExitStack() as stack:
            if transport is None:
                transport = await stack.enter_async_context(AiohttpTransport())
            client = build_client(
                config,
                transport,
                timeout_seconds=poll_timeout(config, poll_config.interval_ms),
            )
            poller = Poller(
                client,
                poll_config,
                emit=lambda envelope: write_envelope(envelope, stream),
                stop_event=stop_event,
            )
            return await poller.run(max_ticks=max_ticks)
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def run_get(config: Ec2imConfig, path: str, fmt: TimestampFormat) -> None:
    try:
        asyncio.run(get_once(config, path, fmt))
    except KeyboardInterrupt:
        LOGGER.info("ec2im received shutdown signal")


def run_poll(
    config: Ec2imConfig, path: str, interval_ms: int, fmt: TimestampFormat
) -> None:
    poll_config = PollConfig(path=path, interval_ms=interval_ms, format=fmt)
    try:
        asyncio.run(poll_forever(config, poll_config))
    except KeyboardInterrupt:
        LOGGER.info("ec2im received shutdown signal")
