"""Configuration loader for ec2im."""

from __future__ import annotations

import logging
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants
from .envelope import TimestampFormat

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ImdsConfig:
    endpoint: str = constants.DEFAULT_ENDPOINT
    token_ttl_seconds: int = constants.DEFAULT_TOKEN_TTL_SECONDS
    token_refresh_margin_seconds: float = 0.0  # Renew this long before real expiry
    timeout_seconds: float = constants.DEFAULT_TIMEOUT_SECONDS


@dataclass(slots=True)
class OutputConfig:
    timestamp_format: TimestampFormat = TimestampFormat.ISO


@dataclass(slots=True)
class PollSettings:
    interval_ms: int = constants.DEFAULT_POLL_INTERVAL_MS


@dataclass(slots=True)
class LoggingConfig:
    level: str = "WARNING"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class Ec2imConfig:
    imds: ImdsConfig
    output: OutputConfig
    poll: PollSettings
    logging: LoggingConfig
    raw: ConfigParser
    path: Path


def _parse_timestamp_format(value: str) -> TimestampFormat:
    try:
        return TimestampFormat.parse(value)
    except ValueError as exc:
        LOGGER.warning("%s; falling back to iso", exc)
        return TimestampFormat.ISO


def load_config(path: Optional[Path] = None) -> Ec2imConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "imds": {
                "endpoint": constants.DEFAULT_ENDPOINT,
                "token_ttl_seconds": str(constants.DEFAULT_TOKEN_TTL_SECONDS),
                "token_refresh_margin_seconds": "0",
                "timeout_seconds": str(constants.DEFAULT_TIMEOUT_SECONDS),
            },
            "output": {
                "timestamp_format": TimestampFormat.ISO.value,
            },
            "poll": {
                "interval_ms": str(constants.DEFAULT_POLL_INTERVAL_MS),
            },
            "logging": {
                "level": "WARNING",
                "path": "",
                "log_network": "false",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    imds_defaults = ImdsConfig()

    timeout_value = parser.getfloat(
        "imds", "timeout_seconds", fallback=imds_defaults.timeout_seconds
    )
    if timeout_value <= 0:
        timeout_value = imds_defaults.timeout_seconds

    imds = ImdsConfig(
        endpoint=parser.get("imds", "endpoint").rstrip("/"),
        token_ttl_seconds=max(
            1,
            min(
                constants.DEFAULT_TOKEN_TTL_SECONDS,
                parser.getint(
                    "imds",
                    "token_ttl_seconds",
                    fallback=imds_defaults.token_ttl_seconds,
                ),
            ),
        ),
        token_refresh_margin_seconds=max(
            0.0,
            parser.getfloat("imds", "token_refresh_margin_seconds", fallback=0.0),
        ),
        timeout_seconds=timeout_value,
    )

    output = OutputConfig(
        timestamp_format=_parse_timestamp_format(
            parser.get("output", "timestamp_format", fallback="iso")
        ),
    )

    poll = PollSettings(
        interval_ms=max(
            1,
            parser.getint(
                "poll", "interval_ms", fallback=constants.DEFAULT_POLL_INTERVAL_MS
            ),
        ),
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="WARNING"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    return Ec2imConfig(
        imds=imds,
        output=output,
        poll=poll,
        logging=logging_config,
        raw=parser,
        path=config_path,
    )
