"""Constants used across the ec2im package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "ec2im"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_ENDPOINT = "http://169.254.169.254"
TOKEN_PATH = "/latest/api/token"
METADATA_ROOT = "/latest/"

TOKEN_TTL_HEADER = "X-aws-ec2-metadata-token-ttl-seconds"
TOKEN_HEADER = "X-aws-ec2-metadata-token"

DEFAULT_TOKEN_TTL_SECONDS = 21600  # 6 hours, the service maximum
DEFAULT_TIMEOUT_SECONDS = 5.0

DEFAULT_POLL_INTERVAL_MS = 5000
MIN_POLL_INTERVAL_MS = 500
MAX_POLL_INTERVAL_MS = 10000
