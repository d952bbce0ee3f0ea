"""IMDSv2 metadata client with session-token caching."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from . import constants
from .transport import HttpTransport, TransportFailure

LOGGER = logging.getLogger(__name__)


class MetadataError(RuntimeError):
    """Base class for failures surfaced by :class:`MetadataClient`."""


class TokenUnavailable(MetadataError):
    """Raised when the token endpoint is unreachable or rejects the request."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"token unavailable: {detail}")
        self.detail = detail


class PathNotFound(MetadataError):
    """Raised when the value endpoint answers 404 for a path."""

    def __init__(self, path: str) -> None:
        super().__init__(f"path not found: {path}")
        self.path = path


class UpstreamError(MetadataError):
    """Raised when the value endpoint answers with an unexpected status."""

    def __init__(self, status: int, body: str) -> None:
        message = f"unexpected status {status}"
        if body.strip():
            message = f"{message}: {body.strip()}"
        super().__init__(message)
        self.status = status
        self.body = body


class UndecodableValue(MetadataError):
    """Raised when a value body is not valid UTF-8 text."""

    def __init__(self, path: str) -> None:
        super().__init__(f"response is not valid UTF-8: {path}")
        self.path = path


class TransportError(MetadataError):
    """Raised when a request fails before any HTTP response is received."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


@dataclass(frozen=True, slots=True)
class Token:
    """Session token and the monotonic instant at which it stops being usable."""

    value: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


def _strip_trailing_newline(text: str) -> str:
    if text.endswith("\r\n"):
        return text[:-2]
    if text.endswith("\n"):
        return text[:-1]
    return text


class MetadataClient:
    """Fetches instance metadata values, renewing the session token on expiry.

    The client owns a single cached :class:`Token`. Repeated :meth:`fetch`
    calls within the token lifetime issue exactly one network request each;
    only the first call (and the first call after expiry) pays for the token
    round trip. No retries happen here; callers decide when to try again.
    """

    def __init__(
        self,
        transport: HttpTransport,
        *,
        endpoint: str = constants.DEFAULT_ENDPOINT,
        token_ttl_seconds: int = constants.DEFAULT_TOKEN_TTL_SECONDS,
        timeout_seconds: float = constants.DEFAULT_TIMEOUT_SECONDS,
        refresh_margin_seconds: float = 0.0,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if token_ttl_seconds <= 0:
            raise ValueError("token_ttl_seconds must be positive")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

        self._transport = transport
        self.endpoint = endpoint.rstrip("/")
        self.token_ttl_seconds = token_ttl_seconds
        self.timeout_seconds = timeout_seconds
        self.refresh_margin_seconds = max(0.0, refresh_margin_seconds)
        self._monotonic = monotonic
        self._token: Optional[Token] = None

    @property
    def token_url(self) -> str:
        return f"{self.endpoint}{constants.TOKEN_PATH}"

    def value_url(self, path: str) -> str:
        return f"{self.endpoint}{constants.METADATA_ROOT}{path.lstrip('/')}"

    def invalidate_token(self) -> None:
        self._token = None

    async def get_token(self) -> Token:
        """Return the cached token, requesting a new one if absent or expired."""
        now = self._monotonic()
        token = self._token
        if token is not None and token.is_valid(now + self.refresh_margin_seconds):
            return token

        if token is not None:
            LOGGER.info("Metadata session token expired; requesting a new one")
        self._token = None

        try:
            response = await self._transport.request(
                "PUT",
                self.token_url,
                headers={constants.TOKEN_TTL_HEADER: str(self.token_ttl_seconds)},
                timeout=self.timeout_seconds,
            )
        except TransportFailure as exc:
            raise TokenUnavailable(exc.detail) from exc

        if not response.ok:
            raise TokenUnavailable(
                f"token endpoint returned status {response.status}"
            )

        value = response.text().strip()
        if not value:
            raise TokenUnavailable("token endpoint returned an empty token")

        ttl = self._declared_ttl(response.headers)
        token = Token(value=value, expires_at=self._monotonic() + ttl)
        self._token = token
        LOGGER.debug("Metadata session token acquired, valid for %d seconds", ttl)
        return token

    def _declared_ttl(self, headers: Mapping[str, str]) -> int:
        raw = _header(headers, constants.TOKEN_TTL_HEADER)
        if raw is None:
            return self.token_ttl_seconds
        try:
            ttl = int(raw.strip())
        except ValueError:
            LOGGER.debug("Ignoring malformed token TTL header: %r", raw)
            return self.token_ttl_seconds
        return ttl if ttl > 0 else self.token_ttl_seconds

    async def fetch(self, path: str) -> str:
        """Fetch ``path`` under the metadata root and return it as text.

        Raises:
            TokenUnavailable: no token could be obtained; no value request is made.
            PathNotFound: the service answered 404.
            UpstreamError: the service answered any other non-2xx status.
            UndecodableValue: the body is not UTF-8 text.
            TransportError: the value request failed without a response.
        """
        if not path:
            raise ValueError("metadata path cannot be empty")

        token = await self.get_token()

        try:
            response = await self._transport.request(
                "GET",
                self.value_url(path),
                headers={constants.TOKEN_HEADER: token.value},
                timeout=self.timeout_seconds,
            )
        except TransportFailure as exc:
            raise TransportError(exc.detail) from exc

        if response.ok:
            try:
                text = response.body.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise UndecodableValue(path) from exc
            return _strip_trailing_newline(text)

        if response.status == 404:
            raise PathNotFound(path)

        if response.status == 401:
            # Token was revoked or the service restarted; next fetch re-acquires.
            self.invalidate_token()

        raise UpstreamError(response.status, response.text())
