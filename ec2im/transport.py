"""HTTP capability used by the metadata client.

The metadata protocol needs exactly two kinds of request (a token ``PUT`` and
a value ``GET``), so the transport surface is deliberately small: one request
in, a status code plus body bytes out, or a :class:`TransportFailure`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional, Protocol

import aiohttp
from yarl import URL

LOGGER = logging.getLogger(__name__)


class TransportFailure(RuntimeError):
    """Raised when a request never produced an HTTP response."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


@dataclass(slots=True)
class HttpResponse:
    status: int
    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class HttpTransport(Protocol):
    """Contract for performing a single HTTP request."""

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        body: Optional[bytes] = None,
        timeout: float,
    ) -> HttpResponse:
        """Perform one request and return the status and body.

        Raises:
            TransportFailure: connection refused, DNS failure or timeout.
        """
        ...


class AiohttpTransport:
    """:class:`HttpTransport` backed by a lazily created ``aiohttp`` session."""

    def __init__(self, *, session: Optional[aiohttp.ClientSession] = None) -> None:
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "AiohttpTransport":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        body: Optional[bytes] = None,
        timeout: float,
    ) -> HttpResponse:
        session = self._ensure_session()
        LOGGER.debug("%s %s (timeout %.1fs)", method, url, timeout)

        try:
            async with session.request(
                method,
                URL(url, encoded=True),
                headers=dict(headers),
                data=body,
                allow_redirects=False,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                payload = await response.read()
                return HttpResponse(
                    status=response.status,
                    body=payload,
                    headers=response.headers.copy(),
                )
        except asyncio.TimeoutError as exc:
            raise TransportFailure("connection timed out") from exc
        except aiohttp.ClientError as exc:
            raise TransportFailure(str(exc) or exc.__class__.__name__) from exc
        except ValueError as exc:
            # aiohttp rejects control characters in the request line this way.
            raise TransportFailure(str(exc) or "invalid request") from exc
