import asyncio
import socket
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Union

import pytest

from ec2im.transport import HttpResponse

TOKEN_URL_SUFFIX = "/latest/api/token"

Outcome = Union[HttpResponse, BaseException]


@dataclass
class RecordedRequest:
    method: str
    url: str
    headers: dict
    timeout: float


class FakeTransport:
    """In-memory HTTP transport that records every request."""

    def __init__(self, responder: Callable[[str, str, Mapping[str, str]], Outcome]):
        self.responder = responder
        self.calls: list[RecordedRequest] = []
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    async def request(self, method, url, *, headers, body=None, timeout):
        self.calls.append(RecordedRequest(method, url, dict(headers), timeout))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            outcome = self.responder(method, url, headers)
        finally:
            self.in_flight -= 1
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call.method == method)


def imds_responder(
    values: Mapping[str, object],
    *,
    token: str = "token-1",
    token_outcome: Optional[Outcome] = None,
    token_headers: Optional[Mapping[str, str]] = None,
):
    """Build a responder that mimics the metadata service.

    ``values`` maps a path (relative to /latest/) to a body string, an HTTP
    status code, an exception, or a list of those consumed one per request.
    Unknown paths answer 404.
    """
    remaining = {key: list(value) if isinstance(value, list) else value for key, value in values.items()}

    def responder(method, url, headers):
        if url.endswith(TOKEN_URL_SUFFIX):
            assert method == "PUT"
            if token_outcome is not None:
                return token_outcome
            return HttpResponse(200, token.encode(), dict(token_headers or {}))

        assert method == "GET"
        path = url.split("/latest/", 1)[1]
        outcome = remaining.get(path)
        if isinstance(outcome, list):
            outcome = outcome.pop(0)
        if outcome is None:
            return HttpResponse(404, b"Not Found")
        if isinstance(outcome, BaseException):
            return outcome
        if isinstance(outcome, int):
            return HttpResponse(outcome, b"")
        return HttpResponse(200, str(outcome).encode())

    return responder


class FakeMonotonic:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def make_transport():
    def factory(values=None, *, responder=None, **kwargs) -> FakeTransport:
        if responder is not None:
            return FakeTransport(responder)
        return FakeTransport(imds_responder(values or {}, **kwargs))

    return factory


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def free_tcp_port() -> int:
    """A localhost port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
