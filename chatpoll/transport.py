"""HTTP transport for chat requests.

``Transport.execute`` is the single primitive the rest of the package talks
to. ``RequestSender`` layers attempts, accepted status codes and the pause
between attempts on top of it, so the core can be driven by any object that
implements ``execute`` (tests use an in-memory fake).
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from .constants import REQUEST_ATTEMPTS
from .errors import ProtocolViolation, TransportFailure

log = logging.getLogger("chatpoll.transport")


@dataclass(frozen=True)
class Request:
    method: str
    url: str
    data: dict[str, str] | None = None

    @classmethod
    def get(cls, url: str) -> Request:
        return cls("GET", url)

    @classmethod
    def post(cls, url: str, **data: Any) -> Request:
        return cls("POST", url, {k: str(v) for k, v in data.items()})


@dataclass(frozen=True)
class Response:
    status_code: int
    text: str

    @property
    def not_found(self) -> bool:
        return self.status_code == 404

    def json(self) -> Any:
        try:
            return json.loads(self.text)
        except ValueError as e:
            raise ProtocolViolation(f"response is not JSON: {self.text[:200]!r}") from e


class Transport:
    """Executes one request and returns the raw response.

    Implementations raise ``TransportFailure`` for network-level errors and
    return every HTTP response, whatever its status.
    """

    def execute(self, request: Request) -> Response:
        raise NotImplementedError

    def close(self) -> None:
        pass


class HttpTransport(Transport):
    def __init__(
        self,
        client: httpx.Client | None = None,
        *,
        timeout: float = 30.0,
        user_agent: str | None = None,
    ) -> None:
        if client is None:
            headers = {"User-Agent": user_agent} if user_agent else None
            # Login success is signalled by a 302, so redirects must be visible.
            client = httpx.Client(timeout=timeout, headers=headers, follow_redirects=False)
        self.client = client

    def execute(self, request: Request) -> Response:
        try:
            resp = self.client.request(request.method, request.url, data=request.data)
        except httpx.HTTPError as e:
            raise TransportFailure(f"{request.method} {request.url} failed: {e}") from e
        return Response(status_code=resp.status_code, text=resp.text)

    def close(self) -> None:
        self.client.close()


class RequestSender:
    """
    Sends one request with retries.

    Configured fluently:

        RequestSender(transport, req).pause(5.0).attempts(5).status_codes(200).as_response()

    A 404 is returned immediately and never retried; callers decide what a
    missing resource means. Any other status outside ``status_codes`` (when
    given) counts as a failed attempt. The pause grows linearly with the
    attempt number.
    """

    def __init__(
        self,
        transport: Transport,
        request: Request,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.transport = transport
        self.request = request
        self._pause = 0.0
        self._sleep = sleep
        self._attempts = REQUEST_ATTEMPTS
        self._status_codes: frozenset[int] = frozenset()

    def attempts(self, n: int) -> RequestSender:
        if n < 1:
            raise ValueError("attempts must be at least 1")
        self._attempts = int(n)
        return self

    def status_codes(self, *codes: int) -> RequestSender:
        self._status_codes = frozenset(int(c) for c in codes)
        return self

    def pause(self, seconds: float) -> RequestSender:
        self._pause = float(seconds)
        return self

    def _accepts(self, resp: Response) -> bool:
        if resp.not_found or not self._status_codes:
            return True
        return resp.status_code in self._status_codes

    def as_response(self) -> Response:
        req = self.request
        failure = TransportFailure(f"{req.method} {req.url} was not attempted")

        for attempt in range(1, self._attempts + 1):
            try:
                resp = self.transport.execute(req)
            except TransportFailure as e:
                failure = e
            else:
                if self._accepts(resp):
                    return resp
                failure = TransportFailure(
                    f"{req.method} {req.url} returned unexpected status {resp.status_code}",
                    status_code=resp.status_code,
                )

            if attempt < self._attempts:
                delay = self._pause * attempt
                log.warning(
                    "Request failed (attempt %d/%d), retrying in %.1fs: %s",
                    attempt,
                    self._attempts,
                    delay,
                    failure,
                )
                if delay > 0:
                    self._sleep(delay)

        raise failure
