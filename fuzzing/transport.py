"""
HTTP transport.

The engine only sees the abstract `Transport`; `RequestsTransport` is the
default implementation over a `requests.Session`. Failures below the HTTP
status level surface as `TransportError` with a coarse `kind`.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter

from .models import BuiltRequest

logger = logging.getLogger("openapi_fuzzer.fuzzing.transport")

USER_AGENT = "openapi-fuzzer/1.0"


class TransportError(Exception):
    """Request could not complete: kind is `timeout`, `connection` or `protocol`."""

    TIMEOUT = "timeout"
    CONNECTION = "connection"
    PROTOCOL = "protocol"

    def __init__(self, kind: str, message: str):
        super().__init__(f"{kind}: {message}")
        self.kind = kind
        self.message = message


@dataclass
class TransportResponse:
    status: int
    reason: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class Transport(ABC):
    """Sends one BuiltRequest and returns the raw response."""

    @abstractmethod
    def send(self, request: BuiltRequest) -> TransportResponse:
        pass

    def close(self) -> None:
        pass


class RequestsTransport(Transport):
    """
    `requests`-backed transport. Redirects are not followed and nothing is
    retried, so every trial maps to exactly one request on the wire.
    """

    def __init__(self, timeout: float = 10.0, verify_tls: bool = True,
                 session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})
        adapter = HTTPAdapter(max_retries=0)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def send(self, request: BuiltRequest) -> TransportResponse:
        try:
            response = self.session.request(
                request.method,
                request.url,
                headers=request.headers,
                data=request.body,
                timeout=self.timeout,
                verify=self.verify_tls,
                allow_redirects=False,
            )
            body = response.content
        except requests.exceptions.Timeout as e:
            raise TransportError(TransportError.TIMEOUT, str(e)) from e
        except requests.exceptions.ConnectionError as e:
            raise TransportError(TransportError.CONNECTION, str(e)) from e
        except (requests.exceptions.RequestException, ValueError) as e:
            raise TransportError(TransportError.PROTOCOL, str(e)) from e

        logger.debug(f"{request.method} {request.url} -> {response.status_code}")
        return TransportResponse(
            status=response.status_code,
            reason=response.reason or "",
            headers=dict(response.headers),
            body=body,
        )

    def close(self) -> None:
        self.session.close()
