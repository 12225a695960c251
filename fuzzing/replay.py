"""Reissue a recorded finding against a (possibly different) deployment."""

import logging
from typing import Dict, Optional

from .models import BuiltRequest, FuzzResult
from .request_builder import build_request
from .transport import Transport, TransportResponse

logger = logging.getLogger("openapi_fuzzer.fuzzing.replay")


def rebuild(result: FuzzResult, base_url: str, headers: Optional[Dict[str, str]] = None) -> BuiltRequest:
    """The request a FuzzResult describes, built from its stored payload only."""
    return build_request(base_url, result.method, result.path, result.payload, headers)


def replay(result: FuzzResult, base_url: str, headers: Optional[Dict[str, str]],
           transport: Transport) -> TransportResponse:
    """
    Send the recorded request again.

    Raises:
        TransportError: the request could not complete
    """
    request = rebuild(result, base_url, headers)
    logger.info(f"Replaying {result.identity} trial {result.trial} ({request.fingerprint()[:12]})")
    return transport.send(request)
