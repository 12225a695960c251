"""
Trial execution: request building, transport, the run loop and replay.

Usage:
    from fuzzing import ExecutionEngine, FuzzerConfig, RequestsTransport

    config = FuzzerConfig(base_url="http://localhost:8080", ignore_status_codes={404})
    report = ExecutionEngine(spec.operations, config, RequestsTransport()).run()
"""

from .config import ConfigError, FuzzerConfig, parse_header
from .engine import ExecutionEngine
from .models import BuiltRequest, ExitStatus, FuzzResult, RunReport, TrialOutcome, Verdict
from .replay import rebuild, replay
from .request_builder import build_request, render_path
from .transport import RequestsTransport, Transport, TransportError, TransportResponse

__all__ = [
    "BuiltRequest",
    "ConfigError",
    "ExecutionEngine",
    "ExitStatus",
    "FuzzResult",
    "FuzzerConfig",
    "RequestsTransport",
    "RunReport",
    "Transport",
    "TransportError",
    "TransportResponse",
    "TrialOutcome",
    "Verdict",
    "build_request",
    "parse_header",
    "rebuild",
    "render_path",
    "replay",
]
