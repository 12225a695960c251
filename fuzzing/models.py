"""
Fuzzing data models: built requests, trial outcomes, durable findings and
the run report.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from generators.payload import Payload


# =============================================================================
# ENUMS
# =============================================================================

class ExitStatus(Enum):
    CLEAN = 0
    FINDINGS = 1
    FATAL = 2


class Verdict(Enum):
    ACCEPTED = "accepted"
    FINDING = "finding"
    TRANSPORT_ERROR = "transport_error"


# =============================================================================
# REQUESTS
# =============================================================================

@dataclass(frozen=True)
class BuiltRequest:
    """A fully rendered HTTP request. Header keys are lower-case."""
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    def canonical_bytes(self) -> bytes:
        lines = [f"{self.method} {self.url}"]
        lines.extend(f"{key}: {self.headers[key]}" for key in sorted(self.headers))
        head = "\r\n".join(lines).encode("utf-8")
        return head + b"\r\n\r\n" + (self.body or b"")

    def fingerprint(self) -> str:
        """sha256 of the canonical request bytes."""
        return hashlib.sha256(self.canonical_bytes()).hexdigest()


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class FuzzResult:
    """
    Durable record of a finding. Only `path`, `method` and `payload` take part
    in replay; the remaining fields are informational.
    """
    path: str
    method: str
    payload: Payload
    status: Optional[int] = None
    error: Optional[str] = None
    trial: int = 0
    rendered_path: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def identity(self) -> str:
        return f"{self.method.upper()} {self.path}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "method": self.method,
            "payload": self.payload.to_dict(),
            "status": self.status,
            "error": self.error,
            "trial": self.trial,
            "rendered_path": self.rendered_path,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FuzzResult":
        if not isinstance(data, dict) or "path" not in data or "method" not in data:
            raise ValueError("FuzzResult requires 'path' and 'method'")
        return cls(
            path=data["path"],
            method=data["method"],
            payload=Payload.from_dict(data.get("payload") or {}),
            status=data.get("status"),
            error=data.get("error"),
            trial=int(data.get("trial") or 0),
            rendered_path=data.get("rendered_path"),
            created_at=data.get("created_at") or "",
        )


@dataclass
class TrialOutcome:
    """What happened in one trial."""
    operation: str
    trial: int
    verdict: Verdict
    duration: float
    status: Optional[int] = None
    error: Optional[str] = None
    request: Optional[BuiltRequest] = None


@dataclass
class RunReport:
    """Explicit result of an engine run."""
    seed: int
    findings: List[FuzzResult] = field(default_factory=list)
    trial_counts: Dict[str, int] = field(default_factory=dict)
    transport_errors: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    saved_paths: List[str] = field(default_factory=list)
    stats_path: Optional[str] = None
    elapsed: float = 0.0
    cancelled: bool = False

    @property
    def total_trials(self) -> int:
        return sum(self.trial_counts.values())

    @property
    def total_transport_errors(self) -> int:
        return sum(self.transport_errors.values())

    @property
    def exit_status(self) -> ExitStatus:
        return ExitStatus.FINDINGS if self.findings else ExitStatus.CLEAN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seed": self.seed,
            "findings": len(self.findings),
            "trials": self.total_trials,
            "trial_counts": self.trial_counts,
            "transport_errors": self.transport_errors,
            "warnings": self.warnings,
            "stats_path": self.stats_path,
            "elapsed": round(self.elapsed, 3),
            "cancelled": self.cancelled,
            "exit_status": self.exit_status.value,
        }
