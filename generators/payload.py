"""Sampled values of one trial."""

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class Payload:
    """
    Everything sampled for one request: parameter values by location plus the
    body. `body_present` distinguishes a sampled `null` body from no body.
    """
    path_params: Dict[str, Any] = field(default_factory=dict)
    query_params: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, Any] = field(default_factory=dict)
    cookies: Dict[str, Any] = field(default_factory=dict)
    body: Any = None
    body_present: bool = False
    content_type: str = "application/json"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "path": self.path_params,
            "query": self.query_params,
            "headers": self.headers,
            "cookies": self.cookies,
            "body": self.body,
            "body_present": self.body_present,
            "content_type": self.content_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Payload":
        return cls(
            path_params=dict(data.get("path") or {}),
            query_params=dict(data.get("query") or {}),
            headers=dict(data.get("headers") or {}),
            cookies=dict(data.get("cookies") or {}),
            body=data.get("body"),
            body_present=bool(data.get("body_present", "body" in data and data["body"] is not None)),
            content_type=data.get("content_type") or "application/json",
        )
