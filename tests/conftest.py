"""Shared fixtures: an in-process transport and small operation builders."""

import os
from typing import Callable, List, Optional

import pytest

from fuzzing.config import FuzzerConfig
from fuzzing.models import BuiltRequest
from fuzzing.transport import Transport, TransportResponse
from oas.model import Operation, Parameter, ParameterLocation, SchemaNode

BASE_URL = "http://api.test/"


class FakeTransport(Transport):
    """Records every request; answers through `responder`."""

    def __init__(self, responder: Optional[Callable[[BuiltRequest], TransportResponse]] = None):
        self.responder = responder or (lambda request: TransportResponse(status=200, reason="OK"))
        self.requests: List[BuiltRequest] = []
        self.closed = False

    def send(self, request: BuiltRequest) -> TransportResponse:
        self.requests.append(request)
        return self.responder(request)

    def close(self) -> None:
        self.closed = True


def respond(status: int, reason: str = "", body: bytes = b""):
    return lambda request: TransportResponse(status=status, reason=reason, body=body)


def item_operation(schema: Optional[SchemaNode] = None, declared=frozenset()) -> Operation:
    """GET /items/{id} with an integer path parameter."""
    return Operation(
        path="/items/{id}",
        method="GET",
        parameters=[
            Parameter(
                name="id",
                location=ParameterLocation.PATH,
                schema=schema or SchemaNode(types=("integer",)),
                required=True,
            )
        ],
        declared_status_codes=frozenset(declared),
    )


@pytest.fixture(autouse=True)
def clean_fuzzer_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("FUZZER_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def make_config(tmp_path):
    def factory(**overrides) -> FuzzerConfig:
        values = {
            "base_url": BASE_URL,
            "seed": 1234,
            "results_dir": str(tmp_path / "results"),
        }
        values.update(overrides)
        return FuzzerConfig(**values)

    return factory
