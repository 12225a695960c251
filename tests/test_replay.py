from fuzzing.models import FuzzResult
from fuzzing.replay import rebuild, replay
from fuzzing.request_builder import build_request
from fuzzing.transport import TransportResponse
from generators.payload import Payload
from storage import ResultStore

from .conftest import FakeTransport, respond


def finding() -> FuzzResult:
    payload = Payload(
        path_params={"id": -1},
        query_params={"expand": ["owner", "tags"]},
        headers={"x-trace": "tést"},
        cookies={"session": "s 1"},
        body={"name": "\U0001f600", "price": 1e-300, "big": 2 ** 70},
        body_present=True,
    )
    return FuzzResult(path="/items/{id}", method="PATCH", payload=payload, status=500, trial=3,
                      rendered_path="/items/-1")


def test_rebuilt_request_matches_original_after_round_trip(tmp_path):
    result = finding()
    original = build_request("http://api.test/", result.method, result.path, result.payload, {"x-key": "k"})

    store = ResultStore(tmp_path)
    loaded = store.load(store.save(result))
    rebuilt = rebuild(loaded, "http://api.test/", {"x-key": "k"})

    assert rebuilt == original
    assert rebuilt.canonical_bytes() == original.canonical_bytes()


def test_replay_sends_rebuilt_request():
    transport = FakeTransport(respond(500, "Internal Server Error", b"boom"))
    response = replay(finding(), "http://other.test/base/", {}, transport)
    assert response.status == 500
    assert response.text == "boom"
    (sent,) = transport.requests
    assert sent.url.startswith("http://other.test/base/items/-1?expand=owner&expand=tags")
    assert sent.method == "PATCH"


def test_replay_is_idempotent_against_unchanged_target():
    transport = FakeTransport(lambda request: TransportResponse(status=len(request.body) % 100 + 400))
    first = replay(finding(), "http://api.test/", None, transport)
    second = replay(finding(), "http://api.test/", None, transport)
    assert first.status == second.status
    assert transport.requests[0] == transport.requests[1]
