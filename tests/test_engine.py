import json
import textwrap
import threading

import pytest

from fuzzing.engine import ExecutionEngine
from fuzzing.models import ExitStatus, Verdict
from fuzzing.replay import rebuild
from fuzzing.transport import TransportError, TransportResponse
from oas.loader import load_spec
from oas.model import Operation, Parameter, ParameterLocation, SchemaNode
from storage import ResultStore, StatsRecorder

from .conftest import BASE_URL, FakeTransport, item_operation, respond


def engine_for(operations, config, transport, **kwargs):
    kwargs.setdefault("result_store", ResultStore(config.results_dir))
    return ExecutionEngine(operations, config, transport, **kwargs)


# =============================================================================
# EXAMPLE SCENARIO
# =============================================================================

def test_server_error_is_persisted_as_finding(make_config):
    """GET /items/{id} with id = -1 answered by 500 while 404 is ignored."""
    operation = item_operation(SchemaNode(types=("integer",), minimum=-1, maximum=-1))
    config = make_config(ignore_status_codes={404}, max_test_case_count=1)
    transport = FakeTransport(lambda request: TransportResponse(
        status=500 if request.url.endswith("/items/-1") else 404))

    report = engine_for([operation], config, transport).run()

    assert report.exit_status is ExitStatus.FINDINGS
    (result,) = report.findings
    assert result.path == "/items/{id}"
    assert result.method == "GET"
    assert result.payload.path_params == {"id": -1}
    assert result.rendered_path == "/items/-1"
    assert result.status == 500

    (saved,) = report.saved_paths
    data = json.loads(open(saved, encoding="utf-8").read())
    assert data["path"] == "/items/{id}"
    assert data["payload"]["path"] == {"id": -1}


def test_ignored_statuses_are_not_findings(make_config):
    config = make_config(ignore_status_codes={200, 404}, max_test_case_count=20)
    transport = FakeTransport(lambda request: TransportResponse(status=404 if "-" in request.url else 200))
    report = engine_for([item_operation()], config, transport).run()
    assert report.findings == []
    assert report.exit_status is ExitStatus.CLEAN


def test_negative_ids_found_over_many_trials(make_config):
    config = make_config(ignore_status_codes={404}, max_test_case_count=64)

    def server(request):
        item = request.url.rsplit("/", 1)[1]
        return TransportResponse(status=500 if item.startswith("-") else 404)

    report = engine_for([item_operation()], config, FakeTransport(server)).run()
    assert report.findings
    for result in report.findings:
        assert result.payload.path_params["id"] < 0
        assert result.rendered_path == f"/items/{result.payload.path_params['id']}"


# =============================================================================
# BUDGET & REPRODUCIBILITY
# =============================================================================

def operations():
    return [
        item_operation(),
        Operation(path="/health", method="GET"),
        Operation(
            path="/items",
            method="POST",
            request_body=SchemaNode(types=("object",), required=frozenset({"name"}),
                                    properties={"name": SchemaNode(types=("string",))}),
            body_required=True,
        ),
    ]


@pytest.mark.parametrize("max_count", [1, 5, 17])
def test_at_most_n_times_k_requests(make_config, max_count):
    transport = FakeTransport()
    config = make_config(ignore_status_codes={200}, max_test_case_count=max_count)
    report = engine_for(operations(), config, transport).run()
    assert len(transport.requests) == max_count * 3
    assert report.total_trials == max_count * 3
    assert all(count == max_count for count in report.trial_counts.values())


def test_exit_status_tracks_findings(make_config):
    config = make_config(ignore_status_codes={200}, max_test_case_count=4)
    clean = engine_for(operations(), config, FakeTransport()).run()
    assert clean.exit_status is ExitStatus.CLEAN

    failing = engine_for(operations(), config, FakeTransport(respond(503))).run()
    assert failing.exit_status is ExitStatus.FINDINGS
    assert len(failing.findings) == 12


def test_same_seed_same_requests(make_config):
    config = make_config(seed=99, max_test_case_count=10)
    first, second = FakeTransport(), FakeTransport()
    engine_for(operations(), config, first).run()
    engine_for(operations(), config, second).run()
    assert first.requests == second.requests


def test_random_seed_is_reported(make_config):
    config = make_config(seed=None, max_test_case_count=1)
    report = engine_for(operations(), config, FakeTransport()).run()
    assert isinstance(report.seed, int)
    assert 0 <= report.seed < 2 ** 32


def test_saved_findings_replay_byte_identical(make_config):
    config = make_config(max_test_case_count=8, headers={"x-api-key": "k"})
    sent = {}

    def record(outcome):
        if outcome.verdict is Verdict.FINDING:
            sent[(outcome.operation, outcome.trial)] = outcome.request

    store = ResultStore(config.results_dir)
    report = engine_for(operations(), config, FakeTransport(respond(500)),
                        result_store=store, on_trial=record).run()

    assert len(report.saved_paths) == len(sent) == 24
    for location in report.saved_paths:
        result = store.load(location)
        rebuilt = rebuild(result, config.base_url, config.headers)
        assert rebuilt.canonical_bytes() == sent[(result.identity, result.trial)].canonical_bytes()


# =============================================================================
# CLASSIFICATION POLICY
# =============================================================================

def test_declared_codes_only_accepted_when_enabled(make_config):
    operation = item_operation(declared={"200", "4XX"})
    strict = ExecutionEngine([operation], make_config(), FakeTransport())
    lenient = ExecutionEngine([operation], make_config(accept_declared_status_codes=True), FakeTransport())

    assert not strict.is_accepted(operation, 404)
    assert lenient.is_accepted(operation, 404)
    assert lenient.is_accepted(operation, 200)
    assert not lenient.is_accepted(operation, 500)
    assert not lenient.is_accepted(operation, 201)


def test_ignore_list_is_authoritative(make_config):
    operation = item_operation(declared={"200"})
    engine = ExecutionEngine([operation], make_config(ignore_status_codes={500}), FakeTransport())
    assert engine.is_accepted(operation, 500)
    assert not engine.is_accepted(operation, 200)


# =============================================================================
# FAILURES
# =============================================================================

def timeout(request):
    raise TransportError(TransportError.TIMEOUT, "read timed out")


def test_transport_errors_do_not_abort(make_config):
    config = make_config(max_test_case_count=5)
    report = engine_for(operations(), config, FakeTransport(timeout)).run()
    assert report.total_trials == 15
    assert report.total_transport_errors == 15
    assert report.findings == []
    assert report.exit_status is ExitStatus.CLEAN


def test_transport_errors_as_findings(make_config):
    config = make_config(max_test_case_count=2, transport_errors_as_findings=True)
    report = engine_for([item_operation()], config, FakeTransport(timeout)).run()
    assert len(report.findings) == 2
    assert report.findings[0].status is None
    assert report.findings[0].error.startswith("timeout")
    assert report.exit_status is ExitStatus.FINDINGS


def test_persistence_failure_becomes_warning(make_config):
    class BrokenStore:
        def save(self, result):
            raise PermissionError("read-only file system")

    config = make_config(max_test_case_count=3)
    report = ExecutionEngine([item_operation()], config, FakeTransport(respond(500)),
                             result_store=BrokenStore()).run()
    assert len(report.findings) == 3
    assert len(report.warnings) == 3
    assert "read-only" in report.warnings[0]
    assert report.exit_status is ExitStatus.FINDINGS


def test_stats_recorded_and_flushed(make_config, tmp_path):
    config = make_config(max_test_case_count=4)
    stats = StatsRecorder(tmp_path / "stats")
    report = engine_for(operations(), config, FakeTransport(), stats=stats).run()

    data = json.loads((tmp_path / "stats" / "stats.json").read_text())
    assert report.stats_path == str(tmp_path / "stats" / "stats.json")
    assert set(data) == {"GET /items/{id}", "GET /health", "POST /items"}
    assert all(len(durations) == 4 for durations in data.values())


def test_stats_flush_failure_becomes_warning(make_config, tmp_path):
    blocker = tmp_path / "blocked"
    blocker.write_text("not a directory")
    config = make_config(max_test_case_count=1)
    report = engine_for(operations(), config, FakeTransport(), stats=StatsRecorder(blocker)).run()
    assert report.stats_path is None
    assert any("stats" in warning for warning in report.warnings)


def test_cancellation_stops_before_next_trial(make_config, tmp_path):
    cancel = threading.Event()
    seen = []

    def on_trial(outcome):
        seen.append(outcome)
        if len(seen) == 3:
            cancel.set()

    config = make_config(max_test_case_count=10)
    transport = FakeTransport(respond(500))
    stats = StatsRecorder(tmp_path / "stats")
    report = engine_for(operations(), config, transport, stats=stats,
                        cancel_event=cancel, on_trial=on_trial).run()

    assert report.cancelled
    assert len(transport.requests) == 3
    assert len(report.findings) == 3
    assert len(report.saved_paths) == 3
    assert (tmp_path / "stats" / "stats.json").exists()


def test_config_base_url_used_for_requests(make_config):
    transport = FakeTransport()
    engine_for([Operation(path="/health", method="GET")], make_config(max_test_case_count=1), transport).run()
    assert transport.requests[0].url == BASE_URL + "health"


def test_header_parameters_and_fixed_headers(make_config):
    operation = Operation(
        path="/me",
        method="GET",
        parameters=[Parameter("x-tenant", ParameterLocation.HEADER, SchemaNode(types=("string",)), required=True)],
    )
    transport = FakeTransport()
    config = make_config(max_test_case_count=3, headers={"X-Tenant": "fixed"})
    engine_for([operation], config, transport).run()
    assert all(request.headers["x-tenant"] == "fixed" for request in transport.requests)


def test_yaml_timestamps_in_literals_are_sent_as_iso_strings(tmp_path, make_config):
    spec_path = tmp_path / "openapi.yaml"
    spec_path.write_text(textwrap.dedent("""
        openapi: 3.0.0
        info: {title: Days, version: "1"}
        paths:
          /days:
            post:
              requestBody:
                required: true
                content:
                  application/json:
                    schema:
                      type: object
                      required: [day, window]
                      properties:
                        day: {type: string, format: date, enum: [2021-01-01]}
                        window: {const: {start: 2021-01-01T10:00:00Z}}
              responses:
                "200": {description: ok}
    """))
    spec = load_spec(str(spec_path))
    config = make_config(max_test_case_count=3)
    transport = FakeTransport(respond(500))

    report = engine_for(spec.operations, config, transport).run()

    assert len(report.findings) == 3
    for request in transport.requests:
        body = json.loads(request.body)
        assert body["day"] == "2021-01-01"
        assert body["window"]["start"].startswith("2021-01-01T10:00:00")
    assert len(report.saved_paths) == 3
