#!/usr/bin/env python3
"""
Execution Engine
================
Drives the fuzzing loop:

    for each operation (document order):
        for trial in 0 .. max_test_case_count - 1:
            sample payload -> build request -> send -> classify
            finding  -> persist FuzzResult
            always   -> record duration

One thread, strictly sequential trials. The transport call is the only
blocking point and is bounded by the transport timeout. Cancellation is
checked before every trial, so an in-flight request still completes.
"""

import logging
import random
import threading
import time
from typing import Callable, Optional, Sequence

from generators.schema_sampler import SchemaSampler
from oas.model import Operation

from .config import FuzzerConfig
from .models import FuzzResult, RunReport, TrialOutcome, Verdict
from .request_builder import build_request, render_path
from .transport import Transport, TransportError

logger = logging.getLogger("openapi_fuzzer.fuzzing.engine")

ProgressCallback = Callable[[Operation, int, int], None]


def new_seed() -> int:
    return random.SystemRandom().randrange(2 ** 32)


class ExecutionEngine:
    """
    Runs every operation for up to `max_test_case_count` trials.

    Usage:
        engine = ExecutionEngine(spec.operations, config, RequestsTransport(),
                                 result_store=ResultStore(config.results_dir),
                                 stats=StatsRecorder(config.stats_dir))
        report = engine.run()
        sys.exit(report.exit_status.value)
    """

    def __init__(self, operations: Sequence[Operation], config: FuzzerConfig, transport: Transport,
                 result_store=None, stats=None, cancel_event: Optional[threading.Event] = None,
                 on_trial: Optional[Callable[[TrialOutcome], None]] = None,
                 on_operation: Optional[ProgressCallback] = None):
        self.operations = list(operations)
        self.config = config
        self.transport = transport
        self.result_store = result_store
        self.stats = stats
        self.cancel_event = cancel_event or threading.Event()
        self.on_trial = on_trial
        self.on_operation = on_operation

        self.seed = config.seed if config.seed is not None else new_seed()
        self.rng = random.Random(self.seed)
        self.sampler = SchemaSampler(self.rng, config.sampler)

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    def run(self) -> RunReport:
        report = RunReport(seed=self.seed)
        started = time.perf_counter()
        logger.info(
            f"Fuzzing {len(self.operations)} operations, "
            f"{self.config.max_test_case_count} trials each, seed {self.seed}"
        )

        for index, operation in enumerate(self.operations):
            if self.cancel_event.is_set():
                break
            if self.on_operation:
                self.on_operation(operation, index, len(self.operations))
            self._run_operation(operation, report)

        report.cancelled = self.cancel_event.is_set()
        if report.cancelled:
            logger.warning("Run cancelled; results recorded so far are kept")

        if self.stats is not None:
            try:
                stats_path = self.stats.flush()
                report.stats_path = str(stats_path) if stats_path else None
            except OSError as e:
                message = f"Could not write stats: {e}"
                logger.warning(message)
                report.warnings.append(message)

        report.elapsed = time.perf_counter() - started
        logger.info(
            f"Run finished: {report.total_trials} trials, {len(report.findings)} findings, "
            f"{report.total_transport_errors} transport errors in {report.elapsed:.2f}s"
        )
        return report

    def _run_operation(self, operation: Operation, report: RunReport) -> None:
        identity = operation.identity
        report.trial_counts.setdefault(identity, 0)

        for trial in range(self.config.max_test_case_count):
            if self.cancel_event.is_set():
                return
            outcome = self.run_trial(operation, trial, report)
            report.trial_counts[identity] += 1
            if self.on_trial:
                self.on_trial(outcome)

    def run_trial(self, operation: Operation, trial: int, report: RunReport) -> TrialOutcome:
        """Sample, send and classify one trial."""
        payload = self.sampler.sample_operation(operation)
        request = build_request(
            self.config.base_url, operation.method, operation.path, payload, self.config.headers
        )

        started = time.perf_counter()
        status = None
        error = None
        try:
            response = self.transport.send(request)
            status = response.status
        except TransportError as e:
            error = str(e)
        duration = time.perf_counter() - started

        if self.stats is not None:
            self.stats.record(operation, duration)

        if error is not None:
            report.transport_errors[operation.identity] = report.transport_errors.get(operation.identity, 0) + 1
            logger.warning(f"{operation.identity} trial {trial}: transport error ({error})")
            verdict = Verdict.FINDING if self.config.transport_errors_as_findings else Verdict.TRANSPORT_ERROR
        else:
            verdict = Verdict.ACCEPTED if self.is_accepted(operation, status) else Verdict.FINDING

        if verdict is Verdict.FINDING:
            result = FuzzResult(
                path=operation.path,
                method=operation.method,
                payload=payload,
                status=status,
                error=error,
                trial=trial,
                rendered_path=render_path(operation.path, payload.path_params),
            )
            logger.info(f"Finding: {operation.identity} trial {trial} -> {status if status is not None else error}")
            report.findings.append(result)
            self._persist(result, report)

        return TrialOutcome(
            operation=operation.identity,
            trial=trial,
            verdict=verdict,
            duration=duration,
            status=status,
            error=error,
            request=request,
        )

    # ------------------------------------------------------------------
    # Classification & persistence
    # ------------------------------------------------------------------

    def is_accepted(self, operation: Operation, status: int) -> bool:
        if status in self.config.ignore_status_codes:
            return True
        if self.config.accept_declared_status_codes and operation.declares_status(status):
            return True
        return False

    def _persist(self, result: FuzzResult, report: RunReport) -> None:
        if self.result_store is None:
            return
        try:
            location = self.result_store.save(result)
            report.saved_paths.append(str(location))
        except OSError as e:
            message = f"Could not save result for {result.identity} trial {result.trial}: {e}"
            logger.warning(message)
            report.warnings.append(message)

