"""
Concurrent probe execution.

Probes run on a bounded thread pool. The main thread is the only place that
records outcomes; it enforces each probe's deadline, the run-wide deadline and
cancellation, so a hung probe can delay the report by at most its own timeout
plus a fixed grace period.
"""

from __future__ import annotations

import contextvars
import queue
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from preflight_validator.classifier import DEFAULT_POLICY, SeverityPolicy, classify
from preflight_validator.errors import ValidationCancelledError
from preflight_validator.logging.correlation import probe_context, run_context
from preflight_validator.probes.command import CommandRunner
from preflight_validator.probes.models import (
    ClassifiedResult,
    Probe,
    ProbeOutcome,
    ValidationReport,
)
from preflight_validator.registry import ProbeRegistry
from preflight_validator.report import build_report
from preflight_validator.utilities.datetime_helpers import utc_now
from preflight_validator.utilities.logging_patterns import get_logger, log_operation

logger = get_logger(__name__, component="runner")

DEFAULT_MAX_WORKERS = 8
DEFAULT_TOTAL_TIMEOUT_SECONDS = 120.0
DEFAULT_GRACE_SECONDS = 1.0
POLL_INTERVAL_SECONDS = 0.05


@dataclass(frozen=True)
class ExecutionResult:
    results: tuple[ClassifiedResult, ...]
    complete: bool


class _DaemonWorkerPool:
    """Fixed-size pool of daemon threads feeding a completion queue.

    A worker stuck in an abandoned check never delays interpreter exit.
    """

    def __init__(self, work: Callable[[Probe], ProbeOutcome]) -> None:
        self._work = work
        self._jobs: queue.SimpleQueue[tuple[Probe, contextvars.Context]] = queue.SimpleQueue()
        self._finished: queue.SimpleQueue[tuple[str, ProbeOutcome]] = queue.SimpleQueue()
        self._started: dict[str, float] = {}
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._spawned = 0

    def submit(self, probe: Probe) -> None:
        self._jobs.put((probe, contextvars.copy_context()))

    def start(self, workers: int) -> None:
        for _ in range(workers):
            self.replace_worker()

    def replace_worker(self) -> None:
        """Start one more worker, taking over from a thread stuck in an abandoned probe."""
        if self._stopped.is_set() or self._jobs.empty():
            return
        self._spawned += 1
        thread = threading.Thread(
            target=self._loop, name=f"probe_{self._spawned}", daemon=True
        )
        thread.start()

    def started_at(self, probe_id: str) -> float | None:
        with self._lock:
            return self._started.get(probe_id)

    def next_finished(self, timeout: float) -> tuple[str, ProbeOutcome] | None:
        try:
            return self._finished.get(timeout=timeout)
        except queue.Empty:
            return None

    def stop(self) -> None:
        self._stopped.set()

    def _loop(self) -> None:
        while not self._stopped.is_set():
            try:
                probe, context = self._jobs.get_nowait()
            except queue.Empty:
                return
            with self._lock:
                self._started[probe.id] = time.monotonic()
            self._finished.put((probe.id, context.run(self._work, probe)))


class ProbeRunner:
    """Execute probes concurrently and classify their outcomes.

    Args:
        max_workers: Upper bound on concurrently executing probes.
        total_timeout: Upper bound on the whole run; probes still running
            afterwards are reported as timed out.
        grace: Extra time granted to a probe beyond its own timeout before the
            runner stops waiting for it.
        command_runner: Shared subprocess boundary; created on demand.
        cancel_event: Setting this event cancels the run.
    """

    def __init__(
        self,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        total_timeout: float = DEFAULT_TOTAL_TIMEOUT_SECONDS,
        grace: float = DEFAULT_GRACE_SECONDS,
        command_runner: CommandRunner | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.max_workers = max_workers
        self.total_timeout = total_timeout
        self.grace = grace
        if command_runner is None:
            command_runner = CommandRunner(cancel_event=cancel_event)
        elif cancel_event is not None:
            command_runner.cancel_event = cancel_event
        self.command_runner = command_runner

    @property
    def cancel_event(self) -> threading.Event:
        return self.command_runner.cancel_event

    def cancel(self) -> None:
        self.command_runner.terminate_all()

    def execute(
        self, probes: Sequence[Probe], policy: SeverityPolicy = DEFAULT_POLICY
    ) -> ExecutionResult:
        if not probes:
            return ExecutionResult(results=(), complete=True)

        outcomes: dict[str, ProbeOutcome] = {}
        pool = _DaemonWorkerPool(self._execute_probe)
        for probe in probes:
            pool.submit(probe)
        pool.start(max(1, min(self.max_workers, len(probes))))

        run_deadline = time.monotonic() + self.total_timeout
        pending = {probe.id: probe for probe in probes}
        interrupted = False
        try:
            while pending:
                finished = pool.next_finished(POLL_INTERVAL_SECONDS)
                # Results that arrive after cancellation come from killed commands
                if self.cancel_event.is_set():
                    interrupted = True
                    break
                if finished is not None:
                    probe_id, outcome = finished
                    # Late results of abandoned probes are dropped
                    if pending.pop(probe_id, None) is not None:
                        outcomes[probe_id] = outcome

                now = time.monotonic()
                for probe in list(pending.values()):
                    start = pool.started_at(probe.id)
                    if start is not None and now - start > probe.timeout + self.grace:
                        reason = f"Probe did not finish within {probe.timeout:g}s"
                    elif now > run_deadline:
                        reason = f"Run exceeded the total timeout of {self.total_timeout:g}s"
                    else:
                        continue
                    del pending[probe.id]
                    if start is not None:
                        pool.replace_worker()
                    logger.warning("Probe abandoned", probe_id=probe.id, reason=reason)
                    outcomes[probe.id] = ProbeOutcome.indeterminate(reason)
        except KeyboardInterrupt:
            interrupted = True
        finally:
            pool.stop()
            if interrupted:
                logger.warning("Validation cancelled", completed=len(outcomes), total=len(probes))
                self.command_runner.terminate_all()

        results = tuple(
            classify(probe, outcomes[probe.id], policy) for probe in probes if probe.id in outcomes
        )
        return ExecutionResult(results=results, complete=not interrupted)

    def _execute_probe(self, probe: Probe) -> ProbeOutcome:
        with probe_context(probe.id, section=probe.section):
            logger.info("Probe started", timeout_s=probe.timeout)
            try:
                outcome = probe.check(self.command_runner)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Probe raised unexpectedly")
                return ProbeOutcome.indeterminate(f"Probe raised {type(exc).__name__}: {exc}")
            if not isinstance(outcome, ProbeOutcome):
                logger.error("Probe returned an invalid outcome", returned=type(outcome).__name__)
                return ProbeOutcome.indeterminate(
                    f"Probe returned {type(outcome).__name__} instead of an outcome"
                )
            logger.info("Probe finished", status=outcome.status.value, detail=outcome.detail)
            return outcome


def run_validation(
    registry: ProbeRegistry,
    *,
    runner: ProbeRunner | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> ValidationReport:
    """Execute every probe of ``registry`` and return the validation report.

    Raises:
        ValidationCancelledError: The run was cancelled; the partial report is
            attached to the error and marked incomplete.
    """
    runner = runner or ProbeRunner()
    with run_context() as run_id:
        with log_operation("validation", logger, run_id=run_id, probes=len(registry)) as summary:
            execution = runner.execute(registry.all_probes(), registry.policy)
            report = build_report(
                execution.results, generated_at=clock(), complete=execution.complete
            )
            summary.update(
                completed=len(report.results),
                complete=report.complete,
                overall_pass=report.overall_pass,
                critical=report.summary.critical,
                warnings=report.summary.warnings,
            )
    if not report.complete:
        raise ValidationCancelledError("Validation cancelled before all probes finished", report)
    return report


__all__ = ["ExecutionResult", "ProbeRunner", "run_validation"]
