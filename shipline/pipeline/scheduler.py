"""Dependency-ordered job scheduling.

``plan`` validates the job graph and returns a deterministic topological
order (Kahn's algorithm, ties broken by name). ``Scheduler.run`` then
dispatches jobs onto a thread pool as soon as every job they need is
terminal:

- all needed jobs succeeded and the job's own condition matches: run it
- a needed job did not succeed: SKIPPED (DependencyNotSatisfied)
- the job's condition does not match the event: SKIPPED (TriggerMismatch)
- the run was cancelled: CANCELLED
"""

from __future__ import annotations

import heapq
from collections import defaultdict
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from shipline.core.result import Err, Ok, Result
from shipline.output.console import ConsoleProtocol, Style
from shipline.pipeline.errors import (
    CyclicDependency,
    DependencyNotSatisfied,
    DuplicateJob,
    JobCrashed,
    PlanError,
    UnknownDependency,
)
from shipline.pipeline.model import Job, JobOutcome, JobStatus, RunReport
from shipline.pipeline.run import PipelineRun
from shipline.pipeline.trigger import check_condition

__all__ = ["plan", "Scheduler"]


def plan(jobs: Sequence[Job]) -> Result[tuple[str, ...], PlanError]:
    """Validate the dependency graph and return an execution order."""
    by_name: dict[str, Job] = {}
    for job in jobs:
        if job.name in by_name:
            return Err(DuplicateJob(job=job.name))
        by_name[job.name] = job

    for job in jobs:
        for dep in sorted(job.needs):
            if dep not in by_name:
                return Err(UnknownDependency(job=job.name, dependency=dep))

    dependents: dict[str, list[str]] = defaultdict(list)
    in_degree: dict[str, int] = {name: 0 for name in by_name}
    for job in jobs:
        for dep in job.needs:
            dependents[dep].append(job.name)
            in_degree[job.name] += 1

    ready = [name for name, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)
    order: list[str] = []
    while ready:
        name = heapq.heappop(ready)
        order.append(name)
        for dependent in dependents[name]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(order) != len(by_name):
        stuck = tuple(sorted(name for name, degree in in_degree.items() if degree > 0))
        return Err(CyclicDependency(jobs=stuck))

    return Ok(tuple(order))


type JobRunner = Callable[[Job], JobOutcome]


class Scheduler:
    """Runs a validated job graph for one pipeline run.

    Args:
        runner: Executes one job and returns its terminal outcome
            (normally ``JobExecutor.run``).
        console: Progress output.
        max_parallel: Worker threads; defaults to one per job.
    """

    def __init__(
        self,
        *,
        runner: JobRunner,
        console: ConsoleProtocol,
        max_parallel: int | None = None,
    ) -> None:
        self._runner = runner
        self._console = console
        self._max_parallel = max_parallel

    def run(self, jobs: Sequence[Job], run: PipelineRun) -> Result[RunReport, PlanError]:
        planned = plan(jobs)
        if isinstance(planned, Err):
            return planned
        order = planned.value
        by_name = {job.name: job for job in jobs}

        outcomes: dict[str, JobOutcome] = {}
        pending: list[str] = list(order)
        running: dict[Future[JobOutcome], str] = {}
        workers = max(1, self._max_parallel or len(order))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="shipline-job") as pool:
            while pending or running:
                pending = self._dispatch_ready(pending, by_name, outcomes, running, pool, run)
                if not running:
                    # Everything left was resolved without running.
                    continue
                try:
                    done, _ = wait(running, return_when=FIRST_COMPLETED)
                except KeyboardInterrupt:
                    self._console.warning("interrupted: cancelling run")
                    run.cancel()
                    continue
                for future in done:
                    name = running.pop(future)
                    outcome = self._collect(name, future)
                    outcomes[name] = outcome
                    run.set_status(name, outcome.status)

        return Ok(
            RunReport(
                run_id=run.run_id,
                event=run.event,
                activated=True,
                outcomes=tuple(outcomes[name] for name in order),
            )
        )

    def _dispatch_ready(
        self,
        pending: list[str],
        by_name: dict[str, Job],
        outcomes: dict[str, JobOutcome],
        running: dict[Future[JobOutcome], str],
        pool: ThreadPoolExecutor,
        run: PipelineRun,
    ) -> list[str]:
        # ``pending`` is in topological order, so a job resolved here is
        # already visible to its dependents later in the same pass.
        still_pending: list[str] = []
        for name in pending:
            job = by_name[name]
            if any(dep not in outcomes for dep in job.needs):
                still_pending.append(name)
                continue

            resolved = self._resolve_without_running(job, outcomes, run)
            if resolved is not None:
                outcomes[name] = resolved
                run.set_status(name, resolved.status)
                continue

            run.set_status(name, JobStatus.RUNNING)
            running[pool.submit(self._runner, job)] = name

        return still_pending

    def _resolve_without_running(
        self,
        job: Job,
        outcomes: dict[str, JobOutcome],
        run: PipelineRun,
    ) -> JobOutcome | None:
        if run.cancelled:
            return JobOutcome.cancelled(job.name)

        for dep in sorted(job.needs):
            status = outcomes[dep].status
            if status != JobStatus.SUCCEEDED:
                cause = DependencyNotSatisfied(job=job.name, dependency=dep, status=str(status))
                self._console.print(f"{job.name}: skipped ({cause.message})", Style.DIM)
                return JobOutcome.skipped(job.name, cause)

        mismatch = None if job.condition is None else check_condition(run.event, job.condition)
        if mismatch is not None:
            self._console.print(f"{job.name}: skipped ({mismatch.message})", Style.DIM)
            return JobOutcome.skipped(job.name, mismatch)

        return None

    def _collect(self, name: str, future: Future[JobOutcome]) -> JobOutcome:
        # Every job ends with a terminal status, even one whose runner raised.
        try:
            return future.result()
        except Exception as e:  # noqa: BLE001
            self._console.error(f"{name}: crashed: {e!r}")
            return JobOutcome(
                job=name,
                status=JobStatus.FAILED,
                reason=JobCrashed(job=name, detail=repr(e)),
            )
