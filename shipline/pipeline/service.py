"""Pipeline run orchestration.

Ties the pieces together for one event: validate the job graph, check
activation, create the run-scoped state, wire the executor to a release
publisher, schedule the jobs, and tear the run down.
"""

from __future__ import annotations

from pathlib import Path

from shipline.core.config import PipelineConfig, ReleaseConfig
from shipline.core.result import Err, Ok, Result
from shipline.output.console import ConsoleProtocol, Style
from shipline.pipeline.environment import EnvironmentProvisioner, LocalProvisioner
from shipline.pipeline.errors import PlanError
from shipline.pipeline.executor import JobExecutor
from shipline.pipeline.model import Event, JobOutcome, PublishRelease, RunReport
from shipline.pipeline.run import PipelineRun, new_run_id
from shipline.pipeline.scheduler import Scheduler, plan
from shipline.pipeline.trigger import check_activation
from shipline.release.gh import GhReleaseHost
from shipline.release.hosting import DirectoryReleaseHost, ReleaseHost
from shipline.release.publisher import ReleasePublisher

__all__ = ["PipelineService", "make_release_host"]


def make_release_host(config: ReleaseConfig, *, workspace_root: Path) -> ReleaseHost:
    match config.host:
        case "directory":
            return DirectoryReleaseHost(workspace_root / config.directory)
        case "github":
            return GhReleaseHost(workspace_root=workspace_root, repo=config.repo)


def _publishes(config: PipelineConfig) -> bool:
    return any(isinstance(step, PublishRelease) for job in config.jobs for step in job.steps)


class PipelineService:
    """Runs a pipeline definition against events.

    Args:
        config: The pipeline definition.
        workspace_root: Source tree for checkouts and base for relative paths.
        console: Progress output.
        host: Release backend; built from ``config.release`` when None.
        provisioner: Environment backend; local temp dirs when None.
        max_parallel: Upper bound on concurrently running jobs.
    """

    def __init__(
        self,
        *,
        config: PipelineConfig,
        workspace_root: Path,
        console: ConsoleProtocol,
        host: ReleaseHost | None = None,
        provisioner: EnvironmentProvisioner | None = None,
        max_parallel: int | None = None,
    ) -> None:
        self._config = config
        self._root = workspace_root
        self._console = console
        self._host = host
        self._provisioner = provisioner or LocalProvisioner(source_dir=workspace_root)
        self._max_parallel = max_parallel

    def plan(self) -> Result[tuple[str, ...], PlanError]:
        return plan(self._config.jobs)

    def _publisher(self) -> ReleasePublisher | None:
        if not _publishes(self._config):
            return None
        host = self._host or make_release_host(self._config.release, workspace_root=self._root)
        return ReleasePublisher(host, policy=self._config.release.on_duplicate)

    def run(self, event: Event, *, run_id: str | None = None) -> Result[RunReport, PlanError]:
        """Run the pipeline for ``event``.

        Graph errors are reported before any job starts. An event that does
        not activate the pipeline yields a report with every job skipped.
        """
        order = self.plan()
        if isinstance(order, Err):
            return order

        mismatch = check_activation(
            event, refs=self._config.trigger.refs, kinds=self._config.trigger.kinds
        )
        if mismatch is not None:
            self._console.info(f"not activated: {mismatch.message}")
            return Ok(
                RunReport(
                    run_id=run_id or new_run_id(),
                    event=event,
                    activated=False,
                    outcomes=tuple(JobOutcome.skipped(name, mismatch) for name in order.value),
                )
            )

        run = PipelineRun(event, order.value, run_id=run_id)
        self._console.header(f"{run.run_id}: {event.kind} {event.ref_name}")
        self._console.print(f"order: {' -> '.join(order.value)}", Style.DIM)
        try:
            executor = JobExecutor(
                run=run,
                provisioner=self._provisioner,
                console=self._console,
                publisher=self._publisher(),
            )
            scheduler = Scheduler(
                runner=executor.run,
                console=self._console,
                max_parallel=self._max_parallel,
            )
            return scheduler.run(self._config.jobs, run)
        finally:
            run.close()
