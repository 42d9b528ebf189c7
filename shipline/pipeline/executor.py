"""Job execution.

A job runs in its own provisioned environment. Steps run strictly in
order and the first failing step ends the job. The environment is torn
down on every exit path.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from time import monotonic

from shipline.core.result import Err, Ok, Result
from shipline.output.console import ConsoleProtocol, Style
from shipline.pipeline.environment import Environment, EnvironmentProvisioner
from shipline.pipeline.errors import ArtifactIOError, Cancelled, StepFailure, Timeout
from shipline.pipeline.model import (
    DownloadArtifact,
    Job,
    JobOutcome,
    JobStatus,
    PublishRelease,
    RunBuild,
    SetupEnvironment,
    Step,
    StepError,
    StepLog,
    UploadArtifact,
)
from shipline.pipeline.run import PipelineRun
from shipline.release.errors import ReleaseHostError
from shipline.release.publisher import ReleasePublisher

__all__ = ["JobExecutor", "JobResult"]

# Step output kept in the report, per step.
_LOG_TAIL_CHARS = 4000


@dataclass(frozen=True, slots=True)
class JobResult:
    status: JobStatus
    failed_step: int | None = None
    error: StepError | None = None
    step_logs: tuple[StepLog, ...] = ()


def _tail(text: str) -> str:
    if len(text) <= _LOG_TAIL_CHARS:
        return text
    return "..." + text[-_LOG_TAIL_CHARS:]


def _read_file(path: Path) -> Result[bytes, ArtifactIOError]:
    try:
        return Ok(path.read_bytes())
    except FileNotFoundError:
        return Err(ArtifactIOError(name=path.name, path=path, reason="file not found"))
    except OSError as e:
        return Err(ArtifactIOError(name=path.name, path=path, reason=str(e)))


class JobExecutor:
    """Runs jobs for one pipeline run.

    Args:
        run: The run whose artifact store, event and cancel flag jobs use.
        provisioner: Supplies and reclaims job environments.
        console: Progress output.
        publisher: Used by ``PublishRelease`` steps; None disables publishing.
    """

    def __init__(
        self,
        *,
        run: PipelineRun,
        provisioner: EnvironmentProvisioner,
        console: ConsoleProtocol,
        publisher: ReleasePublisher | None = None,
    ) -> None:
        self._run = run
        self._provisioner = provisioner
        self._console = console
        self._publisher = publisher

    def run(self, job: Job) -> JobOutcome:
        """Provision, execute and tear down ``job``."""
        started = monotonic()
        self._console.print(f"{job.name}: started", Style.BOLD)

        provisioned = self._provisioner.provision(job.environment, job.name)
        if isinstance(provisioned, Err):
            self._console.error(provisioned.error.message)
            return JobOutcome(
                job=job.name,
                status=JobStatus.FAILED,
                reason=provisioned.error,
                duration_seconds=monotonic() - started,
            )

        environment = provisioned.value
        try:
            result = self.execute(job, environment)
        finally:
            self._provisioner.teardown(environment)

        outcome = JobOutcome(
            job=job.name,
            status=result.status,
            reason=result.error,
            failed_step=result.failed_step,
            step_logs=result.step_logs,
            duration_seconds=monotonic() - started,
        )
        self._report(outcome)
        return outcome

    def execute(self, job: Job, environment: Environment) -> JobResult:
        """Run the steps of ``job`` in ``environment``, stopping at the first failure.

        The job's time budget is shared by all of its commands; a job whose
        budget runs out, or whose run is cancelled, never ends SUCCEEDED.
        """
        deadline = None if job.timeout_seconds is None else monotonic() + job.timeout_seconds
        logs: list[StepLog] = []
        total = len(job.steps)

        for index, step in enumerate(job.steps):
            interrupted = self._interruption(job, deadline)
            if interrupted is not None:
                return self._stopped(interrupted, index, logs)

            self._console.print(f"{job.name}: [{index + 1}/{total}] {step.name}", Style.DIM)
            result = self._run_step(job, index, step, environment, deadline)
            if isinstance(result, Err):
                error = result.error
                logs.append(StepLog(index=index, name=step.name, ok=False, output=error.message))
                return self._stopped(error, index, logs)
            logs.append(StepLog(index=index, name=step.name, ok=True, output=_tail(result.value)))

        interrupted = self._interruption(job, deadline)
        if interrupted is not None:
            return self._stopped(interrupted, None, logs)
        return JobResult(status=JobStatus.SUCCEEDED, step_logs=tuple(logs))

    def _interruption(self, job: Job, deadline: float | None) -> Cancelled | Timeout | None:
        if self._run.cancelled:
            return Cancelled(job=job.name)
        if deadline is not None and job.timeout_seconds is not None and monotonic() >= deadline:
            return Timeout(job=job.name, seconds=job.timeout_seconds)
        return None

    @staticmethod
    def _stopped(error: StepError, index: int | None, logs: list[StepLog]) -> JobResult:
        status = JobStatus.CANCELLED if isinstance(error, Cancelled) else JobStatus.FAILED
        return JobResult(status=status, failed_step=index, error=error, step_logs=tuple(logs))

    def _run_step(
        self,
        job: Job,
        index: int,
        step: Step,
        environment: Environment,
        deadline: float | None,
    ) -> Result[str, StepError]:
        store = self._run.store
        match step:
            case SetupEnvironment(commands=commands):
                outputs: list[str] = []
                for command in commands:
                    ran = self._command(job, index, step.name, command, environment, deadline)
                    if isinstance(ran, Err):
                        return ran
                    outputs.append(ran.value)
                return Ok("".join(outputs))

            case RunBuild(command=command, env=extra_env):
                return self._command(
                    job, index, step.name, command, environment, deadline, dict(extra_env)
                )

            case UploadArtifact(artifact=artifact, path=path):
                uploaded = store.upload(artifact, environment.resolve(path))
                if isinstance(uploaded, Err):
                    return uploaded
                return Ok(f"uploaded {artifact} ({uploaded.value} bytes)")

            case DownloadArtifact(artifact=artifact, path=path):
                target = environment.resolve(path)
                downloaded = store.download(artifact, target)
                if isinstance(downloaded, Err):
                    return downloaded
                return Ok(f"downloaded {artifact} to {downloaded.value}")

            case PublishRelease(files=files, version=version):
                return self._publish(job, files, version, environment)

    def _command(
        self,
        job: Job,
        index: int,
        step_name: str,
        command: str,
        environment: Environment,
        deadline: float | None,
        extra_env: dict[str, str] | None = None,
    ) -> Result[str, StepError]:
        # Each command only gets what is left of the job budget.
        interrupted = self._interruption(job, deadline)
        if interrupted is not None:
            return Err(interrupted)
        timeout = None if deadline is None else deadline - monotonic()

        env = self._step_env(job, environment)
        if extra_env:
            env.update(extra_env)

        ran = environment.run(command, extra_env=env, timeout=timeout, cancel=self._run.cancel_event)
        if isinstance(ran, Ok):
            return ran

        e = ran.error
        if e.cancelled:
            return Err(Cancelled(job=job.name))
        if e.timed_out and job.timeout_seconds is not None:
            return Err(Timeout(job=job.name, seconds=job.timeout_seconds))
        return Err(
            StepFailure(
                step_index=index,
                step_name=step_name,
                command=command,
                returncode=e.returncode,
                stderr=_tail(e.stderr),
            )
        )

    def _step_env(self, job: Job, environment: Environment) -> dict[str, str]:
        event = self._run.event
        return {
            "CI": "true",
            "SHIPLINE_RUN_ID": self._run.run_id,
            "SHIPLINE_JOB": job.name,
            "SHIPLINE_REF": event.ref,
            "SHIPLINE_REF_NAME": event.ref_name,
            "SHIPLINE_EVENT": event.kind,
            "SHIPLINE_WORKDIR": str(environment.workdir),
        }

    def _publish(
        self,
        job: Job,
        files: tuple[str, ...],
        version: str | None,
        environment: Environment,
    ) -> Result[str, StepError]:
        if self._publisher is None:
            return Err(
                ReleaseHostError(
                    kind="invalid_input",
                    message="no release host configured",
                    hint="Add a [release] table to the pipeline file.",
                )
            )

        payloads: dict[str, bytes] = {}
        for name in files:
            path = environment.resolve(name)
            if path.name in payloads:
                return Err(
                    ArtifactIOError(
                        name=path.name, path=path, reason="another file has the same asset name"
                    )
                )
            read = _read_file(path)
            if isinstance(read, Err):
                return read
            payloads[path.name] = read.value

        tag = version or self._run.event.ref_name
        published = self._publisher.publish(tag, payloads)
        if isinstance(published, Err):
            return published

        release = published.value
        verb = "created" if release.created else "updated"
        self._console.success(f"{job.name}: release {tag} {verb} ({', '.join(sorted(payloads))})")
        return Ok(f"release {tag} {verb}: {release.url or '-'}")

    def _report(self, outcome: JobOutcome) -> None:
        match outcome.status:
            case JobStatus.SUCCEEDED:
                self._console.success(f"{outcome.job} succeeded ({outcome.duration_seconds:.1f}s)")
            case JobStatus.CANCELLED:
                self._console.warning(f"{outcome.job} cancelled")
            case _:
                reason = outcome.reason
                message = reason.message if reason is not None else "failed"
                self._console.error(f"{outcome.job}: {message}")
                hint = getattr(reason, "hint", None)
                if hint:
                    self._console.print(f"hint: {hint}", Style.DIM)
