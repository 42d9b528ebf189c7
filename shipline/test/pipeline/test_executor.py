from __future__ import annotations

import sys
import threading
from pathlib import Path

import pytest

from shipline.core.result import Ok, Result
from shipline.output.console import MockConsole
from shipline.pipeline.environment import Environment, LocalProvisioner
from shipline.pipeline.errors import (
    ArtifactIOError,
    ArtifactNotFound,
    Cancelled,
    ProvisionFailed,
    StepFailure,
    Timeout,
)
from shipline.pipeline.executor import JobExecutor
from shipline.pipeline.model import (
    DownloadArtifact,
    EnvironmentDescriptor,
    Event,
    Job,
    JobStatus,
    PublishRelease,
    RunBuild,
    SetupEnvironment,
    Step,
    UploadArtifact,
)
from shipline.pipeline.run import PipelineRun
from shipline.release.errors import ReleaseHostError
from shipline.release.hosting import DirectoryReleaseHost
from shipline.release.publisher import ReleasePublisher

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell syntax")


class _TrackingProvisioner:
    """LocalProvisioner that remembers what it handed out and took back."""

    def __init__(self, base_dir: Path) -> None:
        self._inner = LocalProvisioner(base_dir=base_dir)
        self.provisioned: list[Path] = []
        self.torn_down: list[Path] = []

    def provision(
        self, descriptor: EnvironmentDescriptor, job: str
    ) -> Result[Environment, ProvisionFailed]:
        result = self._inner.provision(descriptor, job)
        if isinstance(result, Ok):
            self.provisioned.append(result.value.workdir)
        return result

    def teardown(self, environment: Environment) -> None:
        self.torn_down.append(environment.workdir)
        self._inner.teardown(environment)


def _job(name: str, *steps: Step, timeout: float | None = None, runs_on: str = "local") -> Job:
    return Job(
        name=name,
        steps=steps,
        environment=EnvironmentDescriptor(runs_on=runs_on),
        timeout_seconds=timeout,
    )


def _executor(
    tmp_path: Path,
    *,
    ref: str = "v1.0.0",
    publisher: ReleasePublisher | None = None,
) -> tuple[JobExecutor, PipelineRun, _TrackingProvisioner, MockConsole]:
    run = PipelineRun(Event(ref, "tag"), ["build", "release"], run_id="run-test")
    provisioner = _TrackingProvisioner(tmp_path / "work")
    console = MockConsole()
    executor = JobExecutor(run=run, provisioner=provisioner, console=console, publisher=publisher)
    return executor, run, provisioner, console


def test_steps_run_in_order_and_share_the_workdir(tmp_path: Path) -> None:
    executor, run, provisioner, console = _executor(tmp_path)
    job = _job(
        "build",
        SetupEnvironment(name="setup", commands=("echo one > log.txt", "echo two >> log.txt")),
        RunBuild(name="build", command='echo "$SHIPLINE_JOB@$SHIPLINE_REF_NAME" >> log.txt'),
        UploadArtifact(name="upload", artifact="log.txt", path="log.txt"),
    )

    outcome = executor.run(job)

    assert outcome.status == JobStatus.SUCCEEDED
    assert outcome.reason is None
    assert [log.index for log in outcome.step_logs] == [0, 1, 2]
    assert all(log.ok for log in outcome.step_logs)
    assert run.store.get("log.txt").unwrap() == b"one\ntwo\nbuild@v1.0.0\n"
    assert console.find("build: [2/3] build")
    assert provisioner.torn_down == provisioner.provisioned
    assert not provisioner.provisioned[0].exists()


def test_step_env_carries_run_context(tmp_path: Path) -> None:
    executor, run, _, _ = _executor(tmp_path)
    job = _job(
        "build",
        RunBuild(
            name="env",
            command='echo "$CI $SHIPLINE_RUN_ID $SHIPLINE_EVENT $MODE" > env.txt',
            env=(("MODE", "release"),),
        ),
        UploadArtifact(name="upload", artifact="env.txt", path="env.txt"),
    )

    assert executor.run(job).status == JobStatus.SUCCEEDED
    assert run.store.get("env.txt").unwrap() == b"true run-test tag release\n"


def test_first_failing_step_stops_the_job(tmp_path: Path) -> None:
    executor, _, provisioner, console = _executor(tmp_path)
    job = _job(
        "build",
        RunBuild(name="compile", command="echo 'error: nope' >&2; exit 3"),
        RunBuild(name="never", command="touch never.txt"),
    )

    outcome = executor.run(job)

    assert outcome.status == JobStatus.FAILED
    assert outcome.failed_step == 0
    assert isinstance(outcome.reason, StepFailure)
    assert outcome.reason.returncode == 3
    assert outcome.reason.hint == "error: nope"
    assert len(outcome.step_logs) == 1
    assert not outcome.step_logs[0].ok
    assert provisioner.torn_down == provisioner.provisioned
    assert console.has_error()


def test_job_timeout_fails_the_job(tmp_path: Path) -> None:
    executor, _, provisioner, _ = _executor(tmp_path)
    job = _job("build", RunBuild(name="slow", command="sleep 30"), timeout=0.5)

    outcome = executor.run(job)

    assert outcome.status == JobStatus.FAILED
    assert outcome.reason == Timeout(job="build", seconds=0.5)
    assert outcome.duration_seconds < 10
    assert provisioner.torn_down == provisioner.provisioned


def test_setup_commands_share_the_job_timeout(tmp_path: Path) -> None:
    executor, _, provisioner, _ = _executor(tmp_path)
    job = _job(
        "build",
        SetupEnvironment(name="setup", commands=("sleep 0.8",) * 3),
        RunBuild(name="after", command="touch after.txt"),
        timeout=1.0,
    )

    outcome = executor.run(job)

    assert outcome.status == JobStatus.FAILED
    assert outcome.reason == Timeout(job="build", seconds=1.0)
    assert outcome.failed_step == 0
    assert outcome.duration_seconds < 2.0
    assert provisioner.torn_down == provisioner.provisioned


def test_cancel_kills_the_running_command(tmp_path: Path) -> None:
    executor, run, provisioner, _ = _executor(tmp_path)
    timer = threading.Timer(0.3, run.cancel)
    timer.start()
    try:
        outcome = executor.run(_job("build", RunBuild(name="slow", command="sleep 30")))
    finally:
        timer.cancel()

    assert outcome.status == JobStatus.CANCELLED
    assert outcome.reason == Cancelled(job="build")
    assert outcome.duration_seconds < 10
    assert provisioner.torn_down == provisioner.provisioned


def test_cancel_during_last_step_is_not_a_success(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    executor, run, provisioner, _ = _executor(tmp_path)
    upload = run.store.upload

    def upload_then_cancel(name: str, path: Path) -> Result[int, ArtifactIOError]:
        result = upload(name, path)
        run.cancel()
        return result

    monkeypatch.setattr(run.store, "upload", upload_then_cancel)
    job = _job(
        "build",
        RunBuild(name="make", command="echo x > app.exe"),
        UploadArtifact(name="upload", artifact="app.exe", path="app.exe"),
    )

    outcome = executor.run(job)

    assert outcome.status == JobStatus.CANCELLED
    assert outcome.reason == Cancelled(job="build")
    assert outcome.failed_step is None
    assert [log.ok for log in outcome.step_logs] == [True, True]
    assert provisioner.torn_down == provisioner.provisioned


def test_cancelled_run_stops_before_next_step(tmp_path: Path) -> None:
    executor, run, provisioner, _ = _executor(tmp_path)
    run.cancel()

    outcome = executor.run(_job("build", RunBuild(name="build", command="touch x")))

    assert outcome.status == JobStatus.CANCELLED
    assert outcome.reason == Cancelled(job="build")
    assert outcome.step_logs == ()
    assert provisioner.torn_down == provisioner.provisioned


def test_unsupported_runner_fails_without_running(tmp_path: Path) -> None:
    executor, _, provisioner, _ = _executor(tmp_path)

    outcome = executor.run(_job("build", RunBuild(name="b", command="true"), runs_on="macos-14"))

    assert outcome.status == JobStatus.FAILED
    assert isinstance(outcome.reason, ProvisionFailed)
    assert provisioner.provisioned == []


def test_download_of_missing_artifact_fails(tmp_path: Path) -> None:
    executor, _, _, _ = _executor(tmp_path)

    outcome = executor.run(_job("release", DownloadArtifact(name="fetch", artifact="app.exe")))

    assert outcome.status == JobStatus.FAILED
    assert outcome.reason == ArtifactNotFound(name="app.exe")


def test_download_then_publish(tmp_path: Path) -> None:
    host = DirectoryReleaseHost(tmp_path / "releases")
    executor, run, _, console = _executor(tmp_path, publisher=ReleasePublisher(host))
    run.store.put("app.exe", b"MZ")

    outcome = executor.run(
        _job(
            "release",
            DownloadArtifact(name="fetch", artifact="app.exe"),
            PublishRelease(name="publish", files=("app.exe",)),
        )
    )

    assert outcome.status == JobStatus.SUCCEEDED
    assert (tmp_path / "releases" / "v1.0.0" / "app.exe").read_bytes() == b"MZ"
    assert console.find("release v1.0.0 created (app.exe)")


def test_publish_without_release_host_fails(tmp_path: Path) -> None:
    executor, _, _, _ = _executor(tmp_path)

    outcome = executor.run(
        _job(
            "release",
            RunBuild(name="make", command="echo x > app.exe"),
            PublishRelease(name="publish", files=("app.exe",)),
        )
    )

    assert outcome.status == JobStatus.FAILED
    assert outcome.failed_step == 1
    assert isinstance(outcome.reason, ReleaseHostError)


def test_publish_rejects_files_with_the_same_asset_name(tmp_path: Path) -> None:
    host = DirectoryReleaseHost(tmp_path / "releases")
    executor, _, _, _ = _executor(tmp_path, publisher=ReleasePublisher(host))

    outcome = executor.run(
        _job(
            "release",
            RunBuild(name="make", command="mkdir a b && echo 1 > a/app.exe && echo 2 > b/app.exe"),
            PublishRelease(name="publish", files=("a/app.exe", "b/app.exe")),
        )
    )

    assert outcome.status == JobStatus.FAILED
    assert outcome.failed_step == 1
    assert isinstance(outcome.reason, ArtifactIOError)
    assert outcome.reason.name == "app.exe"
    assert "same asset name" in outcome.reason.reason
    assert not (tmp_path / "releases").exists()
