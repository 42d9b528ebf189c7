"""Pipeline data model: events, jobs, steps and outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from shipline.pipeline.errors import (
    ArtifactIOError,
    ArtifactNotFound,
    Cancelled,
    DependencyNotSatisfied,
    JobCrashed,
    ProvisionFailed,
    StepFailure,
    Timeout,
    TriggerMismatch,
)
from shipline.release.errors import DuplicateRelease, ReleaseHostError

EventKind = Literal["push", "tag", "manual"]
EVENT_KINDS: tuple[EventKind, ...] = ("push", "tag", "manual")

REF_PREFIX = "refs/"
TAG_REF_PREFIX = "refs/tags/"
BRANCH_REF_PREFIX = "refs/heads/"


@dataclass(frozen=True, slots=True)
class Event:
    """The stimulus that starts a pipeline run.

    Attributes:
        ref: Short ref name (``v1.2.3``) or fully-qualified ref
            (``refs/tags/v1.2.3``).
        kind: What happened to the ref.
    """

    ref: str
    kind: EventKind = "push"

    @classmethod
    def from_ref(cls, ref: str, kind: EventKind | None = None) -> Event:
        """Build an event, inferring ``tag`` for ``refs/tags/*`` refs."""
        if kind is None:
            kind = "tag" if ref.startswith(TAG_REF_PREFIX) else "push"
        return cls(ref=ref, kind=kind)

    @property
    def ref_name(self) -> str:
        for prefix in (TAG_REF_PREFIX, BRANCH_REF_PREFIX):
            if self.ref.startswith(prefix):
                return self.ref[len(prefix) :]
        return self.ref

    @property
    def full_ref(self) -> str:
        """Fully-qualified ref; a short ref is qualified by the event kind."""
        if self.ref.startswith(REF_PREFIX):
            return self.ref
        prefix = TAG_REF_PREFIX if self.kind == "tag" else BRANCH_REF_PREFIX
        return prefix + self.ref


# -----------------------------------------------------------------------------
# Steps
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SetupEnvironment:
    """Prepare the job environment (toolchains, caches)."""

    name: str
    commands: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RunBuild:
    name: str
    command: str
    env: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True, slots=True)
class UploadArtifact:
    """Store a file from the job's working directory under ``artifact``."""

    name: str
    artifact: str
    path: str


@dataclass(frozen=True, slots=True)
class DownloadArtifact:
    """Write ``artifact`` into the working directory.

    ``path`` may name a directory (the artifact keeps its name) or a file.
    """

    name: str
    artifact: str
    path: str = "."


@dataclass(frozen=True, slots=True)
class PublishRelease:
    """Attach staged files to the release for ``version``.

    ``version`` defaults to the triggering event's ref name.
    """

    name: str
    files: tuple[str, ...]
    version: str | None = None


type Step = SetupEnvironment | RunBuild | UploadArtifact | DownloadArtifact | PublishRelease


# -----------------------------------------------------------------------------
# Jobs
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EnvironmentDescriptor:
    runs_on: str = "local"
    # Seed the working directory with a copy of the source tree.
    checkout: bool = False


@dataclass(frozen=True, slots=True)
class Job:
    name: str
    steps: tuple[Step, ...]
    needs: frozenset[str] = frozenset()
    environment: EnvironmentDescriptor = field(default_factory=EnvironmentDescriptor)
    # Glob pattern over the event ref name; None means always run.
    condition: str | None = None
    timeout_seconds: float | None = None


class JobStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self not in (JobStatus.PENDING, JobStatus.RUNNING)


type StepError = (
    StepFailure
    | ArtifactNotFound
    | ArtifactIOError
    | DuplicateRelease
    | ReleaseHostError
    | Timeout
    | Cancelled
)

type JobError = (
    StepError | TriggerMismatch | DependencyNotSatisfied | ProvisionFailed | JobCrashed
)


@dataclass(frozen=True, slots=True)
class StepLog:
    index: int
    name: str
    ok: bool
    output: str = ""


@dataclass(frozen=True, slots=True)
class JobOutcome:
    """Terminal state of one job in a run.

    ``reason`` is set for every status except SUCCEEDED: the failure for
    FAILED, the cause for SKIPPED and CANCELLED.
    """

    job: str
    status: JobStatus
    reason: JobError | None = None
    failed_step: int | None = None
    step_logs: tuple[StepLog, ...] = ()
    duration_seconds: float = 0.0

    @classmethod
    def skipped(cls, job: str, cause: JobError) -> JobOutcome:
        return cls(job=job, status=JobStatus.SKIPPED, reason=cause)

    @classmethod
    def cancelled(cls, job: str) -> JobOutcome:
        return cls(job=job, status=JobStatus.CANCELLED, reason=Cancelled(job=job))


@dataclass(frozen=True, slots=True)
class RunReport:
    run_id: str
    event: Event
    activated: bool
    outcomes: tuple[JobOutcome, ...]

    @property
    def succeeded(self) -> bool:
        """True when every job that was not skipped succeeded."""
        return all(
            o.status in (JobStatus.SUCCEEDED, JobStatus.SKIPPED) for o in self.outcomes
        )

    def outcome(self, job: str) -> JobOutcome:
        for o in self.outcomes:
            if o.job == job:
                return o
        raise KeyError(job)

    def count(self, status: JobStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)
