"""Error payloads for pipeline planning and job execution.

Each payload is a frozen dataclass exposing ``message`` (and sometimes
``hint``) so the report layer can render any of them without knowing the
concrete type.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class TriggerMismatch:
    ref: str
    pattern: str

    @property
    def message(self) -> str:
        return f"ref '{self.ref}' does not match '{self.pattern}'"


@dataclass(frozen=True, slots=True)
class DependencyNotSatisfied:
    job: str
    dependency: str
    status: str

    @property
    def message(self) -> str:
        return f"dependency '{self.dependency}' {self.status}"


@dataclass(frozen=True, slots=True)
class StepFailure:
    step_index: int
    step_name: str
    command: str
    returncode: int
    stderr: str = ""

    @property
    def message(self) -> str:
        return f"step {self.step_index + 1} '{self.step_name}' failed (exit {self.returncode})"

    @property
    def hint(self) -> str | None:
        lines = [line for line in self.stderr.strip().splitlines() if line.strip()]
        return lines[-1].strip() if lines else None


@dataclass(frozen=True, slots=True)
class ArtifactNotFound:
    name: str

    @property
    def message(self) -> str:
        return f"artifact not found: {self.name}"

    @property
    def hint(self) -> str:
        return "Upload it in a job listed under 'needs'."


@dataclass(frozen=True, slots=True)
class ArtifactIOError:
    name: str
    path: Path
    reason: str

    @property
    def message(self) -> str:
        return f"artifact '{self.name}': {self.reason} ({self.path})"


@dataclass(frozen=True, slots=True)
class Timeout:
    job: str
    seconds: float

    @property
    def message(self) -> str:
        return f"job '{self.job}' timed out after {self.seconds:g}s"


@dataclass(frozen=True, slots=True)
class Cancelled:
    job: str

    @property
    def message(self) -> str:
        return f"job '{self.job}' cancelled"


@dataclass(frozen=True, slots=True)
class ProvisionFailed:
    job: str
    runs_on: str
    reason: str

    @property
    def message(self) -> str:
        return f"cannot provision '{self.runs_on}' for job '{self.job}': {self.reason}"


@dataclass(frozen=True, slots=True)
class JobCrashed:
    job: str
    detail: str

    @property
    def message(self) -> str:
        return f"job '{self.job}' crashed: {self.detail}"


@dataclass(frozen=True, slots=True)
class CyclicDependency:
    jobs: tuple[str, ...]

    @property
    def message(self) -> str:
        return f"cyclic dependency between jobs: {', '.join(self.jobs)}"


@dataclass(frozen=True, slots=True)
class UnknownDependency:
    job: str
    dependency: str

    @property
    def message(self) -> str:
        return f"job '{self.job}' needs unknown job '{self.dependency}'"


@dataclass(frozen=True, slots=True)
class DuplicateJob:
    job: str

    @property
    def message(self) -> str:
        return f"job '{self.job}' is defined more than once"


PlanError = CyclicDependency | UnknownDependency | DuplicateJob
