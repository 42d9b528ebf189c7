"""Run report presentation.

Centralised per-job summary and exit code mapping for the CLI.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from shipline.core.errors import ErrorCode
from shipline.output.console import Style
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
from shipline.pipeline.model import JobError, JobOutcome, JobStatus, RunReport
from shipline.release.errors import DuplicateRelease, ReleaseHostError

if TYPE_CHECKING:
    from shipline.output.console import ConsoleProtocol

__all__ = ["describe_reason", "print_run_report", "run_exit_code"]


def describe_reason(reason: JobError) -> str:
    """One-line label for a failure or skip cause."""
    match reason:
        case TriggerMismatch():
            return f"condition: {reason.message}"
        case DependencyNotSatisfied():
            return f"needs: {reason.message}"
        case StepFailure():
            return reason.message
        case ArtifactNotFound() | ArtifactIOError():
            return reason.message
        case Timeout() | Cancelled():
            return reason.message
        case DuplicateRelease():
            return f"publish: {reason.message}"
        case ReleaseHostError():
            return f"publish: {reason.message}"
        case ProvisionFailed() | JobCrashed():
            return reason.message


def _status_style(status: JobStatus) -> Style:
    match status:
        case JobStatus.SUCCEEDED:
            return Style.SUCCESS
        case JobStatus.FAILED:
            return Style.ERROR
        case JobStatus.CANCELLED:
            return Style.WARNING
        case _:
            return Style.DIM


def _outcome_line(outcome: JobOutcome) -> str:
    line = f"{outcome.job:<16} {outcome.status}"
    if outcome.status == JobStatus.SUCCEEDED:
        return f"{line} ({outcome.duration_seconds:.1f}s)"
    if outcome.reason is not None:
        line = f"{line}: {describe_reason(outcome.reason)}"
    return line


def print_run_report(report: RunReport, console: ConsoleProtocol) -> None:
    """Print one line per job, then the overall verdict."""
    console.header(f"{report.run_id} ({report.event.ref_name})")
    for outcome in report.outcomes:
        console.print(_outcome_line(outcome), _status_style(outcome.status))
        hint = getattr(outcome.reason, "hint", None)
        if outcome.status == JobStatus.FAILED and hint:
            console.print(f"  hint: {hint}", Style.DIM)

    if not report.activated:
        console.info("pipeline not activated by this event")
    elif report.succeeded:
        console.success("run succeeded")
    else:
        failed = report.count(JobStatus.FAILED)
        cancelled = report.count(JobStatus.CANCELLED)
        console.error(f"run failed ({failed} failed, {cancelled} cancelled)")


def run_exit_code(report: RunReport) -> int:
    """Exit code for a finished run."""
    if report.succeeded:
        return int(ErrorCode.OK)
    publish_failed = any(
        o.status == JobStatus.FAILED and isinstance(o.reason, DuplicateRelease | ReleaseHostError)
        for o in report.outcomes
    )
    if publish_failed:
        return int(ErrorCode.PUBLISH_ERROR)
    return int(ErrorCode.PIPELINE_FAILED)
