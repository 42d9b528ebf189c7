"""Run-scoped state: one instance per triggering event.

A ``PipelineRun`` owns the artifact store, the job status table and the
cancellation flag. Nothing in it outlives ``close()``.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from uuid import uuid4

from shipline.pipeline.artifacts import ArtifactStore
from shipline.pipeline.model import Event, JobStatus

__all__ = ["PipelineRun"]


def new_run_id() -> str:
    return f"run-{uuid4().hex[:12]}"


class PipelineRun:
    def __init__(self, event: Event, jobs: Iterable[str], *, run_id: str | None = None) -> None:
        self.event = event
        self.run_id = run_id or new_run_id()
        self.store = ArtifactStore()
        self._cancel = threading.Event()
        self._lock = threading.Lock()
        self._statuses: dict[str, JobStatus] = {name: JobStatus.PENDING for name in jobs}

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Abort the run: running commands are killed, pending jobs never start."""
        self._cancel.set()

    def set_status(self, job: str, status: JobStatus) -> None:
        with self._lock:
            current = self._statuses.get(job)
            if current is not None and current.is_terminal:
                raise ValueError(f"job '{job}' already {current}")
            self._statuses[job] = status

    def status(self, job: str) -> JobStatus:
        with self._lock:
            return self._statuses[job]

    def statuses(self) -> dict[str, JobStatus]:
        with self._lock:
            return dict(self._statuses)

    def close(self) -> None:
        """Tear down run-scoped state."""
        self.store.clear()
