"""Isolated execution environments for jobs.

Every job gets a fresh working directory from a provisioner and gives it
back when it finishes, whatever the outcome. ``LocalProvisioner`` is the
only backend: it runs commands on this machine inside a temporary
directory, optionally seeded with a copy of the source tree.
"""

from __future__ import annotations

import os
import tempfile
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

from shipline.core.result import Err, Ok, Result
from shipline.pipeline.errors import ProvisionFailed
from shipline.pipeline.model import EnvironmentDescriptor
from shipline.platform.files import copy_source_tree, remove_tree
from shipline.platform.process import ProcessError, run_shell

__all__ = ["Environment", "EnvironmentProvisioner", "LocalProvisioner", "LOCAL_RUNNERS"]

LOCAL_RUNNERS: frozenset[str] = frozenset({"local", "self-hosted"})


class Environment:
    """A provisioned working directory plus a command primitive."""

    def __init__(self, *, job: str, workdir: Path, env: Mapping[str, str]) -> None:
        self.job = job
        self.workdir = workdir
        self._env = dict(env)

    def resolve(self, relative: str) -> Path:
        """Resolve a step path against the working directory."""
        return (self.workdir / relative).resolve()

    def run(
        self,
        command: str,
        *,
        extra_env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> Result[str, ProcessError]:
        env = dict(self._env)
        if extra_env:
            env.update(extra_env)
        return run_shell(command, self.workdir, env, timeout=timeout, cancel=cancel)


class EnvironmentProvisioner(Protocol):
    def provision(
        self, descriptor: EnvironmentDescriptor, job: str
    ) -> Result[Environment, ProvisionFailed]: ...

    def teardown(self, environment: Environment) -> None: ...


class LocalProvisioner:
    """Provision temporary directories on the local machine.

    Args:
        source_dir: Tree copied into the working directory for jobs that ask
            for a checkout.
        base_dir: Parent for working directories (system temp if None).
        env: Base environment for commands (``os.environ`` if None).
    """

    def __init__(
        self,
        *,
        source_dir: Path | None = None,
        base_dir: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._source_dir = source_dir
        self._base_dir = base_dir
        self._env = dict(os.environ if env is None else env)

    def provision(
        self, descriptor: EnvironmentDescriptor, job: str
    ) -> Result[Environment, ProvisionFailed]:
        if descriptor.runs_on not in LOCAL_RUNNERS:
            return Err(
                ProvisionFailed(
                    job=job,
                    runs_on=descriptor.runs_on,
                    reason=f"supported runners: {', '.join(sorted(LOCAL_RUNNERS))}",
                )
            )

        try:
            if self._base_dir is not None:
                self._base_dir.mkdir(parents=True, exist_ok=True)
            workdir = Path(
                tempfile.mkdtemp(
                    prefix=f"shipline-{job}-",
                    dir=None if self._base_dir is None else str(self._base_dir),
                )
            )
        except OSError as e:
            return Err(ProvisionFailed(job=job, runs_on=descriptor.runs_on, reason=str(e)))

        if descriptor.checkout and self._source_dir is not None:
            # Never copy the parent of our own working directories into itself.
            exclude = () if self._base_dir is None else (self._base_dir,)
            try:
                copy_source_tree(self._source_dir, workdir, exclude=exclude)
            except OSError as e:
                remove_tree(workdir)
                return Err(
                    ProvisionFailed(
                        job=job, runs_on=descriptor.runs_on, reason=f"checkout failed: {e}"
                    )
                )

        return Ok(Environment(job=job, workdir=workdir, env=self._env))

    def teardown(self, environment: Environment) -> None:
        remove_tree(environment.workdir)
