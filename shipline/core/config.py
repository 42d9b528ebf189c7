"""Typed pipeline definition loading.

A pipeline file is TOML:

    [trigger]
    refs = ["v*"]
    kinds = ["tag"]

    [release]
    on_duplicate = "fail"
    host = "directory"

    [jobs.build]
    checkout = true
    steps = [
      { build = "cargo build --release" },
      { upload = "app.exe", path = "target/release/app.exe" },
    ]

    [jobs.release]
    needs = ["build"]
    if = "v*"
    steps = [{ download = "app.exe" }, { publish = ["app.exe"] }]

Step tables are told apart by which action key they carry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

from shipline.core.result import Err, Ok, Result
from shipline.core.structured import (
    StrDict,
    as_obj_list,
    as_str_dict,
    get_bool,
    get_number,
    get_str,
    get_str_list,
    get_table,
)
from shipline.pipeline.model import (
    EVENT_KINDS,
    DownloadArtifact,
    EnvironmentDescriptor,
    EventKind,
    Job,
    PublishRelease,
    RunBuild,
    SetupEnvironment,
    Step,
    UploadArtifact,
)
from shipline.release.model import DuplicatePolicy, HostKind

__all__ = [
    "DEFAULT_PIPELINE_FILE",
    "ConfigError",
    "PipelineConfig",
    "ReleaseConfig",
    "TriggerConfig",
    "load_pipeline",
    "parse_pipeline",
]

DEFAULT_PIPELINE_FILE = "shipline.toml"

_STEP_ACTIONS = ("setup", "build", "upload", "download", "publish")
_DUPLICATE_POLICIES: tuple[DuplicatePolicy, ...] = ("fail", "overwrite")
_HOST_KINDS: tuple[HostKind, ...] = ("directory", "github")


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when the pipeline file cannot be loaded or is invalid."""

    message: str
    path: Path | None = None

    @property
    def hint(self) -> str | None:
        return str(self.path) if self.path is not None else None


@dataclass(frozen=True, slots=True)
class TriggerConfig:
    """Which events activate the pipeline. Empty tuples accept everything."""

    refs: tuple[str, ...] = ()
    kinds: tuple[EventKind, ...] = ()


@dataclass(frozen=True, slots=True)
class ReleaseConfig:
    on_duplicate: DuplicatePolicy = "fail"
    host: HostKind = "directory"
    # Relative to the workspace root, for host = "directory".
    directory: str = "releases"
    # owner/name, for host = "github" (None: the repo gh infers from cwd).
    repo: str | None = None


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    jobs: tuple[Job, ...]
    trigger: TriggerConfig = field(default_factory=TriggerConfig)
    release: ReleaseConfig = field(default_factory=ReleaseConfig)

    def job(self, name: str) -> Job:
        for job in self.jobs:
            if job.name == name:
                return job
        raise KeyError(name)


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------


def _parse_trigger(data: StrDict) -> Result[TriggerConfig, str]:
    table = get_table(data, "trigger")
    if table is None:
        if "trigger" in data:
            return Err("[trigger] must be a table")
        return Ok(TriggerConfig())

    refs: list[str] = []
    if "refs" in table:
        parsed = get_str_list(table, "refs")
        if parsed is None:
            return Err("trigger.refs must be a list of glob patterns")
        refs = parsed

    kinds: list[EventKind] = []
    if "kinds" in table:
        raw = get_str_list(table, "kinds")
        if raw is None:
            return Err("trigger.kinds must be a list of strings")
        for kind in raw:
            if kind not in EVENT_KINDS:
                return Err(f"unknown event kind: {kind!r} (expected one of {', '.join(EVENT_KINDS)})")
            kinds.append(cast(EventKind, kind))

    return Ok(TriggerConfig(refs=tuple(refs), kinds=tuple(kinds)))


def _parse_release(data: StrDict) -> Result[ReleaseConfig, str]:
    table = get_table(data, "release")
    if table is None:
        if "release" in data:
            return Err("[release] must be a table")
        return Ok(ReleaseConfig())

    for key in ("on_duplicate", "host", "directory", "repo"):
        if key in table and get_str(table, key) is None:
            return Err(f"release.{key} must be a non-empty string")

    policy = get_str(table, "on_duplicate") or "fail"
    if policy not in _DUPLICATE_POLICIES:
        return Err(f"release.on_duplicate must be 'fail' or 'overwrite' (got {policy!r})")

    host = get_str(table, "host") or "directory"
    if host not in _HOST_KINDS:
        return Err(f"release.host must be 'directory' or 'github' (got {host!r})")

    return Ok(
        ReleaseConfig(
            on_duplicate=cast(DuplicatePolicy, policy),
            host=cast(HostKind, host),
            directory=get_str(table, "directory") or "releases",
            repo=get_str(table, "repo"),
        )
    )


def _parse_step(job: str, index: int, obj: object) -> Result[Step, str]:
    where = f"jobs.{job}.steps[{index}]"
    table = as_str_dict(obj)
    if table is None:
        return Err(f"{where} must be a table")

    actions = [key for key in _STEP_ACTIONS if key in table]
    if len(actions) != 1:
        return Err(f"{where} must have exactly one of: {', '.join(_STEP_ACTIONS)}")
    action = actions[0]
    name = get_str(table, "name")

    match action:
        case "setup":
            label = get_str(table, "setup")
            if label is None:
                return Err(f"{where}.setup must be a non-empty string")
            commands: list[str] = []
            if "run" in table:
                parsed = get_str_list(table, "run")
                if parsed is None:
                    return Err(f"{where}.run must be a command or list of commands")
                commands = parsed
            return Ok(SetupEnvironment(name=name or f"setup {label}", commands=tuple(commands)))

        case "build":
            command = get_str(table, "build")
            if command is None:
                return Err(f"{where}.build must be a non-empty command")
            env: list[tuple[str, str]] = []
            env_table = get_table(table, "env")
            if "env" in table and env_table is None:
                return Err(f"{where}.env must be a table")
            for key, value in (env_table or {}).items():
                if not isinstance(value, str):
                    return Err(f"{where}.env.{key} must be a string")
                env.append((key, value))
            return Ok(RunBuild(name=name or "build", command=command, env=tuple(env)))

        case "upload":
            artifact = get_str(table, "upload")
            path = get_str(table, "path")
            if artifact is None:
                return Err(f"{where}.upload must name the artifact")
            if path is None:
                return Err(f"{where}.path is required for upload steps")
            return Ok(UploadArtifact(name=name or f"upload {artifact}", artifact=artifact, path=path))

        case "download":
            artifact = get_str(table, "download")
            if artifact is None:
                return Err(f"{where}.download must name the artifact")
            path = get_str(table, "path") or "."
            return Ok(
                DownloadArtifact(name=name or f"download {artifact}", artifact=artifact, path=path)
            )

        case _:
            files = get_str_list(table, "publish")
            if not files:
                return Err(f"{where}.publish must list at least one file")
            return Ok(
                PublishRelease(
                    name=name or "publish release",
                    files=tuple(files),
                    version=get_str(table, "version"),
                )
            )


def _parse_job(name: str, obj: object) -> Result[Job, str]:
    table = as_str_dict(obj)
    if table is None:
        return Err(f"jobs.{name} must be a table")

    needs: list[str] = []
    if "needs" in table:
        parsed = get_str_list(table, "needs")
        if parsed is None:
            return Err(f"jobs.{name}.needs must be a job name or list of job names")
        needs = parsed

    condition = get_str(table, "if")
    if "if" in table and condition is None:
        return Err(f"jobs.{name}.if must be a non-empty glob pattern")

    timeout: float | None = None
    if "timeout_seconds" in table:
        timeout = get_number(table, "timeout_seconds")
        if timeout is None or timeout <= 0:
            return Err(f"jobs.{name}.timeout_seconds must be a positive number")

    checkout = get_bool(table, "checkout")
    if "checkout" in table and checkout is None:
        return Err(f"jobs.{name}.checkout must be true or false")

    raw_steps = as_obj_list(table.get("steps"))
    if not raw_steps:
        return Err(f"jobs.{name}.steps must be a non-empty list")

    steps: list[Step] = []
    for index, raw in enumerate(raw_steps):
        step = _parse_step(name, index, raw)
        if isinstance(step, Err):
            return step
        steps.append(step.value)

    return Ok(
        Job(
            name=name,
            steps=tuple(steps),
            needs=frozenset(needs),
            environment=EnvironmentDescriptor(
                runs_on=get_str(table, "runs_on") or "local",
                checkout=bool(checkout),
            ),
            condition=condition,
            timeout_seconds=timeout,
        )
    )


def parse_pipeline(data: StrDict, *, path: Path | None = None) -> Result[PipelineConfig, ConfigError]:
    """Build a PipelineConfig from a parsed TOML mapping."""
    jobs_table = get_table(data, "jobs")
    if not jobs_table:
        return Err(ConfigError("pipeline defines no [jobs]", path=path))

    jobs: list[Job] = []
    for name, obj in jobs_table.items():
        job = _parse_job(name, obj)
        if isinstance(job, Err):
            return Err(ConfigError(job.error, path=path))
        jobs.append(job.value)

    trigger = _parse_trigger(data)
    if isinstance(trigger, Err):
        return Err(ConfigError(trigger.error, path=path))

    release = _parse_release(data)
    if isinstance(release, Err):
        return Err(ConfigError(release.error, path=path))

    return Ok(PipelineConfig(jobs=tuple(jobs), trigger=trigger.value, release=release.value))


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling read and syntax errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Pipeline root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Pipeline file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading pipeline file: {e}", path=path))


def load_pipeline(path: Path) -> Result[PipelineConfig, ConfigError]:
    """Load and validate a pipeline definition.

    Args:
        path: Path to the pipeline TOML file.

    Returns:
        Ok(PipelineConfig) on success, Err(ConfigError) on failure.
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result
    return parse_pipeline(result.value, path=path)
