from __future__ import annotations

import os
from pathlib import Path
from typing import cast

import typer

from shipline.cli.commands._helpers import exit_on_error, exit_with_code
from shipline.cli.context import build_context
from shipline.core.config import DEFAULT_PIPELINE_FILE, load_pipeline
from shipline.core.errors import ErrorCode
from shipline.output.console import Style
from shipline.output.report import print_run_report, run_exit_code
from shipline.pipeline.environment import LocalProvisioner
from shipline.pipeline.model import EVENT_KINDS, Event, EventKind
from shipline.pipeline.service import PipelineService

# Ref of the triggering push when running under GitHub Actions.
GITHUB_REF_ENV = "GITHUB_REF"


def run(
    config: Path = typer.Option(
        Path(DEFAULT_PIPELINE_FILE), "--config", "-c", help="Pipeline definition file"
    ),
    ref: str | None = typer.Option(
        None, "--ref", help="Triggering ref (e.g. v1.2.3, refs/tags/v1.2.3). Default: $GITHUB_REF"
    ),
    kind: str | None = typer.Option(
        None, "--kind", help="Event kind: push|tag|manual (inferred from the ref if omitted)"
    ),
    max_parallel: int | None = typer.Option(
        None, "--max-parallel", min=1, help="Maximum concurrently running jobs"
    ),
    workdir: Path | None = typer.Option(
        None, "--workdir", help="Parent directory for job working directories"
    ),
) -> None:
    """Run the pipeline for a ref event."""
    ctx = build_context()

    ref = ref or os.environ.get(GITHUB_REF_ENV)
    if not ref:
        ctx.console.error("no ref given")
        ctx.console.print(f"hint: pass --ref or set {GITHUB_REF_ENV}", Style.DIM)
        exit_with_code(int(ErrorCode.USER_ERROR))

    if kind is not None and kind not in EVENT_KINDS:
        ctx.console.error(f"unknown event kind: {kind}")
        exit_with_code(int(ErrorCode.USER_ERROR))
    event = Event.from_ref(ref, cast(EventKind | None, kind))

    pipeline = exit_on_error(load_pipeline(ctx.resolve(config)), ctx, ErrorCode.CONFIG_ERROR)

    provisioner = LocalProvisioner(
        source_dir=ctx.workspace_root,
        base_dir=None if workdir is None else ctx.resolve(workdir),
    )
    service = PipelineService(
        config=pipeline,
        workspace_root=ctx.workspace_root,
        console=ctx.console,
        provisioner=provisioner,
        max_parallel=max_parallel,
    )
    report = exit_on_error(service.run(event), ctx, ErrorCode.CONFIG_ERROR)

    print_run_report(report, ctx.console)
    code = run_exit_code(report)
    if code != int(ErrorCode.OK):
        exit_with_code(code)
