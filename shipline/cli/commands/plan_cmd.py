from __future__ import annotations

from pathlib import Path

import typer

from shipline.cli.commands._helpers import exit_on_error
from shipline.cli.context import build_context
from shipline.core.config import DEFAULT_PIPELINE_FILE, load_pipeline
from shipline.core.errors import ErrorCode
from shipline.output.console import Style
from shipline.pipeline.scheduler import plan as plan_jobs


def plan(
    config: Path = typer.Option(
        Path(DEFAULT_PIPELINE_FILE), "--config", "-c", help="Pipeline definition file"
    ),
) -> None:
    """Validate the pipeline and print its execution order."""
    ctx = build_context()
    pipeline = exit_on_error(load_pipeline(ctx.resolve(config)), ctx, ErrorCode.CONFIG_ERROR)
    order = exit_on_error(plan_jobs(pipeline.jobs), ctx, ErrorCode.CONFIG_ERROR)

    trigger = pipeline.trigger
    ctx.console.header("trigger")
    ctx.console.print(f"refs:  {', '.join(trigger.refs) or '*'}")
    ctx.console.print(f"kinds: {', '.join(trigger.kinds) or 'any'}")

    ctx.console.header("jobs")
    for index, name in enumerate(order, start=1):
        job = pipeline.job(name)
        ctx.console.print(f"{index}. {name}", Style.BOLD)
        if job.needs:
            ctx.console.print(f"   needs: {', '.join(sorted(job.needs))}", Style.DIM)
        if job.condition:
            ctx.console.print(f"   if:    {job.condition}", Style.DIM)
        for step in job.steps:
            ctx.console.print(f"   - {step.name}", Style.DIM)

    ctx.console.success(f"release on duplicate: {pipeline.release.on_duplicate}")
