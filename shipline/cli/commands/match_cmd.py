from __future__ import annotations

import typer

from shipline.cli.commands._helpers import exit_with_code
from shipline.cli.context import build_context
from shipline.core.errors import ErrorCode
from shipline.pipeline.model import REF_PREFIX, Event
from shipline.pipeline.trigger import matches


def match(
    ref: str = typer.Argument(..., help="Ref name or fully-qualified ref"),
    pattern: str = typer.Argument(..., help="Glob pattern, e.g. 'v*'"),
) -> None:
    """Check whether a ref matches a trigger pattern (exit 0 if it does)."""
    ctx = build_context()
    event = Event.from_ref(ref)
    shown = event.full_ref if pattern.startswith(REF_PREFIX) else event.ref_name
    if matches(event, pattern):
        ctx.console.success(f"{shown} matches {pattern}")
        return
    ctx.console.print(f"{shown} does not match {pattern}")
    exit_with_code(int(ErrorCode.USER_ERROR))
