"""Ref pattern matching for pipeline activation and job run-conditions.

Patterns are shell-style globs (``*``, ``?``, ``[...]``) matched against the
whole ref, case-sensitively. A pattern starting with ``refs/`` is matched
against the fully-qualified ref, so it can tell tags from branches; any
other pattern sees the short ref name:

    matches(Event("v1.0.0"), "v*")                       -> True
    matches(Event("release/v1.0.0"), "v*")               -> False
    matches(Event("refs/heads/v2-wip"), "refs/tags/v*")  -> False
"""

from __future__ import annotations

from collections.abc import Sequence
from fnmatch import fnmatchcase

from shipline.pipeline.errors import TriggerMismatch
from shipline.pipeline.model import REF_PREFIX, Event, EventKind

__all__ = ["matches", "matches_any", "check_activation", "check_condition"]


def _subject(event: Event, pattern: str) -> str:
    return event.full_ref if pattern.startswith(REF_PREFIX) else event.ref_name


def matches(event: Event, pattern: str) -> bool:
    return fnmatchcase(_subject(event, pattern), pattern)


def check_condition(event: Event, pattern: str) -> TriggerMismatch | None:
    """Evaluate a job run-condition. Returns the mismatch, or None to run."""
    if matches(event, pattern):
        return None
    return TriggerMismatch(ref=_subject(event, pattern), pattern=pattern)


def matches_any(event: Event, patterns: Sequence[str]) -> bool:
    """True if any pattern matches. An empty pattern list matches everything."""
    if not patterns:
        return True
    return any(matches(event, p) for p in patterns)


def check_activation(
    event: Event,
    *,
    refs: Sequence[str],
    kinds: Sequence[EventKind],
) -> TriggerMismatch | None:
    """Decide whether ``event`` starts the pipeline.

    Returns None when it does, or the mismatch explaining why not.
    """
    if kinds and event.kind not in kinds:
        return TriggerMismatch(ref=event.ref_name, pattern=f"kind in ({', '.join(kinds)})")
    if not matches_any(event, refs):
        return TriggerMismatch(ref=event.ref_name, pattern=" | ".join(refs))
    return None
