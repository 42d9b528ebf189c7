from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

DuplicatePolicy = Literal["fail", "overwrite"]
HostKind = Literal["directory", "github"]


@dataclass(frozen=True, slots=True)
class ReleaseAsset:
    name: str
    size: int


@dataclass(frozen=True, slots=True)
class Release:
    """A published release, keyed by version (usually the tag name)."""

    version: str
    assets: tuple[ReleaseAsset, ...] = ()
    url: str | None = None
    # True when this publish call created the release record.
    created: bool = False

    def has_asset(self, name: str) -> bool:
        return any(a.name == name for a in self.assets)

    @property
    def asset_names(self) -> tuple[str, ...]:
        return tuple(a.name for a in self.assets)
