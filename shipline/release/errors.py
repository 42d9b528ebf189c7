from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True, slots=True)
class DuplicateRelease:
    version: str
    asset: str

    @property
    def message(self) -> str:
        return f"release {self.version} already has an asset named '{self.asset}'"

    @property
    def hint(self) -> str:
        return "Set [release] on_duplicate = \"overwrite\" to replace existing assets."


@dataclass(frozen=True, slots=True)
class ReleaseHostError:
    kind: Literal[
        "gh_missing",
        "gh_auth_required",
        "invalid_version",
        "invalid_input",
        "host_failed",
    ]
    message: str
    hint: str | None = None


PublishError = DuplicateRelease | ReleaseHostError
