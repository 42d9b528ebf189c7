from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from shipline.output.console import ConsoleProtocol, RichConsole

WORKSPACE_ENV = "SHIPLINE_WORKSPACE"


@dataclass(frozen=True, slots=True)
class CLIContext:
    workspace_root: Path
    console: ConsoleProtocol

    def resolve(self, path: Path) -> Path:
        """Resolve a CLI path argument against the workspace root."""
        if path.is_absolute():
            return path
        return self.workspace_root / path


def workspace_root() -> Path:
    env = os.environ.get(WORKSPACE_ENV)
    if env:
        return Path(env).expanduser().resolve()
    return Path.cwd().resolve()


def build_context() -> CLIContext:
    return CLIContext(workspace_root=workspace_root(), console=RichConsole())
