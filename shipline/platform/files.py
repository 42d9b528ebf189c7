"""Filesystem helpers."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

__all__ = ["atomic_write_bytes", "copy_source_tree", "remove_tree"]

_CHECKOUT_IGNORE = (".git", "__pycache__", ".venv", "node_modules")


def atomic_write_bytes(path: Path, payload: bytes) -> None:
    """Write bytes to path atomically using temp file + replace."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


def copy_source_tree(source: Path, dest: Path, *, exclude: tuple[Path, ...] = ()) -> None:
    """Copy a source checkout into ``dest``, leaving VCS metadata behind.

    Directories in ``exclude`` are skipped wherever they sit below ``source``,
    and so is ``dest`` itself when it lies inside ``source``.
    """
    skipped = {path.resolve() for path in (*exclude, dest)}
    vcs = shutil.ignore_patterns(*_CHECKOUT_IGNORE)

    def _ignore(directory: str, names: list[str]) -> set[str]:
        parent = Path(directory).resolve()
        ignored = set(vcs(directory, names))
        ignored.update(name for name in names if parent / name in skipped)
        return ignored

    shutil.copytree(source, dest, dirs_exist_ok=True, ignore=_ignore)


def remove_tree(path: Path) -> None:
    """Remove a directory tree, tolerating files that are already gone."""
    if not path.exists():
        return

    def _retry_writable(func, p, _exc):  # type: ignore[no-untyped-def]
        # Read-only files (e.g. git objects) block rmtree on Windows.
        os.chmod(p, 0o700)
        func(p)

    shutil.rmtree(path, onexc=_retry_writable)
