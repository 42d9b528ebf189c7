"""Run-scoped artifact store.

Jobs hand build output to each other through this store only. Access to a
single artifact name is serialised by a per-name lock; different names do
not contend.
"""

from __future__ import annotations

import threading
from pathlib import Path

from shipline.core.result import Err, Ok, Result
from shipline.pipeline.errors import ArtifactIOError, ArtifactNotFound
from shipline.platform.files import atomic_write_bytes

__all__ = ["ArtifactStore"]


class ArtifactStore:
    """In-memory name -> bytes mapping owned by one pipeline run."""

    def __init__(self) -> None:
        self._payloads: dict[str, bytes] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, name: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = threading.Lock()
                self._locks[name] = lock
            return lock

    def put(self, name: str, payload: bytes) -> None:
        """Store ``payload`` under ``name``, replacing any previous payload."""
        with self._lock_for(name):
            self._payloads[name] = bytes(payload)

    def get(self, name: str) -> Result[bytes, ArtifactNotFound]:
        with self._lock_for(name):
            payload = self._payloads.get(name)
        if payload is None:
            return Err(ArtifactNotFound(name=name))
        return Ok(payload)

    def __contains__(self, name: object) -> bool:
        with self._guard:
            return name in self._payloads

    def names(self) -> tuple[str, ...]:
        with self._guard:
            return tuple(sorted(self._payloads))

    def upload(self, name: str, path: Path) -> Result[int, ArtifactIOError]:
        """Read ``path`` and store it under ``name``. Returns the byte count."""
        try:
            payload = path.read_bytes()
        except FileNotFoundError:
            return Err(ArtifactIOError(name=name, path=path, reason="file not found"))
        except IsADirectoryError:
            return Err(ArtifactIOError(name=name, path=path, reason="is a directory"))
        except OSError as e:
            return Err(ArtifactIOError(name=name, path=path, reason=str(e)))

        self.put(name, payload)
        return Ok(len(payload))

    def download(
        self, name: str, path: Path
    ) -> Result[Path, ArtifactNotFound | ArtifactIOError]:
        """Write artifact ``name`` to ``path``.

        If ``path`` is an existing directory the file is written inside it
        under the artifact name. Returns the written file path.
        """
        got = self.get(name)
        if isinstance(got, Err):
            return got

        target = path / name if path.is_dir() else path
        try:
            atomic_write_bytes(target, got.value)
        except OSError as e:
            return Err(ArtifactIOError(name=name, path=target, reason=str(e)))
        return Ok(target)

    def clear(self) -> None:
        """Drop every artifact. Called when the run ends."""
        with self._guard:
            self._payloads.clear()
            self._locks.clear()
