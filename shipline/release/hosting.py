"""Release hosting backends.

A host stores release records keyed by version and the binary assets
attached to them. ``DirectoryReleaseHost`` keeps releases on disk, one
directory per version; ``shipline.release.gh.GhReleaseHost`` talks to
GitHub Releases.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Protocol

from shipline.core.result import Err, Ok, Result
from shipline.platform.files import atomic_write_bytes
from shipline.release.errors import ReleaseHostError
from shipline.release.model import Release, ReleaseAsset

__all__ = ["ReleaseHost", "DirectoryReleaseHost", "validate_version", "validate_asset_name"]

_SAFE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._+-]*$")


class ReleaseHost(Protocol):
    def get_release(self, version: str) -> Result[Release | None, ReleaseHostError]: ...

    def create_release(self, version: str) -> Result[Release, ReleaseHostError]: ...

    def upload_asset(
        self, version: str, name: str, payload: bytes, *, overwrite: bool
    ) -> Result[ReleaseAsset, ReleaseHostError]: ...


def validate_version(version: str) -> Result[str, ReleaseHostError]:
    if not _SAFE_NAME.match(version):
        return Err(
            ReleaseHostError(
                kind="invalid_version",
                message=f"invalid release version: {version!r}",
                hint="Use a tag-like name such as v1.2.3",
            )
        )
    return Ok(version)


def validate_asset_name(name: str) -> Result[str, ReleaseHostError]:
    if not _SAFE_NAME.match(name):
        return Err(
            ReleaseHostError(
                kind="invalid_input",
                message=f"invalid asset name: {name!r}",
            )
        )
    return Ok(name)


class DirectoryReleaseHost:
    """Releases stored as ``<root>/<version>/<asset>`` on the local disk."""

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def _release_dir(self, version: str) -> Result[Path, ReleaseHostError]:
        checked = validate_version(version)
        if isinstance(checked, Err):
            return checked
        return Ok(self._root / version)

    def _read(self, version: str, directory: Path, *, created: bool) -> Release:
        assets = tuple(
            ReleaseAsset(name=p.name, size=p.stat().st_size)
            for p in sorted(directory.iterdir())
            if p.is_file() and not p.name.startswith(".")
        )
        return Release(version=version, assets=assets, url=directory.as_uri(), created=created)

    def get_release(self, version: str) -> Result[Release | None, ReleaseHostError]:
        directory = self._release_dir(version)
        if isinstance(directory, Err):
            return directory
        if not directory.value.is_dir():
            return Ok(None)
        try:
            return Ok(self._read(version, directory.value, created=False))
        except OSError as e:
            return Err(
                ReleaseHostError(kind="host_failed", message=f"cannot read release {version}: {e}")
            )

    def create_release(self, version: str) -> Result[Release, ReleaseHostError]:
        directory = self._release_dir(version)
        if isinstance(directory, Err):
            return directory
        try:
            directory.value.mkdir(parents=True, exist_ok=False)
        except FileExistsError:
            return Err(
                ReleaseHostError(
                    kind="host_failed",
                    message=f"release {version} already exists",
                )
            )
        except OSError as e:
            return Err(
                ReleaseHostError(
                    kind="host_failed", message=f"cannot create release {version}: {e}"
                )
            )
        return Ok(Release(version=version, url=directory.value.as_uri(), created=True))

    def upload_asset(
        self, version: str, name: str, payload: bytes, *, overwrite: bool
    ) -> Result[ReleaseAsset, ReleaseHostError]:
        directory = self._release_dir(version)
        if isinstance(directory, Err):
            return directory
        checked = validate_asset_name(name)
        if isinstance(checked, Err):
            return checked

        target = directory.value / name
        if target.exists() and not overwrite:
            return Err(
                ReleaseHostError(
                    kind="host_failed",
                    message=f"asset {name} already attached to {version}",
                )
            )
        try:
            atomic_write_bytes(target, payload)
        except OSError as e:
            return Err(
                ReleaseHostError(kind="host_failed", message=f"cannot write asset {name}: {e}")
            )
        return Ok(ReleaseAsset(name=name, size=len(payload)))
