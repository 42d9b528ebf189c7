"""Release publishing.

``publish`` fetches or creates the release for a version and attaches
artifacts to it. What happens when an artifact name is already attached is
a configuration decision (``DuplicatePolicy``), never a default guess:

- ``fail``: nothing is uploaded and ``DuplicateRelease`` is returned.
- ``overwrite``: the existing asset is replaced.

Publishing is not retried: a partially applied publish is externally
visible and cannot be rolled back from here.
"""

from __future__ import annotations

from collections.abc import Mapping

from shipline.core.result import Err, Ok, Result
from shipline.release.errors import DuplicateRelease, PublishError
from shipline.release.hosting import ReleaseHost
from shipline.release.model import DuplicatePolicy, Release, ReleaseAsset

__all__ = ["ReleasePublisher"]


class ReleasePublisher:
    def __init__(self, host: ReleaseHost, *, policy: DuplicatePolicy = "fail") -> None:
        self._host = host
        self._policy = policy

    @property
    def policy(self) -> DuplicatePolicy:
        return self._policy

    def publish(self, version: str, artifacts: Mapping[str, bytes]) -> Result[Release, PublishError]:
        existing = self._host.get_release(version)
        if isinstance(existing, Err):
            return existing

        release = existing.value
        if release is None:
            created = self._host.create_release(version)
            if isinstance(created, Err):
                return created
            release = created.value
        elif self._policy == "fail":
            # Check every name first so a rejected publish uploads nothing.
            for name in artifacts:
                if release.has_asset(name):
                    return Err(DuplicateRelease(version=version, asset=name))

        assets: dict[str, ReleaseAsset] = {a.name: a for a in release.assets}
        for name, payload in artifacts.items():
            uploaded = self._host.upload_asset(
                version, name, payload, overwrite=self._policy == "overwrite"
            )
            if isinstance(uploaded, Err):
                return uploaded
            assets[name] = uploaded.value

        return Ok(
            Release(
                version=version,
                assets=tuple(assets[n] for n in sorted(assets)),
                url=release.url,
                created=release.created,
            )
        )
