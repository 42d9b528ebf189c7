from __future__ import annotations

import json
import shutil
import tempfile
from pathlib import Path
from time import sleep

from shipline.core.result import Err, Ok, Result
from shipline.core.structured import as_obj_list, as_str_dict, get_str
from shipline.platform.files import atomic_write_bytes
from shipline.platform.process import ProcessError
from shipline.platform.process import run as run_process
from shipline.release.errors import ReleaseHostError
from shipline.release.hosting import validate_asset_name, validate_version
from shipline.release.model import Release, ReleaseAsset
from shipline.release.timeouts import (
    GH_READ_RETRY_ATTEMPTS,
    GH_READ_RETRY_DELAY_SECONDS,
    GH_TIMEOUT_SECONDS,
    GH_UPLOAD_TIMEOUT_SECONDS,
)


def _is_transient_gh_error(error: ProcessError) -> bool:
    text = f"{error.stderr}\n{error.stdout}".lower()
    markers = (
        "timed out",
        "timeout",
        "connection reset",
        "connection refused",
        "temporarily unavailable",
        "service unavailable",
        "bad gateway",
        "gateway timeout",
        "tls handshake timeout",
        "network is unreachable",
        "http 429",
        "http 500",
        "http 502",
        "http 503",
        "http 504",
    )
    if error.returncode == -1 and "timed out" in text:
        return True
    return any(marker in text for marker in markers)


def _is_not_found(error: ProcessError) -> bool:
    text = error.stderr.lower()
    return "release not found" in text or "http 404" in text


def run_gh_read(
    *,
    workspace_root: Path,
    cmd: list[str],
    timeout: float = GH_TIMEOUT_SECONDS,
    retry_attempts: int = GH_READ_RETRY_ATTEMPTS,
) -> Result[str, ProcessError]:
    """Run a read-only gh command, retrying transient network failures."""
    attempts = max(1, retry_attempts)
    result: Result[str, ProcessError] = Err(
        ProcessError(command=tuple(cmd), returncode=-1, stdout="", stderr="not run")
    )
    for attempt in range(attempts):
        result = run_process(cmd, cwd=workspace_root, timeout=timeout)
        if isinstance(result, Ok):
            return result
        if attempt < attempts - 1 and _is_transient_gh_error(result.error):
            sleep(GH_READ_RETRY_DELAY_SECONDS * (attempt + 1))
            continue
        return result
    return result


def ensure_gh_available() -> Result[None, ReleaseHostError]:
    if shutil.which("gh") is None:
        return Err(
            ReleaseHostError(
                kind="gh_missing",
                message="gh: missing",
                hint="Install GitHub CLI: https://cli.github.com/",
            )
        )
    return Ok(None)


def _is_auth_required(error: ProcessError) -> bool:
    text = error.stderr.lower()
    return "gh auth login" in text or "http 401" in text or "gh_token" in text


def _host_failed(message: str, error: ProcessError) -> ReleaseHostError:
    if _is_auth_required(error):
        return ReleaseHostError(
            kind="gh_auth_required",
            message="gh auth required",
            hint="Run: gh auth login (or set GH_TOKEN)",
        )
    return ReleaseHostError(kind="host_failed", message=message, hint=error.stderr.strip() or None)


def _parse_release(version: str, payload: str) -> Result[Release, ReleaseHostError]:
    try:
        obj: object = json.loads(payload)
    except json.JSONDecodeError as e:
        return Err(
            ReleaseHostError(
                kind="invalid_input",
                message=f"invalid JSON from gh release view: {e}",
            )
        )

    data = as_str_dict(obj)
    if data is None:
        return Err(
            ReleaseHostError(kind="invalid_input", message="unexpected gh release view payload")
        )

    assets: list[ReleaseAsset] = []
    for item in as_obj_list(data.get("assets")) or []:
        d = as_str_dict(item)
        if d is None:
            continue
        name = get_str(d, "name")
        size = d.get("size")
        if name is None:
            continue
        assets.append(ReleaseAsset(name=name, size=size if isinstance(size, int) else 0))

    return Ok(Release(version=version, assets=tuple(assets), url=get_str(data, "url")))


class GhReleaseHost:
    """GitHub Releases through the ``gh`` CLI.

    Reads are retried on transient failures; writes are not, since a
    half-applied create or upload is visible to everyone.
    """

    def __init__(self, *, workspace_root: Path, repo: str | None) -> None:
        self._root = workspace_root
        self._repo = repo

    def _repo_args(self) -> list[str]:
        return ["--repo", self._repo] if self._repo else []

    def get_release(self, version: str) -> Result[Release | None, ReleaseHostError]:
        checked = validate_version(version)
        if isinstance(checked, Err):
            return checked
        # Every publish starts with a lookup, so gh is checked once here.
        available = ensure_gh_available()
        if isinstance(available, Err):
            return available

        cmd = ["gh", "release", "view", version, *self._repo_args(), "--json", "tagName,url,assets"]
        result = run_gh_read(workspace_root=self._root, cmd=cmd)
        if isinstance(result, Err):
            if _is_not_found(result.error):
                return Ok(None)
            return Err(_host_failed(f"failed to query release {version}", result.error))
        return _parse_release(version, result.value)

    def create_release(self, version: str) -> Result[Release, ReleaseHostError]:
        checked = validate_version(version)
        if isinstance(checked, Err):
            return checked

        cmd = [
            "gh",
            "release",
            "create",
            version,
            *self._repo_args(),
            "--title",
            version,
            "--notes",
            "",
            "--verify-tag",
        ]
        result = run_process(cmd, cwd=self._root, timeout=GH_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(_host_failed(f"failed to create release {version}", result.error))
        url = result.value.strip() or None
        return Ok(Release(version=version, url=url, created=True))

    def upload_asset(
        self, version: str, name: str, payload: bytes, *, overwrite: bool
    ) -> Result[ReleaseAsset, ReleaseHostError]:
        checked = validate_asset_name(name)
        if isinstance(checked, Err):
            return checked

        # gh uploads files by path and names the asset after the file.
        with tempfile.TemporaryDirectory(prefix="shipline-asset-") as tmp:
            staged = Path(tmp) / name
            try:
                atomic_write_bytes(staged, payload)
            except OSError as e:
                return Err(
                    ReleaseHostError(kind="host_failed", message=f"cannot stage {name}: {e}")
                )

            cmd = ["gh", "release", "upload", version, str(staged), *self._repo_args()]
            if overwrite:
                cmd.append("--clobber")
            result = run_process(cmd, cwd=self._root, timeout=GH_UPLOAD_TIMEOUT_SECONDS)

        if isinstance(result, Err):
            return Err(_host_failed(f"failed to upload {name} to release {version}", result.error))
        return Ok(ReleaseAsset(name=name, size=len(payload)))
