from __future__ import annotations

import json
from pathlib import Path

import pytest

from shipline.core.result import Err, Ok, Result
from shipline.platform.process import ProcessError
from shipline.release import gh as gh_mod


def _err(*, stderr: str, returncode: int = 1) -> Err[ProcessError]:
    return Err(
        ProcessError(
            command=("gh", "release", "view"),
            returncode=returncode,
            stdout="",
            stderr=stderr,
        )
    )


def _no_sleep(seconds: float) -> None:
    del seconds


def _fake_gh_installed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(gh_mod, "ensure_gh_available", lambda: Ok(None))


def test_run_gh_read_retries_transient_error(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    calls: list[list[str]] = []
    responses: list[Result[str, ProcessError]] = [
        _err(stderr="HTTP 503 Service Unavailable"),
        Ok("{}"),
    ]

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cwd
        del timeout
        calls.append(cmd)
        return responses.pop(0)

    monkeypatch.setattr(gh_mod, "run_process", fake_run)
    monkeypatch.setattr(gh_mod, "sleep", _no_sleep)

    result = gh_mod.run_gh_read(workspace_root=tmp_path, cmd=["gh", "release", "view", "v1"])

    assert result == Ok("{}")
    assert len(calls) == 2


def test_run_gh_read_does_not_retry_permanent_error(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    calls: list[list[str]] = []

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cwd
        del timeout
        calls.append(cmd)
        return _err(stderr="release not found")

    monkeypatch.setattr(gh_mod, "run_process", fake_run)
    monkeypatch.setattr(gh_mod, "sleep", _no_sleep)

    result = gh_mod.run_gh_read(workspace_root=tmp_path, cmd=["gh", "release", "view", "v1"])

    assert isinstance(result, Err)
    assert len(calls) == 1


def test_get_release_not_found_is_none(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _fake_gh_installed(monkeypatch)
    monkeypatch.setattr(
        gh_mod, "run_process", lambda cmd, *, cwd, timeout=None: _err(stderr="release not found")
    )

    host = gh_mod.GhReleaseHost(workspace_root=tmp_path, repo=None)

    assert host.get_release("v1.2.3") == Ok(None)


def test_get_release_parses_assets(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _fake_gh_installed(monkeypatch)
    payload = json.dumps(
        {
            "tagName": "v1.2.3",
            "url": "https://github.com/o/r/releases/tag/v1.2.3",
            "assets": [{"name": "app.exe", "size": 10}, {"name": "notes.txt"}, "junk"],
        }
    )
    seen: list[list[str]] = []

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cwd
        del timeout
        seen.append(cmd)
        return Ok(payload)

    monkeypatch.setattr(gh_mod, "run_process", fake_run)

    result = gh_mod.GhReleaseHost(workspace_root=tmp_path, repo="o/r").get_release("v1.2.3")

    assert isinstance(result, Ok)
    release = result.value
    assert release is not None
    assert release.asset_names == ("app.exe", "notes.txt")
    assert release.url == "https://github.com/o/r/releases/tag/v1.2.3"
    assert seen[0][:4] == ["gh", "release", "view", "v1.2.3"]
    assert "--repo" in seen[0]


def test_get_release_reports_missing_gh(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(gh_mod.shutil, "which", lambda _name: None)

    result = gh_mod.GhReleaseHost(workspace_root=tmp_path, repo=None).get_release("v1.2.3")

    assert isinstance(result, Err)
    assert result.error.kind == "gh_missing"


def test_create_release_uses_stdout_url(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    seen: list[list[str]] = []

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cwd
        del timeout
        seen.append(cmd)
        return Ok("https://github.com/o/r/releases/tag/v1.2.3\n")

    monkeypatch.setattr(gh_mod, "run_process", fake_run)

    result = gh_mod.GhReleaseHost(workspace_root=tmp_path, repo=None).create_release("v1.2.3")

    assert isinstance(result, Ok)
    assert result.value.created
    assert result.value.url == "https://github.com/o/r/releases/tag/v1.2.3"
    assert "--verify-tag" in seen[0]


def test_upload_asset_stages_file_and_clobbers_on_overwrite(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    staged: list[tuple[str, bytes]] = []
    seen: list[list[str]] = []

    def fake_run(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        del cwd
        del timeout
        seen.append(cmd)
        path = Path(cmd[4])
        staged.append((path.name, path.read_bytes()))
        return Ok("")

    monkeypatch.setattr(gh_mod, "run_process", fake_run)
    host = gh_mod.GhReleaseHost(workspace_root=tmp_path, repo=None)

    result = host.upload_asset("v1.2.3", "app.exe", b"MZ", overwrite=True)

    assert isinstance(result, Ok)
    assert staged == [("app.exe", b"MZ")]
    assert seen[0][-1] == "--clobber"
    assert not Path(seen[0][4]).exists()


def test_upload_failure_is_host_failed(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(
        gh_mod, "run_process", lambda cmd, *, cwd, timeout=None: _err(stderr="HTTP 422")
    )
    host = gh_mod.GhReleaseHost(workspace_root=tmp_path, repo=None)

    result = host.upload_asset("v1.2.3", "app.exe", b"MZ", overwrite=False)

    assert isinstance(result, Err)
    assert result.error.kind == "host_failed"
    assert result.error.hint == "HTTP 422"


def test_get_release_maps_auth_failure(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _fake_gh_installed(monkeypatch)
    monkeypatch.setattr(
        gh_mod,
        "run_process",
        lambda cmd, *, cwd, timeout=None: _err(
            stderr="To get started with GitHub CLI, please run:  gh auth login"
        ),
    )

    result = gh_mod.GhReleaseHost(workspace_root=tmp_path, repo=None).get_release("v1.2.3")

    assert isinstance(result, Err)
    assert result.error.kind == "gh_auth_required"
