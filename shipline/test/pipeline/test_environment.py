from __future__ import annotations

import sys
from pathlib import Path

import pytest

from shipline.core.result import Err, Ok
from shipline.pipeline.environment import LocalProvisioner
from shipline.pipeline.errors import ProvisionFailed
from shipline.pipeline.model import EnvironmentDescriptor


def test_provision_creates_fresh_workdir(tmp_path: Path) -> None:
    provisioner = LocalProvisioner(base_dir=tmp_path / "work")

    a = provisioner.provision(EnvironmentDescriptor(), "build")
    b = provisioner.provision(EnvironmentDescriptor(), "build")

    assert isinstance(a, Ok) and isinstance(b, Ok)
    assert a.value.workdir != b.value.workdir
    assert a.value.workdir.is_dir()
    assert a.value.workdir.name.startswith("shipline-build-")
    assert list(a.value.workdir.iterdir()) == []


def test_checkout_copies_source_but_not_workdirs(tmp_path: Path) -> None:
    (tmp_path / "Cargo.toml").write_text("[package]", encoding="utf-8")
    provisioner = LocalProvisioner(source_dir=tmp_path, base_dir=tmp_path / ".work")

    env = provisioner.provision(EnvironmentDescriptor(checkout=True), "build")

    assert isinstance(env, Ok)
    assert (env.value.workdir / "Cargo.toml").exists()
    assert not (env.value.workdir / ".work").exists()


def test_checkout_skips_nested_workdir_base(tmp_path: Path) -> None:
    (tmp_path / "Cargo.toml").write_text("[package]", encoding="utf-8")
    (tmp_path / "lib" / ".work").mkdir(parents=True)
    (tmp_path / "lib" / ".work" / "kept.rs").write_text("", encoding="utf-8")
    base = tmp_path / "target" / ".work"
    provisioner = LocalProvisioner(source_dir=tmp_path, base_dir=base)
    first = provisioner.provision(EnvironmentDescriptor(checkout=True), "build")
    assert isinstance(first, Ok)

    second = provisioner.provision(EnvironmentDescriptor(checkout=True), "release")

    assert isinstance(second, Ok)
    workdir = second.value.workdir
    assert (workdir / "Cargo.toml").exists()
    assert (workdir / "lib" / ".work" / "kept.rs").exists()
    assert (workdir / "target").is_dir()
    assert not (workdir / "target" / ".work").exists()


def test_unsupported_runner(tmp_path: Path) -> None:
    provisioner = LocalProvisioner(base_dir=tmp_path)

    result = provisioner.provision(EnvironmentDescriptor(runs_on="windows-latest"), "build")

    assert isinstance(result, Err)
    assert isinstance(result.error, ProvisionFailed)
    assert result.error.runs_on == "windows-latest"
    assert list(tmp_path.iterdir()) == []


def test_teardown_removes_workdir(tmp_path: Path) -> None:
    provisioner = LocalProvisioner(base_dir=tmp_path)
    env = provisioner.provision(EnvironmentDescriptor(), "build")
    assert isinstance(env, Ok)
    (env.value.workdir / "target").mkdir()

    provisioner.teardown(env.value)

    assert not env.value.workdir.exists()


def test_resolve_is_relative_to_workdir(tmp_path: Path) -> None:
    env = LocalProvisioner(base_dir=tmp_path).provision(EnvironmentDescriptor(), "build")
    assert isinstance(env, Ok)
    assert env.value.resolve("target/app.exe") == (env.value.workdir / "target" / "app.exe").resolve()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell syntax")
def test_run_merges_environment(tmp_path: Path) -> None:
    provisioner = LocalProvisioner(base_dir=tmp_path, env={"BASE": "1", "PATH": "/usr/bin:/bin"})
    env = provisioner.provision(EnvironmentDescriptor(), "build")
    assert isinstance(env, Ok)

    result = env.value.run('echo "$BASE-$EXTRA" && pwd', extra_env={"EXTRA": "2"})

    assert isinstance(result, Ok)
    lines = result.value.splitlines()
    assert lines[0] == "1-2"
    assert Path(lines[1]).resolve() == env.value.workdir.resolve()
