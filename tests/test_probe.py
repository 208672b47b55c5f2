from __future__ import annotations

from pathlib import Path

import pytest
from conftest import BREW, FakeRunner

from brewstrap.backends import Backends
from brewstrap.backup import BackupGuard
from brewstrap.executor import execute_item
from brewstrap.models import (
    ItemDescriptor,
    ItemKind,
    OutcomeKind,
    PreferenceSetting,
    PreferenceType,
    RuntimeCommand,
)
from brewstrap.probe import probe_item


def _formula(name: str) -> ItemDescriptor:
    return ItemDescriptor(id=name, kind=ItemKind.FORMULA, source=name)


def test_package_probe_is_exact_and_case_sensitive(runner: FakeRunner) -> None:
    runner.script([BREW, "list", "--formula", "-1"], stdout="git\ngit-lfs\n")
    backends = Backends(runner)

    assert probe_item(_formula("git"), backends).present
    assert not probe_item(_formula("Git"), backends).present
    assert not probe_item(_formula("gi"), backends).present


def test_probe_fails_open_on_backend_error(runner: FakeRunner) -> None:
    runner.script([BREW, "list", "--formula", "-1"], returncode=1, stderr="Error: broken\n")

    result = probe_item(_formula("git"), Backends(runner))

    assert not result.present
    assert result.details is not None and "broken" in result.details


def test_config_file_probe(tmp_path: Path, runner: FakeRunner) -> None:
    source = tmp_path / "template"
    source.write_text("a = 1\n")
    target = tmp_path / "config"
    item = ItemDescriptor(id="cfg", kind=ItemKind.CONFIG_FILE, source=str(source), target=target)
    backends = Backends(runner)

    missing = probe_item(item, backends)
    assert not missing.present and not missing.satisfied

    target.write_text("a = 2\n")
    differs = probe_item(item, backends)
    assert differs.present and differs.matches_desired is False and not differs.satisfied

    target.write_text("a = 1\n")
    assert probe_item(item, backends).satisfied


def test_runtime_probe_honours_expected_output(runner: FakeRunner) -> None:
    item = ItemDescriptor(
        id="python",
        kind=ItemKind.RUNTIME,
        source="uv",
        runtime=RuntimeCommand(check=("uv", "python", "list"), install=("uv", "python", "install"), expect="cpython"),
    )
    backends = Backends(runner)

    assert not probe_item(item, backends).present

    runner.script(["uv", "python", "list"], stdout="cpython-3.13.0-macos-aarch64-none\n")
    assert probe_item(item, backends).present


def test_runtime_probe_missing_command(runner: FakeRunner) -> None:
    runner.script(["uv", "python", "list"], returncode=127, stderr="No such file")
    item = ItemDescriptor(
        id="python",
        kind=ItemKind.RUNTIME,
        source="uv",
        runtime=RuntimeCommand(check=("uv", "python", "list"), install=("uv", "python", "install")),
    )

    assert not probe_item(item, Backends(runner)).present


def test_preference_probe_compares_encoded_value(runner: FakeRunner) -> None:
    setting = PreferenceSetting(domain="com.apple.finder", key="ShowPathbar", value_type=PreferenceType.BOOL, value=True)
    item = ItemDescriptor(id="finder", kind=ItemKind.PREFERENCE, source="com.apple.finder", preference=setting)

    runner.script(["defaults", "read", "com.apple.finder", "ShowPathbar"], stdout="0\n")
    assert not probe_item(item, Backends(runner)).satisfied

    runner.script(["defaults", "read", "com.apple.finder", "ShowPathbar"], stdout="1\n")
    assert probe_item(item, Backends(runner)).satisfied


def test_execute_install_failure_becomes_failed_outcome(runner: FakeRunner) -> None:
    runner.script([BREW, "install", "wget"], returncode=1, stderr="Error: network down\n")

    outcome = execute_item(_formula("wget"), Backends(runner), BackupGuard())

    assert outcome.kind is OutcomeKind.FAILED
    assert outcome.reason == "Error: network down"
    assert runner.calls.count([BREW, "install", "wget"]) == 1


def test_execute_runtime_install(runner: FakeRunner) -> None:
    item = ItemDescriptor(
        id="python",
        kind=ItemKind.RUNTIME,
        source="uv",
        runtime=RuntimeCommand(check=("uv", "python", "list"), install=("uv", "python", "install")),
    )

    assert execute_item(item, Backends(runner), BackupGuard()).kind is OutcomeKind.INSTALLED

    runner.script(["uv", "python", "install"], returncode=2, stderr="error: download failed\n")
    outcome = execute_item(item, Backends(runner), BackupGuard())
    assert outcome.kind is OutcomeKind.FAILED
    assert outcome.reason == "error: download failed"


def test_execute_config_file_reports_backup(tmp_path: Path, runner: FakeRunner) -> None:
    source = tmp_path / "template"
    source.write_text("new\n")
    target = tmp_path / "config"
    target.write_text("old\n")
    item = ItemDescriptor(id="cfg", kind=ItemKind.CONFIG_FILE, source=str(source), target=target)
    guard = BackupGuard()

    outcome = execute_item(item, Backends(runner), guard)

    assert outcome.kind is OutcomeKind.INSTALLED
    assert outcome.backup is not None
    assert outcome.backup.backup_path.read_text() == "old\n"

    again = execute_item(item, Backends(runner), guard)
    assert again.kind is OutcomeKind.SKIPPED


def test_float_preference_matches_whole_number_output(runner: FakeRunner) -> None:
    setting = PreferenceSetting(domain="com.apple.dock", key="autohide-delay", value_type=PreferenceType.FLOAT, value=1.0)
    item = ItemDescriptor(id="dock", kind=ItemKind.PREFERENCE, source="com.apple.dock", preference=setting)

    runner.script(["defaults", "read", "com.apple.dock", "autohide-delay"], stdout="1\n")
    assert probe_item(item, Backends(runner)).satisfied

    runner.script(["defaults", "read", "com.apple.dock", "autohide-delay"], stdout="0.5\n")
    assert not probe_item(item, Backends(runner)).satisfied

    runner.script(["defaults", "read", "com.apple.dock", "autohide-delay"], stdout="fast\n")
    assert not probe_item(item, Backends(runner)).satisfied


def test_descriptor_missing_kind_field_is_reported(runner: FakeRunner) -> None:
    item = ItemDescriptor(id="code:ms-python.python", kind=ItemKind.EXTENSION, source="ms-python.python")

    probe = probe_item(item, Backends(runner))
    assert not probe.present
    assert probe.details is not None and "has no host" in probe.details

    outcome = execute_item(item, Backends(runner), BackupGuard())
    assert outcome.kind is OutcomeKind.FAILED
    assert "has no host" in (outcome.reason or "")


def test_execute_config_file_keeps_backup_warning_when_copy_fails(
    tmp_path: Path, runner: FakeRunner, monkeypatch: pytest.MonkeyPatch
) -> None:
    source = tmp_path / "template"
    source.write_text("new\n")
    target = tmp_path / "config"
    target.write_text("old\n")
    item = ItemDescriptor(id="cfg", kind=ItemKind.CONFIG_FILE, source=str(source), target=target)

    def refuse(*_args, **_kwargs):
        raise PermissionError("denied")

    monkeypatch.setattr("brewstrap.backup.copy2", refuse)
    monkeypatch.setattr("brewstrap.backup.atomic_copy", refuse)

    outcome = execute_item(item, Backends(runner), BackupGuard())

    assert outcome.kind is OutcomeKind.FAILED
    assert "Could not copy" in (outcome.reason or "")
    assert len(outcome.warnings) == 1 and "Could not back up" in outcome.warnings[0]
    assert target.read_text() == "old\n"


def test_homebrew_install_outside_path_updates_shell_profile(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    brew = tmp_path / "opt" / "homebrew" / "bin" / "brew"
    brew.parent.mkdir(parents=True)
    brew.write_text("")
    monkeypatch.setattr("brewstrap.backends.HOMEBREW_FALLBACK_PATHS", (brew,))
    profile = tmp_path / ".zprofile"
    item = ItemDescriptor(
        id="homebrew",
        kind=ItemKind.TOOL,
        source="brew",
        target=profile,
        runtime=RuntimeCommand(check=(), install=("/bin/bash", "-c", "install")),
    )

    for _ in range(2):
        outcome = execute_item(item, Backends(FakeRunner()), BackupGuard())
        assert outcome.kind is OutcomeKind.INSTALLED

    assert profile.read_text() == f'eval "$({brew} shellenv)"\n'


def test_homebrew_install_on_path_leaves_shell_profile_alone(tmp_path: Path, runner: FakeRunner) -> None:
    profile = tmp_path / ".zprofile"
    item = ItemDescriptor(
        id="homebrew",
        kind=ItemKind.TOOL,
        source="brew",
        target=profile,
        runtime=RuntimeCommand(check=(), install=("/bin/bash", "-c", "install")),
    )

    assert execute_item(item, Backends(runner), BackupGuard()).kind is OutcomeKind.INSTALLED
    assert not profile.exists()
