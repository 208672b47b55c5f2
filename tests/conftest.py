from __future__ import annotations

from pathlib import Path
from textwrap import dedent
from typing import Sequence

import pytest

from brewstrap.command import CmdResult, CommandRunner
from brewstrap.config import DEFAULT_CONFIG_FILENAME
from brewstrap.errors import CommandError

BREW = "/usr/local/bin/brew"


class FakeRunner(CommandRunner):
    """Scripted stand-in for the subprocess seam.

    Unscripted commands succeed with empty output, which reads as "nothing
    installed" for every listing command.
    """

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[list[str]] = []
        self.executables: dict[str, str] = {}
        self._responses: dict[tuple[str, ...], CmdResult] = {}

    def script(self, argv: Sequence[str], *, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self._responses[tuple(argv)] = CmdResult(list(argv), returncode, stdout, stderr)

    def run(self, argv: Sequence[str], *, check: bool = False) -> CmdResult:
        argv_list = list(argv)
        self.calls.append(argv_list)
        result = self._responses.get(tuple(argv_list), CmdResult(argv_list, 0, "", ""))
        if check and not result.ok:
            raise CommandError(argv_list, result.returncode, result.stderr)
        return result

    def which(self, name: str) -> str | None:
        return self.executables.get(name)

    def ran(self, *argv: str) -> bool:
        return list(argv) in self.calls


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    return home


@pytest.fixture(autouse=True)
def isolated_host(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("brewstrap.reconciler.os.geteuid", lambda: 501)
    monkeypatch.setattr("brewstrap.backends.HOMEBREW_FALLBACK_PATHS", ())
    monkeypatch.delenv("BREWSTRAP_LOG_LEVEL", raising=False)


@pytest.fixture
def runner() -> FakeRunner:
    fake = FakeRunner()
    fake.executables["brew"] = BREW
    return fake


def write_manifest(directory: Path, body: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    config_path = directory / DEFAULT_CONFIG_FILENAME
    config_path.write_text(dedent(body))
    return config_path
