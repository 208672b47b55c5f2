"""Adapters for the external collaborators brewstrap drives.

None of these reimplement anything: Homebrew, editor CLIs and ``defaults``
are invoked as commands, and their text output is turned into typed answers
(sets of names, a single value) at this boundary so the rest of the package
never parses backend output.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from .command import CmdResult, CommandRunner
from .errors import BackendQueryFailed, InstallFailed
from .models import ItemKind, PreferenceSetting

logger = logging.getLogger(__name__)

HOMEBREW_FALLBACK_PATHS = (
    Path("/opt/homebrew/bin/brew"),
    Path("/usr/local/bin/brew"),
)

_LIST_ARGS = {
    ItemKind.TAP: ["tap"],
    ItemKind.FORMULA: ["list", "--formula", "-1"],
    ItemKind.CASK: ["list", "--cask", "-1"],
}


def _failure_reason(result: CmdResult) -> str:
    text = (result.stderr or result.stdout).strip()
    if text:
        return text.splitlines()[-1]
    return f"exit status {result.returncode}"


def _names(output: str) -> frozenset[str]:
    return frozenset(line.strip() for line in output.splitlines() if line.strip())


class HomebrewBackend:
    """Homebrew taps, formulae and casks."""

    def __init__(self, runner: CommandRunner, *, executable: str = "brew") -> None:
        self.runner = runner
        self._executable = executable
        self._resolved: str | None = None
        self._installed: dict[ItemKind, set[str]] = {}

    def executable(self) -> str | None:
        if self._resolved is None:
            found = self.runner.which(self._executable)
            if found is None:
                for candidate in HOMEBREW_FALLBACK_PATHS:
                    if candidate.exists():
                        found = str(candidate)
                        break
            self._resolved = found
        return self._resolved

    def available(self) -> bool:
        return self.executable() is not None

    def bootstrap(self, install_command: Sequence[str]) -> None:
        """Run the Homebrew installer and re-resolve the executable."""

        result = self.runner.run(list(install_command))
        if not result.ok:
            raise InstallFailed(f"Homebrew installer failed: {_failure_reason(result)}")
        self._resolved = None
        if not self.available():
            raise InstallFailed("Homebrew installer finished but 'brew' could not be located")

    def installed(self, kind: ItemKind) -> frozenset[str]:
        """Return the installed names for ``kind``, cached for the run."""

        if kind not in _LIST_ARGS:
            raise ValueError(f"Homebrew does not manage {kind.value} items")
        if kind not in self._installed:
            result = self._brew(_LIST_ARGS[kind])
            if not result.ok:
                raise BackendQueryFailed(f"brew {' '.join(_LIST_ARGS[kind])}: {_failure_reason(result)}")
            self._installed[kind] = set(_names(result.stdout))
        return frozenset(self._installed[kind])

    def install(self, kind: ItemKind, name: str) -> None:
        if kind is ItemKind.TAP:
            args = ["tap", name]
        elif kind is ItemKind.CASK:
            args = ["install", "--cask", name]
        elif kind is ItemKind.FORMULA:
            args = ["install", name]
        else:
            raise ValueError(f"Homebrew does not manage {kind.value} items")

        result = self._brew(args)
        if not result.ok:
            raise InstallFailed(_failure_reason(result))
        if kind in self._installed:
            self._installed[kind].add(name)

    def update(self) -> CmdResult:
        return self._brew(["update"])

    def cleanup(self) -> CmdResult:
        return self._brew(["cleanup"])

    def doctor(self) -> CmdResult:
        return self._brew(["doctor"])

    def _brew(self, args: list[str]) -> CmdResult:
        executable = self.executable()
        if executable is None:
            raise BackendQueryFailed("Homebrew is not available")
        return self.runner.run([executable, *args])


class ExtensionHost:
    """An editor CLI that manages extensions (``code``, ``cursor``)."""

    def __init__(self, runner: CommandRunner, name: str) -> None:
        self.runner = runner
        self.name = name
        self._installed: set[str] | None = None

    def available(self) -> bool:
        return self.runner.which(self.name) is not None

    def installed(self) -> frozenset[str]:
        if self._installed is None:
            result = self.runner.run([self.name, "--list-extensions"])
            if not result.ok:
                raise BackendQueryFailed(f"{self.name} --list-extensions: {_failure_reason(result)}")
            self._installed = set(_names(result.stdout))
        return frozenset(self._installed)

    def install(self, extension_id: str) -> None:
        result = self.runner.run([self.name, "--install-extension", extension_id, "--force"])
        if not result.ok:
            raise InstallFailed(_failure_reason(result))
        if self._installed is not None:
            self._installed.add(extension_id)


class PreferenceStore:
    """macOS user defaults."""

    def __init__(self, runner: CommandRunner, *, executable: str = "defaults") -> None:
        self.runner = runner
        self._executable = executable

    def read(self, domain: str, key: str) -> str | None:
        """Return the current value, or ``None`` when the key is unset."""

        result = self.runner.run([self._executable, "read", domain, key])
        if result.ok:
            return result.stdout.strip()
        if "does not exist" in result.stderr:
            return None
        raise BackendQueryFailed(f"defaults read {domain} {key}: {_failure_reason(result)}")

    def write(self, setting: PreferenceSetting) -> None:
        """Write ``setting``; a non-zero exit raises ``CommandError``."""

        self.runner.run([self._executable, "write", setting.domain, setting.key, *setting.write_args()], check=True)


class Backends:
    """Bundle of collaborators handed to probes and executors."""

    def __init__(self, runner: CommandRunner, *, brew_executable: str = "brew") -> None:
        self.runner = runner
        self.homebrew = HomebrewBackend(runner, executable=brew_executable)
        self.preferences = PreferenceStore(runner)
        self._hosts: dict[str, ExtensionHost] = {}

    def extension_host(self, name: str) -> ExtensionHost:
        if name not in self._hosts:
            self._hosts[name] = ExtensionHost(self.runner, name)
        return self._hosts[name]
