"""State-changing actions, one per item."""

from __future__ import annotations

import logging
from pathlib import Path

from .backends import Backends
from .backup import BackupGuard
from .errors import BrewstrapError, CopyFailed
from .filesystem import append_line
from .models import ActionOutcome, ItemDescriptor, ItemKind

logger = logging.getLogger(__name__)


def execute_item(item: ItemDescriptor, backends: Backends, guard: BackupGuard) -> ActionOutcome:
    """Perform the single action that converges ``item``.

    One attempt only. Backend and I/O errors become a ``failed`` outcome;
    anything else propagates to the caller's item boundary.
    """

    try:
        return _EXECUTORS[item.kind](item, backends, guard)
    except (BrewstrapError, OSError) as exc:
        logger.info("Action for %s '%s' failed: %s", item.kind.value, item.id, exc)
        return ActionOutcome.failed(str(exc))


def _install_tool(item: ItemDescriptor, backends: Backends, guard: BackupGuard) -> ActionOutcome:
    backends.homebrew.bootstrap(item.require("runtime").install)

    warnings: tuple[str, ...] = ()
    # Found only under a fallback prefix: new login shells need shellenv.
    if item.target is not None and backends.runner.which(item.source) is None:
        line = f'eval "$({backends.homebrew.executable()} shellenv)"'
        try:
            if append_line(item.target, line):
                logger.info("Added Homebrew to %s", item.target)
        except OSError as exc:
            warnings = (f"Could not add Homebrew to '{item.target}': {exc}",)
    return ActionOutcome.installed(warnings=warnings)


def _install_package(item: ItemDescriptor, backends: Backends, guard: BackupGuard) -> ActionOutcome:
    backends.homebrew.install(item.kind, item.source)
    return ActionOutcome.installed()


def _install_extension(item: ItemDescriptor, backends: Backends, guard: BackupGuard) -> ActionOutcome:
    backends.extension_host(item.require("host")).install(item.source)
    return ActionOutcome.installed()


def _install_runtime(item: ItemDescriptor, backends: Backends, guard: BackupGuard) -> ActionOutcome:
    result = backends.runner.run(item.require("runtime").install)
    if not result.ok:
        reason = (result.stderr or result.stdout).strip() or f"exit status {result.returncode}"
        return ActionOutcome.failed(reason.splitlines()[-1])
    return ActionOutcome.installed()


def _copy_config_file(item: ItemDescriptor, backends: Backends, guard: BackupGuard) -> ActionOutcome:
    target: Path = item.require("target")
    if guard.already_written(target):
        return ActionOutcome.skipped(f"'{target}' was already written during this run")

    try:
        write = guard.write(Path(item.source), target)
    except CopyFailed as exc:
        logger.info("Action for %s '%s' failed: %s", item.kind.value, item.id, exc)
        return ActionOutcome.failed(str(exc), warnings=exc.warnings)
    if not write.written:
        return ActionOutcome.already_present("Target already matches template")
    return ActionOutcome.installed(warnings=write.warnings, backup=write.backup)


def _write_preference(item: ItemDescriptor, backends: Backends, guard: BackupGuard) -> ActionOutcome:
    backends.preferences.write(item.require("preference"))
    return ActionOutcome.installed()


_EXECUTORS = {
    ItemKind.TOOL: _install_tool,
    ItemKind.TAP: _install_package,
    ItemKind.FORMULA: _install_package,
    ItemKind.CASK: _install_package,
    ItemKind.RUNTIME: _install_runtime,
    ItemKind.EXTENSION: _install_extension,
    ItemKind.CONFIG_FILE: _copy_config_file,
    ItemKind.PREFERENCE: _write_preference,
}
