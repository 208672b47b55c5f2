"""Read-only state checks for declared items."""

from __future__ import annotations

import logging
from pathlib import Path

from .backends import Backends
from .errors import BrewstrapError
from .filesystem import files_match
from .models import ItemDescriptor, ItemKind, ProbeResult

logger = logging.getLogger(__name__)


def probe_item(item: ItemDescriptor, backends: Backends) -> ProbeResult:
    """Return the current state of ``item`` without changing anything.

    Backend failures are reported as "not present" so the item is treated as
    needing action instead of aborting the run.
    """

    try:
        return _PROBES[item.kind](item, backends)
    except (BrewstrapError, OSError) as exc:
        logger.warning("Probe for %s '%s' failed, assuming absent: %s", item.kind.value, item.id, exc)
        return ProbeResult(present=False, details=str(exc))


def _probe_tool(item: ItemDescriptor, backends: Backends) -> ProbeResult:
    executable = backends.homebrew.executable()
    return ProbeResult(present=executable is not None, details=executable)


def _probe_package(item: ItemDescriptor, backends: Backends) -> ProbeResult:
    return ProbeResult(present=item.source in backends.homebrew.installed(item.kind))


def _probe_extension(item: ItemDescriptor, backends: Backends) -> ProbeResult:
    return ProbeResult(present=item.source in backends.extension_host(item.require("host")).installed())


def _probe_runtime(item: ItemDescriptor, backends: Backends) -> ProbeResult:
    runtime = item.require("runtime")
    result = backends.runner.run(runtime.check)
    if not result.ok:
        return ProbeResult(present=False)
    if runtime.expect is not None and runtime.expect not in result.stdout:
        return ProbeResult(present=False, details=f"'{runtime.expect}' not reported")
    return ProbeResult(present=True)


def _probe_config_file(item: ItemDescriptor, backends: Backends) -> ProbeResult:
    target: Path = item.require("target")
    if not target.exists() and not target.is_symlink():
        return ProbeResult(present=False, matches_desired=False)
    return ProbeResult(present=True, matches_desired=files_match(Path(item.source), target))


def _probe_preference(item: ItemDescriptor, backends: Backends) -> ProbeResult:
    setting = item.require("preference")
    current = backends.preferences.read(setting.domain, setting.key)
    if current is None:
        return ProbeResult(present=False, matches_desired=False)
    return ProbeResult(present=True, matches_desired=setting.matches(current), details=current)


_PROBES = {
    ItemKind.TOOL: _probe_tool,
    ItemKind.TAP: _probe_package,
    ItemKind.FORMULA: _probe_package,
    ItemKind.CASK: _probe_package,
    ItemKind.RUNTIME: _probe_runtime,
    ItemKind.EXTENSION: _probe_extension,
    ItemKind.CONFIG_FILE: _probe_config_file,
    ItemKind.PREFERENCE: _probe_preference,
}
