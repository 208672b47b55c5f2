"""High level orchestration of a brewstrap run."""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable

from .backends import Backends
from .backup import BackupGuard
from .command import CommandRunner
from .config import Config
from .errors import PrerequisiteUnmet
from .executor import execute_item
from .models import (
    ActionOutcome,
    ItemDescriptor,
    ItemKind,
    OutcomeEntry,
    OutcomeKind,
    PlanEntry,
    ProbeResult,
    RunSummary,
    Stage,
)
from .probe import probe_item
from .recorder import OutcomeRecorder

logger = logging.getLogger(__name__)

ITEM_STAGES = (
    Stage.TOOL_PROVISION,
    Stage.PACKAGE_PROVISION,
    Stage.CONFIG_PROVISION,
    Stage.SYSTEM_PREFERENCES,
)

EXIT_ELEVATED = 1
EXIT_PREREQUISITE_PENDING = 2

_HOMEBREW_KINDS = frozenset({ItemKind.TAP, ItemKind.FORMULA, ItemKind.CASK})


class Reconciler:
    """Walks the stages in order and converges every declared item."""

    def __init__(
        self,
        config: Config,
        *,
        runner: CommandRunner | None = None,
        clock: Callable[[], datetime] = datetime.now,
        on_stage: Callable[[Stage], None] | None = None,
        on_outcome: Callable[[OutcomeEntry], None] | None = None,
    ) -> None:
        self.config = config
        self.backends = Backends(runner or CommandRunner(), brew_executable=config.settings.brew_executable)
        self._clock = clock
        self._on_stage = on_stage
        self._on_outcome = on_outcome

    def run(self) -> RunSummary:
        """Execute every stage and return the finalized summary.

        Raises ``PrerequisiteUnmet`` before anything is probed if the run must
        not start. After that point nothing escapes a single item.
        """

        self._enter(Stage.BOOTSTRAP)
        self.check_prerequisites()

        recorder = OutcomeRecorder()
        guard = BackupGuard(suffix=self.config.settings.backup_suffix, clock=self._clock)
        try:
            tool_entries = self._run_stage(Stage.TOOL_PROVISION, recorder, guard)
            if any(entry.outcome.kind is OutcomeKind.ALREADY_PRESENT for entry in tool_entries):
                self._update_homebrew()
            for stage in ITEM_STAGES[1:]:
                self._run_stage(stage, recorder, guard)
            self._cleanup()
        finally:
            self._enter(Stage.SUMMARY)
            summary = recorder.finalize()

        logger.info(
            "Run finished: %d installed, %d already present, %d skipped, %d failed",
            summary.count(OutcomeKind.INSTALLED),
            summary.count(OutcomeKind.ALREADY_PRESENT),
            summary.count(OutcomeKind.SKIPPED),
            summary.count(OutcomeKind.FAILED),
        )
        return summary

    def check_prerequisites(self) -> None:
        if os.geteuid() == 0:
            raise PrerequisiteUnmet(
                "Do not run brewstrap with sudo or as root; it installs into your user account.",
                exit_code=EXIT_ELEVATED,
            )

        if not self.config.settings.require_command_line_tools:
            return

        runner = self.backends.runner
        if runner.run(["xcode-select", "-p"]).ok:
            logger.info("Xcode Command Line Tools already installed")
            return

        logger.info("Xcode Command Line Tools missing, starting the installer")
        runner.run(["xcode-select", "--install"])
        raise PrerequisiteUnmet(
            "Xcode Command Line Tools are being installed. Complete the installer and run brewstrap again.",
            exit_code=EXIT_PREREQUISITE_PENDING,
        )

    def plan(self) -> list[PlanEntry]:
        """Probe every item without acting on any of them."""

        entries: list[PlanEntry] = []
        for stage in ITEM_STAGES:
            for item in self.config.items(stage):
                blocked = self._blocked_reason(item)
                if blocked is not None:
                    probe = ProbeResult(present=False, details=blocked)
                else:
                    probe = probe_item(item, self.backends)
                entries.append(PlanEntry(stage=stage, item=item, probe=probe, blocked=blocked))
        return entries

    def tool_versions(self) -> list[tuple[str, str]]:
        """Return ``(label, first output line)`` for each configured version command."""

        report: list[tuple[str, str]] = []
        for label, argv in self.config.versions.items():
            result = self.backends.runner.run(argv)
            lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
            report.append((label, lines[0] if result.ok and lines else "Not available"))
        return report

    # ------------------------------------------------------------------
    # Internal helpers

    def _enter(self, stage: Stage) -> None:
        logger.info("Entering stage %s", stage.value)
        if self._on_stage is not None:
            self._on_stage(stage)

    def _run_stage(self, stage: Stage, recorder: OutcomeRecorder, guard: BackupGuard) -> list[OutcomeEntry]:
        self._enter(stage)
        entries: list[OutcomeEntry] = []
        for item in self.config.items(stage):
            outcome = self._reconcile_item(item, guard)
            entry = recorder.record(stage, item, outcome)
            entries.append(entry)
            if self._on_outcome is not None:
                self._on_outcome(entry)
        return entries

    def _reconcile_item(self, item: ItemDescriptor, guard: BackupGuard) -> ActionOutcome:
        try:
            blocked = self._blocked_reason(item)
            if blocked is not None:
                return ActionOutcome.skipped(blocked)

            probe = probe_item(item, self.backends)
            if probe.satisfied:
                return ActionOutcome.already_present()

            return execute_item(item, self.backends, guard)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error while reconciling %s '%s'", item.kind.value, item.id)
            return ActionOutcome.failed(f"Unexpected error: {exc}")

    def _blocked_reason(self, item: ItemDescriptor) -> str | None:
        if item.kind in _HOMEBREW_KINDS and not self.backends.homebrew.available():
            return "Homebrew is not available"

        if item.kind is ItemKind.EXTENSION:
            host = item.require("host")
            if not self.backends.extension_host(host).available():
                return f"'{host}' CLI not found"

        if item.kind is ItemKind.CONFIG_FILE:
            if item.requires is not None and not item.requires.exists():
                return f"'{item.requires.name}' is not installed"
            if not Path(item.source).is_file():
                return f"Template '{item.source}' not found"

        return None

    def _update_homebrew(self) -> None:
        if not self.config.settings.update_homebrew:
            return
        logger.info("Updating Homebrew")
        if not self.backends.homebrew.update().ok:
            logger.warning("Homebrew update had issues, continuing")

    def _cleanup(self) -> None:
        self._enter(Stage.CLEANUP)
        if not self.config.settings.cleanup or not self.backends.homebrew.available():
            return

        if self.backends.homebrew.cleanup().ok:
            logger.info("Homebrew cleanup completed")
        else:
            logger.warning("Homebrew cleanup had issues, continuing")

        if self.backends.homebrew.doctor().ok:
            logger.info("Homebrew diagnostics passed")
        else:
            logger.warning("Homebrew diagnostics reported issues (this is often normal)")
