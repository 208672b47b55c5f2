"""Shared models and enums for brewstrap."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from .errors import InvalidItem


class ItemKind(str, Enum):
    """Kinds of declared items the reconciler knows how to converge."""

    TOOL = "tool"
    TAP = "tap"
    FORMULA = "formula"
    CASK = "cask"
    RUNTIME = "runtime"
    EXTENSION = "extension"
    CONFIG_FILE = "config_file"
    PREFERENCE = "preference"


class Stage(str, Enum):
    """Ordered phases of a run."""

    BOOTSTRAP = "bootstrap"
    TOOL_PROVISION = "tool_provision"
    PACKAGE_PROVISION = "package_provision"
    CONFIG_PROVISION = "config_provision"
    SYSTEM_PREFERENCES = "system_preferences"
    CLEANUP = "cleanup"
    SUMMARY = "summary"


class PreferenceType(str, Enum):
    """Value types accepted by ``defaults write``."""

    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STRING = "string"


@dataclass(frozen=True, slots=True)
class PreferenceSetting:
    """One ``defaults`` key with its desired value."""

    domain: str
    key: str
    value_type: PreferenceType
    value: bool | int | float | str

    def encoded(self) -> str:
        """Return the value as ``defaults read`` prints it."""

        if self.value_type is PreferenceType.BOOL:
            return "1" if self.value else "0"
        return str(self.value)

    def matches(self, current: str) -> bool:
        """Return ``True`` if ``current``, as printed by ``defaults read``, is the desired value.

        Numbers compare by value: ``defaults`` prints a float of ``1.0`` as ``1``.
        """

        if self.value_type in (PreferenceType.INT, PreferenceType.FLOAT):
            try:
                return float(current) == float(self.value)
            except ValueError:
                return False
        return current == self.encoded()

    def write_args(self) -> list[str]:
        if self.value_type is PreferenceType.BOOL:
            literal = "true" if self.value else "false"
        else:
            literal = str(self.value)
        return [f"-{self.value_type.value}", literal]


@dataclass(frozen=True, slots=True)
class RuntimeCommand:
    """Check and install commands for a toolchain managed outside Homebrew."""

    check: tuple[str, ...]
    install: tuple[str, ...]
    expect: str | None = None


@dataclass(frozen=True, slots=True)
class ItemDescriptor:
    """A declared unit of desired state."""

    id: str
    kind: ItemKind
    source: str
    target: Path | None = None
    requires: Path | None = None
    host: str | None = None
    runtime: RuntimeCommand | None = None
    preference: PreferenceSetting | None = None

    def key(self) -> tuple[str, str]:
        return (self.kind.value, self.id)

    def require(self, field_name: str) -> Any:
        """Return a kind-specific field, raising ``InvalidItem`` when it is unset."""

        value = getattr(self, field_name)
        if value is None:
            raise InvalidItem(f"{self.kind.value} item '{self.id}' has no {field_name}")
        return value


@dataclass(frozen=True, slots=True)
class ProbeResult:
    """Observed state of an item."""

    present: bool
    matches_desired: bool | None = None
    details: str | None = None

    @property
    def satisfied(self) -> bool:
        return self.present and self.matches_desired is not False


@dataclass(frozen=True, slots=True)
class BackupRecord:
    """Snapshot of a target taken before it was overwritten."""

    original_path: Path
    backup_path: Path
    timestamp: datetime


class OutcomeKind(str, Enum):
    """Per-item result of a run."""

    INSTALLED = "installed"
    ALREADY_PRESENT = "already_present"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class ActionOutcome:
    """Outcome recorded exactly once for each item."""

    kind: OutcomeKind
    reason: str | None = None
    warnings: tuple[str, ...] = ()
    backup: BackupRecord | None = None

    @classmethod
    def installed(cls, *, warnings: tuple[str, ...] = (), backup: BackupRecord | None = None) -> "ActionOutcome":
        return cls(OutcomeKind.INSTALLED, warnings=warnings, backup=backup)

    @classmethod
    def already_present(cls, reason: str | None = None) -> "ActionOutcome":
        return cls(OutcomeKind.ALREADY_PRESENT, reason=reason)

    @classmethod
    def failed(cls, reason: str, *, warnings: tuple[str, ...] = ()) -> "ActionOutcome":
        return cls(OutcomeKind.FAILED, reason=reason, warnings=warnings)

    @classmethod
    def skipped(cls, reason: str) -> "ActionOutcome":
        return cls(OutcomeKind.SKIPPED, reason=reason)


@dataclass(frozen=True, slots=True)
class OutcomeEntry:
    """Ledger row pairing an item with its outcome."""

    stage: Stage
    item: ItemDescriptor
    outcome: ActionOutcome


@dataclass(frozen=True, slots=True)
class PlanEntry:
    """Probe-only view of an item, reported by ``brewstrap plan``."""

    stage: Stage
    item: ItemDescriptor
    probe: ProbeResult
    blocked: str | None = None


@dataclass(frozen=True, slots=True)
class RunSummary:
    """Immutable totals produced when a run is finalized."""

    entries: tuple[OutcomeEntry, ...]
    counts: Mapping[OutcomeKind, int]
    stage_counts: Mapping[Stage, Mapping[OutcomeKind, int]] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.entries)

    def count(self, kind: OutcomeKind) -> int:
        return self.counts.get(kind, 0)

    @property
    def has_failures(self) -> bool:
        return self.count(OutcomeKind.FAILED) > 0

    @property
    def backups(self) -> tuple[BackupRecord, ...]:
        return tuple(entry.outcome.backup for entry in self.entries if entry.outcome.backup is not None)

    @property
    def warnings(self) -> tuple[tuple[str, str], ...]:
        return tuple((entry.item.id, warning) for entry in self.entries for warning in entry.outcome.warnings)
