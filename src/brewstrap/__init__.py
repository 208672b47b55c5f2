"""Core package for the brewstrap project."""

from .cli import app, run
from .config import Config, ConfigError, Settings, load_config
from .errors import (
    BackendQueryFailed,
    BackupFailed,
    BrewstrapError,
    CommandError,
    CopyFailed,
    InstallFailed,
    InvalidItem,
    PrerequisiteUnmet,
)
from .models import (
    ActionOutcome,
    BackupRecord,
    ItemDescriptor,
    ItemKind,
    OutcomeKind,
    ProbeResult,
    RunSummary,
    Stage,
)
from .reconciler import Reconciler

__all__ = [
    "Config",
    "ConfigError",
    "Settings",
    "load_config",
    "Reconciler",
    "BrewstrapError",
    "PrerequisiteUnmet",
    "CommandError",
    "BackendQueryFailed",
    "InstallFailed",
    "InvalidItem",
    "BackupFailed",
    "CopyFailed",
    "ActionOutcome",
    "BackupRecord",
    "ItemDescriptor",
    "ItemKind",
    "OutcomeKind",
    "ProbeResult",
    "RunSummary",
    "Stage",
    "app",
    "run",
]
