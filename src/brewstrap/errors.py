"""Error taxonomy for brewstrap."""

from __future__ import annotations


class BrewstrapError(RuntimeError):
    """Base class for errors raised while reconciling a workstation."""


class PrerequisiteUnmet(BrewstrapError):
    """Raised before any stage runs when the run must not proceed.

    ``exit_code`` is what the CLI exits with so callers can tell an elevated
    invocation apart from an interactive step that still has to be completed.
    """

    def __init__(self, message: str, *, exit_code: int = 1) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class CommandError(BrewstrapError):
    """Raised by ``CommandRunner.run(check=True)`` when a command exits non-zero."""

    def __init__(self, argv: list[str], returncode: int, stderr: str) -> None:
        self.argv = argv
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or f"exit status {returncode}"
        super().__init__(f"Command failed ({returncode}): {' '.join(argv)}: {detail}")


class InvalidItem(BrewstrapError):
    """An item descriptor lacks a field its kind needs."""


class BackendQueryFailed(BrewstrapError):
    """A backend could not report its installed set."""


class InstallFailed(BrewstrapError):
    """A backend refused or failed to install an item."""


class BackupFailed(BrewstrapError):
    """The snapshot of an existing target could not be written."""


class CopyFailed(BrewstrapError):
    """A template could not be copied into place.

    ``warnings`` carries annotations collected before the copy was attempted,
    such as a failed backup.
    """

    def __init__(self, message: str, *, warnings: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.warnings = warnings
