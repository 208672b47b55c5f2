"""Backup guard wrapped around every config-file overwrite."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from shutil import copy2
from typing import Callable

from .errors import BackupFailed, CopyFailed
from .filesystem import atomic_copy, files_match
from .models import BackupRecord

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


@dataclass(frozen=True, slots=True)
class GuardedWrite:
    """What happened when the guard handled one target."""

    written: bool
    backup: BackupRecord | None = None
    warnings: tuple[str, ...] = ()


class BackupGuard:
    """Snapshots differing targets before they are replaced.

    A single guard lives for one run. It issues strictly increasing backup
    timestamps and refuses a second write to the same target path.
    """

    def __init__(self, *, suffix: str = "backup", clock: Callable[[], datetime] = datetime.now) -> None:
        self.suffix = suffix
        self._clock = clock
        self._last_stamp: datetime | None = None
        self._written: set[Path] = set()

    def already_written(self, target: Path) -> bool:
        return self._key(target) in self._written

    def write(self, source: Path, target: Path) -> GuardedWrite:
        """Copy ``source`` to ``target``, backing up a differing existing target.

        Raises ``CopyFailed`` if the overwrite itself fails. A failed backup
        only adds a warning, which travels on the result or on the
        ``CopyFailed`` raised afterwards; the overwrite is still attempted.
        """

        key = self._key(target)
        if key in self._written:
            raise CopyFailed(f"'{target}' was already written during this run")

        exists = target.exists() or target.is_symlink()
        if exists and files_match(source, target):
            return GuardedWrite(written=False)

        record: BackupRecord | None = None
        warnings: tuple[str, ...] = ()
        if exists:
            try:
                record = self._snapshot(target)
            except BackupFailed as exc:
                logger.warning("%s", exc)
                warnings = (str(exc),)

        self._written.add(key)
        try:
            atomic_copy(source, target)
        except OSError as exc:
            raise CopyFailed(f"Could not copy '{source}' to '{target}': {exc}", warnings=warnings) from exc

        return GuardedWrite(written=True, backup=record, warnings=warnings)

    def _snapshot(self, target: Path) -> BackupRecord:
        stamp = self._next_stamp()
        backup_path = self._backup_path(target, stamp)
        while backup_path.exists():
            stamp = stamp + timedelta(seconds=1)
            backup_path = self._backup_path(target, stamp)
        self._last_stamp = stamp

        try:
            copy2(target, backup_path)
        except OSError as exc:
            raise BackupFailed(f"Could not back up '{target}' to '{backup_path.name}': {exc}") from exc

        logger.info("Backed up %s to %s", target, backup_path.name)
        return BackupRecord(original_path=target, backup_path=backup_path, timestamp=stamp)

    def _next_stamp(self) -> datetime:
        now = self._clock().replace(microsecond=0)
        if self._last_stamp is not None and now <= self._last_stamp:
            now = self._last_stamp + timedelta(seconds=1)
        return now

    def _backup_path(self, target: Path, stamp: datetime) -> Path:
        return target.with_name(f"{target.name}.{self.suffix}.{stamp.strftime(TIMESTAMP_FORMAT)}")

    @staticmethod
    def _key(target: Path) -> Path:
        return target.absolute()
