"""Filesystem helpers for brewstrap."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

_CHUNK = 1024 * 1024


def ensure_parent(path: Path) -> None:
    """Ensure the parent directory exists."""

    path.parent.mkdir(parents=True, exist_ok=True)


def files_match(left: Path, right: Path) -> bool:
    """Return ``True`` if both paths are regular files with identical bytes."""

    if not left.is_file() or not right.is_file():
        return False
    if left.stat().st_size != right.stat().st_size:
        return False

    with left.open("rb") as a, right.open("rb") as b:
        for chunk in iter(lambda: a.read(_CHUNK), b""):
            if chunk != b.read(len(chunk)):
                return False
    return True


def atomic_copy(source: Path, destination: Path) -> None:
    """Copy ``source`` over ``destination`` so readers never see a partial file.

    The payload lands in a temporary sibling first and is moved into place with
    ``os.replace``; on failure the temporary file is removed and the previous
    destination is left untouched.
    """

    ensure_parent(destination)
    fd, temp_name = tempfile.mkstemp(prefix=f".{destination.name}.brewstrap-tmp-", dir=destination.parent)
    os.close(fd)
    temp_path = Path(temp_name)
    try:
        shutil.copy2(source, temp_path)
        os.replace(temp_path, destination)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise


def append_line(path: Path, line: str) -> bool:
    """Append ``line`` to ``path`` unless an identical line is already there."""

    existing = path.read_text() if path.is_file() else ""
    if line in existing.splitlines():
        return False

    ensure_parent(path)
    with path.open("a") as handle:
        if existing and not existing.endswith("\n"):
            handle.write("\n")
        handle.write(f"{line}\n")
    return True


def backup_candidates(target: Path, suffix: str) -> list[Path]:
    """Return existing backups of ``target``, oldest first."""

    if not target.parent.is_dir():
        return []
    return sorted(target.parent.glob(f"{target.name}.{suffix}.*"))
