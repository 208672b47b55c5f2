"""Subprocess seam used by every backend."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Mapping, Sequence

from .errors import CommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


class CommandRunner:
    """Runs external commands with consistent logging.

    Missing executables are reported as exit status 127, the way a shell
    would, so callers only ever deal with ``CmdResult`` or ``CommandError``.
    """

    def __init__(self, *, env: Mapping[str, str] | None = None) -> None:
        self._env = dict(env or {})

    def run(self, argv: Sequence[str], *, check: bool = False) -> CmdResult:
        argv_list = list(argv)
        logger.debug("CMD %s", _fmt_argv(argv_list))

        try:
            p = subprocess.run(
                argv_list,
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                env=dict(os.environ, **self._env),
            )
        except FileNotFoundError as exc:
            result = CmdResult(argv=argv_list, returncode=127, stdout="", stderr=str(exc))
        except OSError as exc:
            result = CmdResult(argv=argv_list, returncode=126, stdout="", stderr=str(exc))
        else:
            result = CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)

        if result.stdout:
            logger.debug("STDOUT %s", result.stdout.strip())
        if result.stderr:
            logger.debug("STDERR %s", result.stderr.strip())

        if check and not result.ok:
            raise CommandError(argv_list, result.returncode, result.stderr)
        return result

    def which(self, name: str) -> str | None:
        return shutil.which(name)
