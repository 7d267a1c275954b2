"""Subprocess helpers shared by the mirror store and the notifier."""

from __future__ import annotations

import logging
import subprocess
import time
from pathlib import Path
from typing import Callable, Optional, Sequence

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


def run_command(
    args: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    input: Optional[str] = None,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    """
    Run ``args`` to completion and capture its output.

    When ``input`` is given it is written to the child's stdin, which is then
    closed before waiting for exit. On timeout the child is killed and
    ``subprocess.TimeoutExpired`` propagates; spawn errors propagate as
    ``OSError``.
    """
    if timeout is not None and timeout <= 0:
        raise subprocess.TimeoutExpired(list(args), 0)
    logger.debug("> %s", " ".join(str(a) for a in args))
    return subprocess.run(
        list(args),
        cwd=str(cwd) if cwd is not None else None,
        input=input,
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
    )


class Deadline:
    """A fixed point in time shared by every subprocess of one dispatch."""

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires = None if seconds is None else clock() + seconds

    def remaining(self) -> Optional[float]:
        if self._expires is None:
            return None
        return max(0.0, self._expires - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0
