"""Invocation of the external commit-mail generator."""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping, Optional

from gitdub.schemas import PushEvent
from gitdub.services.process import Deadline, Runner, run_command
from gitdub.services.store import NOTIFIER_STATE_FILE
from gitdub.utils import revision_link, short_rev

logger = logging.getLogger(__name__)

STDIN_PROTOCOL = "stdin"
ARGS_PROTOCOL = "args"

# argument-list options, in the order they are passed
ARGUMENT_KEYS = (
    "mailinglist",
    "sender",
    "emailprefix",
    "link",
    "repouri",
    "diffopts",
    "updateonly",
)


@dataclass(frozen=True)
class NotifierInvocation:
    """Everything one notifier run needs, derived from a push and its options."""

    before: str
    after: str
    ref: str
    mailinglist: tuple[str, ...] = ()
    sender: str = ""
    emailprefix: str = ""
    link: str = ""
    repouri: str = ""
    diffopts: str = ""
    updateonly: bool = False

    @classmethod
    def build(cls, event: PushEvent, options: Mapping[str, Any]) -> "NotifierInvocation":
        return cls(
            before=event.before,
            after=event.after,
            ref=event.ref,
            mailinglist=tuple(options.get("to") or ()),
            sender=options.get("from") or "",
            emailprefix=options.get("subject") or "",
            link=revision_link(options.get("uri"), event.repository_url),
            repouri=event.repository_url,
            diffopts=options.get("diffopts") or "",
        )

    def stdin_line(self) -> str:
        """The single line fed to a post-receive style notifier."""
        return f"{self.before} {self.after} {self.ref}\n"

    def argument_list(self) -> list[str]:
        """
        ``--key value`` pairs for the argument-list notifier.

        ``True`` becomes a bare ``--key``; ``False``, ``None`` and empty
        values are left out; the mailing list is joined with commas.
        """
        args: list[str] = []
        for key in ARGUMENT_KEYS:
            value = getattr(self, key)
            if value is True:
                args.append(f"--{key}")
                continue
            if value is False or value is None or value == "" or value == ():
                continue
            if key == "mailinglist":
                value = ",".join(value)
            args.extend([f"--{key}", str(value)])
        return args

    def for_initialization(self) -> "NotifierInvocation":
        return replace(self, updateonly=True)


class NotifierInvoker:
    """
    Runs the notifier in a mirror directory.

    ``stdin`` feeds ``"<before> <after> <ref>"`` to the tool, git-multimail
    style. ``args`` passes options on the command line, git-notifier style,
    and seeds the tool's state file with an ``--updateonly`` run first.
    """

    def __init__(self, command: str, protocol: str = STDIN_PROTOCOL, *, runner: Runner = run_command):
        if protocol not in (STDIN_PROTOCOL, ARGS_PROTOCOL):
            raise ValueError(f"unknown notifier protocol {protocol!r}")
        self.command = shlex.split(command)
        self.protocol = protocol
        self.runner = runner

    def invoke(
        self,
        path: Path,
        invocation: NotifierInvocation,
        *,
        deadline: Optional[Deadline] = None,
    ) -> bool:
        """Run the notifier once; True if it exited 0."""
        if self.protocol == STDIN_PROTOCOL:
            return self._run(path, self.command, invocation.stdin_line(), invocation, deadline)

        if not self.initialize(path, invocation, deadline=deadline):
            return False
        return self._run(path, self.command + invocation.argument_list(), None, invocation, deadline)

    def initialize(
        self,
        path: Path,
        invocation: NotifierInvocation,
        *,
        deadline: Optional[Deadline] = None,
    ) -> bool:
        """Seed the notifier's state without mailing; skipped if already done."""
        if (Path(path) / NOTIFIER_STATE_FILE).exists():
            return True
        logger.info("initializing notifier state in %s", path)
        seed = invocation.for_initialization()
        return self._run(path, self.command + seed.argument_list(), None, seed, deadline)

    def _run(self, path, args, stdin, invocation, deadline) -> bool:
        revs = f"{short_rev(invocation.before)}...{short_rev(invocation.after)} {invocation.ref}"
        try:
            timeout = deadline.remaining() if deadline else None
            proc = self.runner(args, cwd=Path(path), input=stdin, timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.error("notifier timed out in %s for %s", path, revs)
            return False
        except OSError as exc:
            logger.error("cannot run notifier %s in %s: %s", args[0], path, exc)
            return False

        if proc.returncode != 0:
            logger.error(
                "notifier exited with %s in %s for %s: %s",
                proc.returncode,
                path,
                revs,
                (proc.stderr or "").strip(),
            )
            return False
        return True
