"""Local bare mirrors of routed repositories."""

from __future__ import annotations

import enum
import logging
import re
import shutil
import subprocess
import threading
from pathlib import Path
from typing import Any, Mapping, Optional

from gitdub.services.process import Deadline, Runner, run_command
from gitdub.utils import join_recipients, revision_link

logger = logging.getLogger(__name__)

NOTIFIER_STATE_FILE = "git-notifier-state.pickle"
FETCH_REFSPEC = "+refs/heads/*:refs/heads/*"

CLONE_URL_TEMPLATES = {
    "git": "git://{host}/{owner}/{repo}.git",
    "ssh": "git@{host}:{owner}/{repo}.git",
    "https": "https://{host}/{owner}/{repo}.git",
}

_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")

# git-multimail reads these from the mirror's config
MULTIMAIL_KEYS = {
    "to": "multimailhook.mailingList",
    "from": "multimailhook.from",
    "subject": "multimailhook.emailPrefix",
    "link": "multimailhook.commitBrowseURL",
    "diffopts": "multimailhook.diffOpts",
}


class MirrorState(str, enum.Enum):
    ABSENT = "absent"
    UNINITIALIZED = "uninitialized"
    READY = "ready"


class MirrorError(RuntimeError):
    """Base class for failures while reconciling a mirror."""

    def __init__(self, message: str, path: Path):
        super().__init__(message)
        self.path = path


class CloneFailed(MirrorError):
    """The mirror did not exist and could not be cloned."""


class FetchFailed(MirrorError):
    """The mirror exists but could not be synced from origin."""


class ConfigureFailed(MirrorError):
    """Repository-local notifier settings could not be written."""


def clone_url(protocol: str, owner: str, repo: str, host: str = "github.com") -> str:
    try:
        template = CLONE_URL_TEMPLATES[protocol]
    except KeyError:
        raise ValueError(f"unknown clone protocol {protocol!r}") from None
    return template.format(host=host, owner=owner, repo=repo)


def link_template(options: Mapping[str, Any], repository_url: str) -> str:
    """Revision link in git-multimail's ``%(id)s`` placeholder syntax."""
    link = revision_link(options.get("uri"), repository_url)
    return link.replace("%(id)s", "%s").replace("%s", "%(id)s")


class MirrorLocks:
    """One lock per mirror path, created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Path, threading.Lock] = {}

    def lock_for(self, path: Path) -> threading.Lock:
        key = Path(path).resolve()
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


class RepositoryStore:
    """
    Clone-on-first-push mirror management under one working directory.

    Nothing about a mirror is cached: its state is read from the filesystem
    on every call. Callers serialize work on one mirror with
    :meth:`lock_for`.
    """

    def __init__(
        self,
        directory: Path,
        *,
        runner: Runner = run_command,
        locks: Optional[MirrorLocks] = None,
    ):
        self.directory = Path(directory)
        self.runner = runner
        self.locks = locks or MirrorLocks()

    def mirror_path(self, owner: str, repo: str) -> Path:
        for name in (owner, repo):
            if not _NAME_RE.match(name) or name in (".", ".."):
                raise ValueError(f"refusing unsafe repository name {owner}/{repo}")
        return self.directory / owner / repo

    def lock_for(self, path: Path) -> threading.Lock:
        return self.locks.lock_for(path)

    def state(self, owner: str, repo: str) -> MirrorState:
        path = self.mirror_path(owner, repo)
        if not path.is_dir():
            return MirrorState.ABSENT
        if (path / NOTIFIER_STATE_FILE).exists():
            return MirrorState.READY
        return MirrorState.UNINITIALIZED

    def ensure_mirror(
        self,
        owner: str,
        repo: str,
        protocol: str,
        *,
        host: str = "github.com",
        deadline: Optional[Deadline] = None,
    ) -> Path:
        """
        Make sure ``owner/repo`` has an up to date bare mirror.

        An absent mirror is cloned once; an existing one is fetched once with
        local branch refs overwritten.

        Raises
        ------
        CloneFailed
            Cloning failed; no directory is left behind.
        FetchFailed
            The mirror exists but fetching from origin failed.
        """
        try:
            path = self.mirror_path(owner, repo)
        except ValueError as exc:
            raise CloneFailed(str(exc), self.directory / owner / repo) from None

        if path.is_dir():
            self._fetch(path, deadline)
        else:
            self._clone(clone_url(protocol, owner, repo, host), path, deadline)
        return path

    def configure(
        self,
        path: Path,
        options: Mapping[str, Any],
        *,
        repository_url: str,
        deadline: Optional[Deadline] = None,
    ) -> None:
        """Write the notifier's repository-local settings. Safe to repeat."""
        values = {
            "to": join_recipients(options.get("to") or ()),
            "from": options.get("from") or "",
            "subject": options.get("subject") or "",
            "link": link_template(options, repository_url),
            "diffopts": options.get("diffopts") or "",
        }
        for name, key in MULTIMAIL_KEYS.items():
            value = str(values[name])
            if value:
                args = ["git", "config", key, value]
                ok_codes = (0,)
            else:
                args = ["git", "config", "--unset-all", key]
                ok_codes = (0, 5)  # 5: key was not set
            proc = self._run(args, path, deadline, ConfigureFailed, "configure")
            if proc.returncode not in ok_codes:
                raise ConfigureFailed(
                    f"git config {key} failed in {path}: {_stderr(proc)}", path
                )

    def _clone(self, url: str, path: Path, deadline: Optional[Deadline]) -> None:
        owner_dir = path.parent
        try:
            owner_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CloneFailed(f"cannot create {owner_dir}: {exc}", path) from exc
        logger.info("cloning %s into %s", url, path)
        try:
            proc = self._run(
                ["git", "clone", "-q", "--bare", url, str(path)],
                None,
                deadline,
                CloneFailed,
                "clone",
            )
            if proc.returncode != 0:
                raise CloneFailed(
                    f"git clone {url} failed: {_stderr(proc)}", path
                )
        except CloneFailed:
            self._rollback(path)
            raise

    def _fetch(self, path: Path, deadline: Optional[Deadline]) -> None:
        proc = self._run(
            ["git", "fetch", "-q", "origin", FETCH_REFSPEC],
            path,
            deadline,
            FetchFailed,
            "fetch",
        )
        if proc.returncode != 0:
            raise FetchFailed(f"git fetch failed in {path}: {_stderr(proc)}", path)

    def _run(self, args, cwd, deadline, error, stage) -> subprocess.CompletedProcess:
        target = Path(args[-1]) if cwd is None else Path(cwd)
        try:
            timeout = deadline.remaining() if deadline else None
            return self.runner(args, cwd=cwd, timeout=timeout)
        except subprocess.TimeoutExpired:
            raise error(f"git {stage} timed out for {target}", target) from None
        except OSError as exc:
            raise error(f"cannot run git {stage} for {target}: {exc}", target) from exc

    def _rollback(self, path: Path) -> None:
        if path.exists():
            shutil.rmtree(path, ignore_errors=True)
        owner_dir = path.parent
        try:
            owner_dir.rmdir()
        except OSError:
            # not empty: other mirrors of this owner live there
            pass


def _stderr(proc: subprocess.CompletedProcess) -> str:
    return (proc.stderr or "").strip()
