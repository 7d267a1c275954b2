"""Shared fixtures: a fake command runner and configuration builders."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from gitdub.config import Configuration, parse_config
from gitdub.schemas import PushEvent

ZEROS = "0" * 40
AFTER = "abcd" + "0" * 32 + "1234"


@dataclass
class Call:
    args: list[str]
    cwd: Optional[Path]
    input: Optional[str]
    timeout: Optional[float]


class FakeRunner:
    """
    Stands in for ``run_command``.

    ``git clone`` creates the target directory (and on failure leaves a
    partial one behind, like a real interrupted clone); everything else
    answers with the configured return codes.
    """

    def __init__(self) -> None:
        self.calls: list[Call] = []
        self.clone_returncode = 0
        self.fetch_returncode = 0
        self.notify_returncode = 0
        self.hook: Optional[Callable[[Call], Any]] = None

    def __call__(self, args, *, cwd=None, input=None, timeout=None):
        call = Call(list(args), cwd, input, timeout)
        self.calls.append(call)
        if self.hook is not None:
            self.hook(call)

        if call.args[:2] == ["git", "clone"]:
            target = Path(call.args[-1])
            target.mkdir(parents=True)
            (target / "HEAD").write_text("ref: refs/heads/main\n")
            return self._result(call, self.clone_returncode, "fatal: repository not found")
        if call.args[:2] == ["git", "fetch"]:
            return self._result(call, self.fetch_returncode, "fatal: unable to access")
        if call.args[:2] == ["git", "config"]:
            return self._result(call, 5 if "--unset-all" in call.args else 0, "")
        return self._result(call, self.notify_returncode, "notifier broke")

    @staticmethod
    def _result(call: Call, returncode: int, stderr: str) -> subprocess.CompletedProcess:
        return subprocess.CompletedProcess(
            call.args, returncode, stdout="", stderr=stderr if returncode else ""
        )

    def commands(self, *prefix: str) -> list[Call]:
        return [c for c in self.calls if c.args[: len(prefix)] == list(prefix)]

    def notifier_calls(self) -> list[Call]:
        return [c for c in self.calls if c.args[0] != "git"]


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def mirrors(tmp_path: Path) -> Path:
    return tmp_path / "mirrors"


@pytest.fixture
def make_config(mirrors: Path) -> Callable[..., Configuration]:
    def _make(github=None, notifier=None, **gitdub) -> Configuration:
        doc = {
            "gitdub": {"directory": str(mirrors), **gitdub},
            "notifier": {
                "from": "gitdub@example.org",
                "to": ["commits@example.org"],
                "subject": "[git]",
                **(notifier or {}),
            },
            "github": github
            if github is not None
            else [{"id": "acme/widgets", "protocol": "https"}],
        }
        return parse_config(doc)

    return _make


def push_payload(owner="acme", repo="widgets", before=ZEROS, after=AFTER, ref="refs/heads/main"):
    return {
        "repository": {
            "name": repo,
            "url": f"https://github.com/{owner}/{repo}",
            "owner": {"name": owner, "email": f"{owner}@example.org"},
        },
        "before": before,
        "after": after,
        "ref": ref,
        "commits": [],
    }


@pytest.fixture
def make_event() -> Callable[..., PushEvent]:
    def _make(**kwargs) -> PushEvent:
        return PushEvent.from_payload(push_payload(**kwargs))

    return _make
