from __future__ import annotations

import subprocess

import pytest

from gitdub.services.notifier import NotifierInvocation, NotifierInvoker
from gitdub.services.process import Deadline
from gitdub.services.store import NOTIFIER_STATE_FILE

from conftest import AFTER, ZEROS

OPTIONS = {
    "to": ("a@example.org", "b@example.org"),
    "from": "gitdub@example.org",
    "subject": "[git]",
    "diffopts": "--stat",
}


@pytest.fixture
def invocation(make_event):
    return NotifierInvocation.build(make_event(), OPTIONS)


@pytest.fixture
def mirror(mirrors):
    path = mirrors / "acme" / "widgets"
    path.mkdir(parents=True)
    return path


def test_build_from_event(invocation):
    assert invocation.before == ZEROS
    assert invocation.after == AFTER
    assert invocation.ref == "refs/heads/main"
    assert invocation.mailinglist == ("a@example.org", "b@example.org")
    assert invocation.link == "https://github.com/acme/widgets/commit/%s"
    assert invocation.repouri == "https://github.com/acme/widgets"
    assert invocation.diffopts == "--stat"
    assert invocation.updateonly is False


def test_stdin_line(invocation):
    assert invocation.stdin_line() == f"{ZEROS} {AFTER} refs/heads/main\n"


def test_argument_list(invocation):
    assert invocation.argument_list() == [
        "--mailinglist", "a@example.org,b@example.org",
        "--sender", "gitdub@example.org",
        "--emailprefix", "[git]",
        "--link", "https://github.com/acme/widgets/commit/%s",
        "--repouri", "https://github.com/acme/widgets",
        "--diffopts", "--stat",
    ]


def test_argument_list_flags_and_empty_values():
    invocation = NotifierInvocation(before="a", after="b", ref="r", sender="", updateonly=True)

    assert invocation.argument_list() == ["--updateonly"]
    assert invocation.for_initialization().updateonly is True


def test_stdin_protocol_writes_one_line(runner, mirror, invocation):
    invoker = NotifierInvoker("git-multimail.py --stdout", runner=runner)

    assert invoker.invoke(mirror, invocation) is True

    (call,) = runner.calls
    assert call.args == ["git-multimail.py", "--stdout"]
    assert call.cwd == mirror
    assert call.input == f"{ZEROS} {AFTER} refs/heads/main\n"
    assert call.input.count("\n") == 1


def test_args_protocol_initializes_state_first(runner, mirror, invocation):
    invoker = NotifierInvoker("git-notifier", "args", runner=runner)

    assert invoker.invoke(mirror, invocation) is True

    seed, real = runner.calls
    assert seed.args == ["git-notifier"] + invocation.argument_list() + ["--updateonly"]
    assert real.args == ["git-notifier"] + invocation.argument_list()
    assert seed.input is None and real.input is None


def test_args_protocol_skips_initialization_when_state_exists(runner, mirror, invocation):
    (mirror / NOTIFIER_STATE_FILE).write_bytes(b"")
    invoker = NotifierInvoker("git-notifier", "args", runner=runner)

    assert invoker.invoke(mirror, invocation) is True

    (call,) = runner.calls
    assert "--updateonly" not in call.args


def test_failed_initialization_skips_real_run(runner, mirror, invocation):
    runner.notify_returncode = 2
    invoker = NotifierInvoker("git-notifier", "args", runner=runner)

    assert invoker.invoke(mirror, invocation) is False
    assert len(runner.calls) == 1


def test_non_zero_exit_is_failure(runner, mirror, invocation, caplog):
    runner.notify_returncode = 1
    invoker = NotifierInvoker("git-multimail.py", runner=runner)

    assert invoker.invoke(mirror, invocation) is False
    assert "notifier broke" in caplog.text


def test_spawn_error_is_failure(mirror, invocation):
    def missing(args, **kwargs):
        raise FileNotFoundError(args[0])

    assert NotifierInvoker("nope", runner=missing).invoke(mirror, invocation) is False


def test_timeout_is_failure(mirror, invocation):
    seen = {}

    def slow(args, *, cwd=None, input=None, timeout=None):
        seen["timeout"] = timeout
        raise subprocess.TimeoutExpired(args, timeout)

    invoker = NotifierInvoker("git-multimail.py", runner=slow)

    assert invoker.invoke(mirror, invocation, deadline=Deadline(30)) is False
    assert 0 < seen["timeout"] <= 30


def test_unknown_protocol():
    with pytest.raises(ValueError):
        NotifierInvoker("git-notifier", "smtp")
