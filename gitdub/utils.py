"""the beautiful world start from here."""

from __future__ import annotations

from typing import Iterable, Optional

from gitdub.schemas import ZERO_REVISION, PushEvent

USAGE_HINT = "Use {url} as WebHook URL in your github repository settings."

RECIPIENT_SEPARATOR = ", "


def short_rev(rev: str | None, length: int = 7) -> str:
    """
    Abbreviate a git object id for log lines.

    Example
    -------
    'abcdef0123...' → 'abcdef0'
    """
    return (rev or "")[:length] or "-"


def describe_push(event: PushEvent) -> str:
    """Human readable one-liner of a push for logs."""
    if event.before == ZERO_REVISION:
        change = f"created at {short_rev(event.after)}"
    elif event.after == ZERO_REVISION:
        change = f"deleted (was {short_rev(event.before)})"
    else:
        change = f"{short_rev(event.before)}...{short_rev(event.after)}"
    return f"{event.full_name} {event.ref} {change}"


def join_recipients(addresses: Iterable[str]) -> str:
    """Join recipient addresses in their configured order."""
    return RECIPIENT_SEPARATOR.join(a for a in addresses if a)


def is_allowed_source(address: Optional[str], allowed: frozenset[str]) -> bool:
    """
    Check a caller address against the allow-list.

    Returns
    -------
    bool
        True if the allow-list is empty or contains ``address``.
    """
    if not allowed:
        return True
    return bool(address) and address in allowed


def revision_link(uri: Optional[str], repository_url: str) -> str:
    """
    Link template for a single revision, ``%s`` standing for the object id.

    Example
    -------
    'https://github.com/acme/widgets' → 'https://github.com/acme/widgets/commit/%s'
    """
    if uri:
        return uri
    return f"{repository_url.rstrip('/')}/commit/%s"
