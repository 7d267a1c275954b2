"""Routing of push events to configured repository entries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from gitdub.config import NotifierDefaults, RoutingEntry

logger = logging.getLogger(__name__)

# never forwarded into notifier options
ROUTING_KEYS = frozenset({"id", "protocol"})


@dataclass(frozen=True)
class RouteMatch:
    entry: RoutingEntry
    options: Mapping[str, Any]

    @property
    def protocol(self) -> str:
        return self.entry.protocol


def merge_options(
    defaults: NotifierDefaults, overrides: Mapping[str, Any]
) -> dict[str, Any]:
    """Overlay entry overrides on the notifier defaults; entry keys win."""
    options = defaults.as_options()
    options.update({k: v for k, v in overrides.items() if k not in ROUTING_KEYS})
    return options


def match(
    owner: str,
    repo: str,
    entries: Sequence[RoutingEntry],
    defaults: NotifierDefaults,
) -> Optional[RouteMatch]:
    """
    Return the first entry whose pattern matches ``owner/repo``.

    Entries are tried in declared order. ``None`` means the push is not
    routed anywhere, which is not an error.
    """
    full_name = f"{owner}/{repo}"
    for entry in entries:
        if entry.pattern.search(full_name):
            logger.debug("%s matched routing entry %r", full_name, entry.id)
            return RouteMatch(entry=entry, options=merge_options(defaults, entry.overrides))
    logger.info("no routing entry matches %s, dropping push", full_name)
    return None
