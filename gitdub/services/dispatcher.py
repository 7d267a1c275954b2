"""One push delivery: match, reconcile the mirror, notify."""

from __future__ import annotations

import enum
import logging
from typing import Optional

from gitdub.config import Configuration
from gitdub.schemas import PushEvent
from gitdub.services.matcher import match
from gitdub.services.notifier import NotifierInvocation, NotifierInvoker
from gitdub.services.process import Deadline, Runner, run_command
from gitdub.services.store import (
    CloneFailed,
    ConfigureFailed,
    FetchFailed,
    MirrorLocks,
    RepositoryStore,
)
from gitdub.utils import describe_push

logger = logging.getLogger(__name__)


class DispatchOutcome(str, enum.Enum):
    DELIVERED = "delivered"
    NO_MATCH = "no_match"
    CLONE_FAILED = "clone_failed"
    FETCH_FAILED = "fetch_failed"
    NOTIFY_FAILED = "notify_failed"


class PushDispatcher:
    """
    Runs the pipeline for single push events.

    A dispatcher lives as long as the process. It holds the per-mirror locks;
    everything else comes from the configuration snapshot handed to
    :meth:`dispatch`, which is used unchanged for the whole dispatch.
    """

    def __init__(self, *, runner: Runner = run_command, locks: Optional[MirrorLocks] = None):
        self.runner = runner
        self.locks = locks or MirrorLocks()

    def store_for(self, config: Configuration) -> RepositoryStore:
        return RepositoryStore(config.directory, runner=self.runner, locks=self.locks)

    def invoker_for(self, config: Configuration) -> NotifierInvoker:
        return NotifierInvoker(
            config.notifier.command, config.notifier.protocol, runner=self.runner
        )

    def dispatch(self, event: PushEvent, config: Configuration) -> DispatchOutcome:
        """Handle one push; failures are logged and returned, never raised."""
        push = describe_push(event)
        logger.info("received push %s (compare: %s)", push, event.compare_url)

        route = match(
            event.owner_name,
            event.repo_name,
            config.routing_entries,
            config.notifier,
        )
        if route is None:
            return DispatchOutcome.NO_MATCH

        store = self.store_for(config)
        try:
            mirror = store.mirror_path(event.owner_name, event.repo_name)
        except ValueError as exc:
            logger.error("clone stage failed for %s: %s", push, exc)
            return DispatchOutcome.CLONE_FAILED

        with store.lock_for(mirror):
            # waiting for the lock does not count against the time limit
            deadline = Deadline(config.dispatch_timeout)
            try:
                path = store.ensure_mirror(
                    event.owner_name,
                    event.repo_name,
                    route.protocol,
                    host=config.notifier.host,
                    deadline=deadline,
                )
                store.configure(
                    path,
                    route.options,
                    repository_url=event.repository_url,
                    deadline=deadline,
                )
            except CloneFailed as exc:
                logger.error("clone stage failed for %s: %s", push, exc)
                return DispatchOutcome.CLONE_FAILED
            except (FetchFailed, ConfigureFailed) as exc:
                logger.error("fetch stage failed for %s: %s", push, exc)
                return DispatchOutcome.FETCH_FAILED

            invocation = NotifierInvocation.build(event, route.options)
            if not self.invoker_for(config).invoke(path, invocation, deadline=deadline):
                logger.error("notify stage failed for %s", push)
                return DispatchOutcome.NOTIFY_FAILED

        logger.info("notified %s", push)
        return DispatchOutcome.DELIVERED
