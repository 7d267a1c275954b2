"""the beautiful world start from here."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from gitdub.config import settings
from gitdub.routers import hook
from gitdub.services.dispatcher import PushDispatcher
from gitdub.services.watcher import ConfigWatcher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    watcher: ConfigWatcher = app.state.watcher
    watcher.start()
    try:
        yield
    finally:
        watcher.stop()
        logger.info("Shutting down...")


def create_app(
    watcher: Optional[ConfigWatcher] = None,
    dispatcher: Optional[PushDispatcher] = None,
) -> FastAPI:
    """
    Build the webhook application.

    Without a ``watcher`` the configuration is loaded from
    ``settings.config_path``; a broken file raises ``ConfigError``.
    """
    app = FastAPI(title="gitdub: GitHub push → commit mails", lifespan=lifespan)
    app.state.watcher = watcher or ConfigWatcher.from_file(settings.config_path)
    app.state.dispatcher = dispatcher or PushDispatcher()
    app.include_router(hook.router)
    return app
