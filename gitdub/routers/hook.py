"""Ruter GH?"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Request, Response
from starlette.exceptions import HTTPException
from fastapi.responses import PlainTextResponse

from gitdub.schemas import PushEvent
from gitdub.utils import USAGE_HINT, describe_push, is_allowed_source

logger = logging.getLogger(__name__)

router = APIRouter(tags=["github"])


@router.get("/", response_class=PlainTextResponse)
def usage(request: Request) -> str:
    return USAGE_HINT.format(url=request.url)


async def _read_payload(request: Request) -> Optional[Any]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        raw = (await request.body()).decode("utf-8", errors="replace")
    else:
        try:
            form = await request.form()
        except HTTPException as exc:
            logger.warning("delivery with unreadable form body, ignoring: %s", exc.detail)
            return None
        raw = form.get("payload")
        if not isinstance(raw, str):
            logger.warning("delivery without a 'payload' form field, ignoring")
            return None
    try:
        return json.loads(raw)
    except ValueError as exc:
        logger.warning("delivery with malformed JSON payload, ignoring: %s", exc)
        return None


@router.post("/")
async def github_webhook(request: Request, background_tasks: BackgroundTasks):
    """
    Forge push webhook endpoint.

    The forge always gets an empty 200 once the delivery was read: dropped
    sources, undecodable payloads and downstream failures are only logged.
    """
    config = request.app.state.watcher.current()
    source = request.client.host if request.client else None
    if not is_allowed_source(source, config.allowed_sources):
        logger.info("dropping delivery from disallowed source %s", source)
        return Response(status_code=200)

    data = await _read_payload(request)
    if data is None:
        return Response(status_code=200)

    try:
        event = PushEvent.from_payload(data)
    except ValueError as exc:
        logger.warning("delivery is not a push event, ignoring: %s", exc)
        return Response(status_code=200)

    logger.debug("accepted push %s from %s", describe_push(event), source)
    background_tasks.add_task(request.app.state.dispatcher.dispatch, event, config)
    return Response(status_code=200)
