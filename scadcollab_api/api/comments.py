"""Team chat endpoints."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from ..core import MessageChannel
from ..errors import StoreUnavailable
from ..models import CommentCreateRequest, SessionComment
from .dependencies import Services, get_services
from .sessions import KEEPALIVE_SECONDS, SSE_HEADERS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions/{session_id}/comments", tags=["comments"])


async def _require_session(services: Services, session_id: str) -> None:
    try:
        session = await services.store.get(session_id)
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Document store unavailable")
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")


@router.post("", response_model=SessionComment, status_code=201)
async def post_comment(
    session_id: str,
    comment: CommentCreateRequest,
    services: Services = Depends(get_services),
) -> SessionComment:
    await _require_session(services, session_id)
    try:
        return await services.channel.post(
            session_id,
            comment.user_id,
            comment.user_name,
            comment.content,
            comment.position,
        )
    except StoreUnavailable as e:
        logger.error(f"Error posting comment to {session_id}: {e}")
        raise HTTPException(status_code=503, detail="Document store unavailable")


@router.get("", response_model=list[SessionComment])
async def list_comments(
    session_id: str, services: Services = Depends(get_services)
) -> list[SessionComment]:
    """All comments, oldest first."""
    try:
        return await services.channel.list(session_id)
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Document store unavailable")


async def comment_events(
    channel: MessageChannel,
    session_id: str,
    is_disconnected: Callable[[], Awaitable[bool]],
    keepalive: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """SSE frames carrying the full ordered comment list after every change."""
    queue: asyncio.Queue[list[SessionComment]] = asyncio.Queue()
    subscription = await channel.subscribe(session_id, queue.put_nowait)
    try:
        while not await is_disconnected():
            try:
                comments = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except TimeoutError:
                yield ": keep-alive\n\n"
                continue
            payload = {
                "type": "comments",
                "comments": [c.model_dump(mode="json") for c in comments],
            }
            yield f"data: {json.dumps(payload)}\n\n"
    finally:
        subscription.unsubscribe()


@router.get("/events")
async def stream_comments(
    session_id: str,
    request: Request,
    services: Services = Depends(get_services),
) -> StreamingResponse:
    """Team chat as Server-Sent Events."""
    await _require_session(services, session_id)
    return StreamingResponse(
        comment_events(services.channel, session_id, request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
