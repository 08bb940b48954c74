"""Session CRUD, change stream, generation, sharing and presence endpoints."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import StreamingResponse

from ..errors import (
    NotFound,
    ProviderError,
    ProviderNotConfigured,
    SessionNotShared,
    SketchParseError,
    StoreUnavailable,
    VersionConflict,
)
from ..models import (
    CollaboratorInfo,
    CollaboratorJoinRequest,
    GenerateRequest,
    GenerationResponse,
    GenerationState,
    Session,
    SessionCreatedResponse,
    SessionCreateRequest,
    SessionInfo,
    SessionListResponse,
    SessionUpdateRequest,
    ShareResponse,
    SketchResponse,
    color_for_user,
)
from ..core import SessionStore
from .dependencies import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])

KEEPALIVE_SECONDS = 15.0

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


def _info(session: Session) -> SessionInfo:
    return SessionInfo(
        id=session.id,
        owner_id=session.owner_id,
        title=session.title,
        is_shared=session.is_shared,
        message_count=len(session.messages),
        created_at=session.created_at,
        updated_at=session.updated_at,
    )


async def _load(services: Services, session_id: str) -> Session:
    try:
        session = await services.store.get(session_id)
    except StoreUnavailable as e:
        logger.error(f"Store unavailable reading session {session_id}: {e}")
        raise HTTPException(status_code=503, detail="Document store unavailable")
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@router.post("", response_model=SessionCreatedResponse, status_code=201)
async def create_session(
    session_request: SessionCreateRequest,
    services: Services = Depends(get_services),
) -> SessionCreatedResponse:
    """Create an empty, unshared session."""
    try:
        session_id = await services.store.create(session_request.owner_id, session_request.title)
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Document store unavailable")
    return SessionCreatedResponse(session_id=session_id, message="Session created successfully")


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    owner_id: str,
    limit: int = 50,
    services: Services = Depends(get_services),
) -> SessionListResponse:
    """Sessions owned by a user, most recently updated first."""
    try:
        sessions = await services.store.list_for_owner(owner_id, limit=limit)
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Document store unavailable")
    return SessionListResponse(sessions=[_info(s) for s in sessions], total=len(sessions))


@router.get("/{session_id}", response_model=Session)
async def get_session(session_id: str, services: Services = Depends(get_services)) -> Session:
    """Full session document.

    Raises:
        HTTPException: 404 if not found
    """
    return await _load(services, session_id)


@router.patch("/{session_id}", response_model=Session)
async def update_session(
    session_id: str,
    update: SessionUpdateRequest,
    services: Services = Depends(get_services),
) -> Session:
    """Merge the provided fields; omitted fields stay as they are."""
    try:
        session = await services.store.update(
            session_id,
            messages=update.messages,
            model_code=update.model_code,
            title=update.title,
            thumbnail=update.thumbnail,
        )
    except NotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Document store unavailable")

    if update.model_code is not None and session_id in services.editors:
        services.editors[session_id].set_source(update.model_code)
    return session


@router.delete("/{session_id}", status_code=204)
async def delete_session(session_id: str, services: Services = Depends(get_services)) -> Response:
    try:
        deleted = await services.store.delete(session_id)
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Document store unavailable")
    if not deleted:
        raise HTTPException(status_code=404, detail="Session not found")
    services.forget(session_id)
    return Response(status_code=204)


async def session_events(
    store: SessionStore,
    session_id: str,
    is_disconnected: Callable[[], Awaitable[bool]],
    keepalive: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """SSE frames for every change of one session, ending after deletion."""
    queue: asyncio.Queue[Session | None] = asyncio.Queue()
    subscription = await store.subscribe(session_id, queue.put_nowait)
    try:
        while not await is_disconnected():
            try:
                session = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except TimeoutError:
                yield ": keep-alive\n\n"
                continue
            if session is None:
                yield f"data: {json.dumps({'type': 'deleted', 'session_id': session_id})}\n\n"
                break
            payload = {"type": "session", "session": session.model_dump(mode="json")}
            yield f"data: {json.dumps(payload)}\n\n"
    finally:
        subscription.unsubscribe()


@router.get("/{session_id}/events")
async def stream_session(
    session_id: str,
    request: Request,
    services: Services = Depends(get_services),
) -> StreamingResponse:
    """Live session updates as Server-Sent Events.

    The first event is the current snapshot; a ``deleted`` event ends the stream.
    """
    await _load(services, session_id)
    return StreamingResponse(
        session_events(services.store, session_id, request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/{session_id}/generate", response_model=GenerationResponse, status_code=202)
async def generate(
    session_id: str,
    generate_request: GenerateRequest,
    response: Response,
    wait: bool = False,
    services: Services = Depends(get_services),
) -> GenerationResponse:
    """Start a generation.

    Returns immediately; progress shows up in the session's message stream.
    With ``wait=true`` the call blocks and returns the final outcome.
    """
    session = await _load(services, session_id)
    orchestrator = services.orchestrator_for(session)
    run = orchestrator.generate(
        generate_request.prompt,
        generate_request.image,
        skip_user_echo=generate_request.skip_user_echo,
    )

    if not wait:
        services.spawn(run)
        return GenerationResponse(
            session_id=session_id, state=GenerationState.IDLE, accepted=True
        )

    result = await run
    response.status_code = 200
    return GenerationResponse(
        session_id=session_id,
        state=result.state,
        code=result.code,
        error=result.error,
        render_attempts=result.render_attempts,
        rendered=result.rendered,
    )


@router.post("/{session_id}/share", response_model=ShareResponse)
async def share_session(session_id: str, services: Services = Depends(get_services)) -> ShareResponse:
    """Make the session shared and return its link.

    The token is the session id itself, so the link grants access for as
    long as the session stays shared.
    """
    try:
        token = await services.share_tokens.mint_share_token(session_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Document store unavailable")
    return ShareResponse(token=token, share_url=services.share_tokens.share_url(token))


@router.post("/{session_id}/collaborators", response_model=list[CollaboratorInfo])
async def join_session(
    session_id: str,
    join: CollaboratorJoinRequest,
    services: Services = Depends(get_services),
) -> list[CollaboratorInfo]:
    """Attach a user to a session and return the current collaborators."""
    info = CollaboratorInfo(
        user_id=join.user_id,
        display_name=join.display_name,
        email=join.email,
        color=join.color or color_for_user(join.user_id),
    )
    try:
        session = await services.presence.attach(session_id, info)
    except NotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    except SessionNotShared:
        raise HTTPException(status_code=403, detail="Session is not shared")
    except VersionConflict:
        raise HTTPException(status_code=409, detail="Concurrent update, please retry")
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Document store unavailable")
    return session.collaborators


@router.post("/{session_id}/collaborators/{user_id}/heartbeat", status_code=204)
async def heartbeat(session_id: str, user_id: str, services: Services = Depends(get_services)) -> Response:
    await services.presence.touch(session_id, user_id)
    await services.presence.prune_stale(session_id)
    return Response(status_code=204)


@router.delete("/{session_id}/collaborators/{user_id}", status_code=204)
async def leave_session(session_id: str, user_id: str, services: Services = Depends(get_services)) -> Response:
    try:
        await services.presence.remove(session_id, user_id)
    except VersionConflict:
        raise HTTPException(status_code=409, detail="Concurrent update, please retry")
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="Document store unavailable")
    return Response(status_code=204)


@router.post("/{session_id}/sketches", response_model=SketchResponse)
async def create_sketches(session_id: str, services: Services = Depends(get_services)) -> SketchResponse:
    """Orthographic views of the session's current code."""
    session = await _load(services, session_id)
    try:
        sketches = await services.sketcher.generate(session.model_code)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderNotConfigured as e:
        raise HTTPException(status_code=503, detail=str(e))
    except (ProviderError, SketchParseError) as e:
        logger.error(f"Sketch generation failed for {session_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    return SketchResponse(session_id=session_id, sketches=sketches)
