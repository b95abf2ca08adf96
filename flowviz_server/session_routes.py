"""API routes for live workflow visualization sessions."""

import asyncio
import json
import logging

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from flowviz.errors import SessionClosedError, UnknownSessionError
from flowviz.presentation.builder import build_session_view
from flowviz.presentation.viewmodels import NodeDetailView, SessionView
from flowviz.session import SessionUpdate, WorkflowSession
from flowviz.utils.identifiers import generate_request_id
from flowviz_server.registry import SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter()
ws_router = APIRouter()


class OpenSessionRequest(BaseModel):
    """request body for opening a visualization session."""

    request_id: str | None = None


class SelectNodeRequest(BaseModel):
    node_id: str


def _registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def _get_session(request: Request, request_id: str) -> WorkflowSession:
    try:
        return _registry(request).get(request_id)
    except UnknownSessionError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/sessions")
def list_sessions(request: Request) -> list[str]:
    """list request IDs with a live session."""
    return _registry(request).request_ids()


@router.post("/sessions")
async def open_session(request: Request, body: OpenSessionRequest) -> SessionView:
    """open (or reuse) the session for a pipeline execution."""
    request_id = body.request_id or generate_request_id()
    session = await _registry(request).open(request_id)
    return build_session_view(session)


@router.get("/sessions/{request_id}")
def get_session(request: Request, request_id: str) -> SessionView:
    """current render state of a session."""
    return build_session_view(_get_session(request, request_id))


@router.delete("/sessions/{request_id}")
async def close_session(request: Request, request_id: str) -> dict:
    """close a session and unsubscribe from its event stream."""
    try:
        await _registry(request).close(request_id)
    except UnknownSessionError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"closed": request_id}


@router.put("/sessions/{request_id}/selection")
async def select_node(request: Request, request_id: str, body: SelectNodeRequest) -> NodeDetailView | None:
    """select a node for inspection.

    Returns null when the node has not been seen yet; the detail fills in
    once events for it arrive.
    """
    session = _get_session(request, request_id)
    try:
        return await session.select(body.node_id)
    except SessionClosedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.delete("/sessions/{request_id}/selection")
def clear_selection(request: Request, request_id: str) -> dict:
    _get_session(request, request_id).clear_selection()
    return {"selected": None}


@router.post("/sessions/{request_id}/layout")
def relayout(request: Request, request_id: str) -> SessionView:
    """recompute every node position from scratch."""
    session = _get_session(request, request_id)
    try:
        session.relayout()
    except SessionClosedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return build_session_view(session)


@router.post("/sessions/{request_id}/pause")
async def pause(request: Request, request_id: str) -> dict:
    session = _get_session(request, request_id)
    return {"sent": await session.pause()}


@router.post("/sessions/{request_id}/resume")
async def resume(request: Request, request_id: str) -> dict:
    session = _get_session(request, request_id)
    return {"sent": await session.resume()}


@router.post("/sessions/{request_id}/reconnect")
async def reconnect(request: Request, request_id: str) -> dict:
    """retry the event channel of a degraded session."""
    session = _get_session(request, request_id)
    try:
        connected = await session.reconnect()
    except SessionClosedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"connected": connected, "connection": session.connection_state.value}


@ws_router.websocket("/ws/sessions/{request_id}")
async def session_stream(websocket: WebSocket, request_id: str):
    """Push the session view after every applied change.

    Client messages: {"action": "ping"}, {"action": "select", "node_id": ...},
    {"action": "clear_selection"} and {"action": "relayout"}.
    """
    await websocket.accept()
    registry: SessionRegistry = websocket.app.state.registry
    if request_id not in registry:
        await websocket.send_json({"type": "error", "message": f"Session not found: {request_id}"})
        await websocket.close(code=4404)
        return

    session = registry.get(request_id)
    updates: asyncio.Queue[SessionUpdate] = asyncio.Queue()
    remove_listener = session.add_listener(updates.put_nowait)

    async def push_views() -> None:
        while True:
            await updates.get()
            # coalesce whatever piled up while the last view was being sent
            while not updates.empty():
                updates.get_nowait()
            view = build_session_view(session)
            await websocket.send_json({"type": "view", "view": view.model_dump(mode="json")})

    async def handle_actions() -> None:
        while True:
            try:
                data = await websocket.receive_json()
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Messages must be JSON"})
                continue
            if not isinstance(data, dict):
                await websocket.send_json({"type": "error", "message": "Messages must be JSON objects"})
                continue
            action = data.get("action")
            if action == "ping":
                await websocket.send_json({"type": "pong"})
            elif action == "select" and data.get("node_id"):
                await session.select(str(data["node_id"]))
            elif action == "clear_selection":
                session.clear_selection()
            elif action == "relayout":
                session.relayout()
            else:
                await websocket.send_json({"type": "error", "message": f"Unknown action: {action}"})

    await websocket.send_json({"type": "view", "view": build_session_view(session).model_dump(mode="json")})
    sender = asyncio.create_task(push_views())
    receiver = asyncio.create_task(handle_actions())
    try:
        done, _ = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            # re-raises whatever ended the stream
            task.result()
    except WebSocketDisconnect:
        logger.debug(f"View stream for {request_id} disconnected")
    except SessionClosedError:
        await websocket.close(code=4409)
    except Exception:
        logger.exception(f"View stream for {request_id} failed")
        raise
    finally:
        sender.cancel()
        receiver.cancel()
        remove_listener()
