import asyncio
import json
import logging

import anyio
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect

from lyricx.api.deps import get_coordinator, get_observer
from lyricx.models.media import MediaCommandRequest, MediaState
from lyricx.services.media_observer import MediaStateObserver
from lyricx.services.now_playing import LyricsState, NowPlayingCoordinator

router = APIRouter()
ws_router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/state")
async def publish_state(
    state: MediaState,
    observer: MediaStateObserver = Depends(get_observer),
) -> dict:
    """Entry point for the host's media-session bridge."""
    observer.publish(state)
    song = observer.current_song
    return {"accepted": True, "song_id": song.id if song else None}


@router.get("/current")
async def current_state(
    observer: MediaStateObserver = Depends(get_observer),
    coordinator: NowPlayingCoordinator = Depends(get_coordinator),
) -> dict:
    state = observer.current
    if state is None:
        return {"media": None, "lyrics": coordinator.state.model_dump(mode="json"), "line_index": -1}
    return {
        "media": state.model_dump(mode="json"),
        "lyrics": coordinator.state.model_dump(mode="json"),
        "line_index": coordinator.current_line_index(state.position_ms),
    }


@router.post("/command")
async def send_command(
    request: MediaCommandRequest,
    observer: MediaStateObserver = Depends(get_observer),
) -> dict:
    if request.command == "seek" and request.position_ms is None:
        raise HTTPException(status_code=400, detail="seek requires position_ms")

    accepted = await observer.send_command(request.command, request.position_ms)
    return {"command": request.command, "accepted": accepted}


def _media_message(state: MediaState, coordinator: NowPlayingCoordinator) -> str:
    return json.dumps({
        "type": "media",
        "media": state.model_dump(mode="json"),
        "line_index": coordinator.current_line_index(state.position_ms),
    })


def _lyrics_message(state: LyricsState) -> str:
    return json.dumps({"type": "lyrics", "lyrics": state.model_dump(mode="json")})


@ws_router.websocket("/media")
async def media_websocket(websocket: WebSocket) -> None:
    """Streams now-playing snapshots (with the active line) and lyrics changes."""
    observer: MediaStateObserver = websocket.app.state.observer
    coordinator: NowPlayingCoordinator = websocket.app.state.coordinator
    await websocket.accept()

    subscription = observer.subscribe()
    outbox: asyncio.Queue[str] = asyncio.Queue()

    async def pump_media() -> None:
        async for state in subscription:
            await outbox.put(_media_message(state, coordinator))

    async def pump_lyrics() -> None:
        async for state in coordinator.updates():
            await outbox.put(_lyrics_message(state))

    async def drain() -> None:
        while True:
            await websocket.send_text(await outbox.get())

    async def listen() -> None:
        # Clients may send transport commands over the same socket
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
                command = MediaCommandRequest.model_validate(data)
            except (json.JSONDecodeError, ValueError):
                await outbox.put(json.dumps({"type": "error", "content": "Invalid command"}))
                continue
            accepted = await observer.send_command(command.command, command.position_ms)
            await outbox.put(json.dumps({
                "type": "command", "command": command.command, "accepted": accepted,
            }))

    try:
        async with anyio.create_task_group() as tg:
            tg.start_soon(pump_media)
            tg.start_soon(pump_lyrics)
            tg.start_soon(drain)
            try:
                await listen()
            finally:
                tg.cancel_scope.cancel()
    except* WebSocketDisconnect:
        logger.info("Media WebSocket disconnected")
    except* Exception:
        logger.exception("Media WebSocket error")
        try:
            await websocket.close(code=1011)
        except Exception:
            pass
    finally:
        subscription.close()
