"""
WebSocket feed — live game document for players, spectators and the admin.

URL: /ws/{game_id}?uid={uid}

Connection flow:
  1. Validate the game exists (close 4404 otherwise), then accept
  2. Subscribe to the game document; the store pushes it right away
  3. Every push is sent as a "game_state" message
  4. Document deleted → "game_deleted", then close
  5. On disconnect: unsubscribe

Answers are hidden in game_state unless the game is finished or `uid` is the
game's creator.

Client → server message types handled here:
  ping   — keep-alive heartbeat → responds with "pong"

Game actions are not sent over this socket; they go through the HTTP routes.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from models.game import Game, normalize_game_code
from services.firestore_service import get_game_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


def _state_message(game: Optional[Game], uid: Optional[str]) -> Dict[str, Any]:
    if game is None:
        return {"type": "game_deleted"}
    return {
        "type": "game_state",
        "game": game.to_public(reveal_answers=uid is not None and uid == game.creator_id),
    }


async def _receive_loop(ws: WebSocket, game_id: str, outbox: asyncio.Queue) -> None:
    """Read client messages until the socket closes. Replies go through `outbox`."""
    while True:
        try:
            raw = await ws.receive_text()
        except WebSocketDisconnect:
            return
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            outbox.put_nowait({"type": "error", "message": "Invalid JSON", "code": "PARSE_ERROR"})
            continue

        msg_type = data.get("type", "") if isinstance(data, dict) else ""
        if msg_type == "ping":
            outbox.put_nowait({"type": "pong"})
        else:
            logger.debug(f"[{game_id}] Ignoring websocket message type {msg_type!r}")
            outbox.put_nowait({
                "type": "error",
                "message": f"Unknown message type: {msg_type}",
                "code": "UNKNOWN_TYPE",
            })


@router.websocket("/ws/{game_id}")
async def websocket_endpoint(
    ws: WebSocket,
    game_id: str,
    uid: Optional[str] = Query(None, description="Caller uid; the creator sees answers"),
    store=Depends(get_game_store),
):
    # ── Validate game ──────────────────────────────────────────────────────────
    game_id = normalize_game_code(game_id)
    game = await store.get_game(game_id)
    if not game:
        await ws.close(code=4404, reason="Game not found")
        return

    await ws.accept()
    logger.debug(f"[{game_id}] Websocket viewer connected")

    # Single writer: pushes and replies share one queue, drained below
    outbox: asyncio.Queue = asyncio.Queue()
    unsubscribe = store.subscribe(game_id, lambda g: outbox.put_nowait(_state_message(g, uid)))
    receiver = asyncio.create_task(_receive_loop(ws, game_id, outbox))

    try:
        while True:
            next_message = asyncio.create_task(outbox.get())
            done, _ = await asyncio.wait(
                {next_message, receiver}, return_when=asyncio.FIRST_COMPLETED
            )
            if next_message not in done:
                next_message.cancel()
                break
            message = next_message.result()
            await ws.send_json(message)
            if message["type"] == "game_deleted":
                await ws.close(code=4404, reason="Game deleted")
                break
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        receiver.cancel()
        logger.debug(f"[{game_id}] Websocket viewer disconnected")
