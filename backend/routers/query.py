import logging

from fastapi import APIRouter, WebSocket, status
from fastapi.websockets import WebSocketState

logger = logging.getLogger(__name__)

router = APIRouter(tags=["query"])


@router.websocket("/ws")
async def pick_socket(websocket: WebSocket):
    """Interactive pick queries.

    Clients send ``{"pixelX": x, "pixelY": y}`` and receive
    ``{"messageprocessed": text}`` for every pick made by any client.
    """
    hub = websocket.app.state.hub
    if hub is None:
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        return

    await websocket.accept()
    await hub.serve(websocket)

    # Evicted clients are still connected at this point
    if websocket.client_state == WebSocketState.CONNECTED:
        await websocket.close()
