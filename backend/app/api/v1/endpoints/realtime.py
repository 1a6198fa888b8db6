"""
Realtime WebSocket endpoint.

Connect to ws://host/api/v1/realtime/ws, then send
{"type": "join", "data": {"role", "account_id", "token"}}.
"""
from fastapi import APIRouter, WebSocket

router = APIRouter()


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    await websocket.app.state.realtime_gateway.serve(websocket)
