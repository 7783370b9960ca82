"""WebSocket endpoint streaming a user's transcription row changes.

Protocol:
    - Client connects to ``/ws/transcriptions/{user_id}?token=<access token>``.
    - Server sends ``{"type": "connected", "data": {"userId": ...}}`` once,
      then ``{"type": "change", "data": <ChangeEvent>}`` per row change.
    - Authentication or ownership failures close the socket with 1008
      before it is accepted.
    - If the subscriber falls too far behind, the server closes with 1013
      and the client should reload its history and reconnect.

Messages sent by the client are ignored; the connection stays open until
the client disconnects.
"""

import logging

import anyio
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from src.core.exceptions import ForbiddenError, SpeechCraftError, UnauthorizedError
from src.services.change_feed import Subscription

logger = logging.getLogger(__name__)

router = APIRouter()

RESYNC_REASON = "Change feed overflow; reload history"


async def _forward_events(websocket: WebSocket, subscription: Subscription) -> None:
    async for event in subscription:
        await websocket.send_json(
            {"type": "change", "data": event.model_dump(by_alias=True, mode="json")}
        )


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/transcriptions/{user_id}")
async def transcription_feed(
    websocket: WebSocket,
    user_id: str,
    token: str | None = Query(None),
) -> None:
    """Push INSERT/UPDATE/DELETE events for *user_id*'s jobs."""
    identity = websocket.app.state.identity
    feed = websocket.app.state.feed

    try:
        if not token:
            raise UnauthorizedError("Token is required")
        user = await identity.authenticate(token)
        if user.id != user_id and not user.is_admin:
            raise ForbiddenError()
    except SpeechCraftError as exc:
        logger.info("Rejected change feed connection for %s: %s", user_id, exc.detail)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.detail)
        return

    await websocket.accept()
    logger.info("Change feed connected for user %s", user_id)

    subscription = feed.subscribe(user_id)
    disconnected = False
    try:
        await websocket.send_json({"type": "connected", "data": {"userId": user_id}})

        async with anyio.create_task_group() as task_group:

            async def forward() -> None:
                try:
                    await _forward_events(websocket, subscription)
                except WebSocketDisconnect:
                    pass
                task_group.cancel_scope.cancel()

            task_group.start_soon(forward)
            await _wait_for_disconnect(websocket)
            disconnected = True
            task_group.cancel_scope.cancel()

        if subscription.overflowed and not disconnected:
            await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER, reason=RESYNC_REASON)
    except WebSocketDisconnect:
        pass
    finally:
        await subscription.aclose()
        logger.info("Change feed disconnected for user %s", user_id)
