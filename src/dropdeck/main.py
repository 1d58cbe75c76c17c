import asyncio
from typing import Any, Dict, List

import uvicorn
from fastapi import Body, Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import Field, ValidationError as PydanticValidationError

from dropdeck import __version__
from dropdeck.auth import create_user_token, verify_user_token
from dropdeck.bus import EventBus, Subscription
from dropdeck.config import load_settings
from dropdeck.errors import AuthError, ChannelClosedError, DropDeckError, ValidationError
from dropdeck.schemas.delivery import UnifiedDelivery, WireModel
from dropdeck.schemas.events import (
    ConnectionStatusEvent,
    LocationUpdateEvent,
    delivery_location_channel,
    user_connections_channel,
    user_deliveries_channel,
    validate_event,
)
from dropdeck.tracking import DeliveryTracker
from dropdeck.utils.logger_util import get_logger, logging

logger = get_logger(__name__, logging.DEBUG)

settings = load_settings()
app = FastAPI(title="dropdeck-core", version=__version__)
# in-process stand-in for the managed pub/sub service (per user channels)
bus = EventBus(default_maxsize=settings.bus_channel_maxsize)
# server-side view per user; serves the hydration listing
trackers: Dict[str, DeliveryTracker] = {}
security = HTTPBearer()


class StartSessionRequest(WireModel):
    user_id: str = Field(..., min_length=1)


def _tracker_for(user_id: str) -> DeliveryTracker:
    t = trackers.get(user_id)
    if t is None:
        t = DeliveryTracker()
        trackers[user_id] = t
    return t


def _require_user(user_id: str, credentials: HTTPAuthorizationCredentials) -> None:
    if verify_user_token(credentials.credentials, settings) != user_id:
        raise AuthError("token does not grant access to this user", context={"user_id": user_id})


def _channels_for(user_id: str) -> List[str]:
    return [user_deliveries_channel(user_id), user_connections_channel(user_id)]


@app.exception_handler(DropDeckError)
async def dropdeck_error_handler(request: Request, exc: DropDeckError):
    status = 403 if isinstance(exc, AuthError) else 400
    return JSONResponse(status_code=status, content=exc.to_dict())


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__}


@app.post("/sessions/start")
async def start_session(req: StartSessionRequest):
    channels = _channels_for(req.user_id)
    for name in channels:
        bus.register_channel(name)
    _tracker_for(req.user_id)
    token = create_user_token(req.user_id, settings)
    logger.info("issued stream token for %s", req.user_id)
    return {"user_id": req.user_id, "token": token, "channels": channels}


@app.get("/deliveries/{user_id}")
async def list_deliveries(user_id: str, credentials: HTTPAuthorizationCredentials = Depends(security)):
    _require_user(user_id, credentials)
    return [d.to_wire() for d in _tracker_for(user_id).deliveries]


@app.put("/deliveries/{user_id}")
async def upsert_delivery(user_id: str, delivery: UnifiedDelivery, credentials: HTTPAuthorizationCredentials = Depends(security)):
    # adapters push full snapshots here; realtime events then keep them current
    _require_user(user_id, credentials)
    _tracker_for(user_id).upsert(delivery)
    return delivery.to_wire()


@app.post("/events/{user_id}")
async def ingest_event(user_id: str, raw: Dict[str, Any] = Body(...), credentials: HTTPAuthorizationCredentials = Depends(security)):
    _require_user(user_id, credentials)
    try:
        event = validate_event(raw)
    except PydanticValidationError as exc:
        err = ValidationError.from_pydantic(exc, message="malformed realtime event")
        logger.debug("rejected event for %s: %s", user_id, err.errors)
        raise HTTPException(status_code=422, detail=err.to_dict())

    applied = _tracker_for(user_id).apply(event)
    wire = event.to_wire()
    if isinstance(event, ConnectionStatusEvent):
        delivered = bus.publish(user_connections_channel(user_id), wire)
    else:
        delivered = bus.publish(user_deliveries_channel(user_id), wire)
        if isinstance(event, LocationUpdateEvent):
            bus.publish(delivery_location_channel(event.payload.delivery_id), wire)
    return {"accepted": True, "applied": applied, "delivered": delivered}


@app.websocket("/ws/{user_id}")
async def ws_endpoint(websocket: WebSocket, user_id: str):
    # Accept connection, require token query param
    token = websocket.query_params.get("token")
    if not token or verify_user_token(token, settings) != user_id:
        await websocket.close(code=4403)
        return

    await websocket.accept()
    subs: List[Subscription] = [bus.subscribe(name) for name in _channels_for(user_id)]
    await websocket.send_json({"type": "ack", "user_id": user_id, "channels": _channels_for(user_id)})

    async def _forward(sub: Subscription):
        while True:
            try:
                item = await sub.get()
            except ChannelClosedError:
                return
            await websocket.send_json(item)

    forwarders = [asyncio.create_task(_forward(s)) for s in subs]
    try:
        while True:
            msg = await websocket.receive_json()
            if isinstance(msg, dict) and msg.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
            else:
                logger.debug("ignoring client message on %s: %r", user_id, msg)
    except WebSocketDisconnect:
        logger.info("websocket for %s disconnected", user_id)
    finally:
        for t in forwarders:
            t.cancel()
        for s in subs:
            s.close()


if __name__ == "__main__":
    uvicorn.run("dropdeck.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
