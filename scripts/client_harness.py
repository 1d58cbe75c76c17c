"""Simple client harness: starts a user stream, opens the WS, pushes a delivery and a few updates.

Run: python scripts/client_harness.py  (with `uvicorn dropdeck.main:app` running)
"""
import asyncio
import json
from datetime import datetime, timedelta, timezone

import httpx
import websockets

BASE = "http://127.0.0.1:8000"
USER = "harness-user"


def _snapshot(now: datetime) -> dict:
    return {
        "id": "dlv-harness-1",
        "platform": "doordash",
        "externalOrderId": "DD-1001",
        "status": "preparing",
        "statusUpdatedAt": now.isoformat(),
        "destination": {"address": "1 Market St, San Francisco, CA", "lat": 37.7936, "lng": -122.3950},
        "eta": {"estimatedArrival": (now + timedelta(minutes=30)).isoformat()},
        "order": {"itemCount": 2},
        "timestamps": {"ordered": now.isoformat()},
        "meta": {"lastFetchedAt": now.isoformat(), "fetchMethod": "webhook", "adapterId": "harness"},
    }


def _update(now: datetime, status: str, eta: int) -> dict:
    return {
        "type": "delivery_update",
        "timestamp": now.isoformat(),
        "payload": {
            "deliveryId": "dlv-harness-1",
            "platform": "doordash",
            "status": status,
            "statusLabel": status.replace("_", " ").title(),
            "eta": eta,
        },
    }


async def run():
    now = datetime.now(timezone.utc)
    async with httpx.AsyncClient(base_url=BASE) as client:
        r = await client.post("/sessions/start", json={"userId": USER})
        js = r.json()
        token = js["token"]
        print("stream token issued for", js["user_id"])
        auth = {"Authorization": f"Bearer {token}"}
        await client.put(f"/deliveries/{USER}", json=_snapshot(now), headers=auth)

        ws_url = f"ws://127.0.0.1:8000/ws/{USER}?token={token}"
        async with websockets.connect(ws_url) as ws:
            print("server ack:", await ws.recv())

            for i, (status, eta) in enumerate([("driver_assigned", 25), ("out_for_delivery", 12), ("arriving", 2)]):
                r = await client.post(f"/events/{USER}", json=_update(now + timedelta(minutes=i + 1), status, eta), headers=auth)
                print("ingest:", r.json())
                print("forwarded:", json.loads(await ws.recv()))

            r = await client.get(f"/deliveries/{USER}", headers=auth)
            print("listing:", r.json())

if __name__ == '__main__':
    asyncio.run(run())
