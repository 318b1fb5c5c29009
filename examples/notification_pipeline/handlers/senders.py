"""Channel senders with simulated latency and transient failures.

All senders are registered on the ``deliver`` action, which runs in
parallel mode; each one only takes part when its channel was requested.
"""

import asyncio
import random
from datetime import UTC, datetime

from actionpipe import Controller


def wants(channel: str):
    """Payload predicate selecting requests that include ``channel``."""
    return lambda payload: channel in payload.get("channels", [])


async def send_email(payload: dict, controller: Controller) -> dict:
    # Simulate SMTP latency
    await asyncio.sleep(0.05)
    if random.random() < 0.1:
        raise ConnectionError(f"SMTP connection failed for {payload['contacts']['email']}")
    return {"channel": "email", "user_id": payload["user_id"], "delivered_at": datetime.now(UTC).isoformat()}


async def send_sms(payload: dict, controller: Controller) -> dict:
    await asyncio.sleep(0.03)
    text = payload["message"][:160]
    return {
        "channel": "sms",
        "user_id": payload["user_id"],
        "segments": 1 + len(text) // 160,
        "delivered_at": datetime.now(UTC).isoformat(),
    }


async def send_push(payload: dict, controller: Controller) -> dict:
    await asyncio.sleep(0.01)
    return {"channel": "push", "user_id": payload["user_id"], "delivered_at": datetime.now(UTC).isoformat()}
