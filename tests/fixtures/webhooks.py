"""Helpers for building signed webhook requests."""

import time
from datetime import datetime, timezone

from nexora.webhooks import build_webhook


def signed_headers(body: str, secret: str, timestamp: int | None = None, msg_id: str = "msg_1") -> dict[str, str]:
    timestamp = int(time.time()) if timestamp is None else timestamp
    signature = build_webhook(secret).sign(
        msg_id, datetime.fromtimestamp(timestamp, tz=timezone.utc), body
    )
    return {
        "webhook-id": msg_id,
        "webhook-timestamp": str(timestamp),
        "webhook-signature": signature,
    }
