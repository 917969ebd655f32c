import hashlib
import hmac
import json
import time

WEBHOOK_SECRET = "whsec_test_secret"


def sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    # Same scheme Stripe uses for the Stripe-Signature header.
    ts = int(time.time()) if timestamp is None else timestamp
    mac = hmac.new(secret.encode("utf-8"), f"{ts}.".encode("utf-8") + payload, hashlib.sha256)
    return f"t={ts},v1={mac.hexdigest()}"


def event_body(event_type: str, obj: dict, event_id: str = "evt_1") -> bytes:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }).encode("utf-8")
