import hashlib
import hmac
import json
import time


def canonical_json_bytes(payload) -> bytes:
    return json.dumps(
        payload,
        separators=(",", ":"),
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")


def hmac_sha256_hex(secret: str, body_bytes: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body_bytes, hashlib.sha256).hexdigest()


def stripe_signature(secret: str, body_bytes: bytes, timestamp: int | None = None) -> str:
    """Stripe-Signature value: t=<unix>,v1=HMAC_SHA256(secret, "<t>.<body>")."""
    t = int(timestamp if timestamp is not None else time.time())
    signed = f"{t}.".encode("utf-8") + body_bytes
    return f"t={t},v1={hmac_sha256_hex(secret, signed)}"


def stripe_signature_header(secret: str, body_bytes: bytes, timestamp: int | None = None) -> dict[str, str]:
    return {"Stripe-Signature": stripe_signature(secret, body_bytes, timestamp)}
