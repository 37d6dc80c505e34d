"""
Webhook signature verification (shared-secret HMAC-SHA256, constant-time compare).

Payment gateway: header "t=<unix>,v1=<hex>[,v1=<hex>...]", signed payload "{t}.{raw_body}".
Repository host: header "sha256=<hex>" over the raw body.
"""
import hashlib
import hmac
import time

from sitepress.services.generation.errors import SignatureVerificationError


def _hmac_hex(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def sign_payment_payload(secret: str, body: bytes, timestamp: int) -> str:
    """Build a header value the way the gateway does (used by tests and local tooling)."""
    signed = f"{timestamp}.".encode("utf-8") + body
    return f"t={timestamp},v1={_hmac_hex(secret, signed)}"


def verify_payment_signature(
    body: bytes,
    header: str | None,
    secret: str,
    tolerance_seconds: int,
    now: float | None = None,
) -> int:
    """Returns the signed timestamp; raises SignatureVerificationError otherwise."""
    if not header:
        raise SignatureVerificationError("missing signature header")
    timestamp = None
    signatures: list[str] = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    if timestamp is None or not timestamp.isdigit() or not signatures:
        raise SignatureVerificationError("malformed signature header")

    now = time.time() if now is None else now
    if tolerance_seconds > 0 and abs(now - int(timestamp)) > tolerance_seconds:
        raise SignatureVerificationError("signature timestamp outside tolerance")

    expected = _hmac_hex(secret, f"{timestamp}.".encode("utf-8") + body)
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise SignatureVerificationError("signature mismatch")
    return int(timestamp)


def verify_repository_signature(body: bytes, header: str | None, secret: str) -> None:
    if not header:
        raise SignatureVerificationError("missing signature header")
    scheme, _, digest = header.partition("=")
    if scheme != "sha256" or not digest:
        raise SignatureVerificationError("malformed signature header")
    if not hmac.compare_digest(_hmac_hex(secret, body), digest):
        raise SignatureVerificationError("signature mismatch")
