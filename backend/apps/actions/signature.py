"""
Slack request signing.

signature = "v0=" + hex(HMAC-SHA256(signing_secret, "v0:<timestamp>:<raw body>"))
"""
import hashlib
import hmac
import time
from typing import Optional, Union

from .errors import SignatureError


def compute_signature(signing_secret: str, timestamp: str, body: Union[bytes, str]) -> str:
    if isinstance(body, str):
        body = body.encode('utf-8')
    base = b"v0:" + timestamp.encode('utf-8') + b":" + body
    digest = hmac.new(signing_secret.encode('utf-8'), base, hashlib.sha256).hexdigest()
    return f"v0={digest}"


def verify_signature(signing_secret: str, timestamp: Optional[str], body: Union[bytes, str],
                     signature: Optional[str], max_age: int = 300, now: Optional[float] = None) -> None:
    """
    Raises:
        SignatureError: missing headers, stale timestamp, or mismatch
    """
    if not signing_secret:
        raise SignatureError("Signing secret is not configured")
    if not timestamp or not signature:
        raise SignatureError("Missing signature headers")

    try:
        ts = int(timestamp)
    except ValueError:
        raise SignatureError("Invalid timestamp")

    current = time.time() if now is None else now
    if abs(current - ts) > max_age:
        raise SignatureError("Request timestamp too old")

    expected = compute_signature(signing_secret, timestamp, body)
    if not hmac.compare_digest(expected, signature):
        raise SignatureError("Signature mismatch")
