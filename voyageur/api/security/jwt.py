"""
HS256 verification for Supabase access tokens.
"""
import time
import hmac
import json
import base64
import hashlib
from typing import Dict, Any, Optional


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64url_decode(data: str) -> bytes:
    padding = '=' * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(secret: str, signing_input: bytes) -> bytes:
    return hmac.new(secret.encode(), signing_input, hashlib.sha256).digest()


def create_token(payload: Dict[str, Any], secret: str, exp_seconds: int = 3600) -> str:
    """Issue an HS256 token; used by tests and local tooling."""
    header = {"alg": "HS256", "typ": "JWT"}
    now = int(time.time())
    body = dict(payload)
    body.setdefault("iat", now)
    body.setdefault("exp", now + exp_seconds)

    header_b64 = _b64url_encode(json.dumps(header, separators=(",", ":")).encode())
    payload_b64 = _b64url_encode(json.dumps(body, separators=(",", ":")).encode())
    signature = _sign(secret, f"{header_b64}.{payload_b64}".encode())
    return f"{header_b64}.{payload_b64}.{_b64url_encode(signature)}"


def verify_token(token: str, secret: str, now: Optional[int] = None) -> Dict[str, Any]:
    """
    Check signature, algorithm and expiry and return the claims.

    Raises:
        ValueError: with the reason the token was rejected
    """
    if not secret:
        raise ValueError("Token verification is not configured")
    try:
        header_b64, payload_b64, sig_b64 = token.split(".")
    except ValueError:
        raise ValueError("Invalid token format")

    try:
        header = json.loads(_b64url_decode(header_b64).decode())
    except (ValueError, UnicodeDecodeError):
        raise ValueError("Invalid token header")
    if header.get("alg") != "HS256":
        raise ValueError("Unsupported token algorithm")

    expected_sig = _sign(secret, f"{header_b64}.{payload_b64}".encode())
    if not hmac.compare_digest(expected_sig, _b64url_decode(sig_b64)):
        raise ValueError("Invalid token signature")

    payload = json.loads(_b64url_decode(payload_b64).decode())
    current = int(now if now is not None else time.time())
    if current >= int(payload.get("exp", 0)):
        raise ValueError("Token expired")
    return payload
