from __future__ import annotations
import base64
import hashlib
import hmac
import json
import time
from typing import Dict, Optional

COOKIE_NAME = "token"

class SessionError(Exception):
    pass

def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))

def _hex_hmac_sha256(msg: str, key: str) -> str:
    return hmac.new(key.encode("utf-8"), msg.encode("utf-8"), hashlib.sha256).hexdigest()

def issue_session_token(user_id: str, name: str, secret: str, ttl: int, now: Optional[int] = None) -> str:
    """Sign ``{id, name, exp}`` into ``<base64url payload>.<hex signature>``."""
    issued = int(time.time()) if now is None else now
    payload = json.dumps({"id": user_id, "name": name, "exp": issued + ttl}, separators=(",", ":"), ensure_ascii=False)
    body = _b64encode(payload.encode("utf-8"))
    return f"{body}.{_hex_hmac_sha256(body, secret)}"

def verify_session_token(token: str, secret: str, now: Optional[int] = None) -> Dict[str, str]:
    if not token:
        raise SessionError("empty token")
    body, sep, signature = token.partition(".")
    if not sep or not body or not signature:
        raise SessionError("malformed token")

    if not hmac.compare_digest(_hex_hmac_sha256(body, secret), signature):
        raise SessionError("signature mismatch")

    try:
        payload = json.loads(_b64decode(body).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as e:
        raise SessionError(f"undecodable payload: {e}") from e
    if not isinstance(payload, dict) or not payload.get("id"):
        raise SessionError("user id missing")

    exp = payload.get("exp")
    if not isinstance(exp, int):
        raise SessionError("exp invalid")
    current = int(time.time()) if now is None else now
    if current >= exp:
        raise SessionError("token expired")

    return {"id": str(payload["id"]), "name": str(payload.get("name") or "")}

def extract_session_token(request) -> Optional[str]:
    return request.cookies.get(COOKIE_NAME)
