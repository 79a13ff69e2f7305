from __future__ import annotations

import base64
import hashlib
import hmac
import json
from typing import Any


class SigningError(RuntimeError):
    pass


def _key_bytes(key: str) -> bytes:
    key = (key or "").strip()
    if not key:
        raise SigningError("signing key is empty (set ORCHESTRATOR_SIGNING_KEY)")
    return key.encode("utf-8")


def sign_bytes(payload: bytes, key: str) -> str:
    sig = hmac.new(_key_bytes(key), payload, hashlib.sha256).digest()
    return base64.urlsafe_b64encode(sig).decode("utf-8").rstrip("=")


def verify_bytes(payload: bytes, signature: str, key: str) -> bool:
    k = _key_bytes(key)
    padded = signature + "=" * (-len(signature) % 4)
    try:
        sig = base64.urlsafe_b64decode(padded.encode("utf-8"))
    except (ValueError, TypeError):
        return False
    expected = hmac.new(k, payload, hashlib.sha256).digest()
    return hmac.compare_digest(sig, expected)


def _to_jsonable(obj: Any) -> Any:
    if obj is None:
        return None
    if isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(x) for x in obj]
    return str(obj)


def canonical_json_bytes(obj: Any) -> bytes:
    jsonable = _to_jsonable(obj)
    return json.dumps(jsonable, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sha256_hex(obj: Any) -> str:
    return hashlib.sha256(canonical_json_bytes(obj)).hexdigest()
