from __future__ import annotations

import base64
import json
from typing import Any, Dict, Optional

from fastapi import HTTPException


def encode_cursor(last_evaluated_key: Optional[Dict[str, Any]]) -> Optional[str]:
    if not last_evaluated_key:
        return None
    raw = json.dumps(last_evaluated_key, separators=(",", ":"), default=str).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def decode_cursor(cursor: Optional[str]) -> Optional[Dict[str, Any]]:
    if not cursor:
        return None
    s = cursor.strip()
    pad = "=" * ((4 - (len(s) % 4)) % 4)
    try:
        raw = base64.urlsafe_b64decode((s + pad).encode("utf-8"))
        obj = json.loads(raw.decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        raise HTTPException(400, "Invalid cursor") from exc
    if not isinstance(obj, dict):
        raise HTTPException(400, "Invalid cursor")
    return obj


def encode_time_cursor(created_at: Optional[int]) -> Optional[str]:
    """Feed cursors are the literal creation timestamp of the last item."""
    if created_at is None:
        return None
    return str(int(created_at))


def decode_time_cursor(cursor: Optional[str]) -> Optional[int]:
    if cursor is None or cursor == "":
        return None
    try:
        return int(cursor.strip())
    except ValueError as exc:
        raise HTTPException(400, "Invalid cursor") from exc
