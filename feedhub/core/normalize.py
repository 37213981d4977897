from __future__ import annotations

import re
from typing import Optional

from fastapi import HTTPException

_SLUG_STRIP = re.compile(r"[^\w\s-]", re.ASCII)
_SLUG_SPACES = re.compile(r"\s+")
_SLUG_DASHES = re.compile(r"--+")
_LANGUAGE_TAG = re.compile(r"^[A-Za-z]{2,8}(-[A-Za-z0-9]{1,8})*$")


def client_ip_from_request(req) -> str:
    xff = req.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    client = getattr(req, "client", None)
    return client.host if client else "0.0.0.0"


def generate_slug(title: str) -> str:
    s = (title or "").lower()
    s = _SLUG_STRIP.sub("", s)
    s = _SLUG_SPACES.sub("-", s)
    s = _SLUG_DASHES.sub("-", s)
    return s.strip()


def clean_str(value: Optional[str], *, max_len: Optional[int] = None) -> Optional[str]:
    if value is None:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    if max_len is not None and len(trimmed) > max_len:
        raise HTTPException(400, f"Value too long (max {max_len})")
    return trimmed


def normalize_language(value: Optional[str]) -> Optional[str]:
    tag = clean_str(value, max_len=35)
    if tag is None:
        return None
    if not _LANGUAGE_TAG.match(tag):
        raise HTTPException(400, "Invalid language tag")
    return tag


def normalize_mime_type(value: Optional[str]) -> str:
    # drop parameters such as "; charset=binary"
    mime = (value or "").split(";", 1)[0].strip().lower()
    if not mime or "/" not in mime:
        raise HTTPException(400, "Invalid MIME type")
    return mime
