"""
Like ledger for feeds and comments.

Each kind has its own collection of ``(subject, user)`` records. The record id
is derived from the pair, so the store itself rejects a second record for the
same pair; adding is idempotent and returns the existing id.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import HTTPException

from feedhub.core.store import Collection, DuplicateDocument, count_index, iter_index
from feedhub.core.tables import get_tables
from feedhub.core.time import now_ms
from feedhub.metrics import LIKES_ADDED
from feedhub.services.permissions import check_feed_access

logger = logging.getLogger(__name__)

LikeKind = Literal["feed", "comment"]


def _ledger(kind: str) -> Collection:
    t = get_tables()
    if kind == "feed":
        return t.feed_likes
    if kind == "comment":
        return t.comment_likes
    raise HTTPException(400, f"Unknown like kind: {kind}")


def like_id(subject_id: str, user_sub: str) -> str:
    return f"{subject_id}#{user_sub}"


def _require_subject_access(kind: str, subject_id: str, user_sub: str) -> None:
    t = get_tables()
    if kind == "comment":
        comment = t.comments.get(subject_id)
        if not comment:
            raise HTTPException(404, "Comment not found")
        feed_id = comment["feed_id"]
    else:
        feed_id = subject_id
    feed = t.feeds.get(feed_id)
    if not feed:
        raise HTTPException(404, "Feed not found")
    if not check_feed_access(feed, user_sub, "read"):
        raise HTTPException(403, f"User does not have permission to like this {kind}")


def add_like(kind: str, subject_id: str, user_sub: Optional[str]) -> str:
    if not user_sub:
        raise HTTPException(401, "User not authenticated")
    ledger = _ledger(kind)
    _require_subject_access(kind, subject_id, user_sub)

    doc_id = like_id(subject_id, user_sub)
    if ledger.get(doc_id):
        return doc_id
    try:
        ledger.insert(
            {"subject_id": subject_id, "user_id": user_sub, "created_at": now_ms()},
            doc_id=doc_id,
            unique=True,
        )
    except DuplicateDocument:
        # a concurrent request recorded the same like
        return doc_id
    LIKES_ADDED.labels(kind=kind).inc()
    return doc_id


def remove_like(kind: str, subject_id: str, user_sub: Optional[str]) -> bool:
    if not user_sub:
        raise HTTPException(401, "User not authenticated")
    ledger = _ledger(kind)
    doc_id = like_id(subject_id, user_sub)
    if not ledger.get(doc_id):
        return False
    ledger.delete(doc_id)
    return True


def like_count(kind: str, subject_id: str) -> int:
    return count_index(_ledger(kind), "subject", subject_id)


def is_liked(kind: str, subject_id: str, user_sub: Optional[str]) -> bool:
    if not user_sub:
        return False
    return _ledger(kind).get(like_id(subject_id, user_sub)) is not None


def get_like_data(kind: str, subject_id: str, user_sub: Optional[str]) -> Dict[str, Any]:
    return {
        "is_liked": is_liked(kind, subject_id, user_sub),
        "like_count": like_count(kind, subject_id),
    }


def list_user_likes(kind: str, user_sub: Optional[str]) -> List[Dict[str, Any]]:
    if not user_sub:
        return []
    return [
        {"like_id": it["id"], "subject_id": it["subject_id"], "created_at": it["created_at"]}
        for it in iter_index(_ledger(kind), "user", user_sub)
    ]


def purge_subject_likes(kind: str, subject_id: str) -> int:
    ledger = _ledger(kind)
    rows = list(iter_index(ledger, "subject", subject_id))
    for it in rows:
        ledger.delete(it["id"])
    return len(rows)
