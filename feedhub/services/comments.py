from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from feedhub.core.cursor import decode_cursor, encode_cursor
from feedhub.core.normalize import clean_str
from feedhub.core.settings import S
from feedhub.core.store import count_index, iter_index
from feedhub.core.tables import get_tables
from feedhub.core.time import now_ms
from feedhub.metrics import COMMENTS_CREATED
from feedhub.services import likes
from feedhub.services.permissions import check_feed_access, has_admin_permission

logger = logging.getLogger(__name__)

MAX_COMMENT_LEN = 5000
MAX_COMMENT_PAGE = 100


def comment_view(comment: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": comment["id"],
        "feed_id": comment["feed_id"],
        "user_id": comment["user_id"],
        "parent_comment_id": comment.get("parent_comment_id"),
        "content": comment["content"],
        "created_at": comment["created_at"],
        "updated_at": comment.get("updated_at"),
    }


def _clean_content(content: Optional[str]) -> str:
    text = clean_str(content, max_len=MAX_COMMENT_LEN)
    if not text:
        raise HTTPException(400, "Comment content required")
    return text


def _require_read(feed_id: str, user_sub: Optional[str], action: str) -> Dict[str, Any]:
    feed = get_tables().feeds.get(feed_id)
    if not feed:
        raise HTTPException(404, "Feed not found")
    if check_feed_access(feed, user_sub, "read"):
        return feed
    if not user_sub:
        raise HTTPException(401, "User not authenticated")
    raise HTTPException(403, f"User does not have permission to {action}")


def add_comment(
    user_sub: Optional[str],
    feed_id: str,
    content: str,
    parent_comment_id: Optional[str] = None,
) -> str:
    if not user_sub:
        raise HTTPException(401, "User not authenticated")
    _require_read(feed_id, user_sub, "comment on this feed")
    text = _clean_content(content)

    t = get_tables()
    if parent_comment_id:
        parent = t.comments.get(parent_comment_id)
        if not parent:
            raise HTTPException(404, "Parent comment not found")
        if parent["feed_id"] != feed_id:
            raise HTTPException(400, "Parent comment belongs to another feed")

    doc: Dict[str, Any] = {
        "feed_id": feed_id,
        "user_id": user_sub,
        "content": text,
        "created_at": now_ms(),
    }
    if parent_comment_id:
        doc["parent_comment_id"] = parent_comment_id
    else:
        doc["top_level_feed_id"] = feed_id
    comment_id = t.comments.insert(doc)
    COMMENTS_CREATED.labels(reply="true" if parent_comment_id else "false").inc()
    return comment_id


def update_comment(user_sub: Optional[str], comment_id: str, content: str) -> None:
    if not user_sub:
        raise HTTPException(401, "User not authenticated")
    t = get_tables()
    comment = t.comments.get(comment_id)
    if not comment:
        raise HTTPException(404, "Comment not found")
    if comment["user_id"] != user_sub:
        raise HTTPException(403, "User does not have permission to update this comment")
    t.comments.patch(comment_id, {"content": _clean_content(content), "updated_at": now_ms()})


def _replies(comment_id: str) -> List[Dict[str, Any]]:
    return list(iter_index(get_tables().comments, "parent", comment_id))


def _subtree(comment_id: str) -> List[str]:
    out: List[str] = []
    pending = [comment_id]
    while pending:
        current = pending.pop()
        for child in _replies(current):
            out.append(child["id"])
            pending.append(child["id"])
    return out


def delete_comment(user_sub: Optional[str], comment_id: str) -> int:
    """
    Delete a comment and its replies; returns the number of comments removed.

    Only direct replies are removed unless COMMENT_DELETE_RECURSIVE is set, in
    which case the whole descendant subtree goes.
    """
    if not user_sub:
        raise HTTPException(401, "User not authenticated")
    t = get_tables()
    comment = t.comments.get(comment_id)
    if not comment:
        raise HTTPException(404, "Comment not found")
    if comment["user_id"] != user_sub:
        if not t.feeds.get(comment["feed_id"]):
            raise HTTPException(404, "Feed not found")
        if not has_admin_permission(comment["feed_id"], user_sub):
            raise HTTPException(403, "User does not have permission to delete this comment")

    if S.comment_delete_recursive:
        doomed = _subtree(comment_id)
    else:
        doomed = [c["id"] for c in _replies(comment_id)]
    doomed.append(comment_id)

    for cid in doomed:
        t.comments.delete(cid)
        likes.purge_subject_likes("comment", cid)
    logger.info("comment %s deleted by %s (%d removed)", comment_id, user_sub, len(doomed))
    return len(doomed)


def get_comment(user_sub: Optional[str], comment_id: str) -> Optional[Dict[str, Any]]:
    comment = get_tables().comments.get(comment_id)
    if not comment:
        return None
    feed = get_tables().feeds.get(comment["feed_id"])
    if not feed:
        return None
    if not check_feed_access(feed, user_sub, "read"):
        if not user_sub:
            raise HTTPException(401, "User not authenticated")
        raise HTTPException(403, "User does not have permission to view this comment")
    return comment_view(comment)


def get_comments(
    user_sub: Optional[str],
    feed_id: str,
    *,
    parent_comment_id: Optional[str] = None,
    limit: Optional[int] = None,
    cursor: Optional[str] = None,
) -> Dict[str, Any]:
    _require_read(feed_id, user_sub, "view comments on this feed")
    t = get_tables()
    if parent_comment_id:
        parent = t.comments.get(parent_comment_id)
        if not parent or parent["feed_id"] != feed_id:
            raise HTTPException(404, "Parent comment not found")
        index, value = "parent", parent_comment_id
    else:
        index, value = "top_level", feed_id

    limit = max(1, min(limit or S.comment_page_default, MAX_COMMENT_PAGE))
    items, last_key = t.comments.query(
        index, value, descending=True, limit=limit, start_key=decode_cursor(cursor)
    )
    return {
        "page": [comment_view(c) for c in items],
        "is_done": last_key is None,
        "continue_cursor": encode_cursor(last_key),
    }


def get_comments_with_user_info(
    user_sub: Optional[str],
    feed_id: str,
    *,
    parent_comment_id: Optional[str] = None,
    limit: Optional[int] = None,
    cursor: Optional[str] = None,
) -> Dict[str, Any]:
    result = get_comments(user_sub, feed_id, parent_comment_id=parent_comment_id, limit=limit, cursor=cursor)
    comments = get_tables().comments
    for c in result["page"]:
        c["engagement"] = {
            "reply_count": count_index(comments, "parent", c["id"]),
            "like_count": likes.like_count("comment", c["id"]),
        }
        c["is_liked"] = likes.is_liked("comment", c["id"], user_sub)
        # author profiles are not resolved against the identity provider
        c["user_info"] = {"name": None, "image": None}
    return result
