from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from feedhub.core.store import DuplicateDocument, iter_index
from feedhub.core.tables import get_tables
from feedhub.core.time import now_ms
from feedhub.services.permissions import (
    ROLE_RANK,
    collaborator_id,
    get_collaborator,
    has_admin_permission,
    is_member,
)

logger = logging.getLogger(__name__)


def _check_role(role: str) -> str:
    if role not in ROLE_RANK:
        raise HTTPException(400, "role must be one of: read, edit, admin")
    return role


def _require_admin(user_sub: Optional[str], feed_id: str, action: str) -> Dict[str, Any]:
    if not user_sub:
        raise HTTPException(401, "Authentication required")
    feed = get_tables().feeds.get(feed_id)
    if not feed:
        raise HTTPException(404, "Feed not found")
    if not has_admin_permission(feed_id, user_sub):
        raise HTTPException(403, f"You do not have permission to {action}")
    return feed


def add_collaborator(user_sub: Optional[str], feed_id: str, user_id: str, role: str) -> str:
    _check_role(role)
    feed = _require_admin(user_sub, feed_id, "add collaborators to this feed")
    user_id = (user_id or "").strip()
    if not user_id:
        raise HTTPException(400, "user_id required")
    if user_id == feed.get("created_by"):
        raise HTTPException(400, "The feed owner cannot be added as a collaborator")

    doc_id = collaborator_id(feed_id, user_id)
    try:
        get_tables().collaborators.insert(
            {"feed_id": feed_id, "user_id": user_id, "role": role, "added_at": now_ms()},
            doc_id=doc_id,
            unique=True,
        )
    except DuplicateDocument as exc:
        raise HTTPException(409, "User is already a collaborator on this feed") from exc
    logger.info("collaborator %s added to feed %s as %s by %s", user_id, feed_id, role, user_sub)
    return doc_id


def remove_collaborator(user_sub: Optional[str], feed_id: str, user_id: str) -> str:
    _require_admin(user_sub, feed_id, "remove collaborators from this feed")
    if user_id == user_sub:
        raise HTTPException(
            400,
            "You cannot remove yourself as a collaborator from this feed. "
            "Delete the feed instead if you are the owner.",
        )
    collaborator = get_collaborator(feed_id, user_id)
    if not collaborator:
        raise HTTPException(404, "User is not a collaborator on this feed")
    get_tables().collaborators.delete(collaborator["id"])
    return collaborator["id"]


def update_collaborator_role(user_sub: Optional[str], feed_id: str, user_id: str, role: str) -> str:
    _check_role(role)
    _require_admin(user_sub, feed_id, "update collaborator roles for this feed")
    collaborator = get_collaborator(feed_id, user_id)
    if not collaborator:
        raise HTTPException(404, "User is not a collaborator on this feed")
    get_tables().collaborators.patch(collaborator["id"], {"role": role})
    return collaborator["id"]


def list_collaborators(user_sub: Optional[str], feed_id: str) -> List[Dict[str, Any]]:
    if not user_sub:
        raise HTTPException(401, "Authentication required")
    t = get_tables()
    feed = t.feeds.get(feed_id)
    if not feed:
        raise HTTPException(404, "Feed not found")
    if not is_member(feed, user_sub):
        raise HTTPException(403, "You do not have permission to view collaborators for this feed")

    # identity details live with the auth provider, not in the store
    return [
        {
            "id": c["id"],
            "feed_id": c["feed_id"],
            "user_id": c["user_id"],
            "role": c["role"],
            "added_at": c["added_at"],
            "user": None,
        }
        for c in iter_index(t.collaborators, "feed_id", feed_id, descending=False)
    ]
