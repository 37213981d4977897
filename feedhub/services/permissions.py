from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException

from feedhub.core.tables import get_tables

ROLE_RANK: Dict[str, int] = {
    "read": 1,
    "edit": 2,
    "admin": 3,
}


def collaborator_id(feed_id: str, user_id: str) -> str:
    return f"{feed_id}#{user_id}"


def get_collaborator(feed_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    return get_tables().collaborators.get(collaborator_id(feed_id, user_id))


def role_satisfies(role: Optional[str], required_role: str) -> bool:
    if role not in ROLE_RANK:
        return False
    return ROLE_RANK[role] >= ROLE_RANK[required_role]


def check_feed_access(feed: Optional[Dict[str, Any]], user_sub: Optional[str], required_role: str = "read") -> bool:
    if required_role not in ROLE_RANK:
        raise ValueError(f"unknown role: {required_role}")
    if not feed:
        return False
    if feed.get("public") and required_role == "read":
        return True
    if not user_sub:
        return False
    if feed.get("created_by") == user_sub:
        return True
    collaborator = get_collaborator(feed["id"], user_sub)
    if not collaborator:
        return False
    return role_satisfies(collaborator.get("role"), required_role)


def has_permission(feed_id: str, user_sub: Optional[str], required_role: str = "read") -> bool:
    feed = get_tables().feeds.get(feed_id)
    return check_feed_access(feed, user_sub, required_role)


def has_admin_permission(feed_id: str, user_sub: Optional[str]) -> bool:
    if not user_sub:
        return False
    feed = get_tables().feeds.get(feed_id)
    if not feed:
        return False
    if feed.get("created_by") == user_sub:
        return True
    collaborator = get_collaborator(feed_id, user_sub)
    return bool(collaborator) and collaborator.get("role") == "admin"


def is_member(feed: Dict[str, Any], user_sub: Optional[str]) -> bool:
    """Creator or collaborator of any role."""
    if not user_sub:
        return False
    if feed.get("created_by") == user_sub:
        return True
    return get_collaborator(feed["id"], user_sub) is not None


def require_feed_permission(
    feed_id: str,
    user_sub: Optional[str],
    required_role: str = "read",
    *,
    action: str = "access this feed",
) -> Dict[str, Any]:
    feed = get_tables().feeds.get(feed_id)
    if not feed:
        raise HTTPException(404, "Feed not found")
    if check_feed_access(feed, user_sub, required_role):
        return feed
    if not user_sub:
        raise HTTPException(401, "Authentication required")
    raise HTTPException(403, f"You do not have permission to {action}")
