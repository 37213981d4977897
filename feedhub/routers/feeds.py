from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from feedhub.auth.deps import get_authenticated_user_sub, get_optional_user_sub
from feedhub.core.settings import S
from feedhub.models import FeedCreateReq, FeedRoleName, FeedUpdateReq
from feedhub.services.audit import audit_event
from feedhub.services.feeds import (
    create_feed,
    delete_feed,
    feed_view,
    get_feed,
    get_feed_by_slug,
    unified_feed_query,
    update_feed,
)
from feedhub.services.permissions import has_permission

router = APIRouter(prefix="/v1/feeds", tags=["feeds"])


@router.get("")
def list_feeds(
    feed_ids: Optional[List[str]] = Query(None, description="Explicit feed ids (repeatable)"),
    type: Optional[str] = Query(None),
    language: Optional[str] = Query(None),
    public_only: bool = Query(False),
    slug: Optional[str] = Query(None),
    limit: int = Query(S.feed_page_default, ge=1, le=S.feed_page_max),
    cursor: Optional[str] = Query(None, description="created_at of the last feed of the previous page"),
    user_id: Optional[str] = Query(None),
    include_count: bool = Query(True),
    user: Optional[str] = Depends(get_optional_user_sub),
):
    result = unified_feed_query(
        user,
        feed_ids=feed_ids,
        type=type,
        language=language,
        public_only=public_only,
        slug=slug,
        limit=limit,
        cursor=cursor,
        user_id=user_id,
        with_count=include_count,
    )
    return {
        "feeds": [feed_view(f) for f in result["feeds"]],
        "next_cursor": result["next_cursor"],
        "total_count": result["total_count"],
    }


@router.post("")
def create_new_feed(body: FeedCreateReq, req: Request = None, user: str = Depends(get_authenticated_user_sub)):
    feed_id = create_feed(
        user,
        title=body.title,
        content=body.content,
        type=body.type,
        language=body.language,
        public=body.public,
        meta=body.meta,
    )
    audit_event("feed_created", user, req, outcome="success", feed_id=feed_id)
    return {"ok": True, "feed_id": feed_id}


@router.get("/by-slug/{slug}")
def read_feed_by_slug(
    slug: str,
    public_only: bool = Query(False),
    user: Optional[str] = Depends(get_optional_user_sub),
):
    return {"feed": feed_view(get_feed_by_slug(slug, user, public_only=public_only))}


@router.get("/{feed_id}")
def read_feed(feed_id: str, user: Optional[str] = Depends(get_optional_user_sub)):
    return {"feed": feed_view(get_feed(feed_id, user))}


@router.patch("/{feed_id}")
def patch_feed(
    feed_id: str,
    body: FeedUpdateReq,
    req: Request = None,
    user: str = Depends(get_authenticated_user_sub),
):
    changes = body.model_dump(exclude_unset=True)
    update_feed(user, feed_id, changes)
    audit_event("feed_updated", user, req, outcome="success", feed_id=feed_id, fields=sorted(changes))
    return {"ok": True, "feed_id": feed_id}


@router.delete("/{feed_id}")
def remove_feed(feed_id: str, req: Request = None, user: str = Depends(get_authenticated_user_sub)):
    delete_feed(user, feed_id)
    audit_event("feed_deleted", user, req, outcome="success", feed_id=feed_id)
    return {"ok": True, "feed_id": feed_id}


@router.get("/{feed_id}/permission")
def check_permission(
    feed_id: str,
    role: FeedRoleName = Query("read"),
    user: Optional[str] = Depends(get_optional_user_sub),
):
    return {"feed_id": feed_id, "role": role, "allowed": has_permission(feed_id, user, role)}
