from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from feedhub.auth.deps import get_authenticated_user_sub, get_optional_user_sub
from feedhub.core.settings import S
from feedhub.core.tables import get_tables
from feedhub.models import CommentCreateReq, CommentUpdateReq
from feedhub.services.audit import audit_event
from feedhub.services.comments import (
    add_comment,
    delete_comment,
    get_comment,
    get_comments,
    get_comments_with_user_info,
    update_comment,
)

router = APIRouter(prefix="/v1", tags=["comments"])


@router.get("/feeds/{feed_id}/comments")
def list_feed_comments(
    feed_id: str,
    parent_comment_id: Optional[str] = Query(None),
    limit: int = Query(S.comment_page_default, ge=1, le=100),
    cursor: Optional[str] = Query(None),
    with_user_info: bool = Query(False),
    user: Optional[str] = Depends(get_optional_user_sub),
):
    fn = get_comments_with_user_info if with_user_info else get_comments
    return fn(user, feed_id, parent_comment_id=parent_comment_id, limit=limit, cursor=cursor)


@router.post("/feeds/{feed_id}/comments")
def create_comment(
    feed_id: str,
    body: CommentCreateReq,
    req: Request = None,
    user: str = Depends(get_authenticated_user_sub),
):
    comment_id = add_comment(user, feed_id, body.content, body.parent_comment_id)
    audit_event(
        "comment_created",
        user,
        req,
        outcome="success",
        feed_id=feed_id,
        comment_id=comment_id,
        parent_comment_id=body.parent_comment_id,
    )
    return {"ok": True, "comment_id": comment_id}


@router.get("/comments/{comment_id}")
def read_comment(comment_id: str, user: Optional[str] = Depends(get_optional_user_sub)):
    comment = get_comment(user, comment_id)
    if comment is None:
        raise HTTPException(404, "Comment not found")
    return {"comment": comment}


@router.get("/comments/{comment_id}/replies")
def list_replies(
    comment_id: str,
    limit: int = Query(S.comment_page_default, ge=1, le=100),
    cursor: Optional[str] = Query(None),
    with_user_info: bool = Query(False),
    user: Optional[str] = Depends(get_optional_user_sub),
):
    parent = get_tables().comments.get(comment_id)
    if not parent:
        raise HTTPException(404, "Comment not found")
    fn = get_comments_with_user_info if with_user_info else get_comments
    return fn(user, parent["feed_id"], parent_comment_id=comment_id, limit=limit, cursor=cursor)


@router.patch("/comments/{comment_id}")
def patch_comment(
    comment_id: str,
    body: CommentUpdateReq,
    req: Request = None,
    user: str = Depends(get_authenticated_user_sub),
):
    update_comment(user, comment_id, body.content)
    audit_event("comment_updated", user, req, outcome="success", comment_id=comment_id)
    return {"ok": True, "comment_id": comment_id}


@router.delete("/comments/{comment_id}")
def remove_comment(comment_id: str, req: Request = None, user: str = Depends(get_authenticated_user_sub)):
    removed = delete_comment(user, comment_id)
    audit_event("comment_deleted", user, req, outcome="success", comment_id=comment_id, removed=removed)
    return {"ok": True, "comment_id": comment_id, "removed": removed}
