from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from feedhub.auth.deps import get_authenticated_user_sub, get_optional_user_sub
from feedhub.services.audit import audit_event
from feedhub.services.likes import LikeKind, add_like, get_like_data, list_user_likes, remove_like

router = APIRouter(prefix="/v1", tags=["likes"])


def _like(kind: str, subject_id: str, user: str, req: Optional[Request]):
    like = add_like(kind, subject_id, user)
    audit_event("like_added", user, req, outcome="success", kind=kind, subject_id=subject_id)
    return {"ok": True, "like_id": like, **get_like_data(kind, subject_id, user)}


def _unlike(kind: str, subject_id: str, user: str, req: Optional[Request]):
    removed = remove_like(kind, subject_id, user)
    if removed:
        audit_event("like_removed", user, req, outcome="success", kind=kind, subject_id=subject_id)
    return {"ok": True, "removed": removed, **get_like_data(kind, subject_id, user)}


@router.post("/feeds/{subject_id}/likes")
def like_feed(subject_id: str, req: Request = None, user: str = Depends(get_authenticated_user_sub)):
    return _like("feed", subject_id, user, req)


@router.delete("/feeds/{subject_id}/likes")
def unlike_feed(subject_id: str, req: Request = None, user: str = Depends(get_authenticated_user_sub)):
    return _unlike("feed", subject_id, user, req)


@router.get("/feeds/{subject_id}/likes")
def feed_like_data(subject_id: str, user: Optional[str] = Depends(get_optional_user_sub)):
    return get_like_data("feed", subject_id, user)


@router.post("/comments/{subject_id}/likes")
def like_comment(subject_id: str, req: Request = None, user: str = Depends(get_authenticated_user_sub)):
    return _like("comment", subject_id, user, req)


@router.delete("/comments/{subject_id}/likes")
def unlike_comment(subject_id: str, req: Request = None, user: str = Depends(get_authenticated_user_sub)):
    return _unlike("comment", subject_id, user, req)


@router.get("/comments/{subject_id}/likes")
def comment_like_data(subject_id: str, user: Optional[str] = Depends(get_optional_user_sub)):
    return get_like_data("comment", subject_id, user)


@router.get("/me/likes")
def my_likes(kind: LikeKind = Query("feed"), user: str = Depends(get_authenticated_user_sub)):
    return {"kind": kind, "likes": list_user_likes(kind, user)}
