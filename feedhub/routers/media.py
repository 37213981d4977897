from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from feedhub.auth.deps import get_authenticated_user_sub
from feedhub.models import FeedFileReq, ObjectKeyReq, UploadUrlReq
from feedhub.services.audit import audit_event
from feedhub.services.media import (
    create_upload_target,
    get_profile,
    register_feed_file,
    set_feed_cover,
    set_profile_avatar,
)

router = APIRouter(prefix="/v1", tags=["media"])


@router.post("/media/upload-url")
def upload_url(body: UploadUrlReq, req: Request = None, user: str = Depends(get_authenticated_user_sub)):
    target = create_upload_target(
        user,
        purpose=body.purpose,
        mime_type=body.mime_type,
        size=body.size,
        feed_id=body.feed_id,
    )
    audit_event(
        "upload_url_issued",
        user,
        req,
        outcome="success",
        purpose=body.purpose,
        feed_id=body.feed_id,
        object_key=target["object_key"],
    )
    return target


@router.put("/feeds/{feed_id}/cover")
def put_feed_cover(
    feed_id: str,
    body: ObjectKeyReq,
    req: Request = None,
    user: str = Depends(get_authenticated_user_sub),
):
    out = set_feed_cover(user, feed_id, body.object_key)
    audit_event("feed_cover_set", user, req, outcome="success", feed_id=feed_id, object_key=out["cover_key"])
    return {"ok": True, **out}


@router.post("/feeds/{feed_id}/files")
def add_feed_file(
    feed_id: str,
    body: FeedFileReq,
    req: Request = None,
    user: str = Depends(get_authenticated_user_sub),
):
    out = register_feed_file(user, feed_id, body.object_key, body.file_name)
    audit_event("feed_file_registered", user, req, outcome="success", feed_id=feed_id, object_key=out["file_key"])
    return {"ok": True, "file": out}


@router.get("/profile")
def read_profile(user: str = Depends(get_authenticated_user_sub)):
    return {"profile": get_profile(user)}


@router.put("/profile/avatar")
def put_avatar(body: ObjectKeyReq, req: Request = None, user: str = Depends(get_authenticated_user_sub)):
    profile = set_profile_avatar(user, body.object_key)
    audit_event("avatar_set", user, req, outcome="success", object_key=profile["avatar_key"])
    return {"ok": True, "profile": profile}
