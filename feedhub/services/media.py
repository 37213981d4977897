from __future__ import annotations

import logging
import mimetypes
import uuid
from typing import Any, Dict, FrozenSet, Optional

from botocore.exceptions import ClientError
from fastapi import HTTPException

from feedhub.core.aws import s3_client
from feedhub.core.normalize import clean_str, normalize_mime_type
from feedhub.core.settings import S
from feedhub.core.tables import get_tables
from feedhub.core.time import now_ms
from feedhub.metrics import UPLOAD_TARGETS_ISSUED
from feedhub.services.permissions import require_feed_permission

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES: FrozenSet[str] = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/gif",
})
ALLOWED_AUDIO_TYPES: FrozenSet[str] = frozenset({
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "audio/ogg",
    "audio/aac",
})
ALLOWED_TYPES: FrozenSet[str] = ALLOWED_IMAGE_TYPES | ALLOWED_AUDIO_TYPES


def _s3():
    return s3_client()


def _bucket() -> str:
    if not S.media_bucket:
        raise HTTPException(500, "media bucket not configured")
    return S.media_bucket


def public_url(key: Optional[str]) -> Optional[str]:
    if not key:
        return None
    return f"{S.media_public_domain}/{key}"


def signed_url(key: str, ttl_seconds: Optional[int] = None) -> str:
    try:
        return _s3().generate_presigned_url(
            "get_object",
            Params={"Bucket": _bucket(), "Key": key},
            ExpiresIn=ttl_seconds or S.media_url_ttl_seconds,
        )
    except ClientError as exc:
        raise HTTPException(500, f"s3 error: {exc}") from exc


# -----------------------------
# Validation
# -----------------------------
def _limits(purpose: str) -> tuple[FrozenSet[str], int]:
    if purpose == "avatar":
        return ALLOWED_IMAGE_TYPES, S.avatar_max_bytes
    if purpose == "feed_cover":
        return ALLOWED_IMAGE_TYPES, S.media_max_bytes
    if purpose == "feed_file":
        return ALLOWED_TYPES, S.media_max_bytes
    raise HTTPException(400, f"Unsupported upload purpose: {purpose}")


def validate_file(
    mime_type: str,
    size: int,
    *,
    allowed: FrozenSet[str] = ALLOWED_TYPES,
    max_bytes: Optional[int] = None,
) -> str:
    mime = normalize_mime_type(mime_type)
    max_bytes = S.media_max_bytes if max_bytes is None else max_bytes
    if mime not in allowed:
        raise HTTPException(
            400, f"Unsupported file type: {mime}. Allowed types: {', '.join(sorted(allowed))}"
        )
    if size is None or int(size) < 0:
        raise HTTPException(400, "Invalid file size")
    if int(size) > max_bytes:
        raise HTTPException(
            400, f"File size {int(size)} bytes exceeds maximum allowed size of {max_bytes} bytes"
        )
    return mime


# -----------------------------
# Keys
# -----------------------------
def feed_key_prefix(feed_id: str) -> str:
    return f"feeds/{feed_id}/"


def avatar_key_prefix(user_sub: str) -> str:
    return f"avatars/{user_sub}/"


def _new_key(prefix: str, mime: str) -> str:
    ext = mimetypes.guess_extension(mime) or ""
    return f"{prefix}{uuid.uuid4().hex}{ext}"


def _check_key(object_key: str, prefix: str) -> str:
    key = (object_key or "").strip()
    if not key.startswith(prefix) or ".." in key or len(key) <= len(prefix):
        raise HTTPException(400, "Invalid object key")
    return key


# -----------------------------
# Upload targets
# -----------------------------
def create_upload_target(
    user_sub: Optional[str],
    *,
    purpose: str,
    mime_type: str,
    size: int,
    feed_id: Optional[str] = None,
) -> Dict[str, Any]:
    if not user_sub:
        raise HTTPException(401, "Authentication required")
    allowed, max_bytes = _limits(purpose)
    mime = validate_file(mime_type, size, allowed=allowed, max_bytes=max_bytes)

    if purpose == "avatar":
        key = _new_key(avatar_key_prefix(user_sub), mime)
    else:
        if not feed_id:
            raise HTTPException(400, "feed_id required")
        require_feed_permission(feed_id, user_sub, "edit", action="upload files to this feed")
        key = _new_key(feed_key_prefix(feed_id), mime)

    ttl = S.media_upload_ttl_seconds
    try:
        url = _s3().generate_presigned_url(
            "put_object",
            Params={"Bucket": _bucket(), "Key": key, "ContentType": mime},
            ExpiresIn=ttl,
        )
    except ClientError as exc:
        raise HTTPException(500, f"s3 error: {exc}") from exc
    UPLOAD_TARGETS_ISSUED.labels(purpose=purpose).inc()
    return {"upload_url": url, "object_key": key, "content_type": mime, "expires_in": ttl}


def _head_validated(key: str, allowed: FrozenSet[str], max_bytes: int) -> Dict[str, Any]:
    bucket = _bucket()
    try:
        head = _s3().head_object(Bucket=bucket, Key=key)
    except ClientError as exc:
        code = str(exc.response.get("Error", {}).get("Code", ""))
        if code in ("404", "NoSuchKey", "NotFound"):
            raise HTTPException(404, "Uploaded object not found") from exc
        raise HTTPException(500, f"s3 error: {exc}") from exc

    size = int(head.get("ContentLength", 0))
    try:
        mime = validate_file(head.get("ContentType", ""), size, allowed=allowed, max_bytes=max_bytes)
    except HTTPException:
        try:
            _s3().delete_object(Bucket=bucket, Key=key)
        except ClientError:
            logger.warning("could not delete rejected object %s", key)
        raise
    return {"size": size, "mime_type": mime}


def set_feed_cover(user_sub: Optional[str], feed_id: str, object_key: str) -> Dict[str, Any]:
    if not user_sub:
        raise HTTPException(401, "Authentication required")
    require_feed_permission(feed_id, user_sub, "edit", action="update this feed")
    key = _check_key(object_key, feed_key_prefix(feed_id))
    _head_validated(key, ALLOWED_IMAGE_TYPES, S.media_max_bytes)
    get_tables().feeds.patch(feed_id, {"cover_key": key, "updated_at": now_ms()})
    return {"cover_key": key, "cover_url": public_url(key)}


def register_feed_file(
    user_sub: Optional[str],
    feed_id: str,
    object_key: str,
    file_name: Optional[str] = None,
) -> Dict[str, Any]:
    if not user_sub:
        raise HTTPException(401, "Authentication required")
    require_feed_permission(feed_id, user_sub, "edit", action="upload files to this feed")
    key = _check_key(object_key, feed_key_prefix(feed_id))
    info = _head_validated(key, ALLOWED_TYPES, S.media_max_bytes)
    return {
        "file_key": key,
        "url": public_url(key),
        "file_name": clean_str(file_name, max_len=255) or key.rsplit("/", 1)[-1],
        "mime_type": info["mime_type"],
        "size": info["size"],
    }


# -----------------------------
# Profiles
# -----------------------------
def _profile_view(user_sub: str, profile: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    avatar_key = (profile or {}).get("avatar_key")
    return {
        "user_sub": user_sub,
        "avatar_key": avatar_key,
        "avatar_url": public_url(avatar_key),
        "updated_at": (profile or {}).get("updated_at"),
    }


def get_profile(user_sub: str) -> Dict[str, Any]:
    return _profile_view(user_sub, get_tables().profiles.get(user_sub))


def set_profile_avatar(user_sub: Optional[str], object_key: str) -> Dict[str, Any]:
    if not user_sub:
        raise HTTPException(401, "Authentication required")
    key = _check_key(object_key, avatar_key_prefix(user_sub))
    _head_validated(key, ALLOWED_IMAGE_TYPES, S.avatar_max_bytes)
    profile = {"avatar_key": key, "updated_at": now_ms()}
    get_tables().profiles.insert(profile, doc_id=user_sub)
    return _profile_view(user_sub, profile)
