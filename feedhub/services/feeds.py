from __future__ import annotations

import logging
from itertools import islice
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from fastapi import HTTPException

from feedhub.core.cursor import decode_time_cursor, encode_time_cursor
from feedhub.core.normalize import clean_str, generate_slug, normalize_language
from feedhub.core.settings import S
from feedhub.core.store import DuplicateDocument, iter_index, new_doc_id
from feedhub.core.tables import get_tables
from feedhub.core.time import now_ms
from feedhub.metrics import FEEDS_CREATED
from feedhub.services.media import public_url
from feedhub.services.permissions import check_feed_access, is_member, require_feed_permission

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Feed"
DEFAULT_TYPE = "article"
MAX_TITLE_LEN = 200
MAX_TYPE_LEN = 64

PUBLIC_PK = "PUBLIC"
INTERNAL_FIELDS = ("public_pk", "public_lang_pk")


def _index_attrs(public: bool, language: Optional[str]) -> Dict[str, Optional[str]]:
    # sparse GSI keys: present only while the feed is public
    return {
        "public_pk": PUBLIC_PK if public else None,
        "public_lang_pk": f"{PUBLIC_PK}#{language}" if public and language else None,
    }


def feed_view(feed: Dict[str, Any]) -> Dict[str, Any]:
    out = {k: v for k, v in feed.items() if k not in INTERNAL_FIELDS}
    out.setdefault("language", None)
    out.setdefault("meta", None)
    out.setdefault("cover_key", None)
    out.setdefault("updated_at", None)
    out["cover_url"] = public_url(feed.get("cover_key"))
    return out


# -----------------------------
# Slugs
# -----------------------------
def _claim_slug(slug: str, feed_id: str) -> bool:
    slugs = get_tables().slugs
    try:
        slugs.insert({"feed_id": feed_id}, doc_id=slug, unique=True)
        return True
    except DuplicateDocument:
        claim = slugs.get(slug)
        return bool(claim) and claim.get("feed_id") == feed_id


def release_slug(slug: Optional[str], feed_id: str) -> None:
    if not slug:
        return
    slugs = get_tables().slugs
    claim = slugs.get(slug)
    if claim and claim.get("feed_id") == feed_id:
        slugs.delete(slug)


def ensure_unique_slug(base_slug: str, feed_id: str) -> str:
    """Claim the first free slug of base, base-1, base-2, ... for ``feed_id``.

    A slug the feed already holds counts as free. Claims are conditional
    writes keyed by the slug, so concurrent callers never share one.
    """
    slug = base_slug
    counter = 1
    while not _claim_slug(slug, feed_id):
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug


def slug_for_title(title: str, feed_id: str) -> str:
    base = generate_slug(title)
    if not base:
        raise HTTPException(400, "Invalid slug: title must contain letters or digits")
    return ensure_unique_slug(base, feed_id)


# -----------------------------
# CRUD
# -----------------------------
def _clean_type(value: Optional[str]) -> str:
    return clean_str(value, max_len=MAX_TYPE_LEN) or DEFAULT_TYPE


def create_feed(
    user_sub: str,
    *,
    title: Optional[str],
    content: Any = None,
    type: Optional[str] = None,
    language: Optional[str] = None,
    public: bool = False,
    meta: Optional[Dict[str, Any]] = None,
) -> str:
    if not user_sub:
        raise HTTPException(401, "Authentication required")
    title = clean_str(title, max_len=MAX_TITLE_LEN) or DEFAULT_TITLE
    language = normalize_language(language)
    public = bool(public)
    feed_id = new_doc_id()
    doc = {
        "created_by": user_sub,
        "title": title,
        "slug": slug_for_title(title, feed_id),
        "content": content if content is not None else {},
        "type": _clean_type(type),
        "language": language,
        "public": public,
        "meta": meta,
        "created_at": now_ms(),
        **_index_attrs(public, language),
    }
    try:
        get_tables().feeds.insert({k: v for k, v in doc.items() if v is not None}, doc_id=feed_id, unique=True)
    except Exception:
        release_slug(doc["slug"], feed_id)
        raise
    FEEDS_CREATED.inc()
    logger.info("feed %s created by %s (slug=%s)", feed_id, user_sub, doc["slug"])
    return feed_id


def update_feed(user_sub: Optional[str], feed_id: str, changes: Dict[str, Any]) -> str:
    if not user_sub:
        raise HTTPException(401, "Authentication required")
    feed = require_feed_permission(feed_id, user_sub, "edit", action="update this feed")

    updates: Dict[str, Any] = {}
    if "title" in changes:
        title = clean_str(changes["title"], max_len=MAX_TITLE_LEN) or DEFAULT_TITLE
        updates["title"] = title
        if title != feed.get("title"):
            slug = slug_for_title(title, feed_id)
            if slug != feed.get("slug"):
                updates["slug"] = slug
    if "content" in changes:
        updates["content"] = changes["content"] if changes["content"] is not None else {}
    if "type" in changes:
        updates["type"] = _clean_type(changes["type"])
    if "language" in changes:
        updates["language"] = normalize_language(changes["language"])
    # null means unchanged; only an explicit boolean flips visibility
    if changes.get("public") is not None:
        updates["public"] = bool(changes["public"])
    if "meta" in changes:
        updates["meta"] = changes["meta"]

    if "public" in updates or "language" in updates:
        public = updates.get("public", feed.get("public", False))
        language = updates["language"] if "language" in updates else feed.get("language")
        updates.update(_index_attrs(public, language))

    updates["updated_at"] = now_ms()
    try:
        get_tables().feeds.patch(feed_id, updates)
    except Exception:
        release_slug(updates.get("slug"), feed_id)
        raise
    if "slug" in updates:
        release_slug(feed.get("slug"), feed_id)
    return feed_id


def delete_feed(user_sub: Optional[str], feed_id: str) -> str:
    if not user_sub:
        raise HTTPException(401, "Authentication required")
    t = get_tables()
    feed = t.feeds.get(feed_id)
    if not feed:
        raise HTTPException(404, "Feed not found")
    if feed.get("created_by") != user_sub:
        raise HTTPException(403, "You do not have permission to delete this feed")

    t.feeds.delete(feed_id)
    release_slug(feed.get("slug"), feed_id)
    collaborators = list(iter_index(t.collaborators, "feed_id", feed_id))
    for c in collaborators:
        t.collaborators.delete(c["id"])
    logger.info("feed %s deleted by %s (%d collaborators removed)", feed_id, user_sub, len(collaborators))
    return feed_id


def get_feed(feed_id: str, user_sub: Optional[str]) -> Dict[str, Any]:
    return require_feed_permission(feed_id, user_sub, "read", action="access this feed")


def get_feed_by_slug(slug: str, user_sub: Optional[str], *, public_only: bool = False) -> Dict[str, Any]:
    slug = (slug or "").strip()
    if not slug:
        raise HTTPException(400, "Invalid feed slug")
    t = get_tables()
    claim = t.slugs.get(slug)
    feed = t.feeds.get(claim["feed_id"]) if claim else None
    if not feed or feed.get("slug") != slug:
        raise HTTPException(404, "Feed not found")
    if feed.get("public"):
        return feed
    if public_only or not is_member(feed, user_sub):
        raise HTTPException(403, "You do not have permission to access this feed")
    return feed


# -----------------------------
# Unified query
# -----------------------------
def _matches(feed: Dict[str, Any], type: Optional[str], language: Optional[str]) -> bool:
    if type and feed.get("type") != type:
        return False
    if language and feed.get("language") != language:
        return False
    return True


def _take_page(feeds: Iterable[Dict[str, Any]], limit: int) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    rows = list(islice(feeds, limit + 1))
    page = rows[:limit]
    next_cursor = encode_time_cursor(page[-1]["created_at"]) if len(rows) > limit and page else None
    return page, next_cursor


def _public_feeds(type: Optional[str], language: Optional[str], before: Optional[int]) -> Iterator[Dict[str, Any]]:
    t = get_tables()
    if language:
        rows = iter_index(t.feeds, "public_language_created_at", f"{PUBLIC_PK}#{language}", before=before)
    else:
        rows = iter_index(t.feeds, "public_created_at", PUBLIC_PK, before=before)
    return (f for f in rows if _matches(f, type, None))


def _created_feeds(user_id: str, type: Optional[str], language: Optional[str], before: Optional[int]) -> Iterator[Dict[str, Any]]:
    rows = iter_index(get_tables().feeds, "created_by", user_id, before=before)
    return (f for f in rows if _matches(f, type, language))


def _personal_feeds(user_sub: str, type: Optional[str], language: Optional[str]) -> List[Dict[str, Any]]:
    t = get_tables()
    merged: Dict[str, Dict[str, Any]] = {}
    for feed in _created_feeds(user_sub, type, language, None):
        merged[feed["id"]] = feed
    for collab in iter_index(t.collaborators, "user_id", user_sub):
        feed = t.feeds.get(collab["feed_id"])
        if feed and _matches(feed, type, language):
            merged[feed["id"]] = feed
    return sorted(merged.values(), key=lambda f: f["created_at"], reverse=True)


def _resolve_feed_ids(
    feed_ids: List[str],
    user_sub: Optional[str],
    *,
    type: Optional[str],
    language: Optional[str],
    user_id: Optional[str],
    public_only: bool,
) -> List[Dict[str, Any]]:
    t = get_tables()
    out: List[Dict[str, Any]] = []
    for feed_id in feed_ids:
        feed = t.feeds.get(feed_id)
        if not feed or not _matches(feed, type, language):
            continue
        if user_id and feed.get("created_by") != user_id:
            continue
        if public_only and not feed.get("public"):
            continue
        if check_feed_access(feed, user_sub, "read"):
            out.append(feed)
    return out


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return S.feed_page_default
    return max(1, min(int(limit), S.feed_page_max))


def unified_feed_query(
    user_sub: Optional[str],
    *,
    feed_ids: Optional[List[str]] = None,
    type: Optional[str] = None,
    language: Optional[str] = None,
    public_only: bool = False,
    slug: Optional[str] = None,
    limit: Optional[int] = None,
    cursor: Optional[str] = None,
    user_id: Optional[str] = None,
    with_count: bool = True,
) -> Dict[str, Any]:
    """
    Resolve the feeds a caller may see.

    Modes, checked in order: slug lookup, explicit feed ids, public listing
    (anonymous caller or ``public_only``), a single creator's feeds
    (``user_id``, self only) and the caller's personal feeds (created plus
    collaborations). Pages are newest first; ``next_cursor`` is the
    ``created_at`` of the last feed returned and the next page holds feeds
    strictly older than it.
    """
    if slug is not None:
        feed = get_feed_by_slug(slug, user_sub, public_only=public_only)
        return {"feeds": [feed], "next_cursor": None, "total_count": 1}

    limit = clamp_limit(limit)
    before = decode_time_cursor(cursor)

    if user_id and user_id != user_sub:
        raise HTTPException(403, "You do not have permission to access this user's feeds")

    next_cursor: Optional[str] = None
    total_count: Optional[int] = None

    if feed_ids:
        feeds = _resolve_feed_ids(
            feed_ids, user_sub, type=type, language=language, user_id=user_id, public_only=public_only
        )
        total_count = len(feeds)
        if len(feed_ids) == 1:
            feeds = feeds[:1]
    elif (public_only or not user_sub) and not user_id:
        feeds, next_cursor = _take_page(_public_feeds(type, language, before), limit)
        if with_count:
            total_count = sum(1 for _ in _public_feeds(type, language, None))
    elif user_id:
        feeds, next_cursor = _take_page(_created_feeds(user_id, type, language, before), limit)
        if with_count:
            total_count = sum(1 for _ in _created_feeds(user_id, type, language, None))
    else:
        everything = _personal_feeds(user_sub, type, language)
        if with_count:
            total_count = len(everything)
        if before is not None:
            everything = [f for f in everything if f["created_at"] < before]
        feeds, next_cursor = _take_page(everything, limit)

    return {"feeds": feeds, "next_cursor": next_cursor, "total_count": total_count}
