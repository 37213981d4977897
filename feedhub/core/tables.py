from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from .aws import ddb_resource
from .settings import S, Settings
from .store import Collection, DynamoCollection, IndexSpec, MemoryCollection

# GSI name -> (partition attribute, sort attribute)
INDEXES: Dict[str, Dict[str, IndexSpec]] = {
    "feeds": {
        "created_by": ("created_by", "created_at"),
        "public_created_at": ("public_pk", "created_at"),
        "public_language_created_at": ("public_lang_pk", "created_at"),
    },
    "collaborators": {
        "feed_id": ("feed_id", "added_at"),
        "user_id": ("user_id", "added_at"),
    },
    "comments": {
        "feed_id": ("feed_id", "created_at"),
        "top_level": ("top_level_feed_id", "created_at"),
        "parent": ("parent_comment_id", "created_at"),
    },
    "feed_likes": {
        "subject": ("subject_id", "created_at"),
        "user": ("user_id", "created_at"),
    },
    "comment_likes": {
        "subject": ("subject_id", "created_at"),
        "user": ("user_id", "created_at"),
    },
    "profiles": {},
    # keyed by slug; a conditional put claims it for one feed
    "slugs": {},
}


@dataclass(frozen=True)
class Tables:
    feeds: Collection
    collaborators: Collection
    comments: Collection
    feed_likes: Collection
    comment_likes: Collection
    profiles: Collection
    slugs: Collection


def _table_names(settings: Settings) -> Dict[str, str]:
    return {
        "feeds": settings.feeds_table_name,
        "collaborators": settings.collaborators_table_name,
        "comments": settings.comments_table_name,
        "feed_likes": settings.feed_likes_table_name,
        "comment_likes": settings.comment_likes_table_name,
        "profiles": settings.profiles_table_name,
        "slugs": settings.slugs_table_name,
    }


def build_tables(settings: Settings) -> Tables:
    if settings.store_backend == "memory":
        return Tables(**{name: MemoryCollection(name, INDEXES[name]) for name in INDEXES})
    if settings.store_backend != "dynamodb":
        raise RuntimeError(f"Unknown STORE_BACKEND: {settings.store_backend}")
    ddb = ddb_resource()
    names = _table_names(settings)
    return Tables(**{
        name: DynamoCollection(name, ddb.Table(names[name]), INDEXES[name]) for name in INDEXES
    })


_tables: Optional[Tables] = None


def init_tables(settings: Settings = S) -> Tables:
    global _tables
    _tables = build_tables(settings)
    return _tables


def get_tables() -> Tables:
    if _tables is None:
        return init_tables()
    return _tables
