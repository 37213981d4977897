from __future__ import annotations

import os
from dataclasses import dataclass


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default) not in ("0", "false", "False", "")


@dataclass(frozen=True)
class Settings:
    # AWS
    aws_region: str = os.environ.get("AWS_REGION", "us-east-1")
    ddb_endpoint_url: str = os.environ.get("DDB_ENDPOINT_URL", "")
    s3_endpoint_url: str = os.environ.get("S3_ENDPOINT_URL", "")

    # Cognito (optional wiring; dev fallback otherwise)
    cognito_user_pool_id: str = os.environ.get("COGNITO_USER_POOL_ID", "")
    cognito_region: str = os.environ.get("COGNITO_REGION", "")
    cognito_app_client_id: str = os.environ.get("COGNITO_APP_CLIENT_ID", "")
    cognito_expected_token_use: str = os.environ.get("COGNITO_EXPECTED_TOKEN_USE", "access")

    # Document store: "dynamodb" or "memory"
    store_backend: str = os.environ.get("STORE_BACKEND", "dynamodb").lower()

    feeds_table_name: str = os.environ.get("FEEDS_TABLE", "feeds")
    collaborators_table_name: str = os.environ.get("COLLABORATORS_TABLE", "feed_collaborators")
    comments_table_name: str = os.environ.get("COMMENTS_TABLE", "feed_comments")
    feed_likes_table_name: str = os.environ.get("FEED_LIKES_TABLE", "feed_likes")
    comment_likes_table_name: str = os.environ.get("COMMENT_LIKES_TABLE", "comment_likes")
    profiles_table_name: str = os.environ.get("PROFILES_TABLE", "profiles")
    slugs_table_name: str = os.environ.get("SLUGS_TABLE", "feed_slugs")

    # Feed listing
    feed_page_default: int = int(os.environ.get("FEED_PAGE_DEFAULT", "20"))
    feed_page_max: int = int(os.environ.get("FEED_PAGE_MAX", "100"))

    # Comments
    comment_page_default: int = int(os.environ.get("COMMENT_PAGE_DEFAULT", "20"))
    comment_delete_recursive: bool = _flag("COMMENT_DELETE_RECURSIVE", "0")

    # Media
    media_bucket: str = os.environ.get("MEDIA_BUCKET", "")
    media_public_domain: str = os.environ.get("MEDIA_PUBLIC_DOMAIN", "https://storage.feavel.com").rstrip("/")
    media_upload_ttl_seconds: int = int(os.environ.get("MEDIA_UPLOAD_TTL_SECONDS", "900"))
    media_url_ttl_seconds: int = int(os.environ.get("MEDIA_URL_TTL_SECONDS", "3600"))
    media_max_bytes: int = int(os.environ.get("MEDIA_MAX_BYTES", str(10 * 1024 * 1024)))
    avatar_max_bytes: int = int(os.environ.get("AVATAR_MAX_BYTES", str(2 * 1024 * 1024)))

    # Observability
    log_level: str = os.environ.get("LOG_LEVEL", "INFO").upper()
    audit_log_enabled: bool = _flag("AUDIT_LOG_ENABLED", "1")
    metrics_enabled: bool = _flag("METRICS_ENABLED", "1")

    cors_allow_origins: str = os.environ.get("CORS_ALLOW_ORIGINS", "*")


S = Settings()
