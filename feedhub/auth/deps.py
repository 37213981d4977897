from __future__ import annotations

import base64
import json
import logging
from functools import lru_cache
from typing import Any, Dict, Optional

import jwt
import requests
from fastapi import HTTPException, Request

from feedhub.core.settings import S

logger = logging.getLogger(__name__)


def _cognito_enabled() -> bool:
    return bool(S.cognito_user_pool_id and S.cognito_app_client_id)


def _cognito_issuer() -> str:
    region = S.cognito_region or S.aws_region
    return f"https://cognito-idp.{region}.amazonaws.com/{S.cognito_user_pool_id}"


@lru_cache(maxsize=1)
def _cognito_jwks() -> Dict[str, Any]:
    url = f"{_cognito_issuer()}/.well-known/jwks.json"
    resp = requests.get(url, timeout=10)
    resp.raise_for_status()
    return resp.json()


def _resolve_cognito_key(kid: str) -> Dict[str, Any]:
    keys = _cognito_jwks().get("keys", [])
    for key in keys:
        if key.get("kid") == kid:
            return key
    raise HTTPException(401, "Unknown Cognito key id")


def _decode_cognito_token(token: str) -> Dict[str, Any]:
    try:
        header = jwt.get_unverified_header(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(401, "Invalid token header") from exc

    key = _resolve_cognito_key(header.get("kid", ""))
    public_key = jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(key))
    try:
        payload = jwt.decode(
            token,
            public_key,
            algorithms=["RS256"],
            issuer=_cognito_issuer(),
            options={"verify_aud": False},
        )
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(401, "Token expired") from exc
    except jwt.PyJWTError as exc:
        raise HTTPException(401, "Invalid token") from exc

    expected_use = S.cognito_expected_token_use
    token_use = payload.get("token_use")
    if expected_use and token_use != expected_use:
        raise HTTPException(401, "Unexpected token use")

    # access tokens carry client_id, id tokens carry aud
    client_id = payload.get("client_id") or payload.get("aud")
    if client_id != S.cognito_app_client_id:
        raise HTTPException(401, "Token issued for another client")

    return payload


def _decode_jwt_sub(token: str) -> Optional[str]:
    if token.count(".") != 2:
        return None
    _, payload, _ = token.split(".", 2)
    if not payload:
        return None
    padding = "=" * (-len(payload) % 4)
    try:
        decoded = base64.urlsafe_b64decode(payload + padding)
        data = json.loads(decoded.decode("utf-8"))
    except (ValueError, json.JSONDecodeError, UnicodeDecodeError):
        return None
    sub = data.get("sub")
    return sub if isinstance(sub, str) and sub.strip() else None


def extract_bearer_token(auth_header: Optional[str]) -> str:
    if not auth_header:
        raise HTTPException(401, "Authentication required")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(401, "Invalid Authorization header")
    return token.strip()


async def get_authenticated_user_sub(request: Request) -> str:
    """
    Resolve the caller's user id.

    With Cognito configured the bearer token is validated against the pool's
    JWKS and its ``sub`` is used. Without it (local development) the
    ``X-User-Sub`` header or ``Authorization: Bearer <user_id | jwt>`` is
    trusted as-is.
    """
    if _cognito_enabled():
        token = extract_bearer_token(request.headers.get("authorization", ""))
        payload = _decode_cognito_token(token)
        user_sub = payload.get("sub") or payload.get("cognito:username") or payload.get("username")
        if not user_sub:
            raise HTTPException(401, "Token missing subject")
        return str(user_sub)

    fallback_user = request.headers.get("x-user-sub")
    if fallback_user:
        return fallback_user

    token = extract_bearer_token(request.headers.get("authorization", ""))
    return _decode_jwt_sub(token) or token


async def get_optional_user_sub(request: Request) -> Optional[str]:
    """Same as get_authenticated_user_sub, but anonymous callers get None."""
    if not request.headers.get("authorization") and not request.headers.get("x-user-sub"):
        return None
    try:
        return await get_authenticated_user_sub(request)
    except HTTPException as exc:
        logger.info("treating caller as anonymous: %s", exc.detail)
        return None
