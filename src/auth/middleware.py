"""Resolve the calling user from a bearer token or the session cookie."""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request

from src.auth.jwt import AuthContext, decode_access_token
from src.core.logger import get_logger


AUTH_CONTEXT_KEY = "auth_context"
SESSION_COOKIE_NAME = "ark_access_token"

logger = get_logger("ark_studio.auth")


def _bearer_token(request: Request) -> Optional[str]:
    scheme, _, credentials = (request.headers.get("authorization") or "").partition(" ")
    if scheme.lower() != "bearer":
        return None
    return credentials.strip() or None


def request_token(request: Request) -> Optional[str]:
    """Bearer header first, then the browser session cookie."""

    token = _bearer_token(request)
    if token:
        return token
    cookie = (request.cookies.get(SESSION_COOKIE_NAME) or "").strip()
    return cookie or None


def resolve_request_auth_context(request: Request) -> Optional[AuthContext]:
    token = request_token(request)
    if token is None:
        return None

    try:
        return decode_access_token(token)
    except HTTPException:
        logger.info("auth_token_rejected", path=request.url.path)
        return None
