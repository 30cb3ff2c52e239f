"""FastAPI dependencies for API key authentication and role checks."""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.orm import Session

from forceflow.config import settings
from forceflow.db import get_db, utcnow
from forceflow.db_models import ApiKey
from forceflow.security.api_keys import (
    API_KEY_HEADER,
    ApiKeyPrincipal,
    is_test_key,
    key_prefix,
    verify_api_key,
)

logger = logging.getLogger("forceflow.security")

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def _deny(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})


def _lookup(db: Session, provided_key: str) -> ApiKey:
    stored = db.execute(
        select(ApiKey).where(ApiKey.key_prefix == key_prefix(provided_key))
    ).scalar_one_or_none()
    if stored is None:
        raise _deny(status.HTTP_401_UNAUTHORIZED, "api_key_invalid", "Invalid API key")
    if stored.revoked_at is not None:
        raise _deny(status.HTTP_403_FORBIDDEN, "api_key_revoked", "API key has been revoked")
    if stored.expires_at is not None and stored.expires_at <= utcnow():
        raise _deny(status.HTTP_403_FORBIDDEN, "api_key_expired", "API key has expired")
    return stored


async def require_api_key(
    request: Request,
    api_key: str | None = Security(api_key_header),
    db: Session = Depends(get_db),
) -> ApiKeyPrincipal:
    """Resolve the caller from the API key header."""

    if not settings.require_api_key:
        return ApiKeyPrincipal(email="dev-bypass", key_id="development", role="admin")

    if not api_key or not api_key.strip():
        raise _deny(status.HTTP_401_UNAUTHORIZED, "api_key_missing", "API key header is required")
    provided_key = api_key.strip()

    if is_test_key(provided_key) and settings.forceflow_env.lower() not in {"test", "testing"}:
        raise _deny(
            status.HTTP_403_FORBIDDEN,
            "api_key_test_only",
            "Test API keys are not accepted in this environment",
        )

    stored = _lookup(db, provided_key)

    if not settings.api_key_pepper:
        logger.error("API key pepper is not configured; rejecting request")
        raise _deny(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "api_key_misconfigured",
            "API key pepper is not configured",
        )
    if not verify_api_key(provided_key, settings.api_key_pepper, stored.key_hash):
        raise _deny(status.HTTP_401_UNAUTHORIZED, "api_key_invalid", "Invalid API key")

    stored.last_used_at = utcnow()
    stored.last_used_ip = request.client.host if request.client else None
    try:
        db.commit()
    except Exception:  # pragma: no cover - fail soft
        db.rollback()
        logger.debug("Failed to update API key last-used metadata", exc_info=True)

    return ApiKeyPrincipal(
        email=stored.holder_email,
        key_id=str(stored.id),
        role=stored.role,
        label=stored.holder_label,
    )


def require_role(*allowed: str) -> Callable[..., ApiKeyPrincipal]:
    """Build a dependency that admits only principals holding one of ``allowed``."""

    async def _check(principal: ApiKeyPrincipal = Depends(require_api_key)) -> ApiKeyPrincipal:
        if not principal.has_role(*allowed):
            raise _deny(
                status.HTTP_403_FORBIDDEN,
                "insufficient_role",
                f"Requires one of: {', '.join(allowed)}",
            )
        return principal

    return _check
