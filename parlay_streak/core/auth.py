"""
Request identity dependencies.

Session handling lives in front of this service; by the time a request gets
here the gateway has put the authenticated user in the X-User-Id header.
Admin-only routes (bet creation, manual resolution) additionally require
the X-API-Key header to match ADMIN_API_KEY.
"""
from typing import Optional
from fastapi import Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader
from starlette.requests import Request

from parlay_streak.core.config import settings
from parlay_streak.core.logging import get_logger

logger = get_logger(__name__)

API_KEY_NAME = "X-API-Key"

api_key_header = APIKeyHeader(name=API_KEY_NAME, auto_error=False)


def verify_admin_key(request: Request, api_key: Optional[str] = Security(api_key_header)) -> str:
    """
    Validate the admin API key.

    Raises:
        HTTPException: 401 when the key is missing, 403 when it is wrong
    """
    if not settings.ADMIN_API_KEY:
        if settings.is_production():
            logger.warning("ADMIN_API_KEY not configured in production - rejecting request")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Admin API key required. Configure ADMIN_API_KEY.",
            )
        logger.debug("ADMIN_API_KEY not configured - allowing admin request in development mode")
        return "_dev_skip_"

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key missing. Provide X-API-Key header.",
        )

    if api_key != settings.ADMIN_API_KEY:
        logger.warning(
            f"Invalid admin API key attempt from {request.client.host if request.client else 'unknown'}"
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid API key.")

    return api_key


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """The authenticated user forwarded by the session layer."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return x_user_id
