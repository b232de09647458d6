"""
Authentication dependencies for internal endpoints.

Internal staff authenticate with an httpOnly cookie holding their user id.
Approval links never use these: the token itself is the credential.
"""
import logging
from uuid import UUID

from fastapi import Depends, HTTPException, Request, Cookie
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from permit_approvals.database import get_db
from permit_approvals.models.user import User
from permit_approvals.schemas.approval_link import RequestContext

logger = logging.getLogger(__name__)

# Longest user agent kept in audit records
MAX_USER_AGENT_LENGTH = 500


async def get_current_user(
    auth_token: str = Cookie(None),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Dependency to get current authenticated user from httpOnly cookie.
    
    Raises:
        HTTPException 401: If cookie is missing/invalid or user not found
    """
    if not auth_token:
        raise HTTPException(status_code=401, detail="Not authenticated.")
    
    try:
        user_id = UUID(auth_token)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token.")
    
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    
    if not user:
        raise HTTPException(
            status_code=401,
            detail="Invalid token. User not found."
        )
    
    return user


async def require_approver(
    current_user: User = Depends(get_current_user)
) -> User:
    """Dependency to require a manager or admin."""
    if not current_user.can_approve():
        logger.warning(
            f"User {current_user.email} (role={current_user.role.value}) "
            f"attempted an approval action"
        )
        raise HTTPException(
            status_code=403,
            detail="Manager access required to approve or reject permits."
        )
    return current_user


async def require_admin(
    current_user: User = Depends(get_current_user)
) -> User:
    """Dependency to require admin role."""
    if not current_user.is_admin():
        logger.warning(
            f"User {current_user.email} (role={current_user.role.value}) "
            f"attempted to access admin endpoint"
        )
        raise HTTPException(
            status_code=403,
            detail="Admin access required. You do not have permission to access this resource."
        )
    return current_user


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.
    
    Checks X-Forwarded-For header (for proxies/load balancers) first,
    falls back to direct client IP.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can be comma-separated list, take first IP
        return forwarded.split(",")[0].strip()
    
    return request.client.host if request.client else "unknown"


def get_request_context(request: Request) -> RequestContext:
    """Dependency building the audit context for the current request."""
    user_agent = request.headers.get("User-Agent", "")[:MAX_USER_AGENT_LENGTH]
    return RequestContext(ip=get_client_ip(request), user_agent=user_agent or None)
