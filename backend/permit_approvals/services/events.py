"""
Permit audit trail.

record_event() joins the caller's transaction (the decision transaction
relies on this for atomicity). append_event() is fire-and-forget: it
commits on its own and logs instead of raising.
"""
import logging
from typing import Any, Dict, Optional
from uuid import UUID
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from permit_approvals.models.permit_event import PermitEvent

logger = logging.getLogger(__name__)


class PermitEventType:
    """Event types written by the approval flow."""
    APPROVAL_EMAIL_ACTION = "approval_email_action"
    APPROVAL_INTERNAL_ACTION = "approval_internal_action"
    NOTIFICATION_QUEUED = "notification_queued"
    APPROVAL_LINKS_CANCELLED = "approval_links_cancelled"
    STATUS_CHANGED = "status_changed"


def record_event(
    db: AsyncSession,
    permit_id: UUID,
    event_type: str,
    actor: str,
    payload: Optional[Dict[str, Any]] = None
) -> PermitEvent:
    """Add an event to the current transaction. Caller commits."""
    event = PermitEvent(
        permit_id=permit_id,
        event_type=event_type,
        actor=actor,
        payload=payload or {},
    )
    db.add(event)
    return event


async def append_event(
    db: AsyncSession,
    permit_id: UUID,
    event_type: str,
    actor: str,
    payload: Optional[Dict[str, Any]] = None
) -> bool:
    """
    Write an event in its own commit.
    
    Anything else pending in the session is committed with it. Returns
    False (after rolling back and logging) if the write failed.
    """
    try:
        record_event(db, permit_id, event_type, actor, payload)
        await db.commit()
        return True
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(
            f"Failed to record {event_type} event for permit {permit_id}: {e}",
            exc_info=True
        )
        return False
