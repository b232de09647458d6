"""
Approval notifications for permits entering pending_approval.

Each recipient gets a freshly issued link (superseding older ones) in a
queued email. Recipients are handled independently: one failure is logged
and does not stop the others. The permit's notified_at flag prevents
repeated saves in the same state from emailing everyone again.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from permit_approvals.models.permit import Permit, PermitStatus
from permit_approvals.services.email import build_decision_urls, email_service
from permit_approvals.services.events import PermitEventType, append_event
from permit_approvals.services.link_issuer import issue_link
from permit_approvals.services.permit_state import get_permit
from permit_approvals.services.recipients import list_recipients

logger = logging.getLogger(__name__)
activity_logger = logging.getLogger("permit_approvals.activity")


async def notify_pending(
    db: AsyncSession,
    permit_id: UUID,
    ttl: Optional[timedelta] = None,
    now: Optional[datetime] = None
) -> int:
    """
    Email every configured recipient a decision link for a pending permit.
    
    Args:
        db: Database session
        permit_id: Permit that entered pending_approval
        ttl: Link lifetime, defaults to approval_link_ttl_days
        now: Issue time, defaults to utcnow
    
    Returns:
        Number of emails queued (0 when the permit is not pending, was
        already notified, or no recipients are configured)
    """
    permit = await get_permit(db, permit_id)
    
    if permit.status != PermitStatus.PENDING_APPROVAL.value:
        logger.info(f"Skipping approval notification for permit {permit_id}: status is {permit.status}")
        return 0
    
    if permit.notified_at is not None:
        logger.info(f"Skipping approval notification for permit {permit_id}: already notified at {permit.notified_at}")
        return 0
    
    recipients = await list_recipients(db)
    if not recipients:
        logger.warning(f"No approval recipients configured; permit {permit_id} was not notified")
        return 0
    
    # Claim the episode before sending so concurrent callers notify once
    if not await _claim_notification(db, permit.id, now or datetime.utcnow()):
        logger.info(f"Skipping approval notification for permit {permit_id}: another request claimed it")
        return 0
    
    notified = []
    failed = []
    
    for recipient in recipients:
        try:
            issued = await issue_link(db, permit, recipient, ttl=ttl, now=now)
            urls = build_decision_urls(issued.raw_token)
            await email_service.send_pending_approval_notification(
                db, permit, recipient, urls, issued.expires_at
            )
            await db.commit()
            notified.append(recipient.email)
        except Exception as e:
            await db.rollback()
            await db.refresh(permit)
            failed.append(recipient.email)
            logger.error(
                f"Failed to queue approval notification for permit {permit_id} to {recipient.email}: {e}",
                exc_info=True
            )
    
    if not notified:
        # Nothing went out; let the next attempt try again
        await clear_notification_flag(db, permit.id)
        return 0
    
    await append_event(
        db,
        permit.id,
        PermitEventType.NOTIFICATION_QUEUED,
        "system",
        {
            "kind": "pending_approval_alert",
            "recipients": notified,
            "failed": failed,
        },
    )
    activity_logger.info(
        f"Notification queued for pending approval of permit {permit.display_ref}: {', '.join(notified)}"
    )
    
    return len(notified)


async def _claim_notification(db: AsyncSession, permit_id: UUID, claimed_at: datetime) -> bool:
    """Set notified_at if it is still unset on a pending permit. Commits."""
    result = await db.execute(
        update(Permit)
        .where(
            Permit.id == permit_id,
            Permit.status == PermitStatus.PENDING_APPROVAL.value,
            Permit.notified_at.is_(None),
        )
        .values(notified_at=claimed_at)
    )
    await db.commit()
    return result.rowcount == 1


async def clear_notification_flag(db: AsyncSession, permit_id: UUID) -> None:
    """Allow a future pending_approval episode to notify again."""
    await db.execute(
        update(Permit)
        .where(Permit.id == permit_id)
        .values(notified_at=None)
    )
    await db.commit()


async def resend_notifications(
    db: AsyncSession,
    permit_id: UUID,
    ttl: Optional[timedelta] = None
) -> int:
    """Explicit reset: clear the flag and notify again. Older links are superseded."""
    await clear_notification_flag(db, permit_id)
    return await notify_pending(db, permit_id, ttl=ttl)
