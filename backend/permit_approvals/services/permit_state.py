"""
State machine for permits.
Status changes made by the approval flow are validated here.
"""
import logging
from datetime import datetime
from typing import Dict, Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from permit_approvals.models.permit import Permit, PermitStatus
from permit_approvals.services.errors import ApprovalError
from permit_approvals.services.events import PermitEventType, record_event

logger = logging.getLogger(__name__)


# Define allowed state transitions
ALLOWED_TRANSITIONS: Dict[PermitStatus, list[PermitStatus]] = {
    PermitStatus.DRAFT: [PermitStatus.PENDING_APPROVAL, PermitStatus.WITHDRAWN],
    PermitStatus.PENDING_APPROVAL: [
        PermitStatus.ACTIVE,
        PermitStatus.REJECTED,
        PermitStatus.DRAFT,  # Sent back for changes
        PermitStatus.WITHDRAWN,
    ],
    PermitStatus.ACTIVE: [PermitStatus.CLOSED, PermitStatus.EXPIRED],
    PermitStatus.REJECTED: [PermitStatus.DRAFT],  # Resubmission starts from draft
    PermitStatus.EXPIRED: [],  # Terminal state
    PermitStatus.CLOSED: [],  # Terminal state
    PermitStatus.WITHDRAWN: [],  # Terminal state
}

# Leaving pending_approval for these is a decision and goes through
# services.decisions, which records who decided and closes the links
DECISION_STATUSES = {PermitStatus.ACTIVE, PermitStatus.REJECTED}


class InvalidTransitionError(ApprovalError):
    """Raised when an invalid state transition is attempted"""
    kind = "invalid_transition"
    default_message = "That status change is not allowed."


class PermitNotFoundError(ApprovalError):
    """Raised when a permit id does not exist"""
    kind = "not_found"
    default_message = "Permit not found."


def can_transition(from_status: PermitStatus, to_status: PermitStatus) -> bool:
    """Check if a transition is allowed without touching the database"""
    return to_status in ALLOWED_TRANSITIONS.get(from_status, [])


def assert_transition(from_status: PermitStatus, to_status: PermitStatus) -> None:
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(
            f"Invalid transition from {from_status.value} to {to_status.value}"
        )


async def get_permit(db: AsyncSession, permit_id: UUID) -> Permit:
    result = await db.execute(select(Permit).where(Permit.id == permit_id))
    permit = result.scalar_one_or_none()
    if not permit:
        raise PermitNotFoundError(f"Permit {permit_id} not found")
    return permit


async def transition_permit(
    db: AsyncSession,
    permit_id: UUID,
    from_status: Optional[PermitStatus],
    to_status: PermitStatus,
    actor: str = "system",
    notify: bool = True
) -> Permit:
    """
    Transition a permit to a new status with validation.
    
    Entering PENDING_APPROVAL notifies the configured recipients
    synchronously after the status change is committed. A failed
    notification never undoes the transition.
    
    Args:
        db: Database session
        permit_id: ID of the permit to transition
        from_status: Expected current status. None skips the check.
        to_status: Target status
        actor: Who requested the change (for the audit trail)
        notify: Dispatch approval emails when entering PENDING_APPROVAL
    
    Returns:
        Updated Permit
        
    Raises:
        PermitNotFoundError: If the permit does not exist
        InvalidTransitionError: If the status differs from from_status or the move is not allowed
            (including approving or rejecting a pending permit; use decide_internal)
    """
    permit = await get_permit(db, permit_id)
    current_status = PermitStatus(permit.status)
    
    if from_status is not None and current_status != from_status:
        raise InvalidTransitionError(
            f"Permit {permit_id} is {current_status.value}, expected {from_status.value}"
        )
    
    if current_status == PermitStatus.PENDING_APPROVAL and to_status in DECISION_STATUSES:
        raise InvalidTransitionError(
            f"Permit {permit_id} must be approved or rejected through a decision, not a status change"
        )
    
    assert_transition(current_status, to_status)
    
    permit.status = to_status.value
    permit.updated_at = datetime.utcnow()
    
    # A fresh pending_approval episode must be able to notify again
    if current_status == PermitStatus.PENDING_APPROVAL:
        permit.notified_at = None
    
    record_event(
        db,
        permit.id,
        PermitEventType.STATUS_CHANGED,
        actor,
        {"from": current_status.value, "to": to_status.value},
    )
    
    await db.commit()
    
    logger.info(
        f"Permit status transition: {current_status.value} → {to_status.value}",
        extra={"permit_id": str(permit_id), "actor": actor}
    )
    
    if notify and to_status == PermitStatus.PENDING_APPROVAL:
        # Imported here: notifications depends on this module
        from permit_approvals.services.notifications import notify_pending
        try:
            await notify_pending(db, permit.id)
        except Exception as e:
            logger.error(f"Approval notification failed for permit {permit_id}: {e}", exc_info=True)
            await db.rollback()
    
    await db.refresh(permit)
    return permit
