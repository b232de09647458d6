"""
Internal permit approval endpoints.
Status views for review screens plus manager actions.
"""
import logging
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from permit_approvals.database import get_db
from permit_approvals.models.permit import Permit, PermitStatus
from permit_approvals.models.user import User
from permit_approvals.api.auth import get_current_user, get_request_context, require_approver
from permit_approvals.api.errors import http_error
from permit_approvals.schemas.approval_link import DecisionResponse, RequestContext
from permit_approvals.schemas.permit import (
    CancelLinksResponse,
    InternalDecisionRequest,
    NotifyRequest,
    NotifyResponse,
    PendingPermitResponse,
    PermitApprovalStatus,
    PermitResponse,
    PermitTransitionRequest,
)
from permit_approvals.services.decisions import cancel_links, decide_internal
from permit_approvals.services.errors import ApprovalError
from permit_approvals.services.link_status import status_for
from permit_approvals.services.notifications import notify_pending, resend_notifications
from permit_approvals.services.permit_state import get_permit, transition_permit
from permit_approvals.services.recipients import list_recipients

logger = logging.getLogger(__name__)
router = APIRouter()


# Endpoints
@router.get("/pending", response_model=list[PendingPermitResponse])
async def list_pending_permits(
    limit: int = Query(100, ge=1, le=500, description="Max permits to return"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List permits awaiting approval, oldest first, with each recipient's status.
    """
    result = await db.execute(
        select(Permit)
        .where(Permit.status == PermitStatus.PENDING_APPROVAL.value)
        .order_by(Permit.created_at.asc())
        .limit(limit)
    )
    permits = result.scalars().all()
    
    recipients = await list_recipients(db)
    statuses = await status_for(db, [p.id for p in permits], recipients)
    
    return [
        PendingPermitResponse(
            permit=PermitResponse.model_validate(permit),
            approval=statuses[permit.id],
        )
        for permit in permits
    ]


@router.get("/approval-status", response_model=dict[str, PermitApprovalStatus])
async def get_approval_status(
    permit_id: list[UUID] = Query(..., description="Permit IDs (repeatable)"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Per-recipient approval status for a batch of permits, keyed by permit ID.
    """
    recipients = await list_recipients(db)
    statuses = await status_for(db, permit_id, recipients)
    return {str(pid): status for pid, status in statuses.items()}


@router.get("/{permit_id}/approval-status", response_model=PermitApprovalStatus)
async def get_permit_approval_status(
    permit_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Per-recipient approval status for one permit."""
    try:
        permit = await get_permit(db, permit_id)
    except ApprovalError as e:
        raise http_error(e)
    
    recipients = await list_recipients(db)
    statuses = await status_for(db, [permit.id], recipients)
    return statuses[permit.id]


@router.post("/{permit_id}/transition", response_model=PermitResponse)
async def transition(
    permit_id: UUID,
    body: PermitTransitionRequest,
    current_user: User = Depends(require_approver),
    db: AsyncSession = Depends(get_db)
):
    """
    Move a permit to another status.
    
    Entering pending_approval emails the configured recipients.
    Returns 409 if the transition is not allowed.
    """
    try:
        return await transition_permit(db, permit_id, None, body.status, actor=current_user.email)
    except ApprovalError as e:
        raise http_error(e)


@router.post("/{permit_id}/notify", response_model=NotifyResponse)
async def notify(
    permit_id: UUID,
    body: NotifyRequest,
    current_user: User = Depends(require_approver),
    db: AsyncSession = Depends(get_db)
):
    """
    Email approval links for a pending permit.
    
    Without resend, a permit that was already notified queues nothing.
    With resend, the flag is cleared and every recipient gets a new link
    (older links stop working).
    """
    try:
        if body.resend:
            queued = await resend_notifications(db, permit_id)
        else:
            queued = await notify_pending(db, permit_id)
    except ApprovalError as e:
        raise http_error(e)
    
    logger.info(f"{current_user.email} triggered approval notification for permit {permit_id}: {queued} queued")
    return NotifyResponse(permit_id=permit_id, queued=queued)


@router.post("/{permit_id}/decision", response_model=DecisionResponse)
async def internal_decision(
    permit_id: UUID,
    body: InternalDecisionRequest,
    current_user: User = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context)
):
    """
    Approve or reject a pending permit from the internal review screen.
    
    Outstanding email links for the permit stop working.
    """
    try:
        result = await decide_internal(
            db, permit_id, body.action, current_user, body.comment, context
        )
    except ApprovalError as e:
        raise http_error(e)
    
    return DecisionResponse(
        status=result.status,
        permit_id=result.permit_id,
        permit_ref=result.permit_ref,
        decided_at=result.decided_at,
        comment=result.comment,
        message=f"Permit {result.status}.",
    )


@router.post("/{permit_id}/approval-links/cancel", response_model=CancelLinksResponse)
async def cancel_approval_links(
    permit_id: UUID,
    current_user: User = Depends(require_approver),
    db: AsyncSession = Depends(get_db)
):
    """Invalidate every live approval link for a permit."""
    try:
        cancelled = await cancel_links(db, permit_id, actor=current_user.email)
    except ApprovalError as e:
        raise http_error(e)
    
    return CancelLinksResponse(permit_id=permit_id, cancelled=cancelled)
