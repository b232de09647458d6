"""
Applies approve/reject decisions to permits.

A decision is irreversible, so the whole check-and-apply sequence runs in
one transaction holding row locks on the link and then the permit (always
in that order). Sibling links are locked with SKIP LOCKED so two
recipients deciding at once never wait on each other. Two requests racing
on the same token serialize on the link lock, and the link write is
conditional on used_at being NULL; the loser gets AlreadyUsed.
Side effects that may touch other systems run only after commit.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from permit_approvals.models.approval_link import ApprovalLink, LinkState
from permit_approvals.models.permit import Permit, PermitStatus, DecisionSource
from permit_approvals.models.user import User
from permit_approvals.schemas.approval_link import (
    DecisionAction,
    LinkMetadata,
    LinkPreview,
    PermitSummary,
    RequestContext,
)
from permit_approvals.services import link_store
from permit_approvals.services.email import email_service
from permit_approvals.services.errors import (
    ApprovalError,
    ApprovalValidationError,
    InvalidPermitStateError,
    LinkAlreadyUsedError,
    LinkExpiredError,
    LinkNotFoundError,
    TransientStoreError,
)
from permit_approvals.services.events import PermitEventType, append_event, record_event
from permit_approvals.services.notifications import clear_notification_flag
from permit_approvals.services.permit_state import PermitNotFoundError, assert_transition, get_permit
from permit_approvals.services.tokens import hash_token

logger = logging.getLogger(__name__)
activity_logger = logging.getLogger("permit_approvals.activity")

MAX_COMMENT_LENGTH = 2000

# action -> (recorded decision, new permit status)
DECISION_OUTCOMES = {
    DecisionAction.APPROVE: ("approved", PermitStatus.ACTIVE),
    DecisionAction.REJECT: ("rejected", PermitStatus.REJECTED),
}


@dataclass(frozen=True)
class DecisionResult:
    """Outcome of a successfully applied decision."""
    status: str
    permit_id: UUID
    permit_ref: str
    decided_at: datetime
    comment: Optional[str]
    decision_source: DecisionSource


def parse_action(action: Union[str, DecisionAction]) -> DecisionAction:
    try:
        return DecisionAction(str(getattr(action, "value", action)).strip().lower())
    except ValueError:
        raise ApprovalValidationError("Select either approve or reject before submitting.")


def clean_comment(comment: Optional[str]) -> Optional[str]:
    if comment is None:
        return None
    comment = comment.strip()
    if not comment:
        return None
    if len(comment) > MAX_COMMENT_LENGTH:
        raise ApprovalValidationError(
            f"Comments are limited to {MAX_COMMENT_LENGTH} characters."
        )
    return comment


def format_note(now: datetime, decision: str, who: str, channel: str, comment: Optional[str]) -> str:
    """One audit line for permit.approval_notes."""
    line = f"[{now:%Y-%m-%d %H:%M} UTC] {decision.capitalize()} by {who} via {channel}."
    if comment:
        line += f" Comment: {comment}"
    return line


def append_note(existing: Optional[str], line: str) -> str:
    if existing and existing.strip():
        return f"{existing.rstrip()}\n{line}"
    return line


def check_link_usable(link: ApprovalLink, now: datetime) -> None:
    """
    Raise the refusal for a link that cannot carry a decision.
    
    Expiry wins over everything else. Links closed because the permit was
    decided elsewhere or cancelled report the permit state, not reuse.
    """
    if link.expires_at <= now:
        raise LinkExpiredError()
    if link.used_at is not None:
        if link.used_action in (LinkState.DECISION_TAKEN.value, LinkState.PERMIT_CANCELLED.value):
            raise InvalidPermitStateError()
        raise LinkAlreadyUsedError(link.used_action)


async def _lock_permit(db: AsyncSession, permit_id: UUID) -> Optional[Permit]:
    result = await db.execute(
        select(Permit)
        .where(Permit.id == permit_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _close_if_decided_elsewhere(
    db: AsyncSession,
    link: ApprovalLink,
    permit: Optional[Permit],
    now: datetime
) -> None:
    """
    Close a live link whose permit was decided after the link was issued.

    The deciding transaction skips sibling links that are locked at that
    moment, so the link's own request closes it here.
    """
    if permit is None or permit.approved_at is None or permit.approved_at < link.created_at:
        return
    link_store.invalidate_links([link], LinkState.DECISION_TAKEN.value, now)
    await db.commit()
    logger.info(f"Closed approval link {link.id}: permit {permit.id} was decided elsewhere")


def _apply_to_permit(
    permit: Permit,
    decision: str,
    new_status: PermitStatus,
    note: str,
    source: DecisionSource,
    approved_by: Optional[UUID],
    now: datetime
) -> None:
    assert_transition(PermitStatus(permit.status), new_status)
    permit.status = new_status.value
    permit.approved_at = now
    permit.approved_by = approved_by
    permit.decision_source = source.value
    permit.approval_notes = append_note(permit.approval_notes, note)
    permit.updated_at = now


async def decide(
    db: AsyncSession,
    raw_token: str,
    action: Union[str, DecisionAction],
    comment: Optional[str] = None,
    context: Optional[RequestContext] = None,
    now: Optional[datetime] = None
) -> DecisionResult:
    """
    Apply a decision submitted through an emailed link.
    
    Args:
        db: Database session
        raw_token: Token from the link
        action: approve | reject
        comment: Optional free text from the recipient
        context: Client IP / user agent for the audit trail
        now: Decision time, defaults to utcnow
    
    Returns:
        DecisionResult
    
    Raises:
        LinkNotFoundError: Unknown token
        LinkExpiredError: Link TTL passed
        LinkAlreadyUsedError: Link already consumed or superseded
        InvalidPermitStateError: Permit no longer pending approval
        ApprovalValidationError: Bad action or comment
        TransientStoreError: Database failure; nothing was changed
    """
    decision_action = parse_action(action)
    comment = clean_comment(comment)
    context = context or RequestContext()
    token = (raw_token or "").strip()
    if not token:
        raise LinkNotFoundError("The approval link appears to be incomplete.")
    
    now = now or datetime.utcnow()
    decision, new_status = DECISION_OUTCOMES[decision_action]
    
    try:
        # Step 1: resolve the token without comparing raw values
        found = await link_store.get_link_by_hash(db, hash_token(token))
        if found is None:
            raise LinkNotFoundError()
        
        # Step 2: lock the link, then validate it
        link = await link_store.lock_link(db, found.id)
        if link is None:
            raise LinkNotFoundError()
        check_link_usable(link, now)
        
        # Step 3: lock the permit
        permit = await _lock_permit(db, link.permit_id)
        if permit is None or permit.status != PermitStatus.PENDING_APPROVAL.value:
            await _close_if_decided_elsewhere(db, link, permit, now)
            raise InvalidPermitStateError()

        # Step 4: write the link first; losing here means another request won
        metadata = LinkMetadata.from_column(link.link_metadata).merged(
            decision=decision,
            decided_at=now,
            request_ip=context.ip,
            user_agent=context.user_agent,
        )
        if not await link_store.claim_link(db, link, decision, comment, metadata, now):
            link = await link_store.lock_link(db, link.id)
            check_link_usable(link, now)
            raise LinkAlreadyUsedError(link.used_action)

        who = link.recipient_email
        if link.recipient_name:
            who = f"{link.recipient_name} <{link.recipient_email}>"
        note = format_note(now, decision, who, "email link", comment)
        _apply_to_permit(
            permit, decision, new_status, note,
            source=DecisionSource.EMAIL_LINK,
            approved_by=None,
            now=now,
        )

        # Nobody else may act once the permit is decided
        others = await link_store.live_links_for_permit(db, permit.id, now, exclude_id=link.id)
        invalidated = link_store.invalidate_links(others, LinkState.DECISION_TAKEN.value, now)

        record_event(
            db,
            permit.id,
            PermitEventType.APPROVAL_EMAIL_ACTION,
            link.recipient_email,
            {
                "decision": decision,
                "comment": comment,
                "link_id": str(link.id),
                "ip": context.ip,
                "user_agent": context.user_agent,
                "invalidated_links": invalidated,
            },
        )
        
        result = DecisionResult(
            status=decision,
            permit_id=permit.id,
            permit_ref=permit.display_ref,
            decided_at=now,
            comment=comment,
            decision_source=DecisionSource.EMAIL_LINK,
        )
        recipient_email = link.recipient_email
        link_id = link.id
        
        await db.commit()
    except ApprovalError as e:
        await db.rollback()
        logger.info(f"Approval link decision refused ({e.kind}): {e.message}")
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Approval link decision failed, rolled back: {e}", exc_info=True)
        raise TransientStoreError() from e
    
    logger.info(
        f"Permit {result.permit_id} {decision} via approval link {link_id} "
        f"({invalidated} other links closed)"
    )
    activity_logger.info(
        f"Permit {result.permit_ref} {decision} by {recipient_email} via email link"
    )
    
    await _after_decision(db, permit, decision, comment)
    return result


async def decide_internal(
    db: AsyncSession,
    permit_id: UUID,
    action: Union[str, DecisionAction],
    user: User,
    comment: Optional[str] = None,
    context: Optional[RequestContext] = None,
    now: Optional[datetime] = None
) -> DecisionResult:
    """
    Apply a decision made by an internal manager from the review screen.
    
    Same guarantees as decide(); every live link for the permit is closed
    with reason decision_taken.
    """
    decision_action = parse_action(action)
    comment = clean_comment(comment)
    context = context or RequestContext()
    now = now or datetime.utcnow()
    decision, new_status = DECISION_OUTCOMES[decision_action]
    
    try:
        # Links before the permit, the same order decide() takes them in
        live = await link_store.live_links_for_permit(db, permit_id, now)
        permit = await _lock_permit(db, permit_id)
        if permit is None:
            raise PermitNotFoundError(f"Permit {permit_id} not found")
        if permit.status != PermitStatus.PENDING_APPROVAL.value:
            raise InvalidPermitStateError()

        note = format_note(now, decision, user.display_name, "internal review", comment)
        _apply_to_permit(
            permit, decision, new_status, note,
            source=DecisionSource.INTERNAL_USER,
            approved_by=user.id,
            now=now,
        )

        invalidated = link_store.invalidate_links(live, LinkState.DECISION_TAKEN.value, now)
        
        record_event(
            db,
            permit.id,
            PermitEventType.APPROVAL_INTERNAL_ACTION,
            user.email,
            {
                "decision": decision,
                "comment": comment,
                "user_id": str(user.id),
                "ip": context.ip,
                "user_agent": context.user_agent,
                "invalidated_links": invalidated,
            },
        )
        
        result = DecisionResult(
            status=decision,
            permit_id=permit.id,
            permit_ref=permit.display_ref,
            decided_at=now,
            comment=comment,
            decision_source=DecisionSource.INTERNAL_USER,
        )
        
        await db.commit()
    except ApprovalError as e:
        await db.rollback()
        logger.info(f"Internal decision on permit {permit_id} refused ({e.kind}): {e.message}")
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Internal decision on permit {permit_id} failed, rolled back: {e}", exc_info=True)
        raise TransientStoreError() from e
    
    activity_logger.info(f"Permit {result.permit_ref} {decision} by {user.email} via internal review")
    
    await _after_decision(db, permit, decision, comment)
    return result


async def _after_decision(
    db: AsyncSession,
    permit: Permit,
    decision: str,
    comment: Optional[str]
) -> None:
    """Best-effort follow-ups once the decision is committed."""
    permit_id = permit.id
    try:
        await clear_notification_flag(db, permit_id)
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to clear notification flag on permit {permit_id}: {e}", exc_info=True)
    
    try:
        # A rollback above expired the permit
        await db.refresh(permit)
        queued = await email_service.send_decision_notification(db, permit, decision, comment)
        if queued:
            await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to queue decision email for permit {permit_id}: {e}", exc_info=True)


async def preview_link(
    db: AsyncSession,
    raw_token: str,
    intent: Optional[str] = None,
    now: Optional[datetime] = None
) -> LinkPreview:
    """
    Describe a link for the landing page without changing anything.
    
    Raises:
        LinkNotFoundError: Unknown or empty token
    """
    token = (raw_token or "").strip()
    if not token:
        raise LinkNotFoundError("The approval link appears to be incomplete.")
    
    now = now or datetime.utcnow()
    link = await link_store.get_link_by_hash(db, hash_token(token))
    if link is None:
        raise LinkNotFoundError()
    
    result = await db.execute(select(Permit).where(Permit.id == link.permit_id))
    permit = result.scalar_one_or_none()
    
    message = "Review the permit and record your decision."
    can_decide = True
    try:
        check_link_usable(link, now)
        if permit is None or permit.status != PermitStatus.PENDING_APPROVAL.value:
            raise InvalidPermitStateError()
    except ApprovalError as e:
        message = e.message
        can_decide = False
    
    try:
        intent_action = parse_action(intent) if intent else DecisionAction.APPROVE
    except ApprovalValidationError:
        intent_action = DecisionAction.APPROVE
    
    summary = None
    if permit is not None:
        summary = PermitSummary(
            id=permit.id,
            ref=permit.display_ref,
            template_name=permit.template_name,
            holder_name=permit.holder_name,
            holder_email=permit.holder_email,
            status=permit.status,
            submitted_at=permit.created_at,
        )
    
    return LinkPreview(
        state=link.state(now).value,
        can_decide=can_decide,
        intent=intent_action,
        recipient_name=link.recipient_name,
        recipient_email=link.recipient_email,
        expires_at=link.expires_at,
        used_at=link.used_at,
        used_action=link.used_action,
        used_comment=link.used_comment,
        permit=summary,
        message=message,
    )


async def cancel_links(
    db: AsyncSession,
    permit_id: UUID,
    reason: str = LinkState.PERMIT_CANCELLED.value,
    actor: str = "system",
    now: Optional[datetime] = None
) -> int:
    """Close every live link of a permit without a decision. Returns how many were closed."""
    now = now or datetime.utcnow()
    permit = await get_permit(db, permit_id)
    
    live = await link_store.live_links_for_permit(db, permit.id, now)
    cancelled = link_store.invalidate_links(live, reason, now)
    await db.commit()
    
    if cancelled:
        await append_event(
            db,
            permit.id,
            PermitEventType.APPROVAL_LINKS_CANCELLED,
            actor,
            {"reason": reason, "count": cancelled},
        )
        activity_logger.info(f"Cancelled {cancelled} approval links for permit {permit.display_ref}")
    
    logger.info(f"Cancelled {cancelled} approval links for permit {permit_id} ({reason})")
    return cancelled
