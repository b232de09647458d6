"""
Per-recipient approval status for internal review screens.

For each permit and each currently configured recipient, the newest link
sent to that recipient decides the status. Links sent to addresses that
are no longer configured are reported under `extra`. Read-only.
"""
from datetime import datetime
from typing import Dict, List, Optional, Sequence
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from permit_approvals.models.approval_link import ApprovalLink, LinkState
from permit_approvals.schemas.permit import PermitApprovalStatus, RecipientStatus
from permit_approvals.schemas.recipient import Recipient
from permit_approvals.services import link_store


class RecipientStatusKind:
    MISSING = "missing"
    AWAITING = "awaiting"
    EXPIRED = "expired"
    APPROVED = "approved"
    REJECTED = "rejected"
    INVALIDATED = "invalidated"


STATUS_LABELS = {
    RecipientStatusKind.MISSING: "Not sent",
    RecipientStatusKind.AWAITING: "Awaiting response",
    RecipientStatusKind.EXPIRED: "Link expired",
    RecipientStatusKind.APPROVED: "Approved",
    RecipientStatusKind.REJECTED: "Rejected",
    RecipientStatusKind.INVALIDATED: "Link no longer valid",
}

_STATE_TO_STATUS = {
    LinkState.LIVE: RecipientStatusKind.AWAITING,
    LinkState.EXPIRED: RecipientStatusKind.EXPIRED,
    LinkState.APPROVED: RecipientStatusKind.APPROVED,
    LinkState.REJECTED: RecipientStatusKind.REJECTED,
}


def classify_link(link: Optional[ApprovalLink], now: datetime) -> str:
    """Map a recipient's newest link to a display status."""
    if link is None:
        return RecipientStatusKind.MISSING
    return _STATE_TO_STATUS.get(link.state(now), RecipientStatusKind.INVALIDATED)


def _recipient_status(
    email: str,
    name: Optional[str],
    recipient_id: Optional[str],
    link: Optional[ApprovalLink],
    now: datetime
) -> RecipientStatus:
    status = classify_link(link, now)
    return RecipientStatus(
        email=email,
        name=name or None,
        recipient_id=recipient_id,
        status=status,
        label=STATUS_LABELS[status],
        link_id=link.id if link else None,
        sent_at=link.created_at if link else None,
        expires_at=link.expires_at if link else None,
        used_at=link.used_at if link else None,
        used_action=link.used_action if link else None,
        used_comment=link.used_comment if link else None,
    )


async def status_for(
    db: AsyncSession,
    permit_ids: Sequence[UUID],
    recipients: Sequence[Recipient],
    now: Optional[datetime] = None
) -> Dict[UUID, PermitApprovalStatus]:
    """
    Build the recipient status map for a batch of permits.
    
    Args:
        db: Database session
        permit_ids: Permits to report on
        recipients: Currently configured recipients, in display order
        now: Reference time for expiry, defaults to utcnow
    
    Returns:
        permit_id -> PermitApprovalStatus (every requested id is present)
    """
    now = now or datetime.utcnow()
    
    # Newest link per (permit, lower(email)); rows arrive newest first
    latest: Dict[UUID, Dict[str, ApprovalLink]] = {pid: {} for pid in permit_ids}
    for link in await link_store.links_for_permits(db, permit_ids):
        per_permit = latest.setdefault(link.permit_id, {})
        per_permit.setdefault(link.recipient_email.strip().lower(), link)
    
    configured = {r.email.strip().lower() for r in recipients}
    statuses: Dict[UUID, PermitApprovalStatus] = {}
    
    for permit_id in permit_ids:
        links = latest.get(permit_id, {})
        rows: List[RecipientStatus] = [
            _recipient_status(r.email, r.name, r.id, links.get(r.email.strip().lower()), now)
            for r in recipients
        ]
        extra: List[RecipientStatus] = [
            _recipient_status(link.recipient_email, link.recipient_name, None, link, now)
            for email, link in links.items()
            if email not in configured
        ]
        statuses[permit_id] = PermitApprovalStatus(
            permit_id=permit_id,
            recipients=rows,
            extra=extra,
        )
    
    return statuses
