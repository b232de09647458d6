"""
Issues approval links.

Issuing for a (permit, recipient) pair first supersedes every unused link
for that pair, so only the newest email ever works. Two concurrent issues
for the same pair both succeed; the one inserted last stays live.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from permit_approvals.config import settings
from permit_approvals.models.approval_link import LinkState
from permit_approvals.models.permit import Permit
from permit_approvals.schemas.approval_link import LinkMetadata
from permit_approvals.schemas.recipient import Recipient
from permit_approvals.services import link_store
from permit_approvals.services.tokens import generate_token

logger = logging.getLogger(__name__)


def default_ttl() -> timedelta:
    return timedelta(days=settings.approval_link_ttl_days)


@dataclass(frozen=True)
class IssuedLink:
    """A freshly issued link. raw_token is only ever available here."""
    link_id: UUID
    raw_token: str
    expires_at: datetime
    superseded: int = 0


async def issue_link(
    db: AsyncSession,
    permit: Permit,
    recipient: Recipient,
    ttl: Optional[timedelta] = None,
    now: Optional[datetime] = None
) -> IssuedLink:
    """
    Supersede outstanding links for the pair and create a new one.
    
    Args:
        db: Database session (flushed, not committed)
        permit: Permit the link decides
        recipient: Who the link is sent to (snapshotted onto the row)
        ttl: Lifetime of the link, defaults to approval_link_ttl_days
        now: Issue time, defaults to utcnow
    
    Returns:
        IssuedLink with the raw token to embed in the message
    """
    now = now or datetime.utcnow()
    expires_at = now + (ttl if ttl is not None else default_ttl())
    
    outstanding = await link_store.live_links_for_recipient(db, permit.id, recipient.email)
    superseded = link_store.invalidate_links(outstanding, LinkState.SUPERSEDED.value, now)
    
    raw_token, token_hash = generate_token()
    metadata = LinkMetadata(
        recipient_id=recipient.id,
        recipient_name=recipient.name or None,
        permit_ref=permit.display_ref,
        template_name=permit.template_name,
    )
    link = await link_store.create_link(
        db,
        permit_id=permit.id,
        recipient_email=recipient.email,
        recipient_name=recipient.name,
        token_hash=token_hash,
        expires_at=expires_at,
        metadata=metadata,
        now=now,
    )
    
    logger.info(
        f"Issued approval link {link.id} for permit {permit.id} to {recipient.email} "
        f"(expires {expires_at.isoformat()}, superseded {superseded})"
    )
    
    return IssuedLink(
        link_id=link.id,
        raw_token=raw_token,
        expires_at=expires_at,
        superseded=superseded,
    )
