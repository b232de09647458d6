"""
Persistence helpers for approval links.

Nothing here commits; callers own the transaction.
"""
from datetime import datetime
from typing import Iterable, Optional, Sequence
from uuid import UUID
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from permit_approvals.models.approval_link import ApprovalLink
from permit_approvals.schemas.approval_link import LinkMetadata


async def create_link(
    db: AsyncSession,
    permit_id: UUID,
    recipient_email: str,
    recipient_name: Optional[str],
    token_hash: str,
    expires_at: datetime,
    metadata: Optional[LinkMetadata] = None,
    now: Optional[datetime] = None
) -> ApprovalLink:
    """Insert a new live link and flush so its id is available."""
    link = ApprovalLink(
        permit_id=permit_id,
        recipient_email=recipient_email,
        recipient_name=recipient_name or None,
        token_hash=token_hash,
        expires_at=expires_at,
        link_metadata=(metadata or LinkMetadata()).to_column(),
        created_at=now or datetime.utcnow(),
    )
    db.add(link)
    await db.flush()
    return link


async def get_link_by_hash(db: AsyncSession, token_hash: str) -> Optional[ApprovalLink]:
    result = await db.execute(
        select(ApprovalLink).where(ApprovalLink.token_hash == token_hash)
    )
    return result.scalar_one_or_none()


async def lock_link(db: AsyncSession, link_id: UUID) -> Optional[ApprovalLink]:
    """Re-read a link under a row lock, refreshing any cached copy."""
    result = await db.execute(
        select(ApprovalLink)
        .where(ApprovalLink.id == link_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def live_links_for_recipient(
    db: AsyncSession,
    permit_id: UUID,
    recipient_email: str
) -> Sequence[ApprovalLink]:
    """Every unused link for the pair, expired or not (email compared case-insensitively)."""
    result = await db.execute(
        select(ApprovalLink)
        .where(
            ApprovalLink.permit_id == permit_id,
            func.lower(ApprovalLink.recipient_email) == recipient_email.strip().lower(),
            ApprovalLink.used_at.is_(None),
        )
    )
    return result.scalars().all()


async def live_links_for_permit(
    db: AsyncSession,
    permit_id: UUID,
    now: datetime,
    exclude_id: Optional[UUID] = None
) -> Sequence[ApprovalLink]:
    """
    Unused, unexpired links for a permit, locked.
    
    Rows another transaction holds are skipped: that transaction is
    deciding through its own link and closes it itself once it sees the
    permit is no longer pending.
    """
    query = (
        select(ApprovalLink)
        .where(
            ApprovalLink.permit_id == permit_id,
            ApprovalLink.used_at.is_(None),
            ApprovalLink.expires_at > now,
        )
        .with_for_update(skip_locked=True)
    )
    if exclude_id is not None:
        query = query.where(ApprovalLink.id != exclude_id)
    result = await db.execute(query)
    return result.scalars().all()


def invalidate_links(links: Iterable[ApprovalLink], reason: str, now: datetime) -> int:
    """Close links without a decision. Returns how many were closed."""
    count = 0
    for link in links:
        link.used_at = now
        link.used_action = reason
        count += 1
    return count


async def claim_link(
    db: AsyncSession,
    link: ApprovalLink,
    decision: str,
    comment: Optional[str],
    metadata: LinkMetadata,
    now: datetime
) -> bool:
    """
    Record the decision on the link that carried it.
    
    Conditional on used_at still being NULL, so a link is written at most
    once even where the row lock is not enforced (SQLite). Returns False if
    another transaction got there first.
    """
    result = await db.execute(
        update(ApprovalLink)
        .where(ApprovalLink.id == link.id, ApprovalLink.used_at.is_(None))
        .values({
            ApprovalLink.used_at: now,
            ApprovalLink.used_action: decision,
            ApprovalLink.used_comment: comment,
            ApprovalLink.link_metadata: metadata.to_column(),
        })
    )
    return result.rowcount == 1


async def links_for_permits(
    db: AsyncSession,
    permit_ids: Sequence[UUID]
) -> Sequence[ApprovalLink]:
    """All links for the given permits, newest first."""
    if not permit_ids:
        return []
    result = await db.execute(
        select(ApprovalLink)
        .where(ApprovalLink.permit_id.in_(list(permit_ids)))
        .order_by(ApprovalLink.created_at.desc())
    )
    return result.scalars().all()
