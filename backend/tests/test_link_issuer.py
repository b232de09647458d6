"""
Tests for approval link issuing.

Validates:
- A new link is live with the configured TTL
- Issuing again supersedes every unused link for the same recipient
- Other recipients' links are untouched
- Only the hash is stored
"""
import pytest
from datetime import datetime, timedelta
from sqlalchemy import select

from permit_approvals.config import settings
from permit_approvals.models.approval_link import ApprovalLink, LinkState
from permit_approvals.services.tokens import hash_token

from conftest import issue_for


async def _links(db, permit):
    result = await db.execute(
        select(ApprovalLink)
        .where(ApprovalLink.permit_id == permit.id)
        .order_by(ApprovalLink.created_at)
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()


@pytest.mark.asyncio
async def test_issue_link_creates_live_link(db, permit):
    now = datetime.utcnow()
    issued = await issue_for(db, permit, "alice@example.com", "Alice", now=now)
    
    links = await _links(db, permit)
    assert len(links) == 1
    link = links[0]
    
    assert link.id == issued.link_id
    assert link.token_hash == hash_token(issued.raw_token)
    assert link.token_hash != issued.raw_token
    assert link.expires_at == now + timedelta(days=settings.approval_link_ttl_days)
    assert link.state(now) == LinkState.LIVE
    assert link.recipient_name == "Alice"
    assert link.link_metadata["permit_ref"] == "PTW-0001"
    assert link.link_metadata["recipient_id"] == "r-alice@example.com"
    assert issued.superseded == 0


@pytest.mark.asyncio
async def test_issue_link_respects_custom_ttl(db, permit):
    now = datetime.utcnow()
    issued = await issue_for(db, permit, "alice@example.com", ttl=timedelta(hours=2), now=now)
    
    assert issued.expires_at == now + timedelta(hours=2)


@pytest.mark.asyncio
async def test_reissue_supersedes_previous_link(db, permit):
    first = await issue_for(db, permit, "alice@example.com")
    second = await issue_for(db, permit, "alice@example.com")
    
    assert second.superseded == 1
    
    links = {link.id: link for link in await _links(db, permit)}
    assert links[first.link_id].used_action == LinkState.SUPERSEDED.value
    assert links[first.link_id].used_at is not None
    assert links[first.link_id].used_comment is None
    assert links[second.link_id].is_live()


@pytest.mark.asyncio
async def test_reissue_matches_email_case_insensitively(db, permit):
    first = await issue_for(db, permit, "Alice@Example.com")
    second = await issue_for(db, permit, "alice@example.com")
    
    assert second.superseded == 1
    links = {link.id: link for link in await _links(db, permit)}
    assert links[first.link_id].state() == LinkState.SUPERSEDED


@pytest.mark.asyncio
async def test_reissue_also_closes_expired_unused_links(db, permit):
    old = datetime.utcnow() - timedelta(days=30)
    expired = await issue_for(db, permit, "alice@example.com", now=old)
    fresh = await issue_for(db, permit, "alice@example.com")
    
    assert fresh.superseded == 1
    links = {link.id: link for link in await _links(db, permit)}
    assert links[expired.link_id].used_action == LinkState.SUPERSEDED.value


@pytest.mark.asyncio
async def test_reissue_leaves_other_recipients_alone(db, permit):
    alice = await issue_for(db, permit, "alice@example.com")
    await issue_for(db, permit, "bob@example.com")
    
    links = {link.id: link for link in await _links(db, permit)}
    assert links[alice.link_id].is_live()


@pytest.mark.asyncio
async def test_at_most_one_live_link_per_recipient(db, permit):
    for _ in range(4):
        await issue_for(db, permit, "alice@example.com")
    
    live = [link for link in await _links(db, permit) if link.is_live()]
    assert len(live) == 1
