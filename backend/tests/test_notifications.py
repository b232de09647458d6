"""
Tests for pending-approval notifications.

Validates:
- One link and one queued email per configured recipient
- notified_at prevents duplicate notifications
- Resend supersedes the previous round of links
- A failure for one recipient does not stop the others
"""
import pytest
from sqlalchemy import select, func

import permit_approvals.services.notifications as notifications
from permit_approvals.models.approval_link import ApprovalLink, LinkState
from permit_approvals.models.permit import PermitStatus
from permit_approvals.models.permit_event import PermitEvent
from permit_approvals.models.queued_email import QueuedEmail
from permit_approvals.services.notifications import notify_pending, resend_notifications

from conftest import make_permit


async def _count(db, model, *criteria):
    return await db.scalar(select(func.count()).select_from(model).where(*criteria))


@pytest.mark.asyncio
async def test_notify_queues_one_email_per_recipient(db, permit, recipients):
    queued = await notify_pending(db, permit.id)
    
    assert queued == 2
    
    result = await db.execute(select(QueuedEmail).order_by(QueuedEmail.to_email))
    messages = result.scalars().all()
    assert [m.to_email for m in messages] == ["alice@example.com", "bob@example.com"]
    assert all(m.subject == "Permit Awaiting Approval: PTW-0001" for m in messages)
    assert all(m.status == "pending" for m in messages)
    assert "/permit-approval?token=" in messages[0].body
    assert "intent=approve" in messages[0].body
    assert "intent=reject" in messages[0].body
    assert "Hello Alice Approver" in messages[0].body
    
    result = await db.execute(select(ApprovalLink).where(ApprovalLink.permit_id == permit.id))
    links = result.scalars().all()
    assert sorted(link.recipient_email for link in links) == ["alice@example.com", "bob@example.com"]
    assert all(link.is_live() for link in links)
    
    await db.refresh(permit)
    assert permit.notified_at is not None
    
    events = await _count(db, PermitEvent, PermitEvent.event_type == "notification_queued")
    assert events == 1


@pytest.mark.asyncio
async def test_notify_twice_sends_nothing_new(db, permit, recipients):
    assert await notify_pending(db, permit.id) == 2
    assert await notify_pending(db, permit.id) == 0
    
    assert await _count(db, QueuedEmail) == 2
    assert await _count(db, ApprovalLink) == 2


@pytest.mark.asyncio
async def test_notify_skips_permit_not_pending(db, recipients):
    permit = await make_permit(db, status=PermitStatus.DRAFT)
    
    assert await notify_pending(db, permit.id) == 0
    assert await _count(db, QueuedEmail) == 0


@pytest.mark.asyncio
async def test_notify_without_recipients_leaves_flag_unset(db, permit):
    assert await notify_pending(db, permit.id) == 0
    
    await db.refresh(permit)
    assert permit.notified_at is None


@pytest.mark.asyncio
async def test_resend_supersedes_previous_links(db, permit, recipients):
    await notify_pending(db, permit.id)
    
    queued = await resend_notifications(db, permit.id)
    
    assert queued == 2
    result = await db.execute(
        select(ApprovalLink)
        .where(ApprovalLink.permit_id == permit.id)
        .execution_options(populate_existing=True)
    )
    links = result.scalars().all()
    assert len(links) == 4
    assert sum(1 for link in links if link.is_live()) == 2
    assert sum(1 for link in links if link.used_action == LinkState.SUPERSEDED.value) == 2
    assert await _count(db, QueuedEmail) == 4


@pytest.mark.asyncio
async def test_one_failing_recipient_does_not_block_others(db, permit, recipients, monkeypatch):
    original = notifications.email_service.send_pending_approval_notification
    
    async def flaky_send(db, permit, recipient, urls, expires_at):
        if recipient.email == "alice@example.com":
            raise RuntimeError("template error")
        return await original(db, permit, recipient, urls, expires_at)
    
    monkeypatch.setattr(notifications.email_service, "send_pending_approval_notification", flaky_send)
    
    queued = await notify_pending(db, permit.id)
    
    assert queued == 1
    result = await db.execute(select(QueuedEmail))
    assert [m.to_email for m in result.scalars().all()] == ["bob@example.com"]
    
    # Alice's link was rolled back with her email
    result = await db.execute(select(ApprovalLink))
    assert [link.recipient_email for link in result.scalars().all()] == ["bob@example.com"]
    
    result = await db.execute(select(PermitEvent).where(PermitEvent.event_type == "notification_queued"))
    event = result.scalar_one()
    assert event.payload["recipients"] == ["bob@example.com"]
    assert event.payload["failed"] == ["alice@example.com"]


@pytest.mark.asyncio
async def test_flag_released_when_every_recipient_fails(db, permit, recipients, monkeypatch):
    async def broken_send(db, permit, recipient, urls, expires_at):
        raise RuntimeError("template error")
    
    monkeypatch.setattr(notifications.email_service, "send_pending_approval_notification", broken_send)
    
    assert await notify_pending(db, permit.id) == 0
    
    await db.refresh(permit)
    assert permit.notified_at is None
    assert await _count(db, ApprovalLink) == 0
    
    monkeypatch.undo()
    assert await notify_pending(db, permit.id) == 2
