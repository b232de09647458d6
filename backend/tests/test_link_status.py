"""
Tests for per-recipient approval status.
"""
import pytest
from datetime import datetime, timedelta

from permit_approvals.schemas.recipient import Recipient
from permit_approvals.services.decisions import decide
from permit_approvals.services.link_status import classify_link, status_for

from conftest import issue_for, make_permit


def _by_email(status):
    return {row.email: row for row in status.recipients}


@pytest.mark.asyncio
async def test_recipient_without_link_is_missing(db, permit, recipients):
    statuses = await status_for(db, [permit.id], recipients)
    
    rows = _by_email(statuses[permit.id])
    assert rows["alice@example.com"].status == "missing"
    assert rows["alice@example.com"].label == "Not sent"
    assert rows["alice@example.com"].link_id is None
    assert rows["alice@example.com"].name == "Alice Approver"


@pytest.mark.asyncio
async def test_statuses_follow_newest_link(db, permit, recipients):
    await issue_for(db, permit, "alice@example.com")
    bob = await issue_for(db, permit, "bob@example.com")
    newest_alice = await issue_for(db, permit, "alice@example.com")
    
    rows = _by_email((await status_for(db, [permit.id], recipients))[permit.id])
    assert rows["alice@example.com"].status == "awaiting"
    assert rows["alice@example.com"].link_id == newest_alice.link_id
    assert rows["bob@example.com"].link_id == bob.link_id


@pytest.mark.asyncio
async def test_decided_and_invalidated_statuses(db, permit, recipients):
    alice = await issue_for(db, permit, "alice@example.com")
    await issue_for(db, permit, "bob@example.com")
    await decide(db, alice.raw_token, "reject", "Not yet")
    
    rows = _by_email((await status_for(db, [permit.id], recipients))[permit.id])
    assert rows["alice@example.com"].status == "rejected"
    assert rows["alice@example.com"].used_comment == "Not yet"
    assert rows["bob@example.com"].status == "invalidated"
    assert rows["bob@example.com"].used_action == "decision_taken"


@pytest.mark.asyncio
async def test_expired_status(db, permit, recipients):
    await issue_for(db, permit, "alice@example.com", now=datetime.utcnow() - timedelta(days=10))
    
    rows = _by_email((await status_for(db, [permit.id], recipients))[permit.id])
    assert rows["alice@example.com"].status == "expired"
    assert rows["alice@example.com"].label == "Link expired"


@pytest.mark.asyncio
async def test_removed_recipient_reported_as_extra(db, permit, recipients):
    await issue_for(db, permit, "former@example.com", "Former Approver")
    
    status = (await status_for(db, [permit.id], recipients))[permit.id]
    
    assert len(status.recipients) == 2
    assert [row.email for row in status.extra] == ["former@example.com"]
    assert status.extra[0].status == "awaiting"


@pytest.mark.asyncio
async def test_email_matching_is_case_insensitive(db, permit):
    await issue_for(db, permit, "ALICE@example.com")
    recipients = [Recipient(id="1", name="Alice", email="alice@example.com")]
    
    status = (await status_for(db, [permit.id], recipients))[permit.id]
    
    assert status.recipients[0].status == "awaiting"
    assert status.extra == []


@pytest.mark.asyncio
async def test_batch_includes_every_requested_permit(db, permit, recipients):
    other = await make_permit(db, ref_number="PTW-0002")
    await issue_for(db, other, "bob@example.com")
    
    statuses = await status_for(db, [permit.id, other.id], recipients)
    
    assert set(statuses) == {permit.id, other.id}
    assert _by_email(statuses[permit.id])["bob@example.com"].status == "missing"
    assert _by_email(statuses[other.id])["bob@example.com"].status == "awaiting"


def test_classify_missing_link():
    assert classify_link(None, datetime.utcnow()) == "missing"
