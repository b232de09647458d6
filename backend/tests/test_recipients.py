"""
Tests for approval recipient configuration.
"""
import json
import pytest

from permit_approvals.models.setting import Setting
from permit_approvals.services import recipients as recipient_store
from permit_approvals.services.errors import ApprovalValidationError, RecipientNotFoundError


@pytest.mark.asyncio
async def test_empty_when_unconfigured(db):
    assert await recipient_store.list_recipients(db) == []


@pytest.mark.asyncio
async def test_add_and_list_sorted_by_name(db):
    await recipient_store.add_recipient(db, "Zed", "zed@example.com")
    await recipient_store.add_recipient(db, "", "carol@example.com")
    await recipient_store.add_recipient(db, "Amy", "amy@example.com")
    
    recipients = await recipient_store.list_recipients(db)
    
    assert [r.email for r in recipients] == ["amy@example.com", "carol@example.com", "zed@example.com"]
    assert all(r.id for r in recipients)
    assert recipients[1].display_name == "carol@example.com"


@pytest.mark.asyncio
async def test_add_rejects_duplicate_email_case_insensitively(db):
    await recipient_store.add_recipient(db, "Alice", "alice@example.com")
    
    with pytest.raises(ApprovalValidationError):
        await recipient_store.add_recipient(db, "Alice Again", "ALICE@example.com")


@pytest.mark.asyncio
async def test_add_rejects_invalid_email(db):
    with pytest.raises(ApprovalValidationError):
        await recipient_store.add_recipient(db, "Nobody", "not-an-email")


@pytest.mark.asyncio
async def test_update_recipient(db):
    recipients = await recipient_store.add_recipient(db, "Alice", "alice@example.com")
    await recipient_store.add_recipient(db, "Bob", "bob@example.com")
    
    updated = await recipient_store.update_recipient(db, recipients[0].id, "Alice Smith", "asmith@example.com")
    
    alice = next(r for r in updated if r.id == recipients[0].id)
    assert alice.name == "Alice Smith"
    assert alice.email == "asmith@example.com"


@pytest.mark.asyncio
async def test_update_to_existing_email_is_rejected(db):
    recipients = await recipient_store.add_recipient(db, "Alice", "alice@example.com")
    await recipient_store.add_recipient(db, "Bob", "bob@example.com")
    
    with pytest.raises(ApprovalValidationError):
        await recipient_store.update_recipient(db, recipients[0].id, "Alice", "bob@example.com")


@pytest.mark.asyncio
async def test_delete_recipient(db):
    recipients = await recipient_store.add_recipient(db, "Alice", "alice@example.com")
    
    remaining = await recipient_store.delete_recipient(db, recipients[0].id)
    
    assert remaining == []
    with pytest.raises(RecipientNotFoundError):
        await recipient_store.delete_recipient(db, recipients[0].id)


@pytest.mark.asyncio
async def test_stored_list_is_normalized_on_read(db):
    db.add(Setting(
        key=recipient_store.APPROVAL_RECIPIENTS_SETTING_KEY,
        value=json.dumps([
            {"id": "1", "name": "Bob", "email": "bob@example.com"},
            {"id": "2", "name": "Bob Duplicate", "email": "BOB@example.com"},
            {"id": "3", "name": "Broken", "email": "broken"},
            "not a dict",
            {"name": "No Id", "email": "noid@example.com"},
        ]),
    ))
    await db.commit()
    
    recipients = await recipient_store.list_recipients(db)
    
    assert [r.email for r in recipients] == ["bob@example.com", "noid@example.com"]
    assert recipients[0].name == "Bob"
    assert recipients[1].id


@pytest.mark.asyncio
async def test_invalid_json_reads_as_empty(db):
    db.add(Setting(key=recipient_store.APPROVAL_RECIPIENTS_SETTING_KEY, value="{oops"))
    await db.commit()
    
    assert await recipient_store.list_recipients(db) == []
