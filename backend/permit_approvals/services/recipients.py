"""
Approval recipient configuration.

The list is stored as JSON under a single settings key. Reads normalize
it: entries with invalid emails are dropped, emails are deduplicated
case-insensitively, and the result is sorted by name (falling back to email).
"""
import json
import logging
import uuid
from datetime import datetime
from typing import List, Optional
from email_validator import validate_email, EmailNotValidError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from permit_approvals.models.setting import Setting
from permit_approvals.schemas.recipient import Recipient
from permit_approvals.services.errors import ApprovalValidationError, RecipientNotFoundError

logger = logging.getLogger(__name__)

APPROVAL_RECIPIENTS_SETTING_KEY = "approval_notification_recipients"


def _is_valid_email(email: str) -> bool:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _clean(name: str, email: str) -> tuple[str, str]:
    name = (name or "").strip()
    email = (email or "").strip()
    if not _is_valid_email(email):
        raise ApprovalValidationError("Please provide a valid email address.")
    return name, email


def _sort_key(recipient: Recipient) -> str:
    return (recipient.name or recipient.email).lower()


async def _load_raw(db: AsyncSession) -> list:
    result = await db.execute(
        select(Setting).where(Setting.key == APPROVAL_RECIPIENTS_SETTING_KEY)
    )
    setting = result.scalar_one_or_none()
    if not setting or not setting.value:
        return []
    try:
        decoded = json.loads(setting.value)
    except ValueError:
        logger.warning("Stored approval recipient list is not valid JSON; treating as empty")
        return []
    return decoded if isinstance(decoded, list) else []


async def list_recipients(db: AsyncSession) -> List[Recipient]:
    """Return the configured recipients, normalized and sorted."""
    seen = set()
    recipients = []
    
    for entry in await _load_raw(db):
        if not isinstance(entry, dict):
            continue
        email = str(entry.get("email") or "").strip()
        if not _is_valid_email(email):
            continue
        key = email.lower()
        if key in seen:
            continue
        seen.add(key)
        recipients.append(Recipient(
            id=str(entry.get("id") or uuid.uuid4()),
            name=str(entry.get("name") or "").strip(),
            email=email,
            created_at=entry.get("created_at"),
        ))
    
    recipients.sort(key=_sort_key)
    return recipients


async def save_recipients(db: AsyncSession, recipients: List[Recipient]) -> None:
    """Persist the full list and commit."""
    payload = json.dumps(
        [r.model_dump(mode="json") for r in recipients],
        ensure_ascii=False
    )
    
    result = await db.execute(
        select(Setting).where(Setting.key == APPROVAL_RECIPIENTS_SETTING_KEY)
    )
    setting = result.scalar_one_or_none()
    if setting is None:
        setting = Setting(key=APPROVAL_RECIPIENTS_SETTING_KEY)
        db.add(setting)
    setting.value = payload
    setting.updated_at = datetime.utcnow()
    
    await db.commit()


async def add_recipient(db: AsyncSession, name: str, email: str) -> List[Recipient]:
    """Add a recipient and return the updated list."""
    name, email = _clean(name, email)
    
    recipients = await list_recipients(db)
    if any(r.email.lower() == email.lower() for r in recipients):
        raise ApprovalValidationError("That email address is already on the notification list.")
    
    recipients.append(Recipient(
        id=str(uuid.uuid4()),
        name=name,
        email=email,
        created_at=datetime.utcnow(),
    ))
    await save_recipients(db, recipients)
    
    logger.info(f"Added approval recipient {email}")
    return sorted(recipients, key=_sort_key)


async def update_recipient(
    db: AsyncSession,
    recipient_id: str,
    name: str,
    email: str
) -> List[Recipient]:
    """Update a recipient's name/email and return the updated list."""
    name, email = _clean(name, email)
    
    recipients = await list_recipients(db)
    target: Optional[Recipient] = None
    for recipient in recipients:
        if recipient.id == recipient_id:
            target = recipient
        elif recipient.email.lower() == email.lower():
            raise ApprovalValidationError("Another record already uses that email address.")
    
    if target is None:
        raise RecipientNotFoundError()
    
    target.name = name
    target.email = email
    await save_recipients(db, recipients)
    
    logger.info(f"Updated approval recipient {recipient_id}")
    return sorted(recipients, key=_sort_key)


async def delete_recipient(db: AsyncSession, recipient_id: str) -> List[Recipient]:
    """Remove a recipient and return the updated list."""
    recipients = await list_recipients(db)
    remaining = [r for r in recipients if r.id != recipient_id]
    
    if len(remaining) == len(recipients):
        raise RecipientNotFoundError()
    
    await save_recipients(db, remaining)
    
    logger.info(f"Deleted approval recipient {recipient_id}")
    return remaining
