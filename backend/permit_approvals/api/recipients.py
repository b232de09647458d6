"""
Approval recipient configuration endpoints (admin only).
"""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from permit_approvals.database import get_db
from permit_approvals.models.user import User
from permit_approvals.api.auth import get_current_user, require_admin
from permit_approvals.api.errors import http_error
from permit_approvals.schemas.recipient import Recipient, RecipientCreate
from permit_approvals.services import recipients as recipient_store
from permit_approvals.services.errors import ApprovalError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=list[Recipient])
async def list_recipients(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List configured approval recipients."""
    return await recipient_store.list_recipients(db)


@router.post("/", response_model=list[Recipient], status_code=201)
async def add_recipient(
    body: RecipientCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Add a recipient. Returns 422 if the email is already on the list."""
    try:
        return await recipient_store.add_recipient(db, body.name, str(body.email))
    except ApprovalError as e:
        raise http_error(e)


@router.put("/{recipient_id}", response_model=list[Recipient])
async def update_recipient(
    recipient_id: str,
    body: RecipientCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Update a recipient's name and email."""
    try:
        return await recipient_store.update_recipient(db, recipient_id, body.name, str(body.email))
    except ApprovalError as e:
        raise http_error(e)


@router.delete("/{recipient_id}", response_model=list[Recipient])
async def delete_recipient(
    recipient_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Remove a recipient.
    
    Links already sent to them keep their history and show up under
    `extra` in approval status.
    """
    try:
        return await recipient_store.delete_recipient(db, recipient_id)
    except ApprovalError as e:
        raise http_error(e)
