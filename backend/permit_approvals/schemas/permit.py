"""Permit approval status and internal action schemas."""
from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field

from permit_approvals.models.permit import PermitStatus
from permit_approvals.schemas.approval_link import DecisionAction


class RecipientStatus(BaseModel):
    """Where one recipient stands on one permit."""
    email: str
    name: Optional[str] = None
    recipient_id: Optional[str] = None
    status: str  # missing | awaiting | expired | approved | rejected | invalidated
    label: str
    link_id: Optional[UUID] = None
    sent_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    used_action: Optional[str] = None
    used_comment: Optional[str] = None


class PermitApprovalStatus(BaseModel):
    """Per-recipient status for a permit plus links sent to since-removed recipients."""
    permit_id: UUID
    recipients: list[RecipientStatus] = Field(default_factory=list)
    extra: list[RecipientStatus] = Field(default_factory=list)


class PermitResponse(BaseModel):
    """Schema for permit response."""
    id: UUID
    ref_number: Optional[str] = None
    template_name: Optional[str] = None
    holder_name: Optional[str] = None
    holder_email: Optional[str] = None
    status: str
    approved_at: Optional[datetime] = None
    approved_by: Optional[UUID] = None
    decision_source: Optional[str] = None
    approval_notes: Optional[str] = None
    notified_at: Optional[datetime] = None
    created_at: datetime
    
    model_config = ConfigDict(from_attributes=True)


class PendingPermitResponse(BaseModel):
    """A permit awaiting approval together with its recipient status."""
    permit: PermitResponse
    approval: PermitApprovalStatus


class PermitTransitionRequest(BaseModel):
    """Move a permit to another status."""
    status: PermitStatus


class NotifyRequest(BaseModel):
    """Trigger approval emails. resend=True clears the notified flag first."""
    resend: bool = False


class NotifyResponse(BaseModel):
    permit_id: UUID
    queued: int


class InternalDecisionRequest(BaseModel):
    """Approve or reject from the internal review screen."""
    action: DecisionAction
    comment: Optional[str] = None


class CancelLinksResponse(BaseModel):
    permit_id: UUID
    cancelled: int
