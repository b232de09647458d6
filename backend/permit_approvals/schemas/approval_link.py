"""Approval link Pydantic schemas."""
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID
from pydantic import BaseModel, Field


class DecisionAction(str, Enum):
    """Action a recipient may take through a link."""
    APPROVE = "approve"
    REJECT = "reject"


class LinkMetadata(BaseModel):
    """Context stored alongside an approval link. Never used for authorization."""
    recipient_id: Optional[str] = None
    recipient_name: Optional[str] = None
    permit_ref: Optional[str] = None
    template_name: Optional[str] = None
    decision: Optional[str] = None
    decided_at: Optional[datetime] = None
    request_ip: Optional[str] = None
    user_agent: Optional[str] = None
    extra: dict[str, Any] = Field(default_factory=dict)

    def merged(self, **changes: Any) -> "LinkMetadata":
        """Return a copy with the given non-None fields applied."""
        updates = {key: value for key, value in changes.items() if value is not None}
        return self.model_copy(update=updates)

    def to_column(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_column(cls, value: Optional[dict[str, Any]]) -> "LinkMetadata":
        return cls.model_validate(value or {})


class RequestContext(BaseModel):
    """Where a request came from, passed explicitly into each operation."""
    ip: Optional[str] = None
    user_agent: Optional[str] = None


class DecisionRequest(BaseModel):
    """Body of a decision submitted from an emailed link."""
    token: str = Field(min_length=1, max_length=256)
    action: DecisionAction
    comment: Optional[str] = None


class DecisionResponse(BaseModel):
    """Outcome of a successful decision."""
    status: str  # approved | rejected
    permit_id: UUID
    permit_ref: str
    decided_at: datetime
    comment: Optional[str] = None
    message: str


class PermitSummary(BaseModel):
    """What a recipient sees about the permit on the landing page."""
    id: UUID
    ref: str
    template_name: Optional[str] = None
    holder_name: Optional[str] = None
    holder_email: Optional[str] = None
    status: str
    submitted_at: Optional[datetime] = None


class LinkPreview(BaseModel):
    """Read-only view of a link for the decision landing page."""
    state: str
    can_decide: bool
    intent: DecisionAction = DecisionAction.APPROVE
    recipient_name: Optional[str] = None
    recipient_email: str
    expires_at: datetime
    used_at: Optional[datetime] = None
    used_action: Optional[str] = None
    used_comment: Optional[str] = None
    permit: Optional[PermitSummary] = None
    message: str


class ApprovalErrorResponse(BaseModel):
    """Body of a typed error returned by approval endpoints."""
    kind: str
    message: str
