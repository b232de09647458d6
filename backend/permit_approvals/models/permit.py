from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Index
import uuid

from permit_approvals.database import Base
from permit_approvals.database_types import GUID


class PermitStatus(str, Enum):
    """Permit lifecycle states (only pending_approval/active/rejected matter to approvals)"""
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CLOSED = "closed"
    WITHDRAWN = "withdrawn"


class DecisionSource(str, Enum):
    """How the approve/reject decision reached the permit."""
    INTERNAL_USER = "internal_user"
    EMAIL_LINK = "email_link"


class Permit(Base):
    __tablename__ = "permits"
    
    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    ref_number = Column(String(64), nullable=True, index=True)
    template_name = Column(String(255), nullable=True)
    
    # Who requested the permit
    holder_name = Column(String(255), nullable=True)
    holder_email = Column(String(255), nullable=True)
    
    # Slug for the public read-only permit page
    unique_link = Column(String(64), nullable=True, unique=True)
    
    # State machine
    status = Column(String, nullable=False, default=PermitStatus.DRAFT.value, index=True)
    
    # Decision
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    decision_source = Column(String(32), nullable=True)
    approval_notes = Column(Text, nullable=True)  # Append-only, one line per decision
    
    # Set once approvers were emailed for the current pending_approval episode
    notified_at = Column(DateTime, nullable=True)
    
    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    
    __table_args__ = (
        Index('idx_permits_status_created', 'status', 'created_at'),
    )
    
    @property
    def display_ref(self) -> str:
        return self.ref_number or str(self.id)
