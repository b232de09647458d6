from datetime import datetime
from enum import Enum
from typing import Optional
from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Index
import uuid

from permit_approvals.database import Base
from permit_approvals.database_types import GUID, JSON


class LinkState(str, Enum):
    """
    Application-level state of an approval link.
    
    The table only stores used_at/used_action/expires_at; this enum is
    derived from them once per read by ApprovalLink.state().
    """
    LIVE = "live"
    EXPIRED = "expired"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUPERSEDED = "superseded"
    DECISION_TAKEN = "decision_taken"
    PERMIT_CANCELLED = "permit_cancelled"
    INVALIDATED = "invalidated"


# used_action values written when a link is closed without a decision
INVALIDATION_REASONS = {
    LinkState.SUPERSEDED.value,
    LinkState.DECISION_TAKEN.value,
    LinkState.PERMIT_CANCELLED.value,
}


class ApprovalLink(Base):
    __tablename__ = "approval_links"
    
    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    permit_id = Column(GUID, ForeignKey("permits.id", ondelete="CASCADE"), nullable=False, index=True)
    
    # Snapshot of the recipient at send time (not a live reference)
    recipient_email = Column(String(255), nullable=False)
    recipient_name = Column(String(255), nullable=True)
    
    # SHA-256 of the raw token; the raw token is never stored
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    
    expires_at = Column(DateTime, nullable=False)
    
    # Written exactly once: decision or invalidation. NULL used_at = still usable
    used_at = Column(DateTime, nullable=True)
    used_action = Column(String(32), nullable=True)
    used_comment = Column(Text, nullable=True)
    
    # Display/debug context, see schemas.approval_link.LinkMetadata
    link_metadata = Column("metadata", JSON, nullable=True)
    
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    
    __table_args__ = (
        Index('idx_approval_links_permit_recipient', 'permit_id', 'recipient_email'),
    )
    
    def state(self, now: Optional[datetime] = None) -> LinkState:
        """Classify the link from its persisted fields."""
        now = now or datetime.utcnow()
        if self.used_at is None:
            if self.expires_at <= now:
                return LinkState.EXPIRED
            return LinkState.LIVE
        try:
            return LinkState(self.used_action)
        except ValueError:
            return LinkState.INVALIDATED
    
    def is_live(self, now: Optional[datetime] = None) -> bool:
        return self.state(now) == LinkState.LIVE
