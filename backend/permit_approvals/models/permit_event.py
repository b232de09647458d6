from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
import uuid

from permit_approvals.database import Base
from permit_approvals.database_types import GUID, JSON


class PermitEvent(Base):
    """Audit trail entry for a permit."""
    __tablename__ = "permit_events"
    
    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    permit_id = Column(GUID, ForeignKey("permits.id", ondelete="CASCADE"), nullable=False)
    
    # approval_email_action | approval_internal_action | notification_queued | ...
    event_type = Column(String(64), nullable=False)
    
    # Recipient email, user email or "system"
    actor = Column(String(255), nullable=False, default="system")
    
    payload = Column(JSON, nullable=True)
    
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    
    __table_args__ = (
        Index('idx_permit_events_permit_created', 'permit_id', 'created_at'),
    )
