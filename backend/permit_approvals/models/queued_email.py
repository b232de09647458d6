from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text
import uuid

from permit_approvals.database import Base
from permit_approvals.database_types import GUID


class QueuedEmail(Base):
    """Outbound message waiting for the queue processor (delivery happens elsewhere)."""
    __tablename__ = "email_queue"
    
    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    to_email = Column(String(255), nullable=False, index=True)
    subject = Column(String(500), nullable=False)
    body = Column(Text, nullable=False)
    
    # Status: pending | sent | failed (only pending is written here)
    status = Column(String(16), nullable=False, default="pending", index=True)
    
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    sent_at = Column(DateTime, nullable=True)
