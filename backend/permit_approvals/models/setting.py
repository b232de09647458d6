from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text

from permit_approvals.database import Base


class Setting(Base):
    """Simple key-value configuration record."""
    __tablename__ = "settings"
    
    key = Column(String(191), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=True)
