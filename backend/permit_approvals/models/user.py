from datetime import datetime
from sqlalchemy import Column, String, DateTime, Enum as SQLEnum
import uuid
import enum

from permit_approvals.database import Base
from permit_approvals.database_types import GUID


class UserRole(str, enum.Enum):
    """Internal staff roles."""
    USER = "user"  # Can view permits and approval status
    MANAGER = "manager"  # Can approve/reject permits and manage outstanding links
    ADMIN = "admin"  # Manager rights plus recipient configuration


class User(Base):
    __tablename__ = "users"
    
    id = Column(GUID, primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    
    role = Column(
        SQLEnum(UserRole, name="user_role", create_type=True),
        nullable=False,
        default=UserRole.USER,
        index=True
    )
    
    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    
    def is_admin(self) -> bool:
        """Check if user has admin role."""
        return self.role == UserRole.ADMIN
    
    def can_approve(self) -> bool:
        """Managers and admins may decide permits directly."""
        return self.role in (UserRole.MANAGER, UserRole.ADMIN)
    
    @property
    def display_name(self) -> str:
        return self.full_name or self.email
