"""Approval recipient schemas."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr


class Recipient(BaseModel):
    """A configured approval recipient."""
    id: str
    name: str = ""
    email: str
    created_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email


class RecipientCreate(BaseModel):
    """Schema for adding or updating a recipient."""
    name: str = ""
    email: EmailStr
