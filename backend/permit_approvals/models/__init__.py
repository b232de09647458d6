"""Database models"""
from permit_approvals.models.user import User, UserRole
from permit_approvals.models.permit import Permit, PermitStatus, DecisionSource
from permit_approvals.models.approval_link import ApprovalLink, LinkState
from permit_approvals.models.permit_event import PermitEvent
from permit_approvals.models.queued_email import QueuedEmail
from permit_approvals.models.setting import Setting

__all__ = [
    "User",
    "UserRole",
    "Permit",
    "PermitStatus",
    "DecisionSource",
    "ApprovalLink",
    "LinkState",
    "PermitEvent",
    "QueuedEmail",
    "Setting",
]
