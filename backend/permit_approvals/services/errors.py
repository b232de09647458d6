"""
Approval error taxonomy.

Every error carries a machine-readable kind and a message that is safe to
show to the person who clicked the link.
"""
from typing import Optional


class ApprovalError(Exception):
    """Base class for expected approval outcomes and failures."""
    kind = "error"
    default_message = "The request could not be completed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class LinkNotFoundError(ApprovalError):
    """Raised when a token does not match any stored link."""
    kind = "not_found"
    default_message = (
        "This approval link is not valid or may have already been replaced by a newer email."
    )


class LinkAlreadyUsedError(ApprovalError):
    """Raised when a link was already consumed or superseded."""
    kind = "already_used"
    default_message = "This approval link has already been used."

    def __init__(self, used_action: Optional[str] = None, message: Optional[str] = None):
        self.used_action = used_action
        if message is None and used_action == "superseded":
            message = "This approval link was replaced by a newer email. Please use the latest link."
        elif message is None and used_action in ("approved", "rejected"):
            message = f"A decision was already recorded with this link ({used_action})."
        super().__init__(message)


class LinkExpiredError(ApprovalError):
    """Raised when a link's TTL has passed."""
    kind = "expired"
    default_message = "This approval link has expired. Ask the permits team to resend it."


class InvalidPermitStateError(ApprovalError):
    """Raised when the permit is no longer awaiting approval."""
    kind = "invalid_state"
    default_message = "This permit is no longer awaiting approval."


class ApprovalValidationError(ApprovalError):
    """Raised for malformed actions, comments or recipient emails."""
    kind = "validation_error"
    default_message = "The request was not valid."


class TransientStoreError(ApprovalError):
    """Raised when the database fails mid-transaction. Nothing was changed."""
    kind = "store_error"
    default_message = "We could not record your decision right now. Please try again."


class RecipientNotFoundError(ApprovalError):
    """Raised when a recipient id is not in the configured list."""
    kind = "not_found"
    default_message = "Recipient not found."
