"""Translate approval errors into HTTP responses."""
from fastapi import HTTPException

from permit_approvals.services.errors import ApprovalError

STATUS_CODES = {
    "not_found": 404,
    "already_used": 409,
    "invalid_state": 409,
    "invalid_transition": 409,
    "expired": 410,
    "validation_error": 422,
    "store_error": 503,
}


def http_error(error: ApprovalError) -> HTTPException:
    """Build an HTTPException whose detail is {"kind", "message"}."""
    return HTTPException(
        status_code=STATUS_CODES.get(error.kind, 400),
        detail={"kind": error.kind, "message": error.message},
    )
