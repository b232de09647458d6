"""
Approval link endpoints.

Public: the raw token from the email is the only credential. Every
outcome is a typed response (success, already decided, expired, no
longer applicable) so the landing page never shows an ambiguous state.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from permit_approvals.database import get_db
from permit_approvals.api.auth import get_request_context
from permit_approvals.api.errors import http_error
from permit_approvals.schemas.approval_link import (
    DecisionRequest,
    DecisionResponse,
    LinkPreview,
    RequestContext,
)
from permit_approvals.services.decisions import decide, preview_link
from permit_approvals.services.errors import ApprovalError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/preview", response_model=LinkPreview)
async def get_link_preview(
    token: str = Query("", description="Token from the approval email"),
    intent: Optional[str] = Query(None, description="Pre-selected action: approve | reject"),
    db: AsyncSession = Depends(get_db)
):
    """
    Describe a link for the decision landing page.
    
    Returns the permit summary, the link state and whether a decision
    can still be recorded. Nothing is changed.
    """
    try:
        return await preview_link(db, token, intent=intent)
    except ApprovalError as e:
        raise http_error(e)


@router.post("/decision", response_model=DecisionResponse)
async def submit_decision(
    body: DecisionRequest,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context)
):
    """
    Approve or reject a permit with an emailed link.
    
    Returns:
        200: Decision recorded
        404: Link not recognised
        409: Link already used, or permit no longer pending approval
        410: Link expired
        422: Invalid action or comment
        503: Storage failure, nothing was changed
    """
    try:
        result = await decide(db, body.token, body.action, body.comment, context)
    except ApprovalError as e:
        raise http_error(e)
    
    return DecisionResponse(
        status=result.status,
        permit_id=result.permit_id,
        permit_ref=result.permit_ref,
        decided_at=result.decided_at,
        comment=result.comment,
        message="Thank you. Your decision has been recorded.",
    )
