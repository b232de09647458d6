"""Email composition and queueing for approval notifications."""
import logging
from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Optional
from urllib.parse import urlencode
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from permit_approvals.config import settings
from permit_approvals.models.permit import Permit
from permit_approvals.models.queued_email import QueuedEmail
from permit_approvals.schemas.recipient import Recipient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecisionUrls:
    """Links embedded in a pending-approval email."""
    decision_url: str
    quick_approve_url: str
    quick_reject_url: str


def build_decision_urls(raw_token: str) -> DecisionUrls:
    """Compose the landing page URL and its approve/reject shortcuts."""
    base = f"{settings.get_frontend_url()}{settings.approval_page_path}"
    decision_url = f"{base}?{urlencode({'token': raw_token})}"
    return DecisionUrls(
        decision_url=decision_url,
        quick_approve_url=f"{decision_url}&{urlencode({'intent': 'approve'})}",
        quick_reject_url=f"{decision_url}&{urlencode({'intent': 'reject'})}",
    )


def format_expiry(expires_at: datetime) -> str:
    """Human-readable expiry for message bodies."""
    return expires_at.strftime("%d/%m/%Y %H:%M UTC")


class EmailService:
    """Hands rendered messages to the email queue; delivery is the queue processor's job."""
    
    async def queue(self, db: AsyncSession, to_email: str, subject: str, html_body: str) -> UUID:
        """Insert a pending message and return its queue id. Caller commits."""
        message = QueuedEmail(
            to_email=to_email,
            subject=subject,
            body=html_body,
            status="pending",
        )
        db.add(message)
        await db.flush()
        logger.info(f"Queued email {message.id} to {to_email}: {subject}")
        return message.id
    
    async def send_pending_approval_notification(
        self,
        db: AsyncSession,
        permit: Permit,
        recipient: Recipient,
        urls: DecisionUrls,
        expires_at: datetime
    ) -> UUID:
        """Queue the 'permit awaiting your approval' message for one recipient."""
        ref = permit.display_ref
        subject = f"Permit Awaiting Approval: {ref}"
        submitted = permit.created_at.strftime("%d/%m/%Y %H:%M") if permit.created_at else "Unknown"
        view_url = self._view_url(permit)
        
        view_link = ""
        if view_url:
            view_link = (
                f'<a href="{escape(view_url)}" style="color: #1d4ed8;">View the full permit</a><br>'
            )
        
        html_content = f"""
        <html>
            <body style="font-family: Arial, sans-serif; background-color: #f1f5f9; padding: 20px;">
                <div style="max-width: 640px; margin: 0 auto; background-color: white; padding: 32px; border-radius: 12px;">
                    <p style="color: #64748b; font-size: 14px;">Hello {escape(recipient.name or 'Approvals Team')},</p>
                    <h2 style="color: #1d4ed8; margin-bottom: 20px;">Permit awaiting your approval</h2>
                    <p style="color: #333; font-size: 16px;">The following permit has been submitted and is waiting for approval:</p>
                    <table style="margin: 20px 0; color: #0f172a; font-size: 15px;">
                        <tr><td style="font-weight: bold; padding-right: 16px;">Permit Reference</td><td>#{escape(ref)}</td></tr>
                        <tr><td style="font-weight: bold; padding-right: 16px;">Template</td><td>{escape(permit.template_name or 'Permit To Work')}</td></tr>
                        <tr><td style="font-weight: bold; padding-right: 16px;">Submitted By</td><td>{escape(permit.holder_name or 'Unknown')}</td></tr>
                        <tr><td style="font-weight: bold; padding-right: 16px;">Contact Email</td><td>{escape(permit.holder_email or 'N/A')}</td></tr>
                        <tr><td style="font-weight: bold; padding-right: 16px;">Submitted</td><td>{escape(submitted)}</td></tr>
                    </table>
                    <p style="margin: 30px 0; text-align: center;">
                        <a href="{escape(urls.quick_approve_url)}" style="background-color: #4338ca; color: white; padding: 12px 28px; text-decoration: none; border-radius: 999px; font-weight: bold;">
                            Approve
                        </a>
                        &nbsp;
                        <a href="{escape(urls.quick_reject_url)}" style="background-color: #eff6ff; color: #1d4ed8; padding: 12px 28px; text-decoration: none; border-radius: 999px; font-weight: bold; border: 1px solid #bfdbfe;">
                            Reject
                        </a>
                    </p>
                    <p style="color: #64748b; font-size: 13px; text-align: center;">
                        {view_link}<a href="{escape(urls.decision_url)}" style="color: #1d4ed8;">Review and add a comment</a>
                    </p>
                    <p style="color: #999; font-size: 12px; margin-top: 20px;">
                        This link expires on {escape(format_expiry(expires_at))} and can only be used once.
                        If you receive a newer email for this permit, only the newest link will work.
                    </p>
                    <p style="color: #999; font-size: 12px;">{escape(settings.email_from_name)}</p>
                </div>
            </body>
        </html>
        """
        
        return await self.queue(db, recipient.email, subject, html_content)
    
    async def send_decision_notification(
        self,
        db: AsyncSession,
        permit: Permit,
        decision: str,
        comment: Optional[str] = None
    ) -> Optional[UUID]:
        """Tell the permit holder the outcome. Returns None when there is no holder email."""
        if not permit.holder_email:
            return None
        
        ref = permit.display_ref
        approved = decision == "approved"
        subject = f"Permit {'Approved' if approved else 'Rejected'}: {ref}"
        heading = "✅ Permit Approved" if approved else "Permit Rejected"
        summary = (
            "Good news! Your permit has been approved and is now active."
            if approved else
            "Your permit was not approved."
        )
        
        reason = ""
        if comment:
            reason = (
                f'<p style="color: #666; font-size: 16px;"><strong>Comment:</strong> {escape(comment)}</p>'
            )
        
        view_link = ""
        view_url = self._view_url(permit)
        if view_url:
            view_link = (
                f'<p><a href="{escape(view_url)}" style="color: #007bff;">View your permit</a></p>'
            )
        
        html_content = f"""
        <html>
            <body style="font-family: Arial, sans-serif; background-color: #f4f4f4; padding: 20px;">
                <div style="max-width: 600px; margin: 0 auto; background-color: white; padding: 40px; border-radius: 8px;">
                    <h2 style="color: #333; margin-bottom: 20px;">{heading}</h2>
                    <p style="color: #666; font-size: 16px; line-height: 1.6;">{summary}</p>
                    <p style="color: #666; font-size: 16px;"><strong>Reference:</strong> #{escape(ref)}</p>
                    {reason}
                    {view_link}
                </div>
            </body>
        </html>
        """
        
        return await self.queue(db, permit.holder_email, subject, html_content)
    
    @staticmethod
    def _view_url(permit: Permit) -> Optional[str]:
        if not permit.unique_link:
            return None
        return f"{settings.get_frontend_url()}/view-permit-public?{urlencode({'link': permit.unique_link})}"


# Global email service instance
email_service = EmailService()
