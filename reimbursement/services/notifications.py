"""Email notifications for the approval workflow.

Handles:
- Building approval emails from an applied approval outcome
- Handing them to a dispatcher once the approval has been committed
- SMTP delivery with a bounded timeout (run by the Celery worker)

Nothing in here may fail an approval: dispatch errors are logged and
dropped, delivery errors are retried by the worker and then abandoned.
"""

import asyncio
import logging
from email.message import EmailMessage as MIMEEmailMessage
from typing import Any, Dict, List, Optional

import aiosmtplib
from pydantic import BaseModel, Field

from reimbursement.core.approval.errors import NotificationFailure
from reimbursement.core.config import Settings, get_settings
from reimbursement.db.models.notification import NotificationEventType
from reimbursement.services.email_templates import render

logger = logging.getLogger(__name__)


class EmailMessage(BaseModel):
    """A rendered email ready for delivery."""

    to: str
    subject: str
    html: str
    cc: List[str] = Field(default_factory=list)
    event_type: NotificationEventType
    reimbursement_id: Optional[int] = None

    def cc_header(self) -> Optional[str]:
        """Comma-joined CC list, or None when there is nobody to copy."""
        addresses = [address.strip() for address in self.cc if address and address.strip()]
        return ", ".join(addresses) if addresses else None


class NotificationDispatcher:
    """Hands rendered emails to a delivery backend."""

    def dispatch(self, message: EmailMessage) -> None:
        raise NotImplementedError


class CeleryNotificationDispatcher(NotificationDispatcher):
    """Enqueues emails on the Celery notification queue."""

    def dispatch(self, message: EmailMessage) -> None:
        from reimbursement.workers.notification_tasks import send_email

        try:
            send_email.delay(message.model_dump(mode="json"))
            logger.info(f"Queued {message.event_type.value} email to {message.to}")
        except Exception:
            logger.exception(f"Failed to queue {message.event_type.value} email to {message.to}")


class ApprovalNotifier:
    """
    Builds the emails for submissions and approval outcomes.

    Each email is rendered and dispatched on its own; a failure on one does
    not stop the others and never reaches the caller.
    """

    def __init__(self, dispatcher: NotificationDispatcher, settings: Optional[Settings] = None):
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()

    def notify_submitted(self, request, first_role, first_approver) -> List[EmailMessage]:
        """Tell the first approver a new request is waiting."""
        if first_approver is None:
            logger.warning(f"No {getattr(first_role, 'value', first_role)} to notify for reimbursement #{request.id}")
            return []
        return self._send_all(request, [self._pending_draft(request, first_approver, level=1)])

    def notify_outcome(self, outcome) -> List[EmailMessage]:
        """Send the emails for an applied approve/reject outcome."""
        request = outcome.request
        context = self._build_context(request)
        context.update({
            "level": outcome.level,
            "approver_name": outcome.actor.name,
            "approver_role": outcome.actor.role,
            "remarks": outcome.remarks,
        })

        drafts = []
        if outcome.advanced:
            context["next_role"] = outcome.next_role.value
            drafts.append((NotificationEventType.APPROVAL_PROGRESS, request.owner.email, context, []))
            if outcome.next_approver is not None:
                drafts.append(self._pending_draft(
                    request,
                    outcome.next_approver,
                    level=outcome.level + 1,
                    previous=outcome.actor,
                ))
        elif outcome.finalized:
            drafts.append((NotificationEventType.APPROVAL_FINAL, request.owner.email, context, []))
        else:
            drafts.append((NotificationEventType.APPROVAL_REJECTED, request.owner.email, context, outcome.cc_emails))

        return self._send_all(request, drafts)

    def _pending_draft(self, request, recipient, *, level: int, previous=None):
        context = self._build_context(request)
        context.update({
            "level": level,
            "recipient_name": recipient.name,
            "previous_approver_name": previous.name if previous else None,
            "previous_approver_role": previous.role if previous else None,
        })
        return (NotificationEventType.APPROVAL_PENDING, recipient.email, context, [])

    def _message(
        self,
        event_type: NotificationEventType,
        to: str,
        context: Dict[str, Any],
        request,
        cc: Optional[List[str]] = None,
    ) -> EmailMessage:
        subject, html = render(event_type, context)
        return EmailMessage(
            to=to,
            subject=subject,
            html=html,
            cc=list(cc or []),
            event_type=event_type,
            reimbursement_id=request.id,
        )

    def _send_all(self, request, drafts) -> List[EmailMessage]:
        sent = []
        for event_type, to, context, cc in drafts:
            try:
                message = self._message(event_type, to, context, request, cc)
                self.dispatcher.dispatch(message)
                sent.append(message)
            except Exception:
                logger.exception(f"Failed to send {event_type.value} email to {to}")
        return sent

    def _build_context(self, request) -> Dict[str, Any]:
        owner = request.owner
        return {
            "app_name": self.settings.app_name,
            "reimbursement_id": request.id,
            "sap_code": request.sap_code,
            "category": request.category,
            "description": request.description,
            "total": request.total,
            "date_of_expense": request.date_of_expense.isoformat() if request.date_of_expense else None,
            "requester_name": owner.name,
            "requester_role": owner.role,
            "review_url": f"{self.settings.frontend_url.rstrip('/')}/reimbursements/{request.id}",
        }


class EmailDeliveryService:
    """Delivers rendered emails over SMTP."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def build_mime(self, message: EmailMessage) -> MIMEEmailMessage:
        mime = MIMEEmailMessage()
        mime["From"] = f"{self.settings.smtp_from_name} <{self.settings.smtp_from_email}>"
        mime["To"] = message.to
        cc = message.cc_header()
        if cc:
            mime["Cc"] = cc
        mime["Subject"] = message.subject
        mime.set_content(message.html, subtype="html")
        return mime

    async def deliver(self, message: EmailMessage) -> bool:
        """
        Send one email.

        Returns:
            True if handed to the SMTP server, False if SMTP is not configured

        Raises:
            NotificationFailure: Connection, authentication or timeout error
        """
        if not self.settings.smtp_host:
            logger.warning("SMTP not configured, skipping email delivery")
            return False

        mime = self.build_mime(message)
        try:
            # aiosmtplib applies its timeout per command; wait_for bounds the whole send
            await asyncio.wait_for(
                aiosmtplib.send(
                    mime,
                    hostname=self.settings.smtp_host,
                    port=self.settings.smtp_port,
                    username=self.settings.smtp_user,
                    password=self.settings.smtp_password,
                    use_tls=self.settings.smtp_use_tls,
                    start_tls=self.settings.smtp_start_tls if not self.settings.smtp_use_tls else False,
                    timeout=self.settings.smtp_timeout,
                ),
                timeout=self.settings.smtp_timeout,
            )
        except aiosmtplib.SMTPException as e:
            raise NotificationFailure(message.to, str(e)) from e
        except (OSError, asyncio.TimeoutError) as e:
            raise NotificationFailure(message.to, str(e) or type(e).__name__) from e

        logger.info(f"Email sent to {message.to}" + (f" (cc: {mime['Cc']})" if mime["Cc"] else ""))
        return True

    def deliver_sync(self, message: EmailMessage) -> bool:
        """Blocking wrapper for worker code."""
        return asyncio.run(self.deliver(message))
