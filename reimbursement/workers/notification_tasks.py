"""Celery tasks for email delivery.

Approval actions enqueue ``send_email`` after their transaction commits.
The task keeps one ``notification_logs`` row per email, updated on each
attempt, and retries failed deliveries a bounded number of times before giving up.
"""

from datetime import datetime
from typing import Any, Dict, Optional
import logging

from celery import Celery, shared_task

from reimbursement.core.approval.errors import NotificationFailure
from reimbursement.core.config import get_settings
from reimbursement.db.models import NotificationLog
from reimbursement.db.session import SessionLocal
from reimbursement.services.notifications import EmailDeliveryService, EmailMessage

logger = logging.getLogger(__name__)
settings = get_settings()

celery_app = Celery(
    'reimbursement',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_always_eager=settings.celery_task_always_eager,
    task_routes={
        'reimbursement.workers.notification_tasks.send_email': {'queue': 'notifications'},
    },
    task_default_queue='default',
)


def deliver_email(
    payload: Dict[str, Any],
    *,
    log_id: Optional[int] = None,
    attempt: int = 1,
    final: bool = True,
) -> Dict[str, Any]:
    """
    Deliver one email and record the attempt.

    The first attempt creates the ``notification_logs`` row; retries pass its
    ``log_id`` back in and update the same row.

    Args:
        payload: Serialized EmailMessage
        log_id: Row written by an earlier attempt, if any
        attempt: 1-based attempt number
        final: Whether a failure should be recorded as permanent

    Returns:
        Dict with ``status`` (sent, skipped, retry, failed) and ``log_id``
    """
    message = EmailMessage.model_validate(payload)
    db = SessionLocal()
    try:
        log = db.get(NotificationLog, log_id) if log_id is not None else None
        if log is None:
            log = NotificationLog(
                event_type=message.event_type.value,
                recipient=message.to,
                cc=message.cc_header(),
                subject=message.subject,
                reimbursement_id=message.reimbursement_id,
                status="pending",
            )
            db.add(log)
        log.attempts = attempt
        db.commit()

        try:
            delivered = EmailDeliveryService(settings).deliver_sync(message)
        except NotificationFailure as e:
            logger.exception(f"Email delivery attempt {attempt} failed: {e}")
            log.status = "failed" if final else "pending"
            log.error_message = e.reason
            db.commit()
            return {"status": "failed" if final else "retry", "log_id": log.id, "error": e.reason}

        log.status = "sent" if delivered else "skipped"
        log.sent_at = datetime.utcnow() if delivered else None
        log.error_message = None
        db.commit()
        return {"status": log.status, "log_id": log.id}
    finally:
        db.close()


@shared_task(
    bind=True,
    max_retries=settings.notification_max_retries,
    default_retry_delay=settings.notification_retry_delay,
)
def send_email(self, payload: Dict[str, Any], log_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Async task to deliver one notification email.

    Args:
        payload: Serialized EmailMessage
        log_id: Audit row created by the first attempt (set on retries)

    Returns:
        Delivery result dictionary
    """
    retries = self.request.retries or 0
    result = deliver_email(
        payload,
        log_id=log_id,
        attempt=retries + 1,
        final=retries >= self.max_retries,
    )

    if result["status"] == "retry":
        raise self.retry(
            args=[payload],
            kwargs={"log_id": result["log_id"]},
            exc=NotificationFailure(payload.get("to", ""), result["error"]),
        )
    if result["status"] == "failed":
        logger.warning(f"Giving up on email to {payload.get('to')} after {retries + 1} attempt(s)")

    return result
