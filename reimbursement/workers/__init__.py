"""Celery workers for the reimbursement service."""

from reimbursement.workers.notification_tasks import (
    celery_app,
    send_email,
)

__all__ = [
    "celery_app",
    "send_email",
]
