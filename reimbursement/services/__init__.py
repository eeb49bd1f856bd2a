"""Services used by the approval workflow."""

from reimbursement.services.notifications import (
    ApprovalNotifier,
    CeleryNotificationDispatcher,
    EmailDeliveryService,
    EmailMessage,
    NotificationDispatcher,
)

__all__ = [
    "ApprovalNotifier",
    "CeleryNotificationDispatcher",
    "EmailDeliveryService",
    "EmailMessage",
    "NotificationDispatcher",
]
