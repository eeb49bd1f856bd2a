"""Database models for the reimbursement service."""

from reimbursement.db.models.user import User
from reimbursement.db.models.reimbursement import Reimbursement
from reimbursement.db.models.approval import ApprovalStep
from reimbursement.db.models.notification import NotificationLog

__all__ = [
    "User",
    "Reimbursement",
    "ApprovalStep",
    "NotificationLog",
]
