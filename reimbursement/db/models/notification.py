"""Notification delivery log.

One row per email handed to the SMTP server, kept as an audit trail of
what was sent for each reimbursement.
"""

import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey

from reimbursement.db.base import Base


class NotificationEventType(str, enum.Enum):
    """Events that produce an email."""
    APPROVAL_PENDING = "approval_pending"
    APPROVAL_PROGRESS = "approval_progress"
    APPROVAL_FINAL = "approval_final"
    APPROVAL_REJECTED = "approval_rejected"


class NotificationLog(Base):
    __tablename__ = "notification_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_type = Column(String(50), nullable=False)
    recipient = Column(String(255), nullable=False)
    cc = Column(Text, nullable=True)
    subject = Column(String(500), nullable=False)
    reimbursement_id = Column(
        Integer, ForeignKey("reimbursements.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Delivery status: pending, sent, skipped (SMTP not configured), failed
    status = Column(String(20), nullable=False, default="pending", index=True)
    attempts = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    sent_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<NotificationLog {self.event_type} -> {self.recipient} [{self.status}]>"
