"""Reimbursement request model.

A request carries its aggregate status and the role expected to act next.
The ordered approval steps hang off ``steps``.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Date, Numeric, Text, JSON, ForeignKey
from sqlalchemy.orm import relationship

from reimbursement.db.base import Base


class Reimbursement(Base):
    __tablename__ = "reimbursements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Expense details
    sap_code = Column(String(50), nullable=False, index=True)
    category = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    items = Column(JSON, nullable=False, default=list)
    total = Column(Numeric(12, 2), nullable=False)
    date_of_expense = Column(Date, nullable=True)

    # Workflow state
    status = Column(String(20), nullable=False, default="Pending", index=True)
    current_approver = Column(String(50), nullable=True, index=True)
    approved_at = Column(DateTime, nullable=True)

    # Timestamps
    submitted_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Bumped on every UPDATE; a concurrent writer with a stale copy fails
    version_id = Column(Integer, nullable=False)

    # Relationships
    owner = relationship("User", back_populates="reimbursements")
    steps = relationship(
        "ApprovalStep",
        back_populates="reimbursement",
        order_by="ApprovalStep.approval_level",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Reimbursement #{self.id} {self.sap_code} [{self.status}]>"
