"""Approval step model.

One row per (request, approver role). Levels are 1-based and follow the
requester's approval chain.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from reimbursement.db.base import Base


class ApprovalStep(Base):
    __tablename__ = "approvals"
    __table_args__ = (
        UniqueConstraint("reimbursement_id", "approval_level", name="uq_approvals_request_level"),
        UniqueConstraint("reimbursement_id", "approver_role", name="uq_approvals_request_role"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    reimbursement_id = Column(
        Integer, ForeignKey("reimbursements.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Chain position
    approver_role = Column(String(50), nullable=False)
    approval_level = Column(Integer, nullable=False)

    # Outcome
    status = Column(String(20), nullable=False, default="Pending", index=True)
    approver_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    remarks = Column(Text, nullable=True)
    acted_at = Column(DateTime, nullable=True)

    version_id = Column(Integer, nullable=False)

    # Relationships
    reimbursement = relationship("Reimbursement", back_populates="steps")
    approver = relationship("User")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ApprovalStep L{self.approval_level} {self.approver_role} [{self.status}]>"
