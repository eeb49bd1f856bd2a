from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import relationship

from reimbursement.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False, default="Employee", index=True)

    # SAP (cost-center) codes; scoped approvers act only on matching requests
    sap_code_1 = Column(String(50), nullable=True, index=True)
    sap_code_2 = Column(String(50), nullable=True, index=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    reimbursements = relationship("Reimbursement", back_populates="owner")

    @property
    def sap_codes(self) -> list[str]:
        """Assigned SAP codes in slot order, blanks dropped."""
        return [code for code in (self.sap_code_1, self.sap_code_2) if code]

    def __repr__(self) -> str:
        return f"<User {self.email} [{self.role}]>"
