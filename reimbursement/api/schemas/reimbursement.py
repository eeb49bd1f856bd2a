"""Request/response schemas for reimbursements and approvals."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from reimbursement.api.schemas.common import PaginatedResponse


class UserSummary(BaseModel):
    id: int
    name: str
    email: str
    role: str

    class Config:
        from_attributes = True


class ApprovalStepResponse(BaseModel):
    id: int
    approver_role: str
    approval_level: int
    status: str
    approver: Optional[UserSummary] = None
    remarks: Optional[str] = None
    acted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReimbursementResponse(BaseModel):
    id: int
    owner: UserSummary
    sap_code: str
    category: str
    description: Optional[str] = None
    items: List[Dict[str, Any]] = []
    total: Decimal
    date_of_expense: Optional[date] = None
    status: str
    current_approver: Optional[str] = None
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    steps: List[ApprovalStepResponse] = []

    class Config:
        from_attributes = True


class ReimbursementCreate(BaseModel):
    sap_code: str = Field(..., min_length=1, max_length=50)
    category: str = Field(..., min_length=1, max_length=100)
    total: Decimal = Field(..., gt=0)
    description: Optional[str] = None
    items: List[Dict[str, Any]] = []
    date_of_expense: Optional[date] = None


class ApprovalAction(BaseModel):
    remarks: Optional[str] = None


class ApprovalActionResponse(BaseModel):
    ok: bool = True
    message: str
    reimbursement: ReimbursementResponse
    next_approver: Optional[str] = Field(None, serialization_alias="nextApprover")


class RejectionResponse(BaseModel):
    ok: bool = True
    message: str
    reimbursement: ReimbursementResponse


ReimbursementListResponse = PaginatedResponse[ReimbursementResponse]
