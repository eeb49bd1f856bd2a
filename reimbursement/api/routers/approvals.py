"""Approval workflow API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from reimbursement.api.deps import get_approval_service, get_current_user
from reimbursement.api.schemas.common import ErrorResponse
from reimbursement.api.schemas.reimbursement import (
    ApprovalAction,
    ApprovalActionResponse,
    RejectionResponse,
    ReimbursementListResponse,
    ReimbursementResponse,
)
from reimbursement.core.approval import ApprovalService, Unauthorized
from reimbursement.db.models import User

router = APIRouter(prefix="/approvals", tags=["approvals"])

ACTION_ERRORS = {
    400: {"model": ErrorResponse, "description": "Missing remarks"},
    401: {"model": ErrorResponse, "description": "Not authenticated"},
    403: {"model": ErrorResponse, "description": "Not your turn or SAP code mismatch"},
    404: {"model": ErrorResponse, "description": "Request or pending step not found"},
}


@router.get("/pending", response_model=ReimbursementListResponse)
def list_pending_approvals(
    service: ApprovalService = Depends(get_approval_service),
    current_user: Optional[User] = Depends(get_current_user),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
):
    """List requests waiting on the current user's role and SAP codes."""
    requests, total = service.list_pending_for(
        current_user,
        limit=per_page,
        offset=(page - 1) * per_page,
    )
    return ReimbursementListResponse.create(
        items=[ReimbursementResponse.model_validate(r) for r in requests],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{request_id}", response_model=ReimbursementResponse)
def get_approval(
    request_id: int,
    service: ApprovalService = Depends(get_approval_service),
    current_user: Optional[User] = Depends(get_current_user),
):
    """Get a request with its approval steps."""
    if current_user is None:
        raise Unauthorized()
    return ReimbursementResponse.model_validate(service.get_request(request_id))


@router.post("/{request_id}/approve", response_model=ApprovalActionResponse, responses=ACTION_ERRORS)
def approve_request(
    request_id: int,
    action: Optional[ApprovalAction] = None,
    service: ApprovalService = Depends(get_approval_service),
    current_user: Optional[User] = Depends(get_current_user),
):
    """Approve the current user's pending step."""
    outcome = service.approve(request_id, current_user, action.remarks if action else None)

    if outcome.advanced:
        message = "Approval recorded successfully. Email notifications sent to requester and next approver."
    else:
        message = "Reimbursement fully approved! Email notification sent to requester."

    return ApprovalActionResponse(
        message=message,
        reimbursement=ReimbursementResponse.model_validate(outcome.request),
        next_approver=outcome.next_role.value if outcome.next_role else None,
    )


@router.post("/{request_id}/reject", response_model=RejectionResponse, responses=ACTION_ERRORS)
def reject_request(
    request_id: int,
    action: Optional[ApprovalAction] = None,
    service: ApprovalService = Depends(get_approval_service),
    current_user: Optional[User] = Depends(get_current_user),
):
    """Reject the current user's pending step. Remarks are required."""
    outcome = service.reject(request_id, current_user, action.remarks if action else None)

    if outcome.cc_emails:
        message = "Reimbursement rejected successfully. Email notification sent to requester and previous approvers."
    else:
        message = "Reimbursement rejected successfully. Email notification sent to requester."

    return RejectionResponse(
        message=message,
        reimbursement=ReimbursementResponse.model_validate(outcome.request),
    )
