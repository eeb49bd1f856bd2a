"""Reimbursement submission endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from reimbursement.api.deps import get_approval_service, get_current_user
from reimbursement.api.schemas.reimbursement import (
    ReimbursementCreate,
    ReimbursementListResponse,
    ReimbursementResponse,
)
from reimbursement.core.approval import ApprovalService
from reimbursement.db.models import User

router = APIRouter(prefix="/reimbursements", tags=["reimbursements"])


@router.post("", response_model=ReimbursementResponse, status_code=status.HTTP_201_CREATED)
def submit_reimbursement(
    payload: ReimbursementCreate,
    service: ApprovalService = Depends(get_approval_service),
    current_user: Optional[User] = Depends(get_current_user),
):
    """Submit a reimbursement; it starts at the first approver in the requester's chain."""
    try:
        request = service.submit(
            current_user,
            sap_code=payload.sap_code,
            category=payload.category,
            total=payload.total,
            description=payload.description,
            items=payload.items,
            date_of_expense=payload.date_of_expense,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ReimbursementResponse.model_validate(request)


@router.get("/mine", response_model=ReimbursementListResponse)
def list_my_reimbursements(
    service: ApprovalService = Depends(get_approval_service),
    current_user: Optional[User] = Depends(get_current_user),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
):
    """List the current user's own requests, newest first."""
    requests, total = service.list_submitted_by(
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
