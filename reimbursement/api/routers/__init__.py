"""API routers for the reimbursement service."""

from reimbursement.api.routers import approvals, reimbursements, health

__all__ = [
    "approvals",
    "reimbursements",
    "health",
]
