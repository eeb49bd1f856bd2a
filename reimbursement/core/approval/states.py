"""Roles and statuses of the reimbursement approval workflow.

Request lifecycle::

    ┌──────────────┐   approve (more levels)   ┌────────────────┐
    │ PENDING (k)  │──────────────────────────►│ PENDING (k+1)  │
    └──────┬───────┘                           └────────────────┘
           │
           ├── approve (last level) ──► APPROVED
           │
           └── reject (any level) ───► REJECTED  (higher levels cascade)

APPROVED and REJECTED are terminal: ``current_approver`` is cleared, so any
later action fails the turn check.
"""

from enum import Enum
from typing import Optional, Set


class UserRole(str, Enum):
    """Roles a user can hold. Every role except EMPLOYEE also approves."""

    EMPLOYEE = "Employee"
    SUL = "SUL"
    INVOICE_SPECIALIST = "Invoice Specialist"
    ACCOUNT_MANAGER = "Account Manager"


class RequestStatus(str, Enum):
    """Aggregate status of a reimbursement request."""

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class StepStatus(str, Enum):
    """Status of a single approval step."""

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


# Roles that can appear in an approval chain
APPROVER_ROLES: Set[UserRole] = {
    UserRole.SUL,
    UserRole.INVOICE_SPECIALIST,
    UserRole.ACCOUNT_MANAGER,
}

TERMINAL_STATUSES: Set[RequestStatus] = {
    RequestStatus.APPROVED,
    RequestStatus.REJECTED,
}

CASCADE_REJECTION_REMARK = "Rejected in previous approval level"


def parse_role(value) -> Optional[UserRole]:
    """Return the UserRole for a stored role string, or None if unknown."""
    if isinstance(value, UserRole):
        return value
    try:
        return UserRole(value)
    except ValueError:
        return None
