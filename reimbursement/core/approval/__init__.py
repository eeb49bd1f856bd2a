"""Approval workflow for reimbursement requests.

Implements the routing table, approver lookup and the sequential approval
state machine.
"""

from .states import UserRole, RequestStatus, StepStatus, APPROVER_ROLES
from .routing import RoutingTable, DEFAULT_ROUTING, get_routing, next_approver
from .directory import find_approver
from .errors import (
    ApprovalError,
    Unauthorized,
    NotFound,
    WrongTurn,
    CodeMismatch,
    NoPendingStep,
    MissingRemarks,
    NotificationFailure,
)
from .machine import ApprovalAction, ApprovalOutcome, ApprovalStateMachine
from .ledger import ApprovalLedger
from .service import ApprovalService

__all__ = [
    "UserRole",
    "RequestStatus",
    "StepStatus",
    "APPROVER_ROLES",
    "RoutingTable",
    "DEFAULT_ROUTING",
    "get_routing",
    "next_approver",
    "find_approver",
    "ApprovalError",
    "Unauthorized",
    "NotFound",
    "WrongTurn",
    "CodeMismatch",
    "NoPendingStep",
    "MissingRemarks",
    "NotificationFailure",
    "ApprovalAction",
    "ApprovalOutcome",
    "ApprovalStateMachine",
    "ApprovalLedger",
    "ApprovalService",
]
