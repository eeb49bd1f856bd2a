"""Errors raised by the approval workflow.

Each error carries an HTTP status, a stable code and a context dict with the
values a client needs to explain the refusal (expected vs actual role, SAP
codes, ...).
"""

from typing import Any, Dict, Optional


class ApprovalError(Exception):
    """Base class for refused approval actions."""

    status_code: int = 400
    code: str = "approval_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, **self.context}


class Unauthorized(ApprovalError):
    """No authenticated actor."""

    status_code = 401
    code = "unauthorized"

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class NotFound(ApprovalError):
    """Reimbursement does not exist."""

    status_code = 404
    code = "not_found"

    def __init__(self, request_id: Any):
        super().__init__("Reimbursement not found", reimbursementId=request_id)
        self.request_id = request_id


class WrongTurn(ApprovalError):
    """Actor's role is not the one the request is waiting on."""

    status_code = 403
    code = "wrong_turn"

    def __init__(self, expected_role: Optional[str], actual_role: Optional[str]):
        super().__init__(
            "Not your approval step",
            currentApprover=expected_role,
            yourRole=actual_role,
        )
        self.expected_role = expected_role
        self.actual_role = actual_role


class CodeMismatch(ApprovalError):
    """Scoped approver is not assigned to the request's SAP code."""

    status_code = 403
    code = "code_mismatch"

    def __init__(self, request_code: str, actor_codes: list[str]):
        super().__init__(
            "This reimbursement is not assigned to your SAP code",
            requestSapCode=request_code,
            yourSapCodes=list(actor_codes),
        )
        self.request_code = request_code
        self.actor_codes = list(actor_codes)


class NoPendingStep(ApprovalError):
    """No pending step for the actor's role, or another action got there first."""

    status_code = 404
    code = "no_pending_step"

    def __init__(self, role: Optional[str], message: str = "No pending approval found for your role"):
        super().__init__(message, role=role)
        self.role = role


class MissingRemarks(ApprovalError):
    """Rejection without a reason."""

    status_code = 400
    code = "missing_remarks"

    def __init__(self):
        super().__init__("Remarks are required for rejection")


class NotificationFailure(Exception):
    """An email could not be delivered. Never surfaced to API callers."""

    def __init__(self, recipient: str, reason: str):
        super().__init__(f"Failed to deliver email to {recipient}: {reason}")
        self.recipient = recipient
        self.reason = reason
