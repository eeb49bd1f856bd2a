"""Approval state machine.

Validates a single approve/reject action against a loaded reimbursement and
applies it to the request and its steps. No database or network access
happens here: the caller loads the rows, supplies an approver lookup and
commits afterwards.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from .errors import CodeMismatch, MissingRemarks, NoPendingStep, Unauthorized, WrongTurn
from .routing import RoutingTable, get_routing
from .states import (
    CASCADE_REJECTION_REMARK,
    TERMINAL_STATUSES,
    RequestStatus,
    StepStatus,
    UserRole,
)

logger = logging.getLogger(__name__)


class ApprovalAction(str, Enum):
    """Actions an approver can take on a request."""

    APPROVE = "approve"
    REJECT = "reject"


@dataclass
class ApprovalOutcome:
    """Result of an applied action, used to build responses and notifications."""

    action: ApprovalAction
    request: object
    step: object
    actor: object
    remarks: Optional[str] = None
    next_role: Optional[UserRole] = None
    next_approver: Optional[object] = None
    cascaded_steps: List[object] = field(default_factory=list)
    cc_emails: List[str] = field(default_factory=list)

    @property
    def level(self) -> int:
        return self.step.approval_level

    @property
    def advanced(self) -> bool:
        return self.action == ApprovalAction.APPROVE and self.next_role is not None

    @property
    def finalized(self) -> bool:
        return self.action == ApprovalAction.APPROVE and self.next_role is None


def require_actor(actor) -> None:
    if actor is None:
        raise Unauthorized()


def normalize_remarks(remarks: Optional[str]) -> Optional[str]:
    """Stripped remarks, or None when blank."""
    if remarks is None:
        return None
    return str(remarks).strip() or None


def require_remarks(remarks: Optional[str]) -> str:
    remarks = normalize_remarks(remarks)
    if remarks is None:
        raise MissingRemarks()
    return remarks


class ApprovalStateMachine:
    """
    State machine for one reimbursement request.

    Transitions::

        Pending(level k) -> Pending(level k+1) | Approved | Rejected

    Approved and Rejected are absorbing. Only the user whose role equals
    ``current_approver`` may act, and scoped roles must also share the
    request's SAP code.
    """

    def __init__(
        self,
        request,
        *,
        routing: Optional[RoutingTable] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """
        Args:
            request: Loaded reimbursement with ``owner`` and ordered ``steps``
            routing: Routing table (defaults to the process-wide one)
            clock: Timestamp source for step and approval times
        """
        self.request = request
        self.routing = routing or get_routing()
        self._clock = clock

    @property
    def state(self) -> RequestStatus:
        return RequestStatus(self.request.status)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATUSES

    def check_turn(self, actor):
        """
        Validate that ``actor`` may act now and return their pending step.

        Raises:
            Unauthorized: No actor
            WrongTurn: Actor's role is not the current approver role
                (always the case once the request is terminal)
            CodeMismatch: Scoped actor without the request's SAP code
            NoPendingStep: No Pending step exists for the actor's role
        """
        require_actor(actor)
        request = self.request

        if self.is_terminal or request.current_approver != actor.role:
            logger.warning(
                f"Not approver's turn on reimbursement #{request.id}. "
                f"Expected: {request.current_approver}, Got: {actor.role}"
            )
            raise WrongTurn(None if self.is_terminal else request.current_approver, actor.role)

        if self.routing.is_scoped(actor.role) and request.sap_code not in actor.sap_codes:
            logger.warning(
                f"SAP code mismatch on reimbursement #{request.id}. "
                f"Request: {request.sap_code}, Approver: {', '.join(actor.sap_codes)}"
            )
            raise CodeMismatch(request.sap_code, actor.sap_codes)

        step = self._pending_step(actor.role)
        if step is None:
            logger.error(f"No pending approval on reimbursement #{request.id} for role {actor.role}")
            raise NoPendingStep(actor.role)

        return step

    def approve(
        self,
        actor,
        remarks: Optional[str] = None,
        *,
        find_approver: Optional[Callable[[UserRole], Optional[object]]] = None,
    ) -> ApprovalOutcome:
        """
        Approve the actor's pending step and move the request on.

        Args:
            actor: Acting user
            remarks: Optional remarks stored on the step
            find_approver: Lookup for the user who will hold the next role;
                a None result only skips the actor hint and notification

        Returns:
            The applied outcome
        """
        step = self.check_turn(actor)
        request = self.request
        now = self._clock()
        remarks = normalize_remarks(remarks)

        self._close_step(step, StepStatus.APPROVED, actor, remarks, now)

        outcome = ApprovalOutcome(
            action=ApprovalAction.APPROVE,
            request=request,
            step=step,
            actor=actor,
            remarks=remarks,
        )

        next_role = self.routing.next_approver(request.owner.role, actor.role)
        if next_role is not None:
            request.current_approver = next_role.value
            request.status = RequestStatus.PENDING.value
            outcome.next_role = next_role

            next_user = find_approver(next_role) if find_approver else None
            if next_user is None:
                logger.warning(f"No {next_role.value} found for SAP code {request.sap_code}")
            else:
                next_step = self._pending_step(next_role)
                if next_step is not None and next_step.approver_id is None:
                    next_step.approver = next_user
            outcome.next_approver = next_user

            logger.info(
                f"Reimbursement #{request.id} approved at level {step.approval_level} "
                f"by {actor.role}; next approver: {next_role.value}"
            )
        else:
            request.status = RequestStatus.APPROVED.value
            request.current_approver = None
            request.approved_at = now
            logger.info(f"Reimbursement #{request.id} fully approved by {actor.role}")

        return outcome

    def reject(self, actor, remarks: Optional[str]) -> ApprovalOutcome:
        """
        Reject the actor's pending step and every later pending step.

        Returns:
            The applied outcome, with ``cc_emails`` holding the approvers who
            signed off on lower levels
        """
        require_actor(actor)
        remarks = require_remarks(remarks)
        step = self.check_turn(actor)
        request = self.request
        now = self._clock()

        # Collected before any mutation; only lower levels qualify
        cc_emails = self.prior_approver_emails(step.approval_level)

        self._close_step(step, StepStatus.REJECTED, actor, remarks, now)

        cascaded = []
        for other in request.steps:
            if other is step:
                continue
            if other.status == StepStatus.PENDING.value and other.approval_level > step.approval_level:
                other.status = StepStatus.REJECTED.value
                other.remarks = CASCADE_REJECTION_REMARK
                cascaded.append(other)

        request.status = RequestStatus.REJECTED.value
        request.current_approver = None

        logger.info(
            f"Reimbursement #{request.id} rejected at level {step.approval_level} by {actor.role}; "
            f"cascaded to {len(cascaded)} later step(s)"
        )

        return ApprovalOutcome(
            action=ApprovalAction.REJECT,
            request=request,
            step=step,
            actor=actor,
            remarks=remarks,
            cascaded_steps=cascaded,
            cc_emails=cc_emails,
        )

    def prior_approver_emails(self, level: int) -> List[str]:
        """Emails of users who approved a step below ``level``, in level order."""
        emails: List[str] = []
        for step in self.request.steps:
            if step.status != StepStatus.APPROVED.value or step.approval_level >= level:
                continue
            approver = step.approver
            if approver is None or not approver.email:
                logger.debug(
                    f"Skipping {step.approver_role} (level {step.approval_level}): no approver assigned"
                )
                continue
            if approver.email not in emails:
                emails.append(approver.email)
        return emails

    def _pending_step(self, role):
        role_value = getattr(role, "value", role)
        for step in self.request.steps:
            if step.approver_role == role_value and step.status == StepStatus.PENDING.value:
                return step
        return None

    @staticmethod
    def _close_step(step, status: StepStatus, actor, remarks: Optional[str], when: datetime) -> None:
        step.status = status.value
        step.approver = actor
        step.remarks = remarks
        step.acted_at = when
