"""Approval service for reimbursement requests.

Provides the high-level API used by the HTTP layer: submit a request,
approve or reject a step, and query requests awaiting a user. Each action is
one database transaction; notifications go out only after it commits.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, selectinload

from reimbursement.db.models import ApprovalStep, Reimbursement

from .directory import find_approver
from .errors import NotFound
from .ledger import ApprovalLedger
from .machine import ApprovalOutcome, ApprovalStateMachine, require_actor, require_remarks
from .routing import RoutingTable, get_routing
from .states import RequestStatus, StepStatus

logger = logging.getLogger(__name__)


class ApprovalService:
    """
    High-level service for reimbursement approvals.

    Handles:
    - Submitting requests and creating their approval steps
    - Approve/reject actions with persistence
    - Notification hand-off after commit
    - Approval queue and history queries
    """

    def __init__(
        self,
        db: Session,
        *,
        notifier=None,
        routing: Optional[RoutingTable] = None,
    ):
        """
        Initialize the approval service.

        Args:
            db: Database session
            notifier: ApprovalNotifier used after commit; defaults to one
                backed by the Celery queue
            routing: Routing table (defaults to the process-wide one)
        """
        if notifier is None:
            from reimbursement.services.notifications import (
                ApprovalNotifier,
                CeleryNotificationDispatcher,
            )
            notifier = ApprovalNotifier(CeleryNotificationDispatcher())

        self.db = db
        self.ledger = ApprovalLedger(db)
        self.notifier = notifier
        self.routing = routing or get_routing()

    def submit(
        self,
        requester,
        *,
        sap_code: str,
        category: str,
        total: Decimal,
        description: Optional[str] = None,
        items: Optional[List[Dict[str, Any]]] = None,
        date_of_expense: Optional[date] = None,
    ) -> Reimbursement:
        """
        Create a pending request with one pending step per approver role.

        Raises:
            Unauthorized: No requester
            ValueError: The requester's role has no approval chain
        """
        require_actor(requester)
        chain = self.routing.approval_chain(requester.role)
        if not chain:
            raise ValueError(f"No approval chain defined for role {requester.role}")

        request = Reimbursement(
            owner=requester,
            sap_code=sap_code,
            category=category,
            description=description,
            items=items or [],
            total=total,
            date_of_expense=date_of_expense,
            status=RequestStatus.PENDING.value,
            current_approver=chain[0].value,
            submitted_at=datetime.utcnow(),
        )
        for role in chain:
            request.steps.append(ApprovalStep(
                approver_role=role.value,
                approval_level=self.routing.level_of(requester.role, role),
                status=StepStatus.PENDING.value,
            ))

        first_approver = self._find_approver(chain[0], sap_code)
        if first_approver is not None:
            request.steps[0].approver = first_approver

        with self.ledger.transaction():
            self.ledger.add(request)

        logger.info(
            f"Reimbursement #{request.id} submitted by {requester.email} ({requester.role}); "
            f"chain: {' -> '.join(role.value for role in chain)}"
        )

        self.notifier.notify_submitted(request, chain[0], first_approver)
        return request

    def approve(self, request_id: int, actor, remarks: Optional[str] = None) -> ApprovalOutcome:
        """
        Approve the actor's pending step on a request.

        Raises:
            Unauthorized, NotFound, WrongTurn, CodeMismatch, NoPendingStep
        """
        require_actor(actor)
        logger.info(f"{actor.name} ({actor.role}) attempting to approve reimbursement #{request_id}")

        with self.ledger.transaction(request_id):
            request = self._load(request_id)
            machine = ApprovalStateMachine(request, routing=self.routing)
            outcome = machine.approve(
                actor,
                remarks,
                find_approver=lambda role: self._find_approver(role, request.sap_code),
            )

        self.notifier.notify_outcome(outcome)
        return outcome

    def reject(self, request_id: int, actor, remarks: Optional[str]) -> ApprovalOutcome:
        """
        Reject the actor's pending step and cascade to later steps.

        Raises:
            Unauthorized, MissingRemarks, NotFound, WrongTurn, CodeMismatch,
            NoPendingStep
        """
        require_actor(actor)
        require_remarks(remarks)
        logger.info(f"{actor.name} ({actor.role}) attempting to reject reimbursement #{request_id}")

        with self.ledger.transaction(request_id):
            machine = ApprovalStateMachine(self._load(request_id), routing=self.routing)
            outcome = machine.reject(actor, remarks)

        self.notifier.notify_outcome(outcome)
        return outcome

    def get_request(self, request_id: int) -> Reimbursement:
        """Fetch a request with its steps, without locking."""
        request = self.ledger.load(request_id, for_update=False)
        if request is None:
            raise NotFound(request_id)
        return request

    def list_pending_for(
        self,
        approver,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[List[Reimbursement], int]:
        """
        Requests currently waiting on ``approver``, oldest first.

        Scoped approvers only see requests carrying one of their SAP codes.

        Returns:
            (page of requests, total count)
        """
        require_actor(approver)
        query = self.db.query(Reimbursement).filter(
            and_(
                Reimbursement.status == RequestStatus.PENDING.value,
                Reimbursement.current_approver == approver.role,
            )
        )
        if self.routing.is_scoped(approver.role):
            codes = approver.sap_codes
            if not codes:
                return [], 0
            query = query.filter(or_(*[Reimbursement.sap_code == code for code in codes]))

        total = query.count()
        requests = query.options(
            selectinload(Reimbursement.owner),
            selectinload(Reimbursement.steps),
        ).order_by(Reimbursement.submitted_at.asc(), Reimbursement.id.asc()).offset(offset).limit(limit).all()
        return requests, total

    def list_submitted_by(self, requester, *, limit: int = 20, offset: int = 0) -> tuple[List[Reimbursement], int]:
        """A requester's own requests, newest first."""
        require_actor(requester)
        query = self.db.query(Reimbursement).filter(Reimbursement.user_id == requester.id)
        total = query.count()
        requests = query.options(
            selectinload(Reimbursement.owner),
            selectinload(Reimbursement.steps),
        ).order_by(Reimbursement.submitted_at.desc(), Reimbursement.id.desc()).offset(offset).limit(limit).all()
        return requests, total

    def _load(self, request_id: int) -> Reimbursement:
        request = self.ledger.load(request_id)
        if request is None:
            logger.warning(f"Reimbursement #{request_id} not found")
            raise NotFound(request_id)
        logger.debug(
            f"Reimbursement #{request_id}: SAP code {request.sap_code}, status {request.status}, "
            f"current approver {request.current_approver}"
        )
        return request

    def _find_approver(self, role, sap_code: str):
        return find_approver(
            role,
            sap_code,
            self.ledger.users_with_role(role),
            routing=self.routing,
        )
