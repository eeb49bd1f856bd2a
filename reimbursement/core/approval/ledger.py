"""Persistence access for reimbursements and their approval steps."""

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from reimbursement.db.models import ApprovalStep, Reimbursement, User

from .errors import NoPendingStep

logger = logging.getLogger(__name__)


class ApprovalLedger:
    """
    Reads and writes one reimbursement's approval state.

    ``load`` takes row locks on the request and its steps. Changes made inside
    ``transaction`` (step, request and cascade writes) commit as one unit.
    Both tables carry a version counter, so a writer holding a stale copy
    fails at commit even on backends that ignore ``FOR UPDATE``.
    """

    def __init__(self, db: Session):
        self.db = db

    def load(self, request_id: int, *, for_update: bool = True) -> Optional[Reimbursement]:
        """Fetch a request with its owner, ordered steps and step actors."""
        query = self.db.query(Reimbursement).options(
            selectinload(Reimbursement.owner),
            selectinload(Reimbursement.steps).selectinload(ApprovalStep.approver),
        ).filter(Reimbursement.id == request_id)

        if for_update:
            query = query.with_for_update(of=Reimbursement).populate_existing()

        request = query.first()
        if request is not None and for_update:
            # Lock the step rows too; the pending-step check and its update
            # must happen under the same lock.
            self.db.query(ApprovalStep.id).filter(
                ApprovalStep.reimbursement_id == request_id
            ).with_for_update().all()
        return request

    def users_with_role(self, role) -> List[User]:
        """Active users holding ``role``, lowest id first."""
        role_value = getattr(role, "value", role)
        return self.db.query(User).filter(
            and_(
                User.role == role_value,
                User.is_active.is_(True),
            )
        ).order_by(User.id.asc()).all()

    def add(self, request: Reimbursement) -> Reimbursement:
        self.db.add(request)
        self.db.flush()
        return request

    @contextmanager
    def transaction(self, request_id: Optional[int] = None) -> Iterator[None]:
        """
        Commit everything done inside the block as one unit.

        Any error rolls the session back. A version conflict means another
        transaction already acted on the same rows.

        Raises:
            NoPendingStep: A concurrent action already moved the request on
        """
        try:
            yield
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Concurrent update detected on reimbursement #{request_id}")
            raise NoPendingStep(
                None,
                "Approval step was already acted on by another request",
            )
        except Exception:
            self.db.rollback()
            raise
