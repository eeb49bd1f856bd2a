from typing import Generator, Optional
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from reimbursement.db.session import SessionLocal
from reimbursement.db.models import User
from reimbursement.core.security import decode_token
from reimbursement.core.approval import ApprovalService
from reimbursement.services.notifications import (
    ApprovalNotifier,
    CeleryNotificationDispatcher,
    NotificationDispatcher,
)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    db: Session = Depends(get_db),
    token: Optional[str] = Depends(oauth2_scheme),
) -> Optional[User]:
    """
    Acting user from the bearer token, or None.

    Login lives outside this service. Endpoints pass the result straight to
    the approval service, which refuses a missing actor itself.
    """
    if not token:
        return None

    user_id = decode_token(token)
    if user_id is None:
        return None

    user = db.query(User).filter(User.id == user_id).first()
    if user and user.is_active:
        return user
    return None


def get_dispatcher() -> NotificationDispatcher:
    """Notification dispatcher dependency."""
    return CeleryNotificationDispatcher()


def get_approval_service(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> ApprovalService:
    """Approval service bound to the request's session."""
    return ApprovalService(db, notifier=ApprovalNotifier(dispatcher))
