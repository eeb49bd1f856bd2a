"""Tests for the email delivery Celery task."""

from unittest.mock import patch

import pytest

from reimbursement.core.approval.errors import NotificationFailure
from reimbursement.db.models import NotificationLog
from reimbursement.services.notifications import EmailDeliveryService
from reimbursement.workers import notification_tasks
from reimbursement.workers.notification_tasks import deliver_email, send_email

pytestmark = pytest.mark.db


@pytest.fixture
def payload():
    return {
        "to": "erin@example.com",
        "subject": "Reimbursement Rejected - SAP-100",
        "html": "<p>No</p>",
        "cc": ["sam@example.com"],
        "event_type": "approval_rejected",
        "reimbursement_id": None,
    }


@pytest.fixture(autouse=True)
def worker_session(session_factory):
    with patch.object(notification_tasks, "SessionLocal", session_factory):
        yield


def get_log(db_session, log_id):
    db_session.expire_all()
    return db_session.query(NotificationLog).filter(NotificationLog.id == log_id).one()


class TestDeliverEmail:

    def test_sent(self, payload, db_session):
        with patch.object(EmailDeliveryService, "deliver_sync", return_value=True):
            result = deliver_email(payload)

        assert result["status"] == "sent"
        log = get_log(db_session, result["log_id"])
        assert log.status == "sent"
        assert log.recipient == "erin@example.com"
        assert log.cc == "sam@example.com"
        assert log.sent_at is not None

    def test_skipped_without_smtp(self, payload, db_session):
        with patch.object(EmailDeliveryService, "deliver_sync", return_value=False):
            result = deliver_email(payload)

        assert result["status"] == "skipped"
        log = get_log(db_session, result["log_id"])
        assert log.status == "skipped"
        assert log.sent_at is None

    def test_failure_before_last_attempt_retries(self, payload, db_session):
        error = NotificationFailure("erin@example.com", "timed out")
        with patch.object(EmailDeliveryService, "deliver_sync", side_effect=error):
            result = deliver_email(payload, attempt=1, final=False)

        assert result["status"] == "retry"
        assert result["error"] == "timed out"
        log = get_log(db_session, result["log_id"])
        assert log.status == "pending"
        assert log.error_message == "timed out"

    def test_failure_on_last_attempt(self, payload, db_session):
        error = NotificationFailure("erin@example.com", "connection refused")
        with patch.object(EmailDeliveryService, "deliver_sync", side_effect=error):
            result = deliver_email(payload, attempt=4, final=True)

        assert result["status"] == "failed"
        log = get_log(db_session, result["log_id"])
        assert log.status == "failed"
        assert log.attempts == 4

    def test_retry_updates_same_row(self, payload, db_session):
        error = NotificationFailure("erin@example.com", "timed out")
        with patch.object(EmailDeliveryService, "deliver_sync", side_effect=error):
            first = deliver_email(payload, attempt=1, final=False)
        with patch.object(EmailDeliveryService, "deliver_sync", return_value=True):
            second = deliver_email(payload, log_id=first["log_id"], attempt=2, final=True)

        assert second["log_id"] == first["log_id"]
        db_session.expire_all()
        rows = db_session.query(NotificationLog).all()
        assert [(row.status, row.attempts) for row in rows] == [("sent", 2)]
        assert rows[0].error_message is None

    def test_unknown_log_id_creates_row(self, payload, db_session):
        with patch.object(EmailDeliveryService, "deliver_sync", return_value=True):
            result = deliver_email(payload, log_id=999, attempt=2)

        log = get_log(db_session, result["log_id"])
        assert log.status == "sent"
        assert log.attempts == 2


class TestSendEmailTask:

    def test_retry_limit_from_settings(self):
        assert send_email.max_retries == notification_tasks.settings.notification_max_retries

    def test_eager_run(self, payload):
        with patch.object(EmailDeliveryService, "deliver_sync", return_value=True):
            result = send_email.apply(args=[payload]).get()

        assert result["status"] == "sent"

    def test_forwards_log_id(self, payload):
        with patch.object(
            notification_tasks, "deliver_email", return_value={"status": "sent", "log_id": 5},
        ) as deliver:
            send_email.apply(args=[payload], kwargs={"log_id": 5}).get()

        assert deliver.call_args.kwargs["log_id"] == 5
        assert deliver.call_args.kwargs["attempt"] == 1
