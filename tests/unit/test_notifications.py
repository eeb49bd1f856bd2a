"""Tests for approval email building and SMTP delivery."""

import asyncio
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest

from reimbursement.core.approval.errors import NotificationFailure
from reimbursement.core.approval.machine import ApprovalAction, ApprovalOutcome
from reimbursement.core.approval.states import UserRole
from reimbursement.core.config import Settings
from reimbursement.db.models.notification import NotificationEventType
from reimbursement.services.email_templates import render
from reimbursement.services.notifications import (
    ApprovalNotifier,
    CeleryNotificationDispatcher,
    EmailDeliveryService,
    EmailMessage,
)

from tests.conftest import RecordingDispatcher


def person(role, email, name=None):
    return SimpleNamespace(role=role, email=email, name=name or role)


@pytest.fixture
def request_obj():
    return SimpleNamespace(
        id=7,
        owner=person("Employee", "erin@example.com", "Erin"),
        sap_code="SAP-100",
        category="Travel",
        description="Client visit",
        total=Decimal("125.50"),
        date_of_expense=None,
    )


@pytest.fixture
def notifier_settings():
    return Settings(app_name="Reimbursements", frontend_url="https://app.example.com/")


def outcome_for(request_obj, action, level, actor, **kwargs):
    return ApprovalOutcome(
        action=action,
        request=request_obj,
        step=SimpleNamespace(approval_level=level),
        actor=actor,
        **kwargs,
    )


class TestTemplates:

    def test_render_pending(self):
        subject, html = render(NotificationEventType.APPROVAL_PENDING, {
            "level": 2,
            "recipient_name": "Ivy",
            "requester_name": "Erin",
            "requester_role": "Employee",
            "sap_code": "SAP-100",
            "category": "Travel",
            "total": "10.00",
            "review_url": "https://app.example.com/reimbursements/1",
            "app_name": "Reimbursements",
        })
        assert subject == "Reimbursement Ready for Your Approval - Level 2"
        assert "Hello Ivy" in html
        assert "https://app.example.com/reimbursements/1" in html

    def test_html_is_escaped(self):
        _, html = render(NotificationEventType.APPROVAL_REJECTED, {
            "level": 1,
            "requester_name": "Erin",
            "approver_name": "Sam",
            "approver_role": "SUL",
            "remarks": "<script>alert(1)</script>",
            "sap_code": "SAP-100",
        })
        assert "<script>" not in html
        assert "&lt;script&gt;" in html


class TestEmailMessage:

    def test_cc_header(self):
        message = EmailMessage(
            to="a@example.com", subject="s", html="h",
            cc=["b@example.com", " ", "c@example.com"],
            event_type=NotificationEventType.APPROVAL_REJECTED,
        )
        assert message.cc_header() == "b@example.com, c@example.com"

    def test_empty_cc_header(self):
        message = EmailMessage(
            to="a@example.com", subject="s", html="h",
            event_type=NotificationEventType.APPROVAL_FINAL,
        )
        assert message.cc_header() is None


class TestApprovalNotifier:

    def test_submitted_notifies_first_approver(self, request_obj, notifier_settings):
        dispatcher = RecordingDispatcher()
        notifier = ApprovalNotifier(dispatcher, settings=notifier_settings)
        sul = person("SUL", "sam@example.com", "Sam")

        notifier.notify_submitted(request_obj, UserRole.SUL, sul)

        [message] = dispatcher.messages
        assert message.to == "sam@example.com"
        assert message.event_type == NotificationEventType.APPROVAL_PENDING
        assert message.reimbursement_id == 7
        assert "https://app.example.com/reimbursements/7" in message.html

    def test_submitted_without_approver_sends_nothing(self, request_obj, notifier_settings):
        dispatcher = RecordingDispatcher()
        ApprovalNotifier(dispatcher, settings=notifier_settings).notify_submitted(request_obj, UserRole.SUL, None)
        assert dispatcher.messages == []

    def test_advance_notifies_owner_and_next_approver(self, request_obj, notifier_settings):
        dispatcher = RecordingDispatcher()
        sul = person("SUL", "sam@example.com", "Sam")
        invoice = person("Invoice Specialist", "ivy@example.com", "Ivy")
        outcome = outcome_for(
            request_obj, ApprovalAction.APPROVE, 1, sul,
            next_role=UserRole.INVOICE_SPECIALIST, next_approver=invoice,
        )

        ApprovalNotifier(dispatcher, settings=notifier_settings).notify_outcome(outcome)

        [progress] = dispatcher.to("erin@example.com")
        [pending] = dispatcher.to("ivy@example.com")
        assert progress.event_type == NotificationEventType.APPROVAL_PROGRESS
        assert progress.subject == "Reimbursement Approved - Level 1 (SUL)"
        assert pending.event_type == NotificationEventType.APPROVAL_PENDING
        assert pending.subject.endswith("Level 2")
        assert "Sam" in pending.html

    def test_advance_without_next_approver(self, request_obj, notifier_settings):
        dispatcher = RecordingDispatcher()
        outcome = outcome_for(
            request_obj, ApprovalAction.APPROVE, 1, person("SUL", "sam@example.com"),
            next_role=UserRole.INVOICE_SPECIALIST,
        )
        ApprovalNotifier(dispatcher, settings=notifier_settings).notify_outcome(outcome)

        assert [m.to for m in dispatcher.messages] == ["erin@example.com"]

    def test_final_approval(self, request_obj, notifier_settings):
        dispatcher = RecordingDispatcher()
        outcome = outcome_for(request_obj, ApprovalAction.APPROVE, 3, person("Account Manager", "alex@example.com"))

        ApprovalNotifier(dispatcher, settings=notifier_settings).notify_outcome(outcome)

        [message] = dispatcher.messages
        assert message.event_type == NotificationEventType.APPROVAL_FINAL
        assert message.subject == "Reimbursement Fully Approved - SAP-100"

    def test_rejection_copies_prior_approvers(self, request_obj, notifier_settings):
        dispatcher = RecordingDispatcher()
        outcome = outcome_for(
            request_obj, ApprovalAction.REJECT, 2, person("Invoice Specialist", "ivy@example.com"),
            remarks="duplicate", cc_emails=["sam@example.com"],
        )

        ApprovalNotifier(dispatcher, settings=notifier_settings).notify_outcome(outcome)

        [message] = dispatcher.messages
        assert message.to == "erin@example.com"
        assert message.cc == ["sam@example.com"]
        assert "duplicate" in message.html

    def test_dispatch_failure_is_swallowed(self, request_obj, notifier_settings):
        dispatcher = RecordingDispatcher()
        dispatcher.fail = True
        outcome = outcome_for(request_obj, ApprovalAction.APPROVE, 3, person("Account Manager", "alex@example.com"))

        sent = ApprovalNotifier(dispatcher, settings=notifier_settings).notify_outcome(outcome)

        assert sent == []

    def test_render_failure_skips_only_that_email(self, request_obj, notifier_settings):
        dispatcher = RecordingDispatcher()
        sul = person("SUL", "sam@example.com", "Sam")
        invoice = person("Invoice Specialist", "ivy@example.com", "Ivy")
        outcome = outcome_for(
            request_obj, ApprovalAction.APPROVE, 1, sul,
            next_role=UserRole.INVOICE_SPECIALIST, next_approver=invoice,
        )

        with patch(
            "reimbursement.services.notifications.render",
            side_effect=[KeyError("level"), ("Ready", "<p>Ready</p>")],
        ):
            sent = ApprovalNotifier(dispatcher, settings=notifier_settings).notify_outcome(outcome)

        assert [m.to for m in sent] == ["ivy@example.com"]
        assert dispatcher.to("erin@example.com") == []


class TestCeleryDispatcher:

    def test_enqueue_failure_is_logged_not_raised(self):
        from reimbursement.workers.notification_tasks import send_email

        message = EmailMessage(
            to="a@example.com", subject="s", html="h",
            event_type=NotificationEventType.APPROVAL_FINAL,
        )
        with patch.object(send_email, "delay", side_effect=ConnectionError("redis down")) as delay:
            CeleryNotificationDispatcher().dispatch(message)

        delay.assert_called_once()
        payload = delay.call_args.args[0]
        assert payload["event_type"] == "approval_final"


class TestEmailDeliveryService:

    @pytest.fixture
    def message(self):
        return EmailMessage(
            to="erin@example.com",
            subject="Reimbursement Rejected - SAP-100",
            html="<p>No</p>",
            cc=["sam@example.com"],
            event_type=NotificationEventType.APPROVAL_REJECTED,
            reimbursement_id=7,
        )

    @pytest.fixture
    def smtp_settings(self):
        return Settings(smtp_host="smtp.example.com", smtp_port=2525)

    def test_mime_headers(self, message, smtp_settings):
        mime = EmailDeliveryService(smtp_settings).build_mime(message)
        assert mime["To"] == "erin@example.com"
        assert mime["Cc"] == "sam@example.com"
        assert mime["Subject"] == "Reimbursement Rejected - SAP-100"

    def test_no_cc_header_when_empty(self, message, smtp_settings):
        message.cc = []
        mime = EmailDeliveryService(smtp_settings).build_mime(message)
        assert mime["Cc"] is None

    def test_skips_without_smtp_host(self, message):
        with patch("reimbursement.services.notifications.aiosmtplib.send", new=AsyncMock()) as send:
            assert EmailDeliveryService(Settings(smtp_host=None)).deliver_sync(message) is False
        send.assert_not_called()

    def test_sends_with_timeout(self, message, smtp_settings):
        with patch("reimbursement.services.notifications.aiosmtplib.send", new=AsyncMock()) as send:
            assert EmailDeliveryService(smtp_settings).deliver_sync(message) is True

        send.assert_awaited_once()
        kwargs = send.call_args.kwargs
        assert kwargs["hostname"] == "smtp.example.com"
        assert kwargs["port"] == 2525
        assert kwargs["timeout"] == 30.0

    @pytest.mark.parametrize("error", [
        aiosmtplib.SMTPException("auth failed"),
        ConnectionRefusedError("refused"),
        asyncio.TimeoutError(),
    ])
    def test_failures_raise_notification_failure(self, message, smtp_settings, error):
        with patch("reimbursement.services.notifications.aiosmtplib.send", new=AsyncMock(side_effect=error)):
            with pytest.raises(NotificationFailure) as exc_info:
                EmailDeliveryService(smtp_settings).deliver_sync(message)

        assert exc_info.value.recipient == "erin@example.com"
        assert exc_info.value.reason

    def test_whole_send_is_bounded(self, message):
        async def stalled(*args, **kwargs):
            await asyncio.sleep(5)

        settings = Settings(smtp_host="smtp.example.com", smtp_timeout=0.05)
        with patch("reimbursement.services.notifications.aiosmtplib.send", new=AsyncMock(side_effect=stalled)):
            with pytest.raises(NotificationFailure):
                EmailDeliveryService(settings).deliver_sync(message)
