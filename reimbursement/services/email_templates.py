"""HTML email templates for reimbursement notifications.

Bodies are jinja2 templates rendered with autoescaping; subjects are plain
``str.format`` strings.
"""

from jinja2 import Environment, BaseLoader

from reimbursement.db.models.notification import NotificationEventType

_env = Environment(loader=BaseLoader(), autoescape=True)

_DETAILS = """
<table cellpadding="6" style="border-collapse: collapse;">
  <tr><td><strong>SAP Code</strong></td><td>{{ sap_code }}</td></tr>
  <tr><td><strong>Category</strong></td><td>{{ category }}</td></tr>
  <tr><td><strong>Amount</strong></td><td>{{ total }}</td></tr>
  <tr><td><strong>Date of Expense</strong></td><td>{{ date_of_expense or "N/A" }}</td></tr>
  <tr><td><strong>Description</strong></td><td>{{ description or "N/A" }}</td></tr>
</table>
"""

_FOOTER = """
<p><a href="{{ review_url }}">Open the reimbursement</a></p>
<hr>
<p style="color: #888;">{{ app_name }}</p>
"""

EMAIL_TEMPLATES = {
    NotificationEventType.APPROVAL_PENDING: {
        "subject": "Reimbursement Ready for Your Approval - Level {level}",
        "body": """
<p>Hello {{ recipient_name }},</p>
<p>A reimbursement from {{ requester_name }} ({{ requester_role }}) is waiting
for your approval at level {{ level }}.</p>
{% if previous_approver_name %}
<p>It was approved at the previous level by {{ previous_approver_name }}
({{ previous_approver_role }}).</p>
{% endif %}
""" + _DETAILS + _FOOTER,
    },
    NotificationEventType.APPROVAL_PROGRESS: {
        "subject": "Reimbursement Approved - Level {level} ({approver_role})",
        "body": """
<p>Hello {{ requester_name }},</p>
<p>Your reimbursement was approved at level {{ level }} by {{ approver_name }}
({{ approver_role }}). It now awaits approval from the {{ next_role }}.</p>
{% if remarks %}<p><strong>Remarks:</strong> {{ remarks }}</p>{% endif %}
""" + _DETAILS + _FOOTER,
    },
    NotificationEventType.APPROVAL_FINAL: {
        "subject": "Reimbursement Fully Approved - {sap_code}",
        "body": """
<p>Hello {{ requester_name }},</p>
<p>Your reimbursement has been fully approved. Final approval was given by
{{ approver_name }} ({{ approver_role }}).</p>
{% if remarks %}<p><strong>Remarks:</strong> {{ remarks }}</p>{% endif %}
""" + _DETAILS + _FOOTER,
    },
    NotificationEventType.APPROVAL_REJECTED: {
        "subject": "Reimbursement Rejected - {sap_code}",
        "body": """
<p>Hello {{ requester_name }},</p>
<p>Your reimbursement was rejected at level {{ level }} by {{ approver_name }}
({{ approver_role }}).</p>
<p><strong>Reason:</strong> {{ remarks }}</p>
""" + _DETAILS + _FOOTER,
    },
}


def render(event_type: NotificationEventType, context: dict) -> tuple[str, str]:
    """Render (subject, html) for an event."""
    template = EMAIL_TEMPLATES[event_type]
    subject = template["subject"].format(**context)
    html = _env.from_string(template["body"]).render(**context)
    return subject, html
