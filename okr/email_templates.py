"""Subject + HTML bodies for outgoing emails."""
from __future__ import annotations

from html import escape
from typing import Any

ROLE_LABELS = {
    "corporativo": "Corporativo",
    "gerente": "Gerente",
    "empleado": "Empleado",
}


def invitation_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/invite/{token}"


def invitation_email(company_name: str, role: str, inviter_name: str | None, url: str, expires_on: str) -> tuple[str, str]:
    subject = f"You're invited to join {company_name} on OKR Platform"
    inviter = escape(inviter_name) if inviter_name else "A teammate"
    html = (
        f"<p>{inviter} invited you to join <strong>{escape(company_name)}</strong> "
        f"as <strong>{escape(ROLE_LABELS.get(role, role))}</strong>.</p>"
        f'<p><a href="{escape(url)}">Accept invitation</a></p>'
        f"<p>This invitation expires on {escape(expires_on)}.</p>"
    )
    return subject, html


def reminder_email(company_name: str, url: str, days_left: int) -> tuple[str, str]:
    subject = f"Reminder: your invitation to {company_name} expires soon"
    plural = "day" if days_left == 1 else "days"
    html = (
        f"<p>Your invitation to <strong>{escape(company_name)}</strong> expires in "
        f"{days_left} {plural}.</p>"
        f'<p><a href="{escape(url)}">Accept invitation</a></p>'
    )
    return subject, html


def weekly_report_email(company_name: str, recipient_name: str | None, summary: str, stats: dict[str, Any]) -> tuple[str, str]:
    subject = f"Weekly OKR report: {company_name}"
    obj = stats.get("objectives", {})
    act = stats.get("activities", {})
    paragraphs = "".join(f"<p>{escape(p)}</p>" for p in summary.split("\n\n") if p.strip())
    html = (
        f"<p>Hi {escape(recipient_name or 'there')},</p>"
        f"{paragraphs}"
        "<ul>"
        f"<li>Objectives: {obj.get('total', 0)} total, {obj.get('completed', 0)} completed, "
        f"{obj.get('at_risk', 0)} at risk</li>"
        f"<li>Activities completed this week: {act.get('completed_this_week', 0)}</li>"
        "</ul>"
    )
    return subject, html
