"""
Weekly OKR report.

Collects per-company statistics for the last seven days, asks the AI client for
a short narrative (falling back to a deterministic summary), emails it to every
corporativo and gerente profile and stores it as a ``weekly_report`` insight.
Runs under a system session; every query filters by company explicitly.
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from .ai_client import AIClient
from .email_client import BrevoEmailClient
from .email_templates import weekly_report_email
from .errors import AIServiceError, EmailDeliveryError
from .models import Activity, AIInsight, Company, Initiative, Objective, Profile, utcnow

log = logging.getLogger("okr.reports")

AT_RISK_PROGRESS = 30
TOP_PERFORMERS = 5

REPORT_SYSTEM_PROMPT = (
    "You are an OKR coach writing a concise weekly status summary for company leadership. "
    "Write two or three short paragraphs: overall progress, risks, and a recommendation. "
    "Do not invent numbers that are not in the data."
)


@dataclass
class WeeklyStats:
    """Statistics for one company over the reporting window."""
    company_id: str
    company_name: str
    period_start: str
    period_end: str
    objectives: dict[str, int] = field(default_factory=dict)
    initiatives: dict[str, int] = field(default_factory=dict)
    activities: dict[str, int] = field(default_factory=dict)
    top_performers: list[dict[str, Any]] = field(default_factory=list)
    departments: list[dict[str, Any]] = field(default_factory=list)


class ReportService:
    def __init__(self, ai_client: AIClient, email_client: BrevoEmailClient):
        self.ai_client = ai_client
        self.email_client = email_client

    def collect(self, db: Session, company: Company, now: datetime | None = None) -> WeeklyStats:
        now = now or utcnow()
        week_ago = now - timedelta(days=7)
        cid = company.id

        obj = (
            db.query(
                func.count(Objective.id),
                func.sum(case((Objective.status == "completed", 1), else_=0)),
                func.sum(case((Objective.status == "in_progress", 1), else_=0)),
                func.sum(
                    case(
                        ((Objective.status == "in_progress") & (Objective.progress < AT_RISK_PROGRESS), 1),
                        else_=0,
                    )
                ),
            )
            .filter(Objective.company_id == cid)
            .one()
        )
        ini = (
            db.query(
                func.count(Initiative.id),
                func.sum(case((Initiative.status == "completed", 1), else_=0)),
                func.sum(case((Initiative.status == "in_progress", 1), else_=0)),
            )
            .filter(Initiative.company_id == cid)
            .one()
        )
        act = (
            db.query(
                func.count(Activity.id),
                func.sum(case((Activity.status == "completed", 1), else_=0)),
                func.sum(
                    case(
                        ((Activity.status == "completed") & (Activity.completed_at >= week_ago), 1),
                        else_=0,
                    )
                ),
            )
            .filter(Activity.company_id == cid)
            .one()
        )
        performers = (
            db.query(Profile.id, Profile.full_name, Profile.department, func.count(Activity.id))
            .join(Activity, Activity.owner_id == Profile.id)
            .filter(
                Profile.company_id == cid,
                Activity.company_id == cid,
                Activity.status == "completed",
                Activity.completed_at >= week_ago,
            )
            .group_by(Profile.id, Profile.full_name, Profile.department)
            .order_by(func.count(Activity.id).desc(), Profile.full_name.asc())
            .limit(TOP_PERFORMERS)
            .all()
        )
        departments = (
            db.query(Objective.department, func.count(Objective.id), func.avg(Objective.progress))
            .filter(Objective.company_id == cid)
            .group_by(Objective.department)
            .all()
        )
        return WeeklyStats(
            company_id=cid,
            company_name=company.name,
            period_start=week_ago.date().isoformat(),
            period_end=now.date().isoformat(),
            objectives={
                "total": int(obj[0] or 0),
                "completed": int(obj[1] or 0),
                "in_progress": int(obj[2] or 0),
                "at_risk": int(obj[3] or 0),
            },
            initiatives={
                "total": int(ini[0] or 0),
                "completed": int(ini[1] or 0),
                "in_progress": int(ini[2] or 0),
            },
            activities={
                "total": int(act[0] or 0),
                "completed": int(act[1] or 0),
                "completed_this_week": int(act[2] or 0),
            },
            top_performers=[
                {"profile_id": pid, "full_name": name, "department": dept, "completed_activities": int(n)}
                for pid, name, dept, n in performers
            ],
            departments=sorted(
                (
                    {"department": dept, "objectives": int(n), "average_progress": round(float(avg or 0), 2)}
                    for dept, n, avg in departments
                ),
                key=lambda d: -d["average_progress"],
            ),
        )

    @staticmethod
    def fallback_summary(stats: WeeklyStats) -> str:
        o, a = stats.objectives, stats.activities
        lines = [
            f"{stats.company_name} has {o['total']} objectives: {o['completed']} completed and "
            f"{o['in_progress']} in progress.",
            f"{a['completed_this_week']} activities were completed between {stats.period_start} "
            f"and {stats.period_end}.",
        ]
        if o["at_risk"]:
            lines.append(f"{o['at_risk']} objectives are at risk with progress below {AT_RISK_PROGRESS}%.")
        if stats.top_performers:
            names = ", ".join(p["full_name"] or p["profile_id"] for p in stats.top_performers[:3])
            lines.append(f"Top contributors this week: {names}.")
        return "\n\n".join(lines)

    def summarize(self, stats: WeeklyStats) -> tuple[str, bool]:
        if not self.ai_client.configured:
            return self.fallback_summary(stats), False
        try:
            text = self.ai_client.complete(
                REPORT_SYSTEM_PROMPT,
                "Weekly data:\n" + json.dumps(asdict(stats), ensure_ascii=False),
                temperature=0.5,
            )
            return text, True
        except AIServiceError as e:
            log.warning("AI summary failed for company %s: %s", stats.company_id, e)
            return self.fallback_summary(stats), False

    def run(self, db: Session, now: datetime | None = None) -> dict[str, Any]:
        now = now or utcnow()
        results: list[dict[str, Any]] = []
        for company in db.query(Company).order_by(Company.created_at.asc()).all():
            stats = self.collect(db, company, now)
            summary, ai_used = self.summarize(stats)
            recipients = (
                db.query(Profile)
                .filter(Profile.company_id == company.id, Profile.role_type.in_(("corporativo", "gerente")))
                .all()
            )
            sent = failed = 0
            for r in recipients:
                subject, html = weekly_report_email(company.name, r.full_name, summary, asdict(stats))
                try:
                    self.email_client.send(r.email, subject, html, to_name=r.full_name, tags=["weekly-report"])
                    sent += 1
                except EmailDeliveryError as e:
                    log.warning("Weekly report to %s failed: %s", r.email, e)
                    failed += 1
            db.add(
                AIInsight(
                    company_id=company.id,
                    category="weekly_report",
                    entity_type="company",
                    entity_id=company.id,
                    title=f"Weekly report {stats.period_start} to {stats.period_end}",
                    content=summary,
                    confidence=None,
                )
            )
            db.commit()
            results.append(
                {
                    "company_id": company.id,
                    "recipients": len(recipients),
                    "emails_sent": sent,
                    "emails_failed": failed,
                    "ai_summary": ai_used,
                    "stats": asdict(stats),
                }
            )
        return {"companies": len(results), "reports": results}
