"""Daily OKR health analysis.

Per company, three kinds of findings are written as `AIInsight` rows:

- risk: objectives in progress with progress < 30 and more than half of their
  period elapsed
- blocked: initiatives in progress without any activity completed in 7 days
- performance: objectives with progress >= 80 (best five)

Risk and blocked texts come from the AI client when risk detection is enabled,
otherwise from fixed templates.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from .ai_client import AIClient
from .errors import AIServiceError
from .models import Activity, AIInsight, Company, Initiative, Objective, utcnow

log = logging.getLogger("okr.analyzer")

RISK_PROGRESS = 30
HIGH_PERFORMANCE_PROGRESS = 80
HIGH_PERFORMERS_LIMIT = 5
BLOCKED_DAYS = 7

ANALYZER_SYSTEM_PROMPT = (
    "You are an OKR analyst. In at most three sentences, explain the likely risk for the "
    "item described and suggest one concrete next step."
)


def elapsed_fraction(start: date | None, end: date | None, today: date) -> float | None:
    if start is None or end is None or end <= start:
        return None
    return (today - start).days / (end - start).days


class OKRAnalyzer:
    def __init__(self, ai_client: AIClient, *, use_ai: bool = False):
        self.ai_client = ai_client
        self.use_ai = use_ai and ai_client.configured

    def at_risk_objectives(self, db: Session, company_id: str, today: date) -> list[Objective]:
        candidates = (
            db.query(Objective)
            .filter(
                Objective.company_id == company_id,
                Objective.status == "in_progress",
                Objective.progress < RISK_PROGRESS,
            )
            .all()
        )
        out = []
        for obj in candidates:
            frac = elapsed_fraction(obj.start_date, obj.end_date, today)
            if frac is not None and frac > 0.5:
                out.append(obj)
        return out

    def blocked_initiatives(self, db: Session, company_id: str, now: datetime) -> list[Initiative]:
        cutoff = now - timedelta(days=BLOCKED_DAYS)
        recent = (
            select(Activity.initiative_id)
            .where(
                Activity.company_id == company_id,
                Activity.status == "completed",
                Activity.completed_at >= cutoff,
            )
            .distinct()
        )
        return (
            db.query(Initiative)
            .filter(
                Initiative.company_id == company_id,
                Initiative.status == "in_progress",
                Initiative.id.notin_(recent),
            )
            .all()
        )

    def high_performers(self, db: Session, company_id: str) -> list[Objective]:
        return (
            db.query(Objective)
            .filter(Objective.company_id == company_id, Objective.progress >= HIGH_PERFORMANCE_PROGRESS)
            .order_by(Objective.progress.desc(), Objective.title.asc())
            .limit(HIGH_PERFORMERS_LIMIT)
            .all()
        )

    def _explain(self, fallback: str, prompt: str) -> tuple[str, float | None]:
        if not self.use_ai:
            return fallback, None
        try:
            return self.ai_client.complete(ANALYZER_SYSTEM_PROMPT, prompt, temperature=0.3, max_tokens=300), 0.7
        except AIServiceError as e:
            log.warning("AI explanation failed, using template: %s", e)
            return fallback, None

    def analyze_company(self, db: Session, company: Company, now: datetime | None = None) -> dict[str, int]:
        now = now or utcnow()
        today = now.date()
        risks = self.at_risk_objectives(db, company.id, today)
        blocked = self.blocked_initiatives(db, company.id, now)
        top = self.high_performers(db, company.id)

        for obj in risks:
            fallback = (
                f"'{obj.title}' is at {obj.progress}% with more than half of its period elapsed "
                f"(ends {obj.end_date.isoformat() if obj.end_date else 'n/a'})."
            )
            content, confidence = self._explain(
                fallback,
                f"Objective '{obj.title}' (department {obj.department or 'n/a'}) is at {obj.progress}% "
                f"progress; period {obj.start_date} to {obj.end_date}; today {today}.",
            )
            db.add(
                AIInsight(
                    company_id=company.id,
                    profile_id=obj.owner_id,
                    entity_type="objective",
                    entity_id=obj.id,
                    category="risk",
                    title=f"Objective at risk: {obj.title}"[:255],
                    content=content,
                    confidence=confidence,
                )
            )
        for ini in blocked:
            fallback = f"'{ini.title}' is in progress but no activity was completed in the last {BLOCKED_DAYS} days."
            content, confidence = self._explain(
                fallback,
                f"Initiative '{ini.title}' at {ini.progress}% progress has had no completed activity "
                f"in {BLOCKED_DAYS} days.",
            )
            db.add(
                AIInsight(
                    company_id=company.id,
                    profile_id=ini.owner_id,
                    entity_type="initiative",
                    entity_id=ini.id,
                    category="blocked",
                    title=f"Initiative blocked: {ini.title}"[:255],
                    content=content,
                    confidence=confidence,
                )
            )
        for obj in top:
            db.add(
                AIInsight(
                    company_id=company.id,
                    profile_id=obj.owner_id,
                    entity_type="objective",
                    entity_id=obj.id,
                    category="performance",
                    title=f"High performance: {obj.title}"[:255],
                    content=f"'{obj.title}' has reached {obj.progress}% progress.",
                    confidence=None,
                )
            )
        db.commit()
        return {"at_risk": len(risks), "blocked": len(blocked), "high_performers": len(top)}

    def run(self, db: Session, now: datetime | None = None) -> dict[str, Any]:
        now = now or utcnow()
        totals = {"at_risk": 0, "blocked": 0, "high_performers": 0}
        per_company = []
        companies = db.query(Company).order_by(Company.created_at.asc()).all()
        for company in companies:
            found = self.analyze_company(db, company, now)
            for k, v in found.items():
                totals[k] += v
            per_company.append({"company_id": company.id, **found})
        return {
            "companies": len(companies),
            "totals": totals,
            "results": per_company,
            "ai_enabled": self.use_ai,
            "insights_stored": sum(totals.values()),
        }
