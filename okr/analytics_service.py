"""
Analytics over the caller's visible OKR scope.

Every query is built through `TenantScope`, so the numbers a gerente sees only
cover its department and an empleado only its own records.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from .models import Activity, Initiative, Objective
from .roles import ACTIVITY_STATUSES, INITIATIVE_STATUSES, OBJECTIVE_STATUSES
from .tenant_scope import TenantScope


@dataclass
class DepartmentPerformance:
    """Objective statistics for a single department."""
    department: str | None
    objectives: int
    completed: int
    average_progress: float


def _status_counts(rows: list[tuple[str, int]], statuses: tuple[str, ...]) -> dict[str, int]:
    counts = {s: 0 for s in statuses}
    for status, n in rows:
        counts[status] = counts.get(status, 0) + n
    counts["total"] = sum(n for _, n in rows)
    return counts


class AnalyticsService:
    def __init__(self, scope: TenantScope):
        self.scope = scope

    def overview(self, db: Session, today: date | None = None) -> dict[str, Any]:
        today = today or date.today()
        obj_q = self.scope.objectives(db.query(Objective))
        ini_q = self.scope.initiatives(db.query(Initiative))
        act_q = self.scope.activities(db.query(Activity))

        obj_rows = obj_q.with_entities(Objective.status, func.count(Objective.id)).group_by(Objective.status).all()
        ini_rows = ini_q.with_entities(Initiative.status, func.count(Initiative.id)).group_by(Initiative.status).all()
        act_rows = act_q.with_entities(Activity.status, func.count(Activity.id)).group_by(Activity.status).all()
        avg = obj_q.with_entities(func.avg(Objective.progress)).scalar()
        overdue = act_q.filter(
            Activity.due_date.isnot(None),
            Activity.due_date < today,
            Activity.status.notin_(("completed", "cancelled")),
        ).count()
        return {
            "objectives": _status_counts(obj_rows, OBJECTIVE_STATUSES),
            "initiatives": _status_counts(ini_rows, INITIATIVE_STATUSES),
            "activities": _status_counts(act_rows, ACTIVITY_STATUSES),
            "average_objective_progress": round(float(avg), 2) if avg is not None else 0.0,
            "overdue_activities": overdue,
        }

    def department_performance(self, db: Session) -> list[dict[str, Any]]:
        q = self.scope.objectives(db.query(Objective))
        rows = (
            q.with_entities(
                Objective.department,
                func.count(Objective.id),
                func.sum(case((Objective.status == "completed", 1), else_=0)),
                func.avg(Objective.progress),
            )
            .group_by(Objective.department)
            .all()
        )
        out = [
            DepartmentPerformance(
                department=dept,
                objectives=int(total or 0),
                completed=int(completed or 0),
                average_progress=round(float(avg or 0), 2),
            )
            for dept, total, completed, avg in rows
        ]
        out.sort(key=lambda d: (-d.average_progress, d.department or ""))
        return [asdict(d) for d in out]

    def progress_trend(self, db: Session, months: int = 6, today: date | None = None) -> list[dict[str, Any]]:
        """Month-by-month progress, oldest first.

        Each month counts the rows that existed by its end: average progress of
        objectives and initiatives, and the share of activities completed by then.
        """
        today = today or date.today()
        obj_q = self.scope.objectives(db.query(Objective))
        ini_q = self.scope.initiatives(db.query(Initiative))
        act_q = self.scope.activities(db.query(Activity))
        out = []
        for start in _month_starts(today, months):
            cutoff = _next_month(start)
            obj_avg = obj_q.filter(Objective.created_at < cutoff).with_entities(func.avg(Objective.progress)).scalar()
            ini_avg = ini_q.filter(Initiative.created_at < cutoff).with_entities(func.avg(Initiative.progress)).scalar()
            created = act_q.filter(Activity.created_at < cutoff).count()
            done = act_q.filter(Activity.completed_at.isnot(None), Activity.completed_at < cutoff).count()
            out.append(
                {
                    "month": start.strftime("%Y-%m"),
                    "objectives": round(float(obj_avg or 0)),
                    "initiatives": round(float(ini_avg or 0)),
                    "activities": round(done * 100 / created) if created else 0,
                }
            )
        return out


def _next_month(start: datetime) -> datetime:
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


def _month_starts(today: date, months: int) -> list[datetime]:
    year, month = today.year, today.month
    starts = []
    for _ in range(months):
        starts.append(datetime(year, month, 1, tzinfo=UTC))
        year, month = (year - 1, 12) if month == 1 else (year, month - 1)
    return starts[::-1]
