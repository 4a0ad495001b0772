"""Shared write-side helpers for the objective hierarchy: key result roll-up,
activity completion timestamps and cascading deletes."""
from __future__ import annotations

from sqlalchemy.orm import Session

from .models import Activity, Initiative, KeyResult, Objective, utcnow


def key_result_percentage(current: float, target: float) -> float:
    if target <= 0:
        return 0.0
    pct = current / target * 100.0
    return round(max(0.0, min(100.0, pct)), 2)


def recompute_objective_progress(db: Session, objective: Objective) -> None:
    """Objective progress becomes the rounded mean of its key results; no KRs leaves it untouched."""
    db.flush()
    values = [
        row[0]
        for row in db.query(KeyResult.progress_percentage).filter(KeyResult.objective_id == objective.id).all()
    ]
    if values:
        objective.progress = int(round(sum(values) / len(values)))


def apply_activity_status(activity: Activity, status: str) -> None:
    if status == "completed" and activity.status != "completed":
        activity.completed_at = utcnow()
        activity.progress = 100
    elif status != "completed":
        activity.completed_at = None
    activity.status = status


def delete_initiative(db: Session, initiative: Initiative) -> None:
    db.query(Activity).filter(Activity.initiative_id == initiative.id).delete(synchronize_session=False)
    db.delete(initiative)


def delete_objective(db: Session, objective: Objective) -> None:
    initiative_ids = [row[0] for row in db.query(Initiative.id).filter(Initiative.objective_id == objective.id)]
    if initiative_ids:
        db.query(Activity).filter(Activity.initiative_id.in_(initiative_ids)).delete(synchronize_session=False)
        db.query(Initiative).filter(Initiative.id.in_(initiative_ids)).delete(synchronize_session=False)
    db.query(KeyResult).filter(KeyResult.objective_id == objective.id).delete(synchronize_session=False)
    db.delete(objective)
