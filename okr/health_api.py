from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app
from sqlalchemy import text

from .db import get_session

bp = Blueprint("health_api", __name__)


@bp.get("/health")
def health() -> tuple[dict[str, Any], int]:
    # Liveness + DB reachability for container orchestrators
    db = get_session()
    try:
        db.execute(text("SELECT 1"))
        db_state = "ok"
    except Exception:
        current_app.logger.warning("Health check DB query failed", exc_info=True)
        db_state = "unavailable"
    finally:
        db.close()
    status = 200 if db_state == "ok" else 503
    return {"status": "ok" if status == 200 else "degraded", "db": db_state}, status
