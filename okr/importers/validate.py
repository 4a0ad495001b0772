from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import date, datetime
from typing import Any

from ..roles import ACTIVITY_STATUSES, INITIATIVE_STATUSES, OBJECTIVE_STATUSES, PRIORITIES, to_role
from .base_types import ImportValidationError, ParsedSheet, RowError

__all__ = [
    "IMPORT_TYPES",
    "MAX_ROWS",
    "TEMPLATE_COLUMNS",
    "RowIssue",
    "canonical_rows",
    "normalize_row",
]

IMPORT_TYPES = ("objectives", "initiatives", "activities", "users")
MAX_ROWS = 1000

_COMMON_ALIASES = {
    "title": "title",
    "título": "title",
    "titulo": "title",
    "description": "description",
    "descripción": "description",
    "descripcion": "description",
    "owner_email": "owner_email",
    "email responsable": "owner_email",
    "email_responsable": "owner_email",
    "responsable_email": "owner_email",
    "status": "status",
    "estado": "status",
    "priority": "priority",
    "prioridad": "priority",
    "progress": "progress",
    "progreso": "progress",
    "progreso (%)": "progress",
}
_PERIOD_ALIASES = {
    "start_date": "start_date",
    "fecha inicio": "start_date",
    "fecha_inicio": "start_date",
    "end_date": "end_date",
    "fecha fin": "end_date",
    "fecha_fin": "end_date",
}

ALIASES: dict[str, dict[str, str]] = {
    "objectives": {
        **_COMMON_ALIASES,
        **_PERIOD_ALIASES,
        "department": "department",
        "departamento": "department",
    },
    "initiatives": {
        **_COMMON_ALIASES,
        **_PERIOD_ALIASES,
        "objective_id": "objective_id",
        "objetivo_id": "objective_id",
        "id del objetivo": "objective_id",
        "objective_title": "objective_title",
        "objetivo_titulo": "objective_title",
        "título del objetivo": "objective_title",
        "titulo del objetivo": "objective_title",
    },
    "activities": {
        **_COMMON_ALIASES,
        "due_date": "due_date",
        "fecha limite": "due_date",
        "fecha límite": "due_date",
        "fecha fin": "due_date",
        "fecha_fin": "due_date",
        "initiative_id": "initiative_id",
        "iniciativa_id": "initiative_id",
        "id de la iniciativa": "initiative_id",
        "initiative_title": "initiative_title",
        "iniciativa_titulo": "initiative_title",
        "título de la iniciativa": "initiative_title",
        "titulo de la iniciativa": "initiative_title",
    },
    "users": {
        "email": "email",
        "correo": "email",
        "role_type": "role_type",
        "role": "role_type",
        "rol": "role_type",
        "department": "department",
        "departamento": "department",
    },
}

# Columns a file must carry; a tuple entry means "one of"
REQUIRED_COLUMNS: dict[str, Sequence[str | tuple[str, ...]]] = {
    "objectives": ("title", "start_date", "end_date"),
    "initiatives": ("title", ("objective_id", "objective_title")),
    "activities": ("title", ("initiative_id", "initiative_title")),
    "users": ("email", "role_type"),
}

TEMPLATE_COLUMNS: dict[str, tuple[str, ...]] = {
    "objectives": ("title", "description", "department", "start_date", "end_date", "owner_email", "status", "priority", "progress"),
    "initiatives": ("title", "description", "objective_title", "start_date", "end_date", "owner_email", "status", "priority", "progress"),
    "activities": ("title", "description", "initiative_title", "due_date", "owner_email", "status", "priority", "progress"),
    "users": ("email", "role_type", "department"),
}

_SPANISH_STATUS = {
    "objectives": {
        "no_iniciado": "draft",
        "no iniciado": "draft",
        "borrador": "draft",
        "en_progreso": "in_progress",
        "en progreso": "in_progress",
        "completo": "completed",
        "completado": "completed",
        "cancelado": "cancelled",
    },
    "initiatives": {
        "no_iniciado": "planning",
        "no iniciado": "planning",
        "planificacion": "planning",
        "planificación": "planning",
        "en_progreso": "in_progress",
        "en progreso": "in_progress",
        "completo": "completed",
        "completado": "completed",
        "cancelado": "cancelled",
    },
    "activities": {
        "no_iniciado": "todo",
        "no iniciado": "todo",
        "por hacer": "todo",
        "en_progreso": "in_progress",
        "en progreso": "in_progress",
        "completo": "completed",
        "completado": "completed",
        "cancelado": "cancelled",
    },
}
_STATUSES = {"objectives": OBJECTIVE_STATUSES, "initiatives": INITIATIVE_STATUSES, "activities": ACTIVITY_STATUSES}
_DEFAULT_STATUS = {"objectives": "draft", "initiatives": "planning", "activities": "todo"}
_SPANISH_PRIORITY = {"baja": "low", "media": "medium", "alta": "high"}
_ROLE_ALIASES = {"corporate": "corporativo", "manager": "gerente", "employee": "empleado"}

_DMY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class RowIssue(Exception):
    """A single row failed normalization; the rest of the file continues."""

    def __init__(self, field: str | None, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


def canonical_rows(sheet: ParsedSheet, import_type: str) -> list[dict[str, str]]:
    """Rename headers to canonical field names and check the file-level shape."""
    aliases = ALIASES[import_type]
    mapping = {h: aliases[h] for h in sheet.headers if h in aliases}
    present = set(mapping.values())
    missing: list[RowError] = []
    for required in REQUIRED_COLUMNS[import_type]:
        options = required if isinstance(required, tuple) else (required,)
        if not present.intersection(options):
            missing.append(RowError(row=1, field=" or ".join(options), message=f"missing column: {' or '.join(options)}"))
    if missing:
        raise ImportValidationError("file is missing required columns", missing)
    if not sheet.rows:
        raise ImportValidationError("file has no data rows")
    if len(sheet.rows) > MAX_ROWS:
        raise ImportValidationError(f"at most {MAX_ROWS} rows can be imported at once")
    out = []
    for raw in sheet.rows:
        row: dict[str, str] = {}
        for header, field in mapping.items():
            value = raw.get(header, "")
            # First non-empty alias wins when a file carries two spellings
            if value and not row.get(field):
                row[field] = value
        out.append(row)
    return out


def parse_sheet_date(value: str, field: str) -> date | None:
    value = value.strip()
    if not value:
        return None
    m = _DMY.match(value)
    try:
        if m:
            return date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
        if len(value) > 10:
            return datetime.fromisoformat(value).date()
        return date.fromisoformat(value)
    except ValueError as e:
        raise RowIssue(field, f"{field} must be a date (DD/MM/YYYY or YYYY-MM-DD)") from e


def _parse_progress(value: str) -> int:
    value = value.replace("%", "").strip()
    if not value:
        return 0
    try:
        number = float(value.replace(",", "."))
    except ValueError as e:
        raise RowIssue("progress", "progress must be a number between 0 and 100") from e
    if not 0 <= number <= 100:
        raise RowIssue("progress", "progress must be between 0 and 100")
    return int(round(number))


def _parse_status(value: str, import_type: str) -> str:
    value = value.strip().lower()
    if not value:
        return _DEFAULT_STATUS[import_type]
    value = _SPANISH_STATUS[import_type].get(value, value)
    if value not in _STATUSES[import_type]:
        raise RowIssue("status", f"status must be one of: {', '.join(_STATUSES[import_type])}")
    return value


def _parse_priority(value: str) -> str:
    value = value.strip().lower()
    if not value:
        return "medium"
    value = _SPANISH_PRIORITY.get(value, value)
    if value not in PRIORITIES:
        raise RowIssue("priority", f"priority must be one of: {', '.join(PRIORITIES)}")
    return value


def _email(value: str, field: str) -> str:
    value = value.strip().lower()
    if not _EMAIL.match(value):
        raise RowIssue(field, f"{field} must be a valid email address")
    return value


def _text(row: dict[str, str], field: str, max_len: int, *, required: bool = False) -> str | None:
    value = (row.get(field) or "").strip()
    if not value:
        if required:
            raise RowIssue(field, f"{field} is required")
        return None
    if len(value) > max_len:
        raise RowIssue(field, f"{field} must be at most {max_len} characters")
    return value


def normalize_row(row: dict[str, str], import_type: str) -> dict[str, Any]:
    """Typed values for one canonical row; raises `RowIssue` on the first bad field."""
    if import_type == "users":
        role = to_role(_ROLE_ALIASES.get((row.get("role_type") or "").strip().lower(), row.get("role_type")))
        if role is None:
            raise RowIssue("role_type", "role_type must be one of: corporativo, gerente, empleado")
        return {
            "email": _email(row.get("email", ""), "email"),
            "role_type": role,
            "department": _text(row, "department", 120),
        }

    out: dict[str, Any] = {
        "title": _text(row, "title", 255, required=True),
        "description": _text(row, "description", 5000),
        "owner_email": _email(row["owner_email"], "owner_email") if row.get("owner_email") else None,
        "status": _parse_status(row.get("status", ""), import_type),
        "priority": _parse_priority(row.get("priority", "")),
        "progress": _parse_progress(row.get("progress", "")),
    }
    if import_type == "activities":
        out["due_date"] = parse_sheet_date(row.get("due_date", ""), "due_date")
        out["initiative_id"] = _text(row, "initiative_id", 36)
        out["initiative_title"] = _text(row, "initiative_title", 255)
        if not (out["initiative_id"] or out["initiative_title"]):
            raise RowIssue("initiative_title", "initiative_id or initiative_title is required")
        return out

    start = parse_sheet_date(row.get("start_date", ""), "start_date")
    end = parse_sheet_date(row.get("end_date", ""), "end_date")
    if import_type == "objectives":
        if start is None or end is None:
            raise RowIssue("start_date" if start is None else "end_date", "start_date and end_date are required")
        out["department"] = _text(row, "department", 120)
    else:
        out["objective_id"] = _text(row, "objective_id", 36)
        out["objective_title"] = _text(row, "objective_title", 255)
        if not (out["objective_id"] or out["objective_title"]):
            raise RowIssue("objective_title", "objective_id or objective_title is required")
    if start and end and end <= start:
        raise RowIssue("end_date", "end_date must be after start_date")
    out["start_date"], out["end_date"] = start, end
    return out
