"""Bulk import of objectives, initiatives, activities and users from CSV/XLSX.

Rows are processed one by one; a bad row is reported with its spreadsheet line
number and never blocks the others. Parents (objectives for initiatives,
initiatives for activities) are resolved by id or by case-insensitive title
among the rows the importer can see. User rows become invitations.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from .app_authz import AuthzError, ProfileContext
from .audit_events import record_audit_event
from .email_client import BrevoEmailClient
from .importers import ImportValidationError, RowError, UnsupportedFormatError, parse_csv, parse_xlsx
from .importers.csv_importer import decode_csv
from .importers.validate import IMPORT_TYPES, RowIssue, canonical_rows, normalize_row
from .invitation_service import create_invitations
from .models import Activity, ImportLog, Initiative, Objective, Profile, as_utc
from .okr_service import apply_activity_status
from .tenant_scope import TenantScope

log = logging.getLogger("okr.import")

MAX_FILE_BYTES = 10 * 1024 * 1024
FILE_TYPES = ("csv", "xlsx")
_MAX_STORED_ERRORS = 200


def file_type_for(file_name: str) -> str:
    ext = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""
    if ext not in FILE_TYPES:
        raise UnsupportedFormatError("only .csv and .xlsx files can be imported")
    return ext


def check_import_rights(viewer: ProfileContext, import_type: str) -> None:
    if viewer.role == "empleado":
        raise AuthzError("empleado profiles cannot import data", required="gerente")
    if import_type == "users" and viewer.role != "corporativo":
        raise AuthzError("only corporativo profiles can import users", required="corporativo")


def serialize(entry: ImportLog, *, include_errors: bool = True) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": entry.id,
        "company_id": entry.company_id,
        "user_id": entry.user_id,
        "file_name": entry.file_name,
        "file_type": entry.file_type,
        "import_type": entry.import_type,
        "status": entry.status,
        "total_records": entry.total_records,
        "successful_records": entry.successful_records,
        "failed_records": entry.failed_records,
        "created_at": as_utc(entry.created_at).isoformat() if entry.created_at else None,
        "updated_at": as_utc(entry.updated_at).isoformat() if entry.updated_at else None,
    }
    if include_errors:
        out["errors"] = entry.error_details or []
    return out


def logs_query(db: Session, viewer: ProfileContext):  # type: ignore[no-untyped-def]
    q = db.query(ImportLog).filter(ImportLog.company_id == viewer.company_id)
    if viewer.role != "corporativo":
        q = q.filter(ImportLog.user_id == viewer.id)
    return q


# ---- Row persistence --------------------------------------------------------------

class _Importer:
    def __init__(self, db: Session, viewer: ProfileContext):
        self.db = db
        self.viewer = viewer
        self.scope = TenantScope(viewer)
        self._owners: dict[str, str] = {}

    def owner_id(self, email: str | None) -> str:
        if not email:
            return self.viewer.id
        if email not in self._owners:
            row = (
                self.db.query(Profile.id)
                .filter(Profile.company_id == self.viewer.company_id, func.lower(Profile.email) == email)
                .first()
            )
            if row is None:
                raise RowIssue("owner_email", f"no member of this company has the email {email}")
            self._owners[email] = row[0]
        return self._owners[email]

    def _one(self, q, model_name: str, by_id: str | None, by_title: str | None, id_col, title_col):  # type: ignore[no-untyped-def]
        if by_id:
            found = q.filter(id_col == by_id).first()
            field, label = f"{model_name}_id", by_id
        else:
            matches = q.filter(func.lower(title_col) == (by_title or "").lower()).limit(2).all()
            if len(matches) > 1:
                raise RowIssue(f"{model_name}_title", f"more than one {model_name} is titled '{by_title}'; use {model_name}_id")
            found = matches[0] if matches else None
            field, label = f"{model_name}_title", by_title
        if found is None:
            raise RowIssue(field, f"{model_name} not found: {label}")
        return found

    def objective(self, row: dict[str, Any]) -> None:
        department = row["department"]
        if self.viewer.role == "gerente":
            if department and department != self.viewer.department:
                raise RowIssue("department", f"gerente cannot import objectives for department {department}")
            department = self.viewer.department
        self.db.add(
            Objective(
                company_id=self.viewer.company_id,
                owner_id=self.owner_id(row["owner_email"]),
                title=row["title"],
                description=row["description"],
                department=department,
                status=row["status"],
                priority=row["priority"],
                progress=row["progress"],
                start_date=row["start_date"],
                end_date=row["end_date"],
            )
        )

    def initiative(self, row: dict[str, Any]) -> None:
        q = self.scope.objectives(self.db.query(Objective))
        obj = self._one(q, "objective", row["objective_id"], row["objective_title"], Objective.id, Objective.title)
        if not self.scope.can_edit(obj.department, obj.owner_id):
            raise RowIssue("objective_title", f"no permission to add initiatives to objective '{obj.title}'")
        self.db.add(
            Initiative(
                company_id=obj.company_id,
                objective_id=obj.id,
                owner_id=self.owner_id(row["owner_email"]),
                title=row["title"],
                description=row["description"],
                status=row["status"],
                priority=row["priority"],
                progress=row["progress"],
                start_date=row["start_date"],
                end_date=row["end_date"],
            )
        )

    def activity(self, row: dict[str, Any]) -> None:
        q = self.scope.initiatives(self.db.query(Initiative))
        ini = self._one(q, "initiative", row["initiative_id"], row["initiative_title"], Initiative.id, Initiative.title)
        act = Activity(
            company_id=ini.company_id,
            initiative_id=ini.id,
            owner_id=self.owner_id(row["owner_email"]),
            title=row["title"],
            description=row["description"],
            status="todo",
            priority=row["priority"],
            progress=row["progress"],
            due_date=row["due_date"],
        )
        apply_activity_status(act, row["status"])
        self.db.add(act)


def _finish(entry: ImportLog, ok: int, errors: list[RowError]) -> None:
    entry.successful_records = ok
    entry.failed_records = entry.total_records - ok
    entry.error_details = errors[:_MAX_STORED_ERRORS]
    if entry.failed_records == 0:
        entry.status = "completed"
    elif ok == 0:
        entry.status = "failed"
    else:
        entry.status = "partial"


def run_import(
    db: Session,
    viewer: ProfileContext,
    *,
    import_type: str,
    file_name: str,
    data: bytes,
    email_client: BrevoEmailClient,
    base_url: str,
    invitation_ttl_days: int,
) -> ImportLog:
    if import_type not in IMPORT_TYPES:
        raise ImportValidationError(f"type must be one of: {', '.join(IMPORT_TYPES)}")
    check_import_rights(viewer, import_type)
    file_type = file_type_for(file_name)
    if not data:
        raise ImportValidationError("file is empty")
    if len(data) > MAX_FILE_BYTES:
        raise ImportValidationError("file exceeds 10MB")
    sheet = parse_csv(decode_csv(data)) if file_type == "csv" else parse_xlsx(data)
    rows = canonical_rows(sheet, import_type)

    entry = ImportLog(
        company_id=viewer.company_id,
        user_id=viewer.id,
        file_name=file_name[:255],
        file_type=file_type,
        import_type=import_type,
        status="processing",
        total_records=len(rows),
    )
    db.add(entry)
    db.commit()

    errors: list[RowError] = []
    ok = 0
    if import_type == "users":
        ok = _import_users(db, viewer, rows, errors, email_client, base_url, invitation_ttl_days)
    else:
        importer = _Importer(db, viewer)
        handler = {"objectives": importer.objective, "initiatives": importer.initiative, "activities": importer.activity}[import_type]
        for line, raw in enumerate(rows, start=2):
            try:
                handler(normalize_row(raw, import_type))
            except RowIssue as e:
                errors.append(RowError(row=line, field=e.field, message=e.message))
                continue
            ok += 1
    _finish(entry, ok, errors)
    db.commit()
    db.refresh(entry)
    log.info(
        {
            "event": "import_finished",
            "import_id": entry.id,
            "type": import_type,
            "total": entry.total_records,
            "ok": entry.successful_records,
            "failed": entry.failed_records,
        }
    )
    record_audit_event(
        "import_completed",
        actor_user_id=viewer.id,
        company_id=viewer.company_id,
        import_id=entry.id,
        import_type=import_type,
        status=entry.status,
    )
    return entry


def _import_users(
    db: Session,
    viewer: ProfileContext,
    rows: list[dict[str, str]],
    errors: list[RowError],
    email_client: BrevoEmailClient,
    base_url: str,
    ttl_days: int,
) -> int:
    ok = 0
    seen: set[str] = set()
    for line, raw in enumerate(rows, start=2):
        try:
            row = normalize_row(raw, "users")
            if row["email"] in seen:
                raise RowIssue("email", f"{row['email']} appears more than once in the file")
            seen.add(row["email"])
        except RowIssue as e:
            errors.append(RowError(row=line, field=e.field, message=e.message))
            continue
        result = create_invitations(
            db,
            viewer,
            [row["email"]],
            row["role_type"],
            row["department"],
            ttl_days=ttl_days,
            email_client=email_client,
            base_url=base_url,
        )["results"][0]
        if result["status"] == "failed" and "invitation" not in result:
            errors.append(RowError(row=line, field="email", message=result["error"]))
            continue
        ok += 1
    return ok


__all__ = [
    "MAX_FILE_BYTES",
    "FILE_TYPES",
    "file_type_for",
    "check_import_rights",
    "run_import",
    "serialize",
    "logs_query",
]
