"""Bulk import API.

``POST /import`` takes a multipart upload (``file`` plus ``type``) and processes
it synchronously; the response is the finished import log with per-row errors.
History and single-log lookups back the status view. Templates list the
canonical column names for each import type.
"""

from __future__ import annotations

from flask import Blueprint, Response, current_app, jsonify, request

from . import import_service as svc
from .app_authz import current_profile, require_profile
from .errors import DomainError, NotFoundError, ValidationError
from .importers import ImportValidationError, UnsupportedFormatError
from .importers.validate import IMPORT_TYPES, TEMPLATE_COLUMNS
from .models import ImportLog
from .pagination import make_page_response, paginate_query, parse_page_params
from .rls import user_session
from .validation import parse_enum

bp = Blueprint("import_api", __name__, url_prefix="/import")

MANAGERS = ("corporativo", "gerente")


@bp.post("")
@require_profile(*MANAGERS)
def upload():
    prof = current_profile()
    import_type = parse_enum(request.form.get("type"), IMPORT_TYPES, "type")
    svc.check_import_rights(prof, import_type)
    storage = request.files.get("file")
    if storage is None or not storage.filename:
        raise ValidationError("file field required")
    data = storage.read(svc.MAX_FILE_BYTES + 1)
    db = user_session(prof.id)
    try:
        entry = svc.run_import(
            db,
            prof,
            import_type=import_type,
            file_name=storage.filename,
            data=data,
            email_client=current_app.email_client,  # type: ignore[attr-defined]
            base_url=current_app.config["APP_BASE_URL"],
            invitation_ttl_days=current_app.config["INVITATION_TTL_DAYS"],
        )
        return jsonify({"data": svc.serialize(entry)})
    except ImportValidationError as e:
        raise ValidationError(str(e), errors=e.errors or None) from e
    except UnsupportedFormatError as e:
        raise DomainError(415, "unsupported_media_type", str(e)) from e
    finally:
        db.close()


@bp.get("")
@require_profile(*MANAGERS)
def history():
    prof = current_profile()
    page_req = parse_page_params(dict(request.args))
    db = user_session(prof.id)
    try:
        q = svc.logs_query(db, prof)
        import_type = request.args.get("type")
        if import_type:
            q = q.filter(ImportLog.import_type == parse_enum(import_type, IMPORT_TYPES, "type"))
        q = q.order_by(ImportLog.created_at.desc(), ImportLog.id.desc())
        rows, total = paginate_query(q, page_req)
        return jsonify(make_page_response([svc.serialize(r, include_errors=False) for r in rows], page_req, total))
    finally:
        db.close()


@bp.get("/<import_id>")
@require_profile(*MANAGERS)
def status(import_id: str):
    prof = current_profile()
    db = user_session(prof.id)
    try:
        entry = svc.logs_query(db, prof).filter(ImportLog.id == import_id).first()
        if entry is None:
            raise NotFoundError("import not found")
        return jsonify({"data": svc.serialize(entry)})
    finally:
        db.close()


@bp.get("/templates/<import_type>")
@require_profile(*MANAGERS)
def template(import_type: str):
    if import_type not in IMPORT_TYPES:
        raise NotFoundError("unknown import type")
    body = ",".join(TEMPLATE_COLUMNS[import_type]) + "\n"
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{import_type}_template.csv"'},
    )


__all__ = ["bp"]
