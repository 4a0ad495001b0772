from datetime import date
from io import BytesIO

import openpyxl

from okr.audit_events import list_audit_events
from okr.models import Activity, ImportLog, Initiative, Invitation, Objective


def _upload(client, headers, import_type, body, filename="data.csv"):
    if isinstance(body, str):
        body = body.encode("utf-8")
    return client.post(
        "/import",
        data={"type": import_type, "file": (BytesIO(body), filename)},
        headers=headers,
        content_type="multipart/form-data",
    )


def _objectives(factory, **filters):
    from okr.db import get_new_session

    db = get_new_session()
    try:
        return db.query(Objective).filter_by(**filters).order_by(Objective.title).all()
    finally:
        db.close()


def test_objectives_csv_with_spanish_headers(client, auth, factory, seed):
    csv_text = (
        "Título;Descripción;Departamento;Fecha Inicio;Fecha Fin;Email Responsable;Estado;Prioridad;Progreso (%)\n"
        f"Expandir mercado;Abrir dos países;Ventas;01/02/2026;30/06/2026;{seed.ana.email};en progreso;alta;25%\n"
        "Reducir costes;;Operaciones;2026-01-01;2026-12-31;;;;\n"
    )
    r = _upload(client, auth(seed.corp.id), "objectives", "\ufeff" + csv_text)
    assert r.status_code == 200, r.get_json()
    data = r.get_json()["data"]
    assert data["status"] == "completed"
    assert (data["total_records"], data["successful_records"], data["failed_records"]) == (2, 2, 0)
    assert data["errors"] == []
    assert data["file_type"] == "csv"

    expand, costs = _objectives(factory, company_id=seed.acme.id)
    assert expand.title == "Expandir mercado"
    assert expand.owner_id == seed.ana.id
    assert expand.start_date == date(2026, 2, 1)
    assert expand.end_date == date(2026, 6, 30)
    assert (expand.status, expand.priority, expand.progress) == ("in_progress", "high", 25)
    assert costs.owner_id == seed.corp.id
    assert (costs.status, costs.priority, costs.progress) == ("draft", "medium", 0)
    assert [e["meta"]["import_id"] for e in list_audit_events("import_completed")] == [data["id"]]


def test_bad_rows_are_reported_and_the_rest_imported(client, auth, factory, seed):
    csv_text = (
        "title,start_date,end_date,owner_email,progress,status\n"
        "Good one,2026-01-01,2026-03-31,,10,\n"
        ",2026-01-01,2026-03-31,,,\n"
        "Backwards,2026-05-01,2026-04-01,,,\n"
        "Stranger,2026-01-01,2026-03-31,nobody@example.test,,\n"
        "Too much,2026-01-01,2026-03-31,,150,\n"
        "Odd date,31/02/2026,2026-03-31,,,\n"
        "Odd status,2026-01-01,2026-03-31,,,paused\n"
    )
    r = _upload(client, auth(seed.corp.id), "objectives", csv_text)
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["status"] == "partial"
    assert (data["total_records"], data["successful_records"], data["failed_records"]) == (7, 1, 6)
    by_row = {e["row"]: e["field"] for e in data["errors"]}
    assert by_row == {3: "title", 4: "end_date", 5: "owner_email", 6: "progress", 7: "start_date", 8: "status"}
    assert [o.title for o in _objectives(factory, company_id=seed.acme.id)] == ["Good one"]


def test_every_row_failing_marks_the_import_failed(client, auth, seed):
    r = _upload(client, auth(seed.corp.id), "objectives", "title,start_date,end_date\nNo dates,,\n")
    data = r.get_json()["data"]
    assert data["status"] == "failed"
    assert data["failed_records"] == 1


def test_gerente_imports_into_own_department(client, auth, factory, seed):
    csv_text = (
        "title,department,start_date,end_date\n"
        "Mine,,2026-01-01,2026-06-30\n"
        "Also mine,Ventas,2026-01-01,2026-06-30\n"
        "Not mine,Operaciones,2026-01-01,2026-06-30\n"
    )
    data = _upload(client, auth(seed.ventas_mgr.id), "objectives", csv_text).get_json()["data"]
    assert data["successful_records"] == 2
    assert data["errors"] == [
        {"row": 4, "field": "department", "message": "gerente cannot import objectives for department Operaciones"}
    ]
    assert {o.department for o in _objectives(factory, company_id=seed.acme.id)} == {"Ventas"}


def test_initiatives_attach_to_objectives_by_title(client, auth, factory, seed):
    obj = factory.objective(seed.corp, title="Grow revenue", department="Ventas")
    factory.objective(seed.globex_corp, title="Hidden", department="Ventas")
    factory.objective(seed.corp, title="Twin", department="Ventas")
    factory.objective(seed.corp, title="twin", department="Ventas")
    csv_text = (
        "title,objective_title,status,priority\n"
        "Launch campaign,grow REVENUE,planificación,baja\n"
        "By id,,,\n"
        "Other tenant,Hidden,,\n"
        "Ambiguous,Twin,,\n"
    )
    data = _upload(client, auth(seed.corp.id), "initiatives", csv_text).get_json()["data"]
    assert data["successful_records"] == 1
    assert [(e["row"], e["field"]) for e in data["errors"]] == [(3, "objective_title"), (4, "objective_title"), (5, "objective_title")]
    assert "more than one" in data["errors"][2]["message"]
    assert factory.count(Initiative, objective_id=obj.id, status="planning", priority="low") == 1

    by_id = f"title,objective_id\nBy id,{obj.id}\n"
    assert _upload(client, auth(seed.corp.id), "initiatives", by_id).get_json()["data"]["status"] == "completed"
    assert factory.count(Initiative, objective_id=obj.id) == 2


def test_gerente_cannot_add_initiatives_to_other_departments(client, auth, factory, seed):
    factory.objective(seed.ops_mgr, title="Ops goal", department="Operaciones")
    data = _upload(client, auth(seed.ventas_mgr.id), "initiatives", "title,objective_title\nX,Ops goal\n").get_json()["data"]
    assert data["status"] == "failed"
    assert data["errors"][0]["message"] == "objective not found: Ops goal"


def test_activities_import(client, auth, factory, seed):
    obj = factory.objective(seed.corp, department="Ventas")
    ini = factory.initiative(obj, seed.ana, title="Launch campaign")
    csv_text = (
        "title,initiative_title,due_date,status,owner_email\n"
        f"Call customers,Launch campaign,15/03/2026,completado,{seed.bruno.email}\n"
        "Send mails,launch campaign,,,\n"
        "Nowhere,Missing initiative,,,\n"
    )
    data = _upload(client, auth(seed.ventas_mgr.id), "activities", csv_text).get_json()["data"]
    assert data["status"] == "partial"
    assert data["errors"] == [{"row": 4, "field": "initiative_title", "message": "initiative not found: Missing initiative"}]
    done = factory.count(Activity, initiative_id=ini.id, status="completed", progress=100, owner_id=seed.bruno.id)
    assert done == 1
    assert factory.count(Activity, initiative_id=ini.id, status="todo", owner_id=seed.ventas_mgr.id) == 1


def test_users_import_sends_invitations(client, auth, outbox, factory, seed):
    csv_text = (
        "email,role,department\n"
        "New.Rep@Example.test,employee,Ventas\n"
        f"{seed.ana.email},empleado,Ventas\n"
        "new.rep@example.test,empleado,\n"
        "lead@example.test,gerente,Operaciones\n"
        "bad-address,empleado,\n"
        "x@example.test,boss,\n"
    )
    data = _upload(client, auth(seed.corp.id), "users", csv_text).get_json()["data"]
    assert (data["successful_records"], data["failed_records"]) == (2, 4)
    assert [(e["row"], e["field"]) for e in data["errors"]] == [(3, "email"), (4, "email"), (6, "email"), (7, "role_type")]
    assert sorted(m["to"] for m in outbox.sent) == ["lead@example.test", "new.rep@example.test"]
    assert factory.count(Invitation, email="lead@example.test", role_type="gerente", department="Operaciones") == 1


def test_import_rights(client, auth, seed):
    csv_text = "email,role_type\nsomeone@example.test,empleado\n"
    assert _upload(client, auth(seed.ana.id), "users", csv_text).status_code == 403
    assert _upload(client, auth(seed.ana.id), "objectives", "title\nX\n").status_code == 403
    r = _upload(client, auth(seed.ventas_mgr.id), "users", csv_text)
    assert r.status_code == 403
    assert r.get_json()["required_role"] == "corporativo"


def test_file_level_rejections(client, auth, factory, seed):
    h = auth(seed.corp.id)
    r = _upload(client, h, "objectives", "title\nX\n", filename="notes.txt")
    assert r.status_code == 415
    assert r.get_json()["type"] == "unsupported_media_type"
    assert _upload(client, h, "objectives", b"not a zip", filename="book.xlsx").status_code == 415

    r = _upload(client, h, "objectives", "title,owner\nX,me\n")
    assert r.status_code == 400
    assert [e["field"] for e in r.get_json()["errors"]] == ["start_date", "end_date"]

    assert _upload(client, h, "objectives", "title,start_date,end_date\n").status_code == 400
    assert _upload(client, h, "objectives", b"").status_code == 400
    assert _upload(client, h, "goals", "title\nX\n").status_code == 400
    r = client.post("/import", data={"type": "objectives"}, headers=h, content_type="multipart/form-data")
    assert r.status_code == 400
    assert factory.count(ImportLog) == 0


def test_xlsx_workbook(client, auth, factory, seed):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(["Título", "Fecha Inicio", "Fecha Fin", "Progreso", None])
    ws.append(["From Excel", date(2026, 1, 1), date(2026, 6, 30), 40.0])
    ws.append([None, None, None, None])
    ws.append(["Second", "01/07/2026", "31/12/2026", None])
    buf = BytesIO()
    wb.save(buf)

    r = _upload(client, auth(seed.corp.id), "objectives", buf.getvalue(), filename="plan.XLSX")
    assert r.status_code == 200, r.get_json()
    data = r.get_json()["data"]
    assert (data["file_type"], data["status"], data["total_records"]) == ("xlsx", "completed", 2)
    first, second = _objectives(factory, company_id=seed.acme.id)
    assert (first.title, first.progress, first.end_date) == ("From Excel", 40, date(2026, 6, 30))
    assert second.start_date == date(2026, 7, 1)


def test_history_and_status_visibility(client, auth, seed):
    csv_text = "title,start_date,end_date\nX,2026-01-01,2026-02-01\n"
    mine = _upload(client, auth(seed.ventas_mgr.id), "objectives", csv_text).get_json()["data"]["id"]
    corp = _upload(client, auth(seed.corp.id), "objectives", csv_text).get_json()["data"]["id"]
    _upload(client, auth(seed.globex_corp.id), "objectives", csv_text)

    r = client.get("/import", headers=auth(seed.corp.id))
    assert r.status_code == 200
    body = r.get_json()
    assert {row["id"] for row in body["data"]} == {mine, corp}
    assert body["meta"]["total"] == 2
    assert "errors" not in body["data"][0]

    mgr = client.get("/import", headers=auth(seed.ventas_mgr.id)).get_json()["data"]
    assert [row["id"] for row in mgr] == [mine]
    assert client.get(f"/import/{corp}", headers=auth(seed.ventas_mgr.id)).status_code == 404
    assert client.get(f"/import/{mine}", headers=auth(seed.globex_corp.id)).status_code == 404
    detail = client.get(f"/import/{mine}", headers=auth(seed.corp.id)).get_json()["data"]
    assert detail["errors"] == []
    assert client.get("/import?type=users", headers=auth(seed.corp.id)).get_json()["meta"]["total"] == 0
    assert client.get("/import", headers=auth(seed.ana.id)).status_code == 403


def test_templates(client, auth, seed):
    r = client.get("/import/templates/initiatives", headers=auth(seed.corp.id))
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    assert r.get_data(as_text=True).splitlines()[0].split(",")[:3] == ["title", "description", "objective_title"]
    assert "initiatives_template.csv" in r.headers["Content-Disposition"]
    assert client.get("/import/templates/goals", headers=auth(seed.corp.id)).status_code == 404
