from datetime import datetime, timedelta, timezone

import pytest


@pytest.fixture
def okrs(factory, seed, today):
    ventas = factory.objective(seed.corp, title="Ventas goal", department="Ventas", status="in_progress", progress=40)
    ops = factory.objective(seed.corp, title="Ops goal", department="Operaciones", status="completed", progress=100)
    ini = factory.initiative(ventas, seed.ana, status="in_progress")
    factory.initiative(ops, seed.ops_mgr, status="completed")
    factory.activity(ini, seed.ana, title="Late", due_date=today - timedelta(days=1))
    factory.activity(ini, seed.ana, title="Done", status="completed")
    factory.objective(seed.globex_corp, title="Foreign", status="completed", progress=100)
    return ventas, ops


def test_overview_for_corporativo(client, auth, seed, okrs):
    r = client.get("/analytics/overview", headers=auth(seed.corp.id))
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["objectives"] == {"draft": 0, "in_progress": 1, "completed": 1, "cancelled": 0, "total": 2}
    assert data["initiatives"]["total"] == 2
    assert data["activities"]["completed"] == 1
    assert data["average_objective_progress"] == 70.0
    assert data["overdue_activities"] == 1


def test_overview_is_scoped_to_role(client, auth, seed, okrs):
    mgr = client.get("/analytics/overview", headers=auth(seed.ventas_mgr.id)).get_json()["data"]
    assert mgr["objectives"]["total"] == 1
    assert mgr["average_objective_progress"] == 40.0

    ana = client.get("/analytics/overview", headers=auth(seed.ana.id)).get_json()["data"]
    assert ana["objectives"]["total"] == 0
    assert ana["initiatives"]["total"] == 1
    assert ana["activities"]["total"] == 2
    assert ana["average_objective_progress"] == 0.0


def test_department_performance(client, auth, seed, okrs):
    r = client.get("/analytics/department-performance", headers=auth(seed.corp.id))
    assert r.status_code == 200
    rows = r.get_json()["data"]
    assert [row["department"] for row in rows] == ["Operaciones", "Ventas"]
    assert rows[0] == {"department": "Operaciones", "objectives": 1, "completed": 1, "average_progress": 100.0}

    assert client.get("/analytics/department-performance", headers=auth(seed.ana.id)).status_code == 403


def _month_start(d):
    return d.replace(day=1)


def _at(d):
    return datetime(d.year, d.month, d.day, 12, tzinfo=timezone.utc)


def test_progress_trend_accumulates_month_by_month(client, auth, factory, seed, today):
    this_month = _month_start(today)
    last_month = _month_start(this_month - timedelta(days=1))
    two_back = _month_start(last_month - timedelta(days=1))

    old = factory.objective(seed.corp, title="Old", department="Ventas", progress=20, created_at=_at(two_back))
    factory.objective(seed.corp, title="New", department="Operaciones", progress=60)
    ini = factory.initiative(old, seed.ana, progress=50, created_at=_at(two_back))
    factory.activity(ini, seed.ana, title="Done later", status="completed", created_at=_at(two_back), completed_at=_at(last_month))
    factory.activity(ini, seed.ana, title="Open", created_at=_at(last_month))
    factory.objective(seed.globex_corp, title="Foreign", progress=100)

    r = client.get("/analytics/progress-trend?months=3", headers=auth(seed.corp.id))
    assert r.status_code == 200
    assert r.get_json()["data"] == [
        {"month": two_back.strftime("%Y-%m"), "objectives": 20, "initiatives": 50, "activities": 0},
        {"month": last_month.strftime("%Y-%m"), "objectives": 20, "initiatives": 50, "activities": 50},
        {"month": this_month.strftime("%Y-%m"), "objectives": 40, "initiatives": 50, "activities": 50},
    ]

    mgr = client.get("/analytics/progress-trend?months=3", headers=auth(seed.ventas_mgr.id)).get_json()["data"]
    assert mgr[-1]["objectives"] == 20


def test_progress_trend_months_parameter(client, auth, seed, today):
    h = auth(seed.ana.id)
    rows = client.get("/analytics/progress-trend", headers=h).get_json()["data"]
    assert len(rows) == 6
    assert rows[-1] == {"month": today.strftime("%Y-%m"), "objectives": 0, "initiatives": 0, "activities": 0}
    assert len(client.get("/analytics/progress-trend?months=12", headers=h).get_json()["data"]) == 12
    for bad in ("0", "13", "six"):
        assert client.get(f"/analytics/progress-trend?months={bad}", headers=h).status_code == 400
