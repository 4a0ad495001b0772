from datetime import timedelta

from okr.models import Activity


def test_create_initiative_under_visible_objective(client, auth, factory, seed):
    obj = factory.objective(seed.corp, department="Ventas")
    r = client.post(
        "/initiatives",
        json={"title": "Referral program", "objective_id": obj.id, "owner_id": seed.ana.id},
        headers=auth(seed.ventas_mgr.id),
    )
    assert r.status_code == 201
    data = r.get_json()["data"]
    assert data["status"] == "planning"
    assert data["owner_id"] == seed.ana.id
    assert data["company_id"] == seed.acme.id


def test_initiative_requires_objective(client, auth, seed):
    r = client.post("/initiatives", json={"title": "Orphan"}, headers=auth(seed.corp.id))
    assert r.status_code == 400
    r = client.post("/initiatives", json={"title": "Orphan", "objective_id": "missing"}, headers=auth(seed.corp.id))
    assert r.status_code == 404


def test_empleado_sees_initiatives_it_owns_or_whose_objective_it_owns(client, auth, factory, seed):
    corp_obj = factory.objective(seed.corp, department="Ventas")
    ana_obj = factory.objective(seed.ana, title="Ana goal")
    factory.initiative(corp_obj, seed.ana, title="Assigned to Ana")
    factory.initiative(corp_obj, seed.bruno, title="Assigned to Bruno")
    factory.initiative(ana_obj, seed.bruno, title="Under Ana's objective")

    def titles(user):
        return {i["title"] for i in client.get("/initiatives", headers=auth(user.id)).get_json()["data"]}

    assert titles(seed.ana) == {"Assigned to Ana", "Under Ana's objective"}
    assert titles(seed.bruno) == {"Assigned to Bruno", "Under Ana's objective"}
    assert len(titles(seed.ventas_mgr)) == 3
    assert titles(seed.ops_mgr) == set()


def test_initiative_update_and_cascade_delete(client, auth, factory, seed):
    obj = factory.objective(seed.corp)
    ini = factory.initiative(obj, seed.ana)
    act = factory.activity(ini, seed.ana)
    h = auth(seed.ana.id)
    r = client.patch(f"/initiatives/{ini.id}", json={"status": "in_progress", "progress": 25}, headers=h)
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "in_progress"
    r = client.delete(f"/initiatives/{ini.id}", headers=h)
    assert r.status_code == 200
    assert factory.fetch(Activity, act.id) is None


def test_activity_completion_sets_timestamp(client, auth, factory, seed):
    obj = factory.objective(seed.corp)
    ini = factory.initiative(obj, seed.ana)
    h = auth(seed.ana.id)
    r = client.post("/activities", json={"title": "Call Acme", "initiative_id": ini.id}, headers=h)
    assert r.status_code == 201
    act = r.get_json()["data"]
    assert act["status"] == "todo" and act["completed_at"] is None

    r = client.patch(f"/activities/{act['id']}", json={"status": "completed"}, headers=h)
    data = r.get_json()["data"]
    assert data["completed_at"] is not None
    assert data["progress"] == 100

    r = client.put(f"/activities/{act['id']}", json={"status": "in_progress"}, headers=h)
    assert r.get_json()["data"]["completed_at"] is None


def test_activity_created_completed(client, auth, factory, seed):
    ini = factory.initiative(factory.objective(seed.corp), seed.corp)
    r = client.post(
        "/activities",
        json={"title": "Already done", "initiative_id": ini.id, "status": "completed"},
        headers=auth(seed.corp.id),
    )
    assert r.status_code == 201
    assert r.get_json()["data"]["completed_at"] is not None


def test_activity_filters(client, auth, factory, seed, today):
    ini = factory.initiative(factory.objective(seed.corp), seed.corp)
    factory.activity(ini, seed.ana, title="Late", due_date=today - timedelta(days=2))
    factory.activity(ini, seed.ana, title="Late but done", due_date=today - timedelta(days=2), status="completed")
    factory.activity(ini, seed.bruno, title="Upcoming", due_date=today + timedelta(days=5), priority="high")
    h = auth(seed.corp.id)

    def titles(query):
        r = client.get(f"/activities?{query}", headers=h)
        assert r.status_code == 200
        return [a["title"] for a in r.get_json()["data"]]

    assert titles("overdue=true") == ["Late"]
    assert titles(f"owner_id={seed.bruno.id}") == ["Upcoming"]
    assert titles("priority=high") == ["Upcoming"]
    assert set(titles(f"initiative_id={ini.id}")) == {"Late", "Late but done", "Upcoming"}
    assert client.get("/activities?status=doing", headers=h).status_code == 400


def test_empleado_activity_visibility(client, auth, factory, seed):
    obj = factory.objective(seed.corp, department="Ventas")
    ana_ini = factory.initiative(obj, seed.ana, title="Ana initiative")
    other_ini = factory.initiative(obj, seed.corp, title="Corp initiative")
    factory.activity(ana_ini, seed.bruno, title="Bruno under Ana")
    factory.activity(other_ini, seed.bruno, title="Bruno under Corp")
    factory.activity(other_ini, seed.corp, title="Corp only")

    ana = {a["title"] for a in client.get("/activities", headers=auth(seed.ana.id)).get_json()["data"]}
    bruno = {a["title"] for a in client.get("/activities", headers=auth(seed.bruno.id)).get_json()["data"]}
    assert ana == {"Bruno under Ana"}
    assert bruno == {"Bruno under Ana", "Bruno under Corp"}


def test_foreign_activity_is_not_found(client, auth, factory, seed):
    ini = factory.initiative(factory.objective(seed.globex_corp), seed.globex_corp)
    act = factory.activity(ini, seed.globex_corp)
    h = auth(seed.corp.id)
    assert client.get(f"/activities/{act.id}", headers=h).status_code == 404
    r = client.post("/activities", json={"title": "Sneaky", "initiative_id": ini.id}, headers=h)
    assert r.status_code == 404
