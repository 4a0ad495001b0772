from okr.models import Company, ProfilePermission
from okr.onboarding_service import slugify


def test_slugify():
    assert slugify("Ácme Industrias, S.A.") == "acme-industrias-s-a"
    assert slugify("***") == "company"


def test_status_for_new_user(client, auth):
    r = client.get("/onboarding/status", headers=auth("fresh"))
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data == {"has_profile": False, "company": None, "session": None, "next_step": "create_org"}


def test_session_progress(client, auth):
    h = auth("fresh")
    r = client.post("/onboarding/start", json={}, headers=h)
    assert r.status_code == 200
    assert r.get_json()["data"]["current_step"] == "create_org"

    r = client.put("/onboarding/session", json={"partial_data": {"name": "Draft Co"}}, headers=h)
    assert r.get_json()["data"]["partial_data"] == {"name": "Draft Co"}
    r = client.put("/onboarding/session", json={"partial_data": {"size": 12}, "current_step": "complete_profile"}, headers=h)
    data = r.get_json()["data"]
    assert data["partial_data"] == {"name": "Draft Co", "size": 12}
    assert data["current_step"] == "complete_profile"

    assert client.put("/onboarding/session", json={"current_step": "dance"}, headers=h).status_code == 400
    assert client.put("/onboarding/session", json={"partial_data": [1]}, headers=h).status_code == 400

    r = client.post("/onboarding/start", json={"restart": True}, headers=h)
    data = r.get_json()["data"]
    assert data["partial_data"] == {}
    assert data["current_step"] == "create_org"


def test_start_with_invitation_token(client, auth):
    r = client.post("/onboarding/start", json={"invitation_token": "tok_123"}, headers=auth("fresh"))
    data = r.get_json()["data"]
    assert data["current_step"] == "accept_invite"
    assert data["invitation_token"] == "tok_123"


def test_update_without_session_is_400(client, auth):
    assert client.put("/onboarding/session", json={"current_step": "create_org"}, headers=auth("fresh")).status_code == 400


def test_create_organization(client, auth, factory):
    h = auth("founder", "founder@example.test", "Fran Founder")
    client.post("/onboarding/start", json={}, headers=h)
    r = client.post("/onboarding/organization", json={"name": "Nuevo Mundo", "department": "Direccion"}, headers=h)
    assert r.status_code == 201
    data = r.get_json()["data"]
    assert data["company"]["slug"] == "nuevo-mundo"
    assert data["profile"]["role_type"] == "corporativo"
    assert data["profile"]["full_name"] == "Fran Founder"
    assert factory.count(ProfilePermission, profile_id="founder") == 1
    assert factory.onboarding("founder").status == "completed"

    status = client.get("/onboarding/status", headers=h).get_json()["data"]
    assert status["has_profile"] is True
    assert status["next_step"] is None
    assert client.get("/objectives", headers=h).status_code == 200

    again = client.post("/onboarding/organization", json={"name": "Second"}, headers=h)
    assert again.status_code == 409
    assert client.post("/onboarding/start", json={}, headers=h).status_code == 409


def test_generated_slug_gets_suffix(client, auth, factory, seed):
    r = client.post("/onboarding/organization", json={"name": "Acme"}, headers=auth("other-founder"))
    assert r.status_code == 201
    assert r.get_json()["data"]["company"]["slug"] == "acme-1"


def test_explicit_slug_rules(client, auth, seed):
    r = client.post("/onboarding/organization", json={"name": "Copy", "slug": "acme"}, headers=auth("f1"))
    assert r.status_code == 409
    r = client.post("/onboarding/organization", json={"name": "Bad", "slug": "-nope-"}, headers=auth("f2"))
    assert r.status_code == 400
    r = client.post("/onboarding/organization", json={"name": "Good", "slug": "Good-Co"}, headers=auth("f3"))
    assert r.status_code == 201
    assert r.get_json()["data"]["company"]["slug"] == "good-co"


def test_organization_requires_name(client, auth, factory):
    assert client.post("/onboarding/organization", json={}, headers=auth("f1")).status_code == 400
    assert factory.count(Company) == 0


def test_complete_requires_profile(client, auth, seed):
    assert client.post("/onboarding/complete", headers=auth("fresh")).status_code == 400
    r = client.post("/onboarding/complete", headers=auth(seed.corp.id))
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "completed"


def test_onboarding_requires_identity(client):
    assert client.get("/onboarding/status").status_code == 401
    assert client.post("/onboarding/organization", json={"name": "X"}).status_code == 401


def test_create_organization_conflicts_when_profile_appears_concurrently(client, auth, factory, seed, stale_profile_lookup):
    factory.profile("racer", seed.globex, "empleado")
    r = client.post("/onboarding/organization", json={"name": "Race Co"}, headers=auth("racer", "racer@example.test"))
    assert r.status_code == 409
    assert factory.count(Company, name="Race Co") == 0
    assert factory.count(ProfilePermission, profile_id="racer") == 0


def test_concurrent_start_reuses_existing_row(client, auth, factory, monkeypatch):
    import okr.onboarding_service as onboarding

    h = auth("twice")
    assert client.post("/onboarding/start", json={}, headers=h).status_code == 200
    first = factory.onboarding("twice")

    real_lookup = onboarding.get_session_row
    misses = []

    def lookup(db, user_id):
        # First lookup misses, as if the other request had not committed yet
        if not misses:
            misses.append(user_id)
            return None
        return real_lookup(db, user_id)

    monkeypatch.setattr(onboarding, "get_session_row", lookup)
    r = client.post("/onboarding/start", json={}, headers=h)
    assert r.status_code == 200
    assert r.get_json()["data"]["id"] == first.id
    assert factory.count(onboarding.OnboardingSession, user_id="twice") == 1
