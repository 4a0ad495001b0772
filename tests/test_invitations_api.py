import re

from okr.audit_events import list_audit_events
from okr.models import Invitation, Profile

TOKEN_IN_LINK = re.compile(r"/invite/([A-Za-z0-9_-]+)")


def _token_from_mail(mail):
    m = TOKEN_IN_LINK.search(mail["html"])
    assert m, mail["html"]
    return m.group(1)


def test_batch_invite_reports_each_email(client, auth, outbox, seed):
    r = client.post(
        "/invitations",
        json={"emails": ["New.Hire@Example.test", seed.ana.email, "new.hire@example.test"], "role_type": "empleado", "department": "Ventas"},
        headers=auth(seed.corp.id),
    )
    assert r.status_code == 201
    data = r.get_json()["data"]
    by_email = {row["email"]: row for row in data["results"]}
    assert by_email["new.hire@example.test"]["status"] == "sent"
    assert by_email[seed.ana.email]["status"] == "failed"
    assert data["summary"] == {"sent": 1, "existing": 0, "failed": 1}
    assert "token" not in by_email["new.hire@example.test"]["invitation"]
    assert [m["to"] for m in outbox.sent] == ["new.hire@example.test"]
    assert "Acme" in outbox.sent[0]["subject"]

    again = client.post(
        "/invitations",
        json={"email": "new.hire@example.test", "role": "empleado"},
        headers=auth(seed.corp.id),
    ).get_json()["data"]
    assert again["results"][0]["status"] == "existing"
    assert len(outbox.sent) == 1


def test_invite_validation(client, auth, seed):
    h = auth(seed.corp.id)
    assert client.post("/invitations", json={"emails": [], "role_type": "empleado"}, headers=h).status_code == 400
    assert client.post("/invitations", json={"emails": ["nope"], "role_type": "empleado"}, headers=h).status_code == 400
    assert client.post("/invitations", json={"emails": ["a@b.test"], "role_type": "boss"}, headers=h).status_code == 400
    too_many = [f"user{i}@example.test" for i in range(51)]
    assert client.post("/invitations", json={"emails": too_many, "role_type": "empleado"}, headers=h).status_code == 400


def test_only_managers_invite(client, auth, seed):
    r = client.post("/invitations", json={"emails": ["x@example.test"], "role_type": "empleado"}, headers=auth(seed.ana.id))
    assert r.status_code == 403


def test_gerente_invites_into_own_department_only(client, auth, factory, seed):
    h = auth(seed.ventas_mgr.id)
    r = client.post("/invitations", json={"emails": ["boss@example.test"], "role_type": "corporativo"}, headers=h)
    assert r.status_code == 403
    r = client.post(
        "/invitations",
        json={"emails": ["rep@example.test"], "role_type": "empleado", "department": "Operaciones"},
        headers=h,
    )
    assert r.status_code == 201
    assert r.get_json()["data"]["results"][0]["invitation"]["department"] == "Ventas"


def test_public_token_lookup(client, factory, seed):
    inv = factory.invitation(seed.acme, "lookup@example.test", department="Ventas")
    r = client.get(f"/invitations/token/{inv.token}")
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["valid"] is True
    assert data["company"]["name"] == "Acme"
    assert data["email"] == "lookup@example.test"
    assert client.get("/invitations/token/unknown-token").status_code == 404
    assert client.get("/invitations/token/bad$token").status_code == 400


def test_lookup_marks_expired(client, factory, seed):
    inv = factory.invitation(seed.acme, "late@example.test", expires_in_days=-1)
    data = client.get(f"/invitations/token/{inv.token}").get_json()["data"]
    assert data["valid"] is False
    assert data["status"] == "expired"
    assert factory.fetch(Invitation, inv.id).status == "expired"


def test_accept_creates_profile_and_is_idempotent(client, auth, outbox, factory, seed):
    client.post(
        "/invitations",
        json={"emails": ["joiner@example.test"], "role_type": "gerente", "department": "Marketing"},
        headers=auth(seed.corp.id),
    )
    token = _token_from_mail(outbox.sent[-1])
    h = auth("joiner", "joiner@example.test", "Jo Iner")

    r = client.post(f"/invitations/token/{token}/accept", json={}, headers=h)
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["already_accepted"] is False
    assert data["profile"]["company_id"] == seed.acme.id
    assert data["profile"]["role_type"] == "gerente"
    assert data["profile"]["department"] == "Marketing"
    assert data["profile"]["full_name"] == "Jo Iner"
    assert data["invitation"]["status"] == "accepted"

    me = client.get("/profiles/me", headers=h).get_json()["data"]
    assert me["permissions"] == ["okr:member"]
    assert factory.onboarding("joiner").status == "completed"
    assert list_audit_events("invitation_accepted")

    r = client.post(f"/invitations/token/{token}/accept", json={}, headers=h)
    assert r.status_code == 200
    assert r.get_json()["data"]["already_accepted"] is True
    assert factory.count(Profile, id="joiner") == 1


def test_accepted_invitation_cannot_be_reused_by_another_user(client, auth, factory, seed):
    inv = factory.invitation(seed.acme, "first@example.test")
    assert client.post(f"/invitations/token/{inv.token}/accept", headers=auth("first", "first@example.test")).status_code == 200
    r = client.post(f"/invitations/token/{inv.token}/accept", headers=auth("second", "first@example.test"))
    assert r.status_code == 409


def test_accept_rejects_expired_and_revoked(client, auth, factory, seed):
    expired = factory.invitation(seed.acme, "late@example.test", expires_in_days=-1)
    r = client.post(f"/invitations/token/{expired.token}/accept", headers=auth("late", "late@example.test"))
    assert r.status_code == 400
    assert factory.fetch(Invitation, expired.id).status == "expired"

    revoked = factory.invitation(seed.acme, "gone@example.test", status="revoked")
    r = client.post(f"/invitations/token/{revoked.token}/accept", headers=auth("gone", "gone@example.test"))
    assert r.status_code == 400
    assert factory.count(Profile, id="gone") == 0


def test_accept_requires_matching_email(client, auth, factory, seed):
    inv = factory.invitation(seed.acme, "invited@example.test")
    r = client.post(f"/invitations/token/{inv.token}/accept", headers=auth("intruder", "intruder@example.test"))
    assert r.status_code == 403
    assert factory.fetch(Invitation, inv.id).status == "pending"


def test_accept_by_member_of_other_company_conflicts(client, auth, factory, seed):
    inv = factory.invitation(seed.acme, seed.globex_corp.email)
    r = client.post(f"/invitations/token/{inv.token}/accept", headers=auth(seed.globex_corp.id))
    assert r.status_code == 409
    assert factory.fetch(Profile, seed.globex_corp.id).company_id == seed.globex.id


def test_accept_requires_identity(client, factory, seed):
    inv = factory.invitation(seed.acme, "anon@example.test")
    assert client.post(f"/invitations/token/{inv.token}/accept").status_code == 401


def test_listing_stats_revoke_and_resend(client, auth, outbox, factory, seed):
    mine = factory.invitation(seed.acme, "a@example.test", department="Ventas", invited_by=seed.ventas_mgr.id)
    factory.invitation(seed.acme, "b@example.test", department="Operaciones", invited_by=seed.ops_mgr.id)
    expired = factory.invitation(seed.acme, "c@example.test", department="Ventas", status="expired", expires_in_days=-2)
    factory.invitation(seed.globex, "d@example.test")

    corp = auth(seed.corp.id)
    body = client.get("/invitations", headers=corp).get_json()
    assert body["meta"]["total"] == 3
    gerente = auth(seed.ventas_mgr.id)
    emails = {i["email"] for i in client.get("/invitations", headers=gerente).get_json()["data"]}
    assert emails == {"a@example.test", "c@example.test"}
    assert client.get("/invitations?search=c@", headers=corp).get_json()["meta"]["total"] == 1

    stats = client.get("/invitations/stats", headers=corp).get_json()["data"]
    assert stats["pending"] == 2 and stats["expired"] == 1 and stats["total"] == 3

    r = client.delete(f"/invitations/{mine.id}", headers=gerente)
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "revoked"
    assert client.delete(f"/invitations/{mine.id}", headers=gerente).status_code == 409

    assert client.post(f"/invitations/{expired.id}/resend", headers=gerente).status_code == 409
    assert client.post(f"/invitations/{mine.id}/resend", headers=gerente).status_code == 409
    assert not outbox.to("c@example.test")

    fresh = factory.invitation(seed.acme, "e@example.test", department="Ventas", invited_by=seed.ventas_mgr.id, expires_in_days=1)
    r = client.post(f"/invitations/{fresh.id}/resend", headers=gerente)
    assert r.status_code == 200
    data = r.get_json()["data"]
    assert data["status"] == "pending"
    assert data["expires_at"] > fresh.expires_at.isoformat()
    assert data["email_delivered"] is True
    assert outbox.to("e@example.test")

    assert client.get("/invitations", headers=auth(seed.ana.id)).status_code == 403


def test_resend_of_lapsed_pending_invitation_conflicts(client, auth, outbox, factory, seed):
    lapsed = factory.invitation(seed.acme, "lapsed@example.test", expires_in_days=-1)
    r = client.post(f"/invitations/{lapsed.id}/resend", headers=auth(seed.corp.id))
    assert r.status_code == 409
    assert factory.fetch(Invitation, lapsed.id).status == "expired"
    assert not outbox.to("lapsed@example.test")


def test_invitation_search_treats_wildcards_literally(client, auth, factory, seed):
    factory.invitation(seed.acme, "a_b@example.test")
    factory.invitation(seed.acme, "axb@example.test")
    corp = auth(seed.corp.id)
    assert client.get("/invitations?search=a_b", headers=corp).get_json()["meta"]["total"] == 1
    assert client.get("/invitations?search=%25", headers=corp).get_json()["meta"]["total"] == 0


def test_accept_conflicts_when_profile_is_created_concurrently(client, auth, factory, seed, stale_profile_lookup):
    inv = factory.invitation(seed.acme, "racer@example.test")
    factory.profile("racer", seed.globex, "empleado")
    r = client.post(f"/invitations/token/{inv.token}/accept", headers=auth("racer", "racer@example.test"))
    assert r.status_code == 409
    assert factory.fetch(Invitation, inv.id).status == "pending"
    assert factory.count(Profile, id="racer", company_id=seed.globex.id) == 1
