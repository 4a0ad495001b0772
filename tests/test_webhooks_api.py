from okr.models import EmailEvent


def test_single_event_stored(client, factory):
    r = client.post(
        "/webhooks/email",
        json={"event": "delivered", "email": "a@example.test", "message-id": "<abc@brevo>"},
    )
    assert r.status_code == 200
    assert r.get_json() == {"data": {"received": True, "stored": 1}}
    assert factory.count(EmailEvent, event="delivered", message_id="<abc@brevo>") == 1


def test_batch_of_events(client, factory):
    events = [{"event": "opened", "email": "a@example.test"}, {"event": "hard_bounce", "email": "b@example.test"}, "junk"]
    r = client.post("/webhooks/email", json=events)
    assert r.get_json()["data"]["stored"] == 2
    assert factory.count(EmailEvent) == 2


def test_garbage_is_acknowledged(client, factory):
    r = client.post("/webhooks/email", data="not json", content_type="text/plain")
    assert r.status_code == 200
    assert r.get_json()["data"] == {"received": True, "stored": 0}
    assert factory.count(EmailEvent) == 0


def test_shared_secret(app, client, factory):
    app.config["EMAIL_WEBHOOK_SECRET"] = "hook-secret"
    r = client.post("/webhooks/email", json={"event": "delivered"}, headers={"X-Webhook-Secret": "wrong"})
    assert r.status_code == 200
    assert r.get_json()["data"]["stored"] == 0
    r = client.post("/webhooks/email", json={"event": "delivered"}, headers={"X-Webhook-Secret": "hook-secret"})
    assert r.get_json()["data"]["stored"] == 1
    assert factory.count(EmailEvent) == 1
