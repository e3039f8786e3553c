"""HTTP tests for the notification feed."""
from helpers import auth_header


def create(client, recipient: str, **overrides) -> dict:
    body = {"recipientId": recipient, "type": "new_review", "title": "New review!", "message": "Ann left 5 stars", "payload": {"reviewerName": "Ann", "rating": 5}}
    body.update(overrides)
    r = client.post("/notifications", json=body, headers=auth_header("review-service"))
    assert r.status_code == 201
    return r.json()["data"]


def test_list_unread_scenario(client):
    for _ in range(3):
        create(client, "owner")

    r = client.get("/notifications?page=1&limit=20&unread=true", headers=auth_header("owner"))

    body = r.json()
    assert r.status_code == 200
    assert body["success"] is True
    assert len(body["data"]) == 3
    assert body["unreadCount"] == 3
    assert body["pagination"]["page"] == 1
    assert body["pagination"]["pages"] == 1


def test_mark_read_and_read_all(client):
    first = create(client, "owner")
    create(client, "owner")

    assert client.patch(f"/notifications/{first['id']}/read", headers=auth_header("owner")).status_code == 200
    assert client.get("/notifications", headers=auth_header("owner")).json()["unreadCount"] == 1

    r = client.patch("/notifications/read-all", headers=auth_header("owner"))
    assert r.json()["updated"] == 1
    r = client.patch("/notifications/read-all", headers=auth_header("owner"))
    assert r.json()["updated"] == 0


def test_other_users_notification_is_forbidden(client):
    note = create(client, "owner")
    assert client.patch(f"/notifications/{note['id']}/read", headers=auth_header("intruder")).status_code == 403
    assert client.delete(f"/notifications/{note['id']}", headers=auth_header("intruder")).status_code == 403
    assert client.delete(f"/notifications/{note['id']}", headers=auth_header("owner")).status_code == 200
    assert client.delete(f"/notifications/{note['id']}", headers=auth_header("owner")).status_code == 404


def test_bad_create_body_is_400(client):
    r = client.post("/notifications", json={"recipientId": "owner", "type": "nope", "title": "t", "message": "m"}, headers=auth_header("svc"))
    assert r.status_code == 400
    assert r.json()["success"] is False


def test_feed_requires_token(client):
    assert client.get("/notifications").status_code == 401


def test_create_requires_token(client):
    body = {"recipientId": "owner", "type": "promotion", "title": "Sale", "message": "20% off"}
    r = client.post("/notifications", json=body)
    assert r.status_code == 401
    assert r.json() == {"success": False, "error": "Authentication token required"}
