"""HTTP and socket tests for the messaging API."""
import pytest
from starlette.websockets import WebSocketDisconnect

from bizchat.utils.realtime_bus import get_bus

from helpers import UnreachableBus, auth_header, make_token


def create_direct(client, me: str, other: str) -> str:
    r = client.post("/conversations", json={"type": "user_user", "participants": [other]}, headers=auth_header(me))
    assert r.status_code in (200, 201)
    return r.json()["data"]["id"]


def test_routes_require_a_token(client):
    r = client.get("/conversations")
    assert r.status_code == 401
    assert r.json() == {"success": False, "error": "Authentication token required"}


def test_invalid_token_rejected(client):
    r = client.get("/conversations", headers={"Authorization": f"Bearer {make_token('alice', secret='wrong')}"})
    assert r.status_code == 401
    assert r.json()["success"] is False


def test_create_then_reuse_direct_conversation(client):
    r = client.post("/conversations", json={"type": "user_user", "participants": ["bob"]}, headers=auth_header("alice"))
    assert r.status_code == 201
    again = client.post("/conversations", json={"type": "user_user", "participants": ["alice"]}, headers=auth_header("bob"))
    assert again.status_code == 200
    assert again.json()["data"]["id"] == r.json()["data"]["id"]


def test_send_list_and_read_flow(client):
    c1 = create_direct(client, "alice", "bob")

    r = client.post(f"/conversations/{c1}/messages", json={"type": "text", "content": "hi"}, headers=auth_header("alice"))
    assert r.status_code == 201
    message = r.json()["data"]
    assert message["senderId"] == "alice"
    assert message["read"] is False

    convo = client.get(f"/conversations/{c1}", headers=auth_header("bob")).json()["data"]
    assert convo["lastMessage"] == "hi"
    assert convo["lastMessageAt"] == message["createdAt"]
    assert convo["unreadCount"] == 1

    listed = client.get("/conversations", headers=auth_header("bob")).json()
    assert [c["id"] for c in listed["data"]] == [c1]

    r = client.patch(f"/conversations/{c1}/read", headers=auth_header("bob"))
    assert r.json() == {"success": True, "updated": 1}

    messages = client.get(f"/conversations/{c1}/messages", headers=auth_header("bob")).json()["data"]
    assert [m["read"] for m in messages] == [True]
    assert client.get(f"/conversations/{c1}", headers=auth_header("bob")).json()["data"]["unreadCount"] == 0


def test_outsider_gets_403_and_missing_gets_404(client):
    c1 = create_direct(client, "alice", "bob")
    r = client.get(f"/conversations/{c1}", headers=auth_header("mallory"))
    assert r.status_code == 403
    assert r.json()["success"] is False
    r = client.post(f"/conversations/{c1}/messages", json={"content": "spam"}, headers=auth_header("mallory"))
    assert r.status_code == 403
    r = client.get("/conversations/64b7f0c2a1b2c3d4e5f60718", headers=auth_header("alice"))
    assert r.status_code == 404


def test_image_without_media_url_is_400(client):
    c1 = create_direct(client, "alice", "bob")
    r = client.post(f"/conversations/{c1}/messages", json={"type": "image", "content": ""}, headers=auth_header("alice"))
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "image messages require mediaUrl"}


def test_unknown_message_type_is_400(client):
    c1 = create_direct(client, "alice", "bob")
    r = client.post(f"/conversations/{c1}/messages", json={"type": "video", "content": "x"}, headers=auth_header("alice"))
    assert r.status_code == 400
    assert r.json()["success"] is False


def test_delete_message_sender_only(client):
    c1 = create_direct(client, "alice", "bob")
    mid = client.post(f"/conversations/{c1}/messages", json={"content": "oops"}, headers=auth_header("alice")).json()["data"]["id"]

    assert client.delete(f"/conversations/messages/{mid}", headers=auth_header("bob")).status_code == 403
    assert client.delete(f"/conversations/messages/{mid}", headers=auth_header("alice")).status_code == 200
    convo = client.get(f"/conversations/{c1}", headers=auth_header("alice")).json()["data"]
    assert convo["lastMessage"] is None


def test_stats_endpoint(client):
    c1 = create_direct(client, "alice", "bob")
    client.post(f"/conversations/{c1}/messages", json={"content": "hi"}, headers=auth_header("bob"))
    stats = client.get("/conversations/stats", headers=auth_header("alice")).json()["data"]
    assert stats == {"totalConversations": 1, "unreadConversations": 1, "totalMessages": 1, "unreadMessages": 1}


def test_group_participant_routes(client):
    r = client.post("/conversations", json={"type": "group", "participants": ["bob", "carol"], "title": "Team"}, headers=auth_header("alice"))
    gid = r.json()["data"]["id"]
    assert client.post(f"/conversations/{gid}/participants", json={"userId": "dave"}, headers=auth_header("alice")).json()["added"] is True
    assert client.get(f"/conversations/{gid}", headers=auth_header("dave")).status_code == 200
    assert client.delete(f"/conversations/{gid}/participants/dave", headers=auth_header("alice")).status_code == 200
    assert client.get(f"/conversations/{gid}", headers=auth_header("dave")).status_code == 403


def test_socket_without_token_is_refused(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws"):
            pass
    assert exc_info.value.code == 4401
    assert client.live_registry.active_connections == {}


def test_socket_with_bad_token_is_refused(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(f"/ws?token={make_token('bob', secret='wrong')}"):
            pass
    assert exc_info.value.code == 4401


def test_live_push_of_new_message_and_read_receipt(client):
    c1 = create_direct(client, "alice", "bob")

    with client.websocket_connect(f"/ws?token={make_token('bob')}") as bob_ws:
        bob_ws.send_json({"type": "ping"})
        assert bob_ws.receive_json()["event"] == "pong"
        assert len(client.live_registry.handles_for("bob")) == 1

        sent = client.post(f"/conversations/{c1}/messages", json={"content": "hi"}, headers=auth_header("alice")).json()["data"]
        event = bob_ws.receive_json()
        assert event["event"] == "message:new"
        assert event["data"]["id"] == sent["id"]

        with client.websocket_connect("/ws", headers=auth_header("alice")) as alice_ws:
            alice_ws.send_json({"type": "ping"})
            assert alice_ws.receive_json()["event"] == "pong"
            client.patch(f"/conversations/{c1}/read", headers=auth_header("bob"))
            receipt = alice_ws.receive_json()
            assert receipt["event"] == "message:read"
            assert receipt["data"] == {
                "conversationId": c1,
                "readerId": "bob",
                "count": 1,
                "readAt": receipt["data"]["readAt"],
            }

    assert client.live_registry.handles_for("bob") == []


def test_typing_frames_are_relayed(client):
    c1 = create_direct(client, "alice", "bob")
    with client.websocket_connect(f"/ws?token={make_token('bob')}") as bob_ws:
        with client.websocket_connect(f"/ws?token={make_token('alice')}") as alice_ws:
            alice_ws.send_json({"type": "typing:start", "conversationId": c1})
            event = bob_ws.receive_json()
            assert event == {"event": "typing", "data": {"conversationId": c1, "userIds": ["alice"]}}
            alice_ws.send_json({"type": "typing:start", "conversationId": "64b7f0c2a1b2c3d4e5f60718"})
            assert alice_ws.receive_json() == {"event": "error", "data": {"message": "Conversation not found"}}


def test_send_after_disconnect_still_stores(client):
    c1 = create_direct(client, "alice", "bob")
    with client.websocket_connect(f"/ws?token={make_token('bob')}") as bob_ws:
        bob_ws.send_json({"type": "ping"})
        bob_ws.receive_json()

    r = client.post(f"/conversations/{c1}/messages", json={"content": "later"}, headers=auth_header("alice"))
    assert r.status_code == 201
    messages = client.get(f"/conversations/{c1}/messages", headers=auth_header("bob")).json()["data"]
    assert [m["content"] for m in messages] == ["later"]
    feed = client.get("/notifications?unread=true", headers=auth_header("bob")).json()
    assert feed["unreadCount"] == 1


def test_presence(client):
    assert client.get("/presence/bob", headers=auth_header("alice")).json()["data"]["online"] is False
    with client.websocket_connect(f"/ws?token={make_token('bob')}") as bob_ws:
        bob_ws.send_json({"type": "ping"})
        bob_ws.receive_json()
        assert client.get("/presence/bob", headers=auth_header("alice")).json()["data"]["online"] is True


def test_socket_is_unregistered_when_bus_subscribe_fails(client):
    client.app.dependency_overrides[get_bus] = lambda: UnreachableBus()
    with pytest.raises(Exception):
        with client.websocket_connect(f"/ws?token={make_token('bob')}") as bob_ws:
            bob_ws.receive_json()
    assert client.live_registry.handles_for("bob") == []
