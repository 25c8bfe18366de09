"""End-to-end tests for the REST API."""
from fastapi.testclient import TestClient

from conftest import register


def test_direct_message_flow(client):
    alice, alice_headers, _ = register(client, "alice")
    bob, bob_headers, _ = register(client, "bob")

    found = client.get("/api/users/search", params={"query": "BO"}, headers=alice_headers).json()
    assert [u["username"] for u in found["users"]] == ["bob"]
    assert "passwordHash" not in found["users"][0]

    response = client.get(f"/api/messages/conversations/user/{bob['id']}", headers=alice_headers)
    assert response.status_code == 200
    conversation = response.json()["conversation"]
    assert {p["id"] for p in conversation["participants"]} == {alice["id"], bob["id"]}
    assert conversation["lastMessage"] is None

    again = client.get(f"/api/messages/conversations/user/{alice['id']}", headers=bob_headers).json()
    assert again["conversation"]["id"] == conversation["id"]

    response = client.post("/api/messages/direct", headers=alice_headers, json={
        "conversationId": conversation["id"],
        "content": "Hi Bob",
    })
    assert response.status_code == 201
    sent = response.json()["message"]
    assert sent["kind"] == "direct"
    assert sent["sender"]["username"] == "alice"
    assert sent["read"] is False

    listed = client.get("/api/messages/conversations", headers=bob_headers).json()["conversations"]
    assert len(listed) == 1
    assert listed[0]["lastMessage"]["id"] == sent["id"]
    assert listed[0]["messageCount"] == 1

    messages = client.get(
        f"/api/messages/conversations/{conversation['id']}/messages", headers=bob_headers
    ).json()["messages"]
    assert [m["content"] for m in messages] == ["Hi Bob"]

    read_url = f"/api/messages/conversations/{conversation['id']}/read"
    assert client.put(read_url, headers=bob_headers).json() == {"success": True, "updatedCount": 1}
    assert client.put(read_url, headers=bob_headers).json()["updatedCount"] == 0
    assert client.put(read_url, headers=alice_headers).json()["updatedCount"] == 0


def test_register_and_login(client):
    user, _, _ = register(client, "alice", email="Alice@X.com", password="secret")
    assert user["email"] == "alice@x.com"

    response = client.post("/api/auth/login", json={"email": "alice@x.com", "password": "secret"})
    assert response.status_code == 200
    body = response.json()
    assert body["user"]["id"] == user["id"]

    profile = client.get("/api/auth/profile", headers={"Authorization": f"Bearer {body['token']}"})
    assert profile.json()["user"]["username"] == "alice"


def test_login_failures(client):
    register(client, "alice", password="secret")

    unknown = client.post("/api/auth/login", json={"email": "nobody@x.com", "password": "secret"})
    assert unknown.status_code == 404
    assert unknown.json()["success"] is False

    wrong = client.post("/api/auth/login", json={"email": "alice@x.com", "password": "nope"})
    assert wrong.status_code == 401
    assert wrong.json()["message"] == "Invalid credentials"


def test_duplicate_registration_is_rejected(client):
    register(client, "alice")

    same_email = client.post("/api/auth/register", json={
        "username": "alice2", "email": "alice@x.com", "password": "pw",
    })
    assert same_email.status_code == 400
    assert same_email.json()["message"] == "Email already in use"

    same_name = client.post("/api/auth/register", json={
        "username": "alice", "email": "other@x.com", "password": "pw",
    })
    assert same_name.status_code == 400


def test_malformed_registration_is_a_bad_request(client):
    response = client.post("/api/auth/register", json={"username": "alice", "email": "not-an-email"})
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_missing_or_invalid_credentials(client):
    no_token = client.get("/api/messages/conversations")
    assert no_token.status_code == 401
    assert no_token.json()["success"] is False

    bad_token = client.get("/api/messages/conversations", headers={"Authorization": "Bearer garbage"})
    assert bad_token.status_code == 401


def test_conversation_with_self_or_unknown_user(client):
    alice, headers, _ = register(client, "alice")

    assert client.get(f"/api/messages/conversations/user/{alice['id']}", headers=headers).status_code == 400
    assert client.get("/api/messages/conversations/user/not-a-uuid", headers=headers).status_code == 400

    missing = "00000000-0000-0000-0000-000000000000"
    assert client.get(f"/api/messages/conversations/user/{missing}", headers=headers).status_code == 404


def test_outsider_cannot_read_or_write_conversation(client):
    _, alice_headers, _ = register(client, "alice")
    bob, _, _ = register(client, "bob")
    _, carol_headers, _ = register(client, "carol")
    conversation = client.get(
        f"/api/messages/conversations/user/{bob['id']}", headers=alice_headers
    ).json()["conversation"]

    base = f"/api/messages/conversations/{conversation['id']}"
    assert client.get(f"{base}/messages", headers=carol_headers).status_code == 403
    assert client.put(f"{base}/read", headers=carol_headers).status_code == 403

    response = client.post("/api/messages/direct", headers=carol_headers, json={
        "conversationId": conversation["id"], "content": "sneaky",
    })
    assert response.status_code == 403

    assert client.get("/api/messages/conversations/bogus/messages", headers=carol_headers).status_code == 400


def test_empty_direct_message_is_rejected(client):
    _, alice_headers, _ = register(client, "alice")
    bob, _, _ = register(client, "bob")
    conversation = client.get(
        f"/api/messages/conversations/user/{bob['id']}", headers=alice_headers
    ).json()["conversation"]

    response = client.post("/api/messages/direct", headers=alice_headers, json={
        "conversationId": conversation["id"], "content": "",
    })
    assert response.status_code == 400


def test_search_excludes_caller_and_is_capped(client):
    _, headers, _ = register(client, "user-me")
    for i in range(12):
        register(client, f"user{i:02d}")

    users = client.get("/api/users/search", params={"query": "user"}, headers=headers).json()["users"]

    assert len(users) == 10
    assert "user-me" not in [u["username"] for u in users]
    assert client.get("/api/users/search", headers=headers).status_code == 400


def test_get_user_by_id(client):
    _, headers, _ = register(client, "alice")
    bob, _, _ = register(client, "bob")

    assert client.get(f"/api/users/{bob['id']}", headers=headers).json()["user"]["username"] == "bob"
    assert client.get("/api/users/missing", headers=headers).status_code == 404


def test_room_messages(client):
    _, alice_headers, _ = register(client, "alice")
    _, bob_headers, _ = register(client, "bob")

    response = client.post("/api/messages/rooms", headers=alice_headers, json={
        "roomId": "general", "content": "hello room",
    })
    assert response.status_code == 201
    assert response.json()["message"]["kind"] == "room"
    assert response.json()["message"]["read"] is True

    messages = client.get("/api/messages/rooms/general", headers=bob_headers).json()["messages"]
    assert [m["roomId"] for m in messages] == ["general"]
    assert client.get("/api/messages/conversations", headers=alice_headers).json()["conversations"] == []


def test_health(client):
    body = client.get("/api/health").json()
    assert body["status"] == "ok"
    assert body["sessions"] == 0
    assert "messages_sent_total" in body["metrics"]["counters"]


def test_search_treats_wildcards_literally(client):
    _, headers, _ = register(client, "alice")
    register(client, "bob")
    register(client, "carol_x")

    def usernames(query):
        response = client.get("/api/users/search", params={"query": query}, headers=headers)
        return [u["username"] for u in response.json()["users"]]

    assert usernames("%") == []
    assert usernames("b_b") == []
    assert usernames("l_x") == ["carol_x"]


def test_unexpected_errors_use_the_envelope(app):
    @app.get("/api/explode")
    async def explode():
        raise RuntimeError("boom")

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/api/explode")

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Internal server error", "error": "boom"}
