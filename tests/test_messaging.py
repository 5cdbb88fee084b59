"""Tests for support chat."""
from __future__ import annotations

from handykonnect.extensions import db
from handykonnect.models import Message


def test_support_conversation_is_per_client(client, seed, auth) -> None:
    response = client.get("/support/conversation", headers=auth(seed["client_id"]))

    assert response.status_code == 200
    data = response.get_json()
    assert data["conversation_id"] == f"support_{seed['client_id']}"
    assert data["messages"] == []


def test_client_posts_to_own_support_thread(client, seed, auth) -> None:
    conversation = f"support_{seed['client_id']}"

    response = client.post(
        f"/conversations/{conversation}/messages",
        json={"content": "  My sink is leaking  "},
        headers=auth(seed["client_id"]),
    )

    assert response.status_code == 201
    message = response.get_json()["message"]
    assert message["content"] == "My sink is leaking"
    assert message["sender_id"] == seed["client_id"]
    assert message["is_read"] is False


def test_whitespace_message_rejected_before_insert(client, app, seed, auth) -> None:
    conversation = f"support_{seed['client_id']}"

    response = client.post(
        f"/conversations/{conversation}/messages",
        json={"content": " \n\t "},
        headers=auth(seed["client_id"]),
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "empty_message"
    with app.app_context():
        assert Message.query.count() == 0


def test_oversized_message_rejected(client, seed, auth) -> None:
    response = client.post(
        f"/conversations/support_{seed['client_id']}/messages",
        json={"content": "x" * 4001},
        headers=auth(seed["client_id"]),
    )

    assert response.status_code == 400


def test_client_cannot_read_another_clients_thread(client, seed, auth) -> None:
    response = client.get(f"/conversations/support_{seed['other_id']}/messages", headers=auth(seed["client_id"]))

    assert response.status_code == 403
    assert response.get_json()["error"] == "forbidden"


def test_admin_replies_and_sees_inbox(client, seed, auth) -> None:
    conversation = f"support_{seed['client_id']}"
    client.post(
        f"/conversations/{conversation}/messages",
        json={"content": "Hello?"},
        headers=auth(seed["client_id"]),
    )
    client.post(
        f"/conversations/{conversation}/messages",
        json={"content": "Hi, how can we help?"},
        headers=auth(seed["admin_id"]),
    )

    thread = client.get(f"/conversations/{conversation}/messages", headers=auth(seed["client_id"]))
    inbox = client.get("/conversations", headers=auth(seed["admin_id"]))

    assert [m["content"] for m in thread.get_json()["messages"]] == ["Hello?", "Hi, how can we help?"]
    conversations = inbox.get_json()["conversations"]
    assert len(conversations) == 1
    assert conversations[0]["conversation_id"] == conversation
    assert conversations[0]["last_message"] == "Hi, how can we help?"
    assert conversations[0]["last_sender"] == "Ada Admin"
    assert conversations[0]["unread_count"] == 0


def test_inbox_is_admin_only(client, seed, auth) -> None:
    response = client.get("/conversations", headers=auth(seed["client_id"]))

    assert response.status_code == 403


def test_admin_starts_new_thread(client, app, seed, auth) -> None:
    response = client.post("/conversations", json={"content": "Welcome aboard"}, headers=auth(seed["admin_id"]))

    assert response.status_code == 201
    conversation_id = response.get_json()["conversation_id"]
    assert not conversation_id.startswith("support_")
    with app.app_context():
        assert Message.query.filter_by(conversation_id=conversation_id).count() == 1


def test_admin_started_thread_is_closed_to_clients(client, seed, auth) -> None:
    started = client.post("/conversations", json={"content": "Internal note"}, headers=auth(seed["admin_id"]))
    url = f"/conversations/{started.get_json()['conversation_id']}/messages"

    read = client.get(url, headers=auth(seed["client_id"]))
    reply = client.post(url, json={"content": "Hello?"}, headers=auth(seed["client_id"]))

    assert read.status_code == 403
    assert reply.status_code == 403


def test_client_keeps_access_to_thread_they_posted_in(client, app, seed, auth) -> None:
    with app.app_context():
        db.session.add(Message(conversation_id="thread-abc", sender_id=seed["client_id"], content="earlier"))
        db.session.commit()

    response = client.get("/conversations/thread-abc/messages", headers=auth(seed["client_id"]))

    assert response.status_code == 200
    assert len(response.get_json()["messages"]) == 1
