# FILE: tests/test_conversations.py
"""
Tests for conversation_router.py
Conversation logs are private to their owner.
"""

import pytest

import models


@pytest.fixture
def alice(create_user, login):
    create_user("alice@example.com", status=models.STATUS_APPROVED)
    headers, _ = login("alice@example.com")
    return headers


@pytest.fixture
def bob(create_user, login):
    create_user("bob@example.com", status=models.STATUS_APPROVED, admin=True)
    headers, _ = login("bob@example.com")
    return headers


def new_conversation(client, headers, title="Printer trouble"):
    r = client.post("/conversations/", json={"title": title}, headers=headers)
    assert r.status_code == 201
    return r.json()["id"]


class TestOwnership:

    def test_list_only_own(self, client, alice, bob):
        mine = new_conversation(client, alice)
        new_conversation(client, bob, title="Bob's")
        r = client.get("/conversations/", headers=alice)
        assert [c["id"] for c in r.json()] == [mine]

    def test_other_users_conversation_is_invisible(self, client, alice, bob):
        conv_id = new_conversation(client, alice)
        # Even an admin cannot read someone else's log
        assert client.get(f"/conversations/{conv_id}/messages", headers=bob).status_code == 404
        assert client.patch(f"/conversations/{conv_id}", json={"title": "x"}, headers=bob).status_code == 404
        assert client.delete(f"/conversations/{conv_id}", headers=bob).status_code == 404

    def test_requires_login(self, client):
        assert client.get("/conversations/").status_code == 401


class TestLifecycle:

    def test_default_title(self, client, alice):
        r = client.post("/conversations/", json={}, headers=alice)
        assert r.json()["title"] == "New Conversation"

    def test_messages_oldest_first(self, client, alice, session_factory):
        conv_id = new_conversation(client, alice)
        s = session_factory()
        s.add(models.Message(conversation_id=conv_id, role="user", content="q"))
        s.commit()
        s.add(models.Message(conversation_id=conv_id, role="assistant", content="a", relevant_ids=["x"]))
        s.commit()
        s.close()

        r = client.get(f"/conversations/{conv_id}/messages", headers=alice)
        msgs = r.json()["messages"]
        assert [(m["role"], m["content"]) for m in msgs] == [("user", "q"), ("assistant", "a")]
        assert msgs[1]["relevant_ids"] == ["x"]

    def test_rename(self, client, alice):
        conv_id = new_conversation(client, alice)
        r = client.patch(f"/conversations/{conv_id}", json={"title": "  Renamed  "}, headers=alice)
        assert r.status_code == 200
        assert r.json()["title"] == "Renamed"

    def test_delete_removes_messages(self, client, alice, session_factory):
        conv_id = new_conversation(client, alice)
        s = session_factory()
        s.add(models.Message(conversation_id=conv_id, role="user", content="q"))
        s.commit()
        s.close()

        assert client.delete(f"/conversations/{conv_id}", headers=alice).status_code == 204
        s = session_factory()
        assert s.query(models.Message).count() == 0
        s.close()
        assert client.get(f"/conversations/{conv_id}/messages", headers=alice).status_code == 404
