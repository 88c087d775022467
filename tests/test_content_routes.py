"""
tests/test_content_routes.py -- Integration tests for the team / programs / resources / events endpoints.

Coverage:
  - public GET is ordered by order and cached; hidden team members are left out
  - GET ?all=1 needs editor and includes hidden members
  - POST: editor+, fields sanitized, required fields enforced, new item placed last
  - PUT: partial update, 404 for unknown ids, 400 for ids with unsafe characters
  - DELETE: admin+ only
  - every mutation writes an audit entry and invalidates the collection cache
  - events: editor writes, admin deletes, newest first, not reorderable
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from core.roles import Role


@pytest.fixture
def empty_team(app_env) -> None:
    for doc in app_env.documents.query("team"):
        app_env.documents.delete("team", doc.id)
    app_env.cache.invalidate_all()


class TestPublicRead:
    def test_list_is_public_and_ordered(self, app_env, client: TestClient) -> None:
        second = app_env.documents.add("programs", {"title": "Second", "description": "d"}, order=1)
        first = app_env.documents.add("programs", {"title": "First", "description": "d"}, order=0)
        app_env.cache.invalidate("programs")

        resp = client.get("/api/programs")
        assert resp.status_code == 200
        ids = [p["id"] for p in resp.json()]
        assert ids.index(first) < ids.index(second)

    def test_hidden_team_members_are_not_public(self, app_env, client: TestClient, empty_team) -> None:
        app_env.documents.add("team", {"name": "Shown", "role": "Lead", "visible": True}, order=0)
        app_env.documents.add("team", {"name": "Hidden", "role": "Lead", "visible": False}, order=1)

        names = [m["name"] for m in client.get("/api/team").json()]
        assert names == ["Shown"]

    def test_all_flag_requires_editor(self, app_env, client: TestClient, empty_team) -> None:
        app_env.documents.add("team", {"name": "Hidden", "role": "Lead", "visible": False}, order=0)

        assert client.get("/api/team?all=1").status_code == 401
        assert client.get("/api/team?all=1", headers=app_env.auth(Role.member)).status_code == 403

        resp = client.get("/api/team?all=1", headers=app_env.auth(Role.editor))
        assert resp.status_code == 200
        assert [m["name"] for m in resp.json()] == ["Hidden"]

    def test_public_list_is_cached(self, app_env, client: TestClient, empty_team) -> None:
        app_env.documents.add("team", {"name": "Cached", "role": "Lead"}, order=0)
        assert len(client.get("/api/team").json()) == 1

        # A write that bypasses the API is invisible until the entry is invalidated.
        app_env.documents.add("team", {"name": "Sneaky", "role": "Lead"}, order=1)
        assert len(client.get("/api/team").json()) == 1
        app_env.cache.invalidate("team")
        assert len(client.get("/api/team").json()) == 2


class TestCreate:
    def test_member_cannot_create(self, app_env, client: TestClient) -> None:
        resp = client.post("/api/programs", json={"title": "T", "description": "D"}, headers=app_env.auth(Role.member))
        assert resp.status_code == 403

    def test_editor_creates_sanitized_member_last(self, app_env, client: TestClient, empty_team) -> None:
        app_env.documents.add("team", {"name": "Existing", "role": "Lead"}, order=0)
        client.get("/api/team")  # warm the cache

        resp = client.post(
            "/api/team",
            json={"name": "<script>x</script>Ada", "role": "Mentor", "category": "team_head"},
            headers=app_env.auth(Role.editor),
        )
        assert resp.status_code == 201, resp.text
        doc = app_env.documents.get("team", resp.json()["id"])
        assert doc.data["name"] == "xAda"
        assert doc.data["visible"] is True
        assert doc.data["batch"].isdigit()
        assert doc.order == 1

        # Cache was invalidated, so the new member is visible immediately.
        assert [m["name"] for m in client.get("/api/team").json()] == ["Existing", "xAda"]

        audit = app_env.audit_store.recent(1)[0]
        assert (audit.action, audit.target) == ("create", "team: xAda")

    def test_required_fields(self, app_env, client: TestClient) -> None:
        resp = client.post("/api/team", json={"name": "   ", "role": "Lead"}, headers=app_env.auth(Role.editor))
        assert resp.status_code == 400
        assert "name" in resp.json()["error"]["message"]

    def test_invalid_team_category(self, app_env, client: TestClient) -> None:
        resp = client.post(
            "/api/team",
            json={"name": "Ada", "role": "Lead", "category": "overlords"},
            headers=app_env.auth(Role.editor),
        )
        assert resp.status_code == 400

    def test_resource_items_sanitized(self, app_env, client: TestClient) -> None:
        resp = client.post(
            "/api/resources",
            json={
                "category": "Books",
                "items": [{"title": "<i>SICP</i>", "author": "Abelson", "description": "<b>classic</b>"}],
            },
            headers=app_env.auth(Role.editor),
        )
        assert resp.status_code == 201
        doc = app_env.documents.get("resources", resp.json()["id"])
        assert doc.data["items"] == [{"title": "SICP", "author": "Abelson", "description": "classic"}]


class TestUpdateAndDelete:
    def test_partial_update(self, app_env, client: TestClient) -> None:
        doc_id = app_env.documents.add("programs", {"title": "Old", "description": "Keep me"}, order=5)
        resp = client.put(f"/api/programs/{doc_id}", json={"title": "<b>New</b>"}, headers=app_env.auth(Role.editor))
        assert resp.status_code == 200
        assert app_env.documents.get("programs", doc_id).data == {"title": "New", "description": "Keep me"}
        assert app_env.audit_store.recent(1)[0].target == f"programs/{doc_id}"

    def test_hide_team_member(self, app_env, client: TestClient, empty_team) -> None:
        doc_id = app_env.documents.add("team", {"name": "Ada", "role": "Lead", "visible": True}, order=0)
        client.get("/api/team")  # warm the cache
        resp = client.put(f"/api/team/{doc_id}", json={"visible": False}, headers=app_env.auth(Role.editor))
        assert resp.status_code == 200
        assert client.get("/api/team").json() == []

    def test_update_unknown_is_404(self, app_env, client: TestClient) -> None:
        resp = client.put("/api/programs/missing123", json={"title": "x"}, headers=app_env.auth(Role.editor))
        assert resp.status_code == 404

    def test_update_with_nothing_is_400(self, app_env, client: TestClient) -> None:
        doc_id = app_env.documents.add("programs", {"title": "T", "description": "D"})
        resp = client.put(f"/api/programs/{doc_id}", json={}, headers=app_env.auth(Role.editor))
        assert resp.status_code == 400

    def test_unsafe_id_is_400(self, app_env, client: TestClient) -> None:
        resp = client.put("/api/programs/bad$id", json={"title": "x"}, headers=app_env.auth(Role.editor))
        assert resp.status_code == 400

    def test_editor_cannot_delete(self, app_env, client: TestClient) -> None:
        doc_id = app_env.documents.add("resources", {"category": "Keep"})
        resp = client.delete(f"/api/resources/{doc_id}", headers=app_env.auth(Role.editor))
        assert resp.status_code == 403
        assert app_env.documents.get("resources", doc_id) is not None

    def test_admin_deletes(self, app_env, client: TestClient) -> None:
        doc_id = app_env.documents.add("resources", {"category": "Gone"})
        resp = client.delete(f"/api/resources/{doc_id}", headers=app_env.auth(Role.admin))
        assert resp.status_code == 200
        assert app_env.documents.get("resources", doc_id) is None
        assert app_env.audit_store.recent(1)[0].action == "delete"

    def test_delete_unknown_is_404(self, app_env, client: TestClient) -> None:
        assert client.delete("/api/team/nothing-here", headers=app_env.auth(Role.admin)).status_code == 404


class TestEvents:
    _EVENT = {
        "title": "Demo <i>Night</i>",
        "date": "2026-11-02",
        "type": "workshop",
        "status": "upcoming",
        "description": "Show what you built.",
        "imageURL": "https://example.org/demo.png",
        "registrationLink": "https://example.org/register",
    }

    def test_create_is_editor_only(self, app_env, client: TestClient) -> None:
        assert client.post("/api/events", json=self._EVENT, headers=app_env.auth(Role.member)).status_code == 403

    def test_create_sanitizes_and_keeps_wire_names(self, app_env, client: TestClient) -> None:
        resp = client.post("/api/events", json=self._EVENT, headers=app_env.auth(Role.editor))
        assert resp.status_code == 201
        doc = app_env.documents.get("events", resp.json()["id"])
        assert doc.data["title"] == "Demo Night"
        assert doc.data["imageURL"] == "https://example.org/demo.png"
        assert doc.data["registrationLink"] == "https://example.org/register"
        assert doc.order is None

        audit = app_env.audit_store.recent(1)[0]
        assert (audit.action, audit.target) == ("create", "events: Demo Night")

    def test_required_fields(self, app_env, client: TestClient) -> None:
        resp = client.post("/api/events", json={**self._EVENT, "status": ""}, headers=app_env.auth(Role.editor))
        assert resp.status_code == 400

    def test_public_list_newest_first_and_invalidated_on_write(self, app_env, client: TestClient) -> None:
        headers = app_env.auth(Role.editor)
        older = client.post("/api/events", json={**self._EVENT, "title": "Older"}, headers=headers).json()["id"]
        client.get("/api/events")  # warm the cache
        newer = client.post("/api/events", json={**self._EVENT, "title": "Newer"}, headers=headers).json()["id"]

        ids = [e["id"] for e in client.get("/api/events").json()]
        assert ids.index(newer) < ids.index(older)

    def test_update_and_admin_delete(self, app_env, client: TestClient) -> None:
        doc_id = app_env.documents.add("events", {**self._EVENT, "title": "Draft"})
        resp = client.put(f"/api/events/{doc_id}", json={"status": "past"}, headers=app_env.auth(Role.editor))
        assert resp.status_code == 200
        assert app_env.documents.get("events", doc_id).data["status"] == "past"

        assert client.delete(f"/api/events/{doc_id}", headers=app_env.auth(Role.editor)).status_code == 403
        assert client.delete(f"/api/events/{doc_id}", headers=app_env.auth(Role.admin)).status_code == 200
        assert app_env.documents.get("events", doc_id) is None

    def test_events_are_not_reorderable(self, app_env, client: TestClient) -> None:
        doc_id = app_env.documents.add("events", self._EVENT)
        resp = client.patch(
            "/api/reorder",
            json={"collection": "events", "orderedIds": [doc_id]},
            headers=app_env.auth(Role.editor),
        )
        assert resp.status_code == 400
