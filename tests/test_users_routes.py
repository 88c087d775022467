"""
tests/test_users_routes.py -- Integration tests for /api/users management endpoints.

Coverage:
  - listing and creation: admin and above; admins can only create member/editor
  - update-role: the authoritative role-change checks
      * editor / member -> 403
      * admin granting admin or super_admin -> 403
      * admin changing an admin's or super_admin's role -> 403
      * own role -> 400; unknown role -> 400; unknown user -> 404
      * last active super_admin cannot be demoted -> 400
      * super_admin may grant any role
  - activate / deactivate and delete: super_admin only, never self, never the
    last active super_admin
  - transfer: caller becomes admin, target becomes super_admin
  - every successful mutation is audited
  - store calls and bcrypt hashing run off the event loop
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from auth.tokens import hash_password
from core.roles import Role


def _role_of(app_env, uid: str) -> Role:
    return app_env.users.get_by_uid(uid).role


def _last_audit(app_env):
    return app_env.audit_store.recent(1)[0]


class TestListAndCreate:
    def test_editor_cannot_list(self, app_env, client: TestClient) -> None:
        assert client.get("/api/users", headers=app_env.auth(Role.editor)).status_code == 403

    def test_admin_lists_users(self, app_env, client: TestClient) -> None:
        resp = client.get("/api/users", headers=app_env.auth(Role.admin))
        assert resp.status_code == 200
        emails = {u["email"] for u in resp.json()}
        assert "super_admin@foundry.test" in emails
        assert "hashed_password" not in resp.json()[0]
        assert "createdAt" in resp.json()[0]

    def test_admin_creates_editor(self, app_env, client: TestClient) -> None:
        resp = client.post(
            "/api/users",
            json={"email": "New.Editor@foundry.test", "name": "<b>Nina</b>", "role": "editor", "password": "long-enough"},
            headers=app_env.auth(Role.admin),
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["email"] == "new.editor@foundry.test"
        assert body["name"] == "Nina"
        assert body["role"] == "editor"
        audit = _last_audit(app_env)
        assert (audit.action, audit.target) == ("create", "user new.editor@foundry.test")

    @pytest.mark.parametrize("role", ["admin", "super_admin"])
    def test_admin_cannot_create_privileged_users(self, app_env, client: TestClient, role: str) -> None:
        resp = client.post(
            "/api/users",
            json={"email": f"sneaky-{role}@foundry.test", "role": role},
            headers=app_env.auth(Role.admin),
        )
        assert resp.status_code == 403
        assert app_env.users.get_by_email(f"sneaky-{role}@foundry.test") is None

    def test_super_admin_creates_admin(self, app_env, client: TestClient) -> None:
        resp = client.post(
            "/api/users",
            json={"email": "second-admin@foundry.test", "role": "admin"},
            headers=app_env.auth(Role.super_admin),
        )
        assert resp.status_code == 201

    def test_duplicate_email_is_409(self, app_env, client: TestClient) -> None:
        resp = client.post("/api/users", json={"email": "editor@foundry.test"}, headers=app_env.auth(Role.admin))
        assert resp.status_code == 409

    def test_invalid_email_is_400(self, app_env, client: TestClient) -> None:
        resp = client.post("/api/users", json={"email": "not-an-email"}, headers=app_env.auth(Role.admin))
        assert resp.status_code == 400


class TestUpdateRole:
    @pytest.mark.parametrize("role", [Role.member, Role.editor])
    def test_below_admin_is_403(self, app_env, client: TestClient, role: Role) -> None:
        target = app_env.add_user(f"target-{role.value}@foundry.test")
        resp = client.put(
            "/api/users/update-role",
            json={"uid": target, "newRole": "editor"},
            headers=app_env.auth(role),
        )
        assert resp.status_code == 403
        assert _role_of(app_env, target) is Role.member

    @pytest.mark.parametrize("new_role", ["admin", "super_admin"])
    def test_admin_cannot_grant_privileged_roles(self, app_env, client: TestClient, new_role: str) -> None:
        target = app_env.add_user(f"promote-{new_role}@foundry.test")
        resp = client.put(
            "/api/users/update-role",
            json={"uid": target, "newRole": new_role},
            headers=app_env.auth(Role.admin),
        )
        assert resp.status_code == 403
        assert _role_of(app_env, target) is Role.member

    def test_admin_promotes_member_to_editor(self, app_env, client: TestClient) -> None:
        target = app_env.add_user("promote-ok@foundry.test")
        resp = client.put(
            "/api/users/update-role",
            json={"uid": target, "newRole": "editor"},
            headers=app_env.auth(Role.admin),
        )
        assert resp.status_code == 200
        assert _role_of(app_env, target) is Role.editor
        audit = _last_audit(app_env)
        assert audit.action == "role_change"
        assert audit.details == "member -> editor"

    @pytest.mark.parametrize("target_role", [Role.admin, Role.super_admin])
    def test_admin_cannot_touch_peers_or_superiors(self, app_env, client: TestClient, target_role: Role) -> None:
        # Inactive super_admin so the seeded one stays the only active super_admin.
        target = app_env.add_user(
            f"peer-{target_role.value}@foundry.test",
            target_role,
            active=target_role is not Role.super_admin,
        )
        resp = client.put(
            "/api/users/update-role",
            json={"uid": target, "newRole": "member"},
            headers=app_env.auth(Role.admin),
        )
        assert resp.status_code == 403
        assert _role_of(app_env, target) is target_role

    def test_cannot_change_own_role(self, app_env, client: TestClient) -> None:
        resp = client.put(
            "/api/users/update-role",
            json={"uid": app_env.uids[Role.admin], "newRole": "editor"},
            headers=app_env.auth(Role.admin),
        )
        assert resp.status_code == 400

    def test_unknown_role_is_400(self, app_env, client: TestClient) -> None:
        target = app_env.add_user("weird-role@foundry.test")
        resp = client.put(
            "/api/users/update-role",
            json={"uid": target, "newRole": "overlord"},
            headers=app_env.auth(Role.super_admin),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["message"] == "Invalid role specified."

    def test_unknown_user_is_404(self, app_env, client: TestClient) -> None:
        resp = client.put(
            "/api/users/update-role",
            json={"uid": "no-such-user", "newRole": "editor"},
            headers=app_env.auth(Role.super_admin),
        )
        assert resp.status_code == 404

    def test_super_admin_grants_admin(self, app_env, client: TestClient) -> None:
        target = app_env.add_user("future-admin@foundry.test", Role.editor)
        resp = client.put(
            "/api/users/update-role",
            json={"uid": target, "newRole": "admin"},
            headers=app_env.auth(Role.super_admin),
        )
        assert resp.status_code == 200
        assert _role_of(app_env, target) is Role.admin

    def test_last_active_super_admin_cannot_be_demoted(self, app_env, client: TestClient) -> None:
        # A deactivated super_admin can still act but does not count as active.
        dormant = app_env.add_user("dormant-root@foundry.test", Role.super_admin, active=False)
        resp = client.put(
            "/api/users/update-role",
            json={"uid": app_env.uids[Role.super_admin], "newRole": "admin"},
            headers=app_env.token_for(dormant),
        )
        assert resp.status_code == 400
        assert _role_of(app_env, app_env.uids[Role.super_admin]) is Role.super_admin


class TestLifecycle:
    @pytest.mark.parametrize("role", [Role.admin, Role.editor])
    def test_deactivate_requires_super_admin(self, app_env, client: TestClient, role: Role) -> None:
        target = app_env.add_user(f"keep-active-{role.value}@foundry.test")
        resp = client.patch("/api/users", json={"uid": target, "active": False}, headers=app_env.auth(role))
        assert resp.status_code == 403

    def test_deactivate_and_reactivate(self, app_env, client: TestClient) -> None:
        target = app_env.add_user("toggle@foundry.test", Role.editor)
        headers = app_env.auth(Role.super_admin)

        resp = client.patch("/api/users", json={"uid": target, "active": False}, headers=headers)
        assert resp.status_code == 200
        assert app_env.users.get_by_uid(target).active is False
        assert _last_audit(app_env).action == "deactivate"

        # The deactivated editor's session no longer verifies.
        assert client.get("/api/auth/me", headers=app_env.token_for(target)).status_code == 401

        resp = client.patch("/api/users", json={"uid": target, "active": True}, headers=headers)
        assert resp.status_code == 200
        assert _last_audit(app_env).action == "activate"

    def test_active_must_be_boolean(self, app_env, client: TestClient) -> None:
        target = app_env.add_user("strict-bool@foundry.test")
        resp = client.patch("/api/users", json={"uid": target, "active": "no"}, headers=app_env.auth(Role.super_admin))
        assert resp.status_code == 400

    def test_cannot_deactivate_self(self, app_env, client: TestClient) -> None:
        resp = client.patch(
            "/api/users",
            json={"uid": app_env.uids[Role.super_admin], "active": False},
            headers=app_env.auth(Role.super_admin),
        )
        assert resp.status_code == 400

    def test_delete_user(self, app_env, client: TestClient) -> None:
        target = app_env.add_user("delete-me@foundry.test")
        resp = client.request("DELETE", "/api/users", json={"uid": target}, headers=app_env.auth(Role.super_admin))
        assert resp.status_code == 200
        assert app_env.users.get_by_uid(target) is None
        audit = _last_audit(app_env)
        assert (audit.action, audit.target) == ("delete", "user delete-me@foundry.test")

    def test_admin_cannot_delete(self, app_env, client: TestClient) -> None:
        target = app_env.add_user("survivor@foundry.test")
        resp = client.request("DELETE", "/api/users", json={"uid": target}, headers=app_env.auth(Role.admin))
        assert resp.status_code == 403
        assert app_env.users.get_by_uid(target) is not None

    def test_cannot_delete_last_active_super_admin(self, app_env, client: TestClient) -> None:
        dormant = app_env.add_user("dormant-deleter@foundry.test", Role.super_admin, active=False)
        resp = client.request(
            "DELETE",
            "/api/users",
            json={"uid": app_env.uids[Role.super_admin]},
            headers=app_env.token_for(dormant),
        )
        assert resp.status_code == 400
        assert app_env.users.get_by_uid(app_env.uids[Role.super_admin]) is not None


class TestTransfer:
    def test_transfer_swaps_roles(self, app_env, client: TestClient) -> None:
        owner = app_env.add_user("outgoing-root@foundry.test", Role.super_admin)
        heir = app_env.add_user("incoming-root@foundry.test", Role.admin)
        resp = client.post("/api/users/transfer", json={"targetUid": heir}, headers=app_env.token_for(owner))
        assert resp.status_code == 200
        assert _role_of(app_env, owner) is Role.admin
        assert _role_of(app_env, heir) is Role.super_admin
        assert _last_audit(app_env).action == "transfer"

    def test_transfer_to_inactive_user_is_400(self, app_env, client: TestClient) -> None:
        heir = app_env.add_user("inactive-heir@foundry.test", active=False)
        resp = client.post("/api/users/transfer", json={"targetUid": heir}, headers=app_env.auth(Role.super_admin))
        assert resp.status_code == 400

    def test_transfer_to_unknown_user_is_404(self, app_env, client: TestClient) -> None:
        resp = client.post("/api/users/transfer", json={"targetUid": "ghost"}, headers=app_env.auth(Role.super_admin))
        assert resp.status_code == 404

    def test_admin_cannot_transfer(self, app_env, client: TestClient) -> None:
        heir = app_env.add_user("not-my-call@foundry.test")
        resp = client.post("/api/users/transfer", json={"targetUid": heir}, headers=app_env.auth(Role.admin))
        assert resp.status_code == 403


def _on_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def _recording(seen: dict[str, bool], name: str, func):
    def wrapper(*args, **kwargs):
        seen[name] = _on_event_loop()
        return func(*args, **kwargs)

    return wrapper


class TestBlockingWork:
    def test_store_calls_and_hashing_leave_the_event_loop(self, app_env, client: TestClient) -> None:
        seen: dict[str, bool] = {}
        users = app_env.users
        headers = app_env.auth(Role.super_admin)
        with (
            patch("api.routes.users.hash_password", _recording(seen, "hash_password", hash_password)),
            patch.object(users, "create_user", _recording(seen, "create_user", users.create_user)),
            patch.object(users, "list_users", _recording(seen, "list_users", users.list_users)),
            patch.object(users, "update_user", _recording(seen, "update_user", users.update_user)),
        ):
            resp = client.post(
                "/api/users",
                json={"email": "threaded@foundry.test", "role": "editor", "password": "long-enough"},
                headers=headers,
            )
            assert resp.status_code == 201
            client.patch("/api/users", json={"uid": resp.json()["uid"], "active": False}, headers=headers)
            client.get("/api/users", headers=headers)

        assert seen == {"hash_password": False, "create_user": False, "update_user": False, "list_users": False}


class TestLastSuperAdminGuard:
    @pytest.fixture
    def sole_super_admin(self, app_env):
        """Deactivate every other active super_admin (earlier tests transfer the role around)."""
        seeded = app_env.uids[Role.super_admin]
        others = [
            u.uid for u in app_env.users.list_users() if u.role is Role.super_admin and u.active and u.uid != seeded
        ]
        for uid in others:
            app_env.users.update_user(uid, active=False)
        yield seeded
        for uid in others:
            app_env.users.update_user(uid, active=True)

    def test_guard_runs_in_the_write_transaction(self, app_env, client: TestClient, sole_super_admin: str) -> None:
        """The route relies on the store's transactional check, not a separate count."""
        dormant = app_env.add_user("dormant-guard@foundry.test", Role.super_admin, active=False)
        with patch.object(app_env.users, "count_active_super_admins", return_value=5):
            resp = client.patch(
                "/api/users",
                json={"uid": sole_super_admin, "active": False},
                headers=app_env.token_for(dormant),
            )
        assert resp.status_code == 400
        assert app_env.users.get_by_uid(sole_super_admin).active is True
