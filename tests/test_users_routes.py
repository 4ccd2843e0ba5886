"""
tests/test_users_routes.py -- Integration tests for /api/admin/users*.

Covers:
  - 401 without a session, 403 without the permission (never confused)
  - GET /users lists accounts without password hashes
  - POST /users: 201 with a 6-digit one-time password, role defaults copied,
    must_change_password set, 409 on duplicate, 422 on a bad username,
    400 on an unknown role, 403 when the role grants more than the caller holds
  - POST /users/reset-password: new one-time password, flag set, old password dead,
    403 when the target holds grants the caller could not hand out
  - PATCH /users/{id}/permissions: normalization, invalid keys, escalation guard,
    revoking or demoting only when the caller covers the target's grants,
    explicit null clears overrides, verein_id handling, audit details
  - GET /users/{id}/role-permissions: defaults vs extras
"""

from __future__ import annotations

PASSWORD = "Passwort123"


class TestGate:
    def test_anonymous_is_401(self, app_env):
        app_env.logout()
        resp = app_env.client.get("/api/admin/users")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_missing_permission_is_403(self, app_env):
        """vereinsverwalter is logged in but lacks users.view."""
        app_env.login_as("verein")
        resp = app_env.client.get("/api/admin/users")
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_no_permissions_role_is_403_everywhere(self, app_env):
        app_env.login_as("nobody")
        assert app_env.client.get("/api/admin/users").status_code == 403
        assert app_env.client.post("/api/admin/users", json={"username": "x"}).status_code == 403
        assert app_env.client.get("/api/admin/logs").status_code == 403

    def test_denied_write_changes_nothing(self, app_env):
        app_env.login_as("editor")
        resp = app_env.client.post("/api/admin/users", json={"username": "sneaky"})
        assert resp.status_code == 403
        assert app_env.user_store.find_user_by_username("sneaky") is None


class TestListUsers:
    def test_list(self, app_env):
        app_env.login_as("chief")
        resp = app_env.client.get("/api/admin/users")
        assert resp.status_code == 200
        users = resp.json()["users"]
        assert {u["username"] for u in users} == {"root", "chief", "editor", "verein", "nobody", "newbie"}
        assert all("password_hash" not in u for u in users)


class TestCreateUser:
    def test_create_with_role(self, app_env):
        app_env.login_as("chief")
        editor_role = app_env.user_store.get_role_by_name("editor")
        resp = app_env.client.post(
            "/api/admin/users",
            json={"username": "neu_user-1", "role_id": editor_role.id, "verein_id": "tsv"},
        )
        assert resp.status_code == 201
        body = resp.json()
        password = body["initial_password"]
        assert len(password) == 6 and password.isdigit()
        user = body["user"]
        assert user["username"] == "neu_user-1"
        assert user["role_name"] == "editor"
        assert user["must_change_password"] is True
        assert user["verein_id"] == "tsv"
        assert set(user["custom_permissions"]) == set(editor_role.default_permissions)

        # The one-time password logs in and the session is flagged.
        login = app_env.client.post("/api/admin/login", json={"username": "neu_user-1", "password": password})
        assert login.status_code == 200
        assert login.json()["must_change_password"] is True

    def test_create_audited(self, app_env):
        app_env.login_as("chief")
        app_env.client.post("/api/admin/users", json={"username": "audited"})
        entries = app_env.audit.get_logs(action="user.create").logs
        assert len(entries) == 1
        assert entries[0].resource_title == "audited"
        assert entries[0].username == "chief"

    def test_duplicate_username(self, app_env):
        app_env.login_as("chief")
        resp = app_env.client.post("/api/admin/users", json={"username": "editor"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"

    def test_invalid_username(self, app_env):
        app_env.login_as("chief")
        resp = app_env.client.post("/api/admin/users", json={"username": "bad name!"})
        assert resp.status_code == 422

    def test_unknown_role(self, app_env):
        app_env.login_as("chief")
        resp = app_env.client.post("/api/admin/users", json={"username": "x", "role_id": 9999})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_role"

    def test_cannot_create_super_admin_without_wildcard(self, app_env):
        app_env.login_as("chief")
        role = app_env.user_store.get_role_by_name("super_admin")
        resp = app_env.client.post("/api/admin/users", json={"username": "boss", "role_id": role.id})
        assert resp.status_code == 403
        assert app_env.user_store.find_user_by_username("boss") is None

    def test_root_can_create_super_admin(self, app_env):
        app_env.login_as("root")
        role = app_env.user_store.get_role_by_name("super_admin")
        resp = app_env.client.post("/api/admin/users", json={"username": "boss", "role_id": role.id})
        assert resp.status_code == 201
        assert resp.json()["user"]["custom_permissions"] == ["*"]


class TestResetPassword:
    URL = "/api/admin/users/reset-password"

    def test_reset(self, app_env):
        target = app_env.users["editor"]
        app_env.login_as("chief")
        resp = app_env.client.post(self.URL, json={"user_id": target.id})
        assert resp.status_code == 200
        body = resp.json()
        assert body["username"] == "editor"
        new_password = body["initial_password"]
        assert len(new_password) == 6 and new_password.isdigit()
        assert app_env.user_store.find_user_by_id(target.id).must_change_password is True

        app_env.logout()
        old = app_env.client.post("/api/admin/login", json={"username": "editor", "password": PASSWORD})
        new = app_env.client.post("/api/admin/login", json={"username": "editor", "password": new_password})
        assert old.status_code == 401
        assert new.status_code == 200
        assert new.json()["must_change_password"] is True

    def test_reset_unknown_user(self, app_env):
        app_env.login_as("chief")
        resp = app_env.client.post(self.URL, json={"user_id": 4242})
        assert resp.status_code == 404

    def test_reset_requires_users_edit(self, app_env):
        app_env.login_as("editor")
        resp = app_env.client.post(self.URL, json={"user_id": app_env.users["nobody"].id})
        assert resp.status_code == 403

    def test_cannot_reset_higher_ranked_account(self, app_env):
        """users.edit alone must not hand chief the credentials of a super admin."""
        root = app_env.users["root"]
        before = app_env.user_store.find_user_by_id(root.id)
        app_env.login_as("chief")
        resp = app_env.client.post(self.URL, json={"user_id": root.id})
        assert resp.status_code == 403
        after = app_env.user_store.find_user_by_id(root.id)
        assert after.password_hash == before.password_hash
        assert after.must_change_password is False
        assert app_env.audit.get_logs(action="user.password_reset").total == 0

    def test_super_admin_can_reset_admin(self, app_env):
        app_env.login_as("root")
        resp = app_env.client.post(self.URL, json={"user_id": app_env.users["chief"].id})
        assert resp.status_code == 200

    def test_reset_audited(self, app_env):
        app_env.login_as("chief")
        app_env.client.post(self.URL, json={"user_id": app_env.users["nobody"].id})
        assert app_env.audit.get_logs(action="user.password_reset").total == 1


class TestUpdatePermissions:
    def _url(self, user_id: int) -> str:
        return f"/api/admin/users/{user_id}/permissions"

    def test_update_normalizes(self, app_env):
        target = app_env.users["nobody"]
        app_env.login_as("chief")
        resp = app_env.client.patch(
            self._url(target.id),
            json={"role_id": target.role_id, "custom_permissions": [" news.view ", "news.view", "logs.view"]},
        )
        assert resp.status_code == 200
        assert resp.json()["custom_permissions"] == ["news.view", "logs.view"]

    def test_takes_effect_on_next_request(self, app_env):
        """Granting users.view to a logged-in user applies without a new login."""
        target = app_env.users["verein"]
        app_env.login_as("verein")
        assert app_env.client.get("/api/admin/users").status_code == 403
        app_env.user_store.update_role_and_permissions(target.id, target.role_id, ["users.view"])
        assert app_env.client.get("/api/admin/users").status_code == 200

    def test_invalid_permission(self, app_env):
        app_env.login_as("chief")
        resp = app_env.client.patch(
            self._url(app_env.users["nobody"].id), json={"custom_permissions": ["news.fly"]}
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_permission"

    def test_escalation_blocked(self, app_env):
        """chief (admin role) does not hold verein.events.edit and cannot hand it out."""
        target = app_env.users["nobody"]
        app_env.login_as("chief")
        resp = app_env.client.patch(
            self._url(target.id), json={"role_id": target.role_id, "custom_permissions": ["verein.events.edit"]}
        )
        assert resp.status_code == 403
        assert app_env.user_store.find_user_by_id(target.id).custom_permissions == []

    def test_wildcard_escalation_blocked(self, app_env):
        target = app_env.users["nobody"]
        app_env.login_as("chief")
        resp = app_env.client.patch(self._url(target.id), json={"custom_permissions": ["*"]})
        assert resp.status_code == 403

    def test_role_escalation_blocked(self, app_env):
        target = app_env.users["nobody"]
        super_admin = app_env.user_store.get_role_by_name("super_admin")
        app_env.login_as("chief")
        resp = app_env.client.patch(self._url(target.id), json={"role_id": super_admin.id})
        assert resp.status_code == 403

    def test_can_remove_grants_caller_holds(self, app_env):
        target = app_env.users["nobody"]
        app_env.user_store.update_role_and_permissions(target.id, target.role_id, ["logs.view", "news.view"])
        app_env.login_as("chief")
        resp = app_env.client.patch(
            self._url(target.id), json={"role_id": target.role_id, "custom_permissions": ["news.view"]}
        )
        assert resp.status_code == 200
        assert resp.json()["custom_permissions"] == ["news.view"]

    def test_cannot_revoke_from_higher_ranked_account(self, app_env):
        """chief does not hold verein.events.edit, so nobody's grants are out of reach."""
        target = app_env.users["nobody"]
        app_env.user_store.update_role_and_permissions(target.id, target.role_id, ["verein.events.edit", "news.view"])
        app_env.login_as("chief")
        resp = app_env.client.patch(
            self._url(target.id), json={"role_id": target.role_id, "custom_permissions": ["news.view"]}
        )
        assert resp.status_code == 403
        assert app_env.user_store.find_user_by_id(target.id).custom_permissions == ["verein.events.edit", "news.view"]

    def test_cannot_demote_super_admin(self, app_env):
        root = app_env.users["root"]
        admin = app_env.user_store.get_role_by_name("admin")
        app_env.login_as("chief")
        resp = app_env.client.patch(self._url(root.id), json={"role_id": admin.id})
        assert resp.status_code == 403
        assert app_env.user_store.find_user_by_id(root.id).role_name == "super_admin"

    def test_cannot_clear_super_admin_role(self, app_env):
        root = app_env.users["root"]
        app_env.login_as("chief")
        resp = app_env.client.patch(self._url(root.id), json={"role_id": None})
        assert resp.status_code == 403
        assert app_env.user_store.find_user_by_id(root.id).role_name == "super_admin"

    def test_cannot_strip_wildcard(self, app_env):
        root = app_env.users["root"]
        app_env.login_as("chief")
        resp = app_env.client.patch(self._url(root.id), json={"custom_permissions": []})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"
        assert app_env.user_store.find_user_by_id(root.id).custom_permissions == ["*"]

    def test_explicit_null_clears_overrides(self, app_env):
        target = app_env.users["nobody"]
        app_env.login_as("chief")
        granted = app_env.client.patch(self._url(target.id), json={"custom_permissions": ["logs.view"]})
        assert granted.json()["custom_permissions"] == ["logs.view"]

        kept = app_env.client.patch(self._url(target.id), json={"role_id": target.role_id})
        assert kept.json()["custom_permissions"] == ["logs.view"]

        cleared = app_env.client.patch(self._url(target.id), json={"custom_permissions": None})
        assert cleared.status_code == 200
        assert cleared.json()["custom_permissions"] == []
        assert app_env.user_store.find_user_by_id(target.id).custom_permissions == []

    def test_root_can_grant_wildcard(self, app_env):
        target = app_env.users["nobody"]
        app_env.login_as("root")
        resp = app_env.client.patch(
            self._url(target.id), json={"role_id": target.role_id, "custom_permissions": ["news.view", "*"]}
        )
        assert resp.status_code == 200
        assert resp.json()["custom_permissions"] == ["*"]

    def test_verein_id_only_changes_when_sent(self, app_env):
        target = app_env.users["verein"]
        app_env.login_as("root")
        kept = app_env.client.patch(self._url(target.id), json={"role_id": target.role_id})
        assert kept.json()["verein_id"] == "sv-wendessen"
        cleared = app_env.client.patch(self._url(target.id), json={"role_id": target.role_id, "verein_id": None})
        assert cleared.json()["verein_id"] is None

    def test_unknown_user(self, app_env):
        app_env.login_as("chief")
        assert app_env.client.patch(self._url(4242), json={"custom_permissions": []}).status_code == 404

    def test_audit_details(self, app_env):
        target = app_env.users["editor"]
        moderator = app_env.user_store.get_role_by_name("moderator")
        app_env.user_store.update_role_and_permissions(target.id, target.role_id, ["archive.view"])
        app_env.login_as("chief")
        app_env.client.patch(
            self._url(target.id),
            json={"role_id": moderator.id, "custom_permissions": ["logs.view"], "verein_id": "tsv"},
        )
        entry = app_env.audit.get_logs(action="user.update").logs[0]
        assert entry.resource_id == str(target.id)
        assert entry.details["roleChange"] == {"from": "Redakteur", "to": "Moderator"}
        assert entry.details["vereinChange"] == {"from": None, "to": "tsv"}
        assert entry.details["permissionsAdded"] == ["logs.view"]
        assert entry.details["permissionsRemoved"] == ["archive.view"]


class TestRolePermissions:
    def test_defaults_and_extras(self, app_env):
        target = app_env.users["editor"]
        app_env.user_store.update_role_and_permissions(target.id, target.role_id, ["news.view", "logs.view"])
        app_env.login_as("chief")
        resp = app_env.client.get(f"/api/admin/users/{target.id}/role-permissions")
        assert resp.status_code == 200
        body = resp.json()
        assert body["role_name"] == "editor"
        assert "news.view" in body["role_permissions"]
        assert body["extra_permissions"] == ["logs.view"]

    def test_unknown_user(self, app_env):
        app_env.login_as("chief")
        assert app_env.client.get("/api/admin/users/4242/role-permissions").status_code == 404
