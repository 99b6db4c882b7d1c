"""API tests for the /api/users endpoints."""

from datetime import datetime

from accounts_api.core.security import decode_access_token, issue_token_for
from accounts_api.models.user import User, UserRole, UserStatus

API = "/api/users"


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _auth_for(user: User) -> dict:
    return _auth(issue_token_for(user))


# ============== Register ==============

class TestRegisterEndpoint:
    def test_register(self, client):
        res = client.post(f"{API}/register", json={
            "username": "bob",
            "email": "Bob@Example.com",
            "password": "secret123",
            "full_name": "Bob Builder",
        })
        assert res.status_code == 201
        body = res.json()
        assert body["success"] is True
        assert body["message"] == "User registered successfully"
        user = body["data"]["user"]
        assert user["email"] == "bob@example.com"
        assert user["role"] == "user"
        assert user["status"] == "active"
        assert "password" not in user
        assert decode_access_token(body["data"]["token"])["sub"] == str(user["id"])

    def test_role_in_body_is_ignored(self, client):
        res = client.post(f"{API}/register", json={
            "username": "sneaky",
            "email": "sneaky@example.com",
            "password": "secret123",
            "role": "admin",
        })
        assert res.status_code == 201
        assert res.json()["data"]["user"]["role"] == "user"

    def test_duplicate_is_409(self, client, test_user):
        res = client.post(f"{API}/register", json={
            "username": "alice",
            "email": "fresh@example.com",
            "password": "secret123",
        })
        assert res.status_code == 409
        assert res.json() == {
            "success": False,
            "message": "Username or email already exists",
            "errors": None,
        }

    def test_all_field_errors_reported_together(self, client):
        res = client.post(f"{API}/register", json={
            "username": "a!",
            "email": "not-an-email",
            "password": "short",
        })
        assert res.status_code == 400
        body = res.json()
        assert body["success"] is False
        assert body["message"] == "Validation failed"
        fields = {e["field"] for e in body["errors"]}
        assert fields == {"username", "email", "password"}

    def test_password_needs_letter_and_digit(self, client):
        res = client.post(f"{API}/register", json={
            "username": "digits",
            "email": "digits@example.com",
            "password": "12345678",
        })
        assert res.status_code == 400
        assert res.json()["errors"][0]["message"] == "Password must contain at least one letter and one number"

    def test_bad_phone(self, client):
        res = client.post(f"{API}/register", json={
            "username": "phoney",
            "email": "phoney@example.com",
            "password": "secret123",
            "phone": "call me",
        })
        assert res.status_code == 400
        assert res.json()["errors"][0] == {
            "field": "phone",
            "message": "Please provide a valid phone number",
            "value": "call me",
        }

    def test_password_over_72_bytes_rejected(self, client):
        res = client.post(f"{API}/register", json={
            "username": "longpass",
            "email": "longpass@example.com",
            "password": "a1" * 36 + "b",
        })
        assert res.status_code == 400
        assert res.json()["errors"][0] == {
            "field": "password",
            "message": "Password must not exceed 72 bytes",
            "value": "a1" * 36 + "b",
        }

    def test_password_of_exactly_72_bytes_accepted(self, client):
        res = client.post(f"{API}/register", json={
            "username": "maxpass",
            "email": "maxpass@example.com",
            "password": "a1" * 36,
        })
        assert res.status_code == 201
        login = client.post(f"{API}/login", json={"email": "maxpass@example.com", "password": "a1" * 36})
        assert login.status_code == 200


# ============== Login ==============

class TestLoginEndpoint:
    def test_login(self, client, test_user):
        res = client.post(f"{API}/login", json={"email": "alice@example.com", "password": "secret123"})
        assert res.status_code == 200
        body = res.json()
        assert body["message"] == "Login successful"
        assert body["data"]["user"]["id"] == test_user.id
        assert body["data"]["token"]

    def test_wrong_password_401(self, client, test_user):
        res = client.post(f"{API}/login", json={"email": "alice@example.com", "password": "wrong123"})
        assert res.status_code == 401
        assert res.json()["message"] == "Invalid email or password"

    def test_unknown_email_401(self, client):
        res = client.post(f"{API}/login", json={"email": "nobody@example.com", "password": "secret123"})
        assert res.status_code == 401
        assert res.json()["message"] == "Invalid email or password"

    def test_inactive_user_403(self, client, make_user):
        make_user(username="gone", status=UserStatus.INACTIVE)
        res = client.post(f"{API}/login", json={"email": "gone@example.com", "password": "secret123"})
        assert res.status_code == 403
        assert res.json()["message"] == "Account is inactive"

    def test_missing_password_400(self, client):
        res = client.post(f"{API}/login", json={"email": "alice@example.com", "password": ""})
        assert res.status_code == 400
        assert res.json()["errors"][0]["message"] == "Password is required"

    def test_password_over_72_bytes_is_400(self, client, test_user):
        res = client.post(f"{API}/login", json={"email": "alice@example.com", "password": "a1" * 36 + "b"})
        assert res.status_code == 400
        assert res.json()["errors"][0]["message"] == "Password must not exceed 72 bytes"

    def test_limit_counts_bytes_not_characters(self, client, test_user):
        # 37 characters, 74 bytes in UTF-8
        res = client.post(f"{API}/login", json={"email": "alice@example.com", "password": "\u00e9" * 37})
        assert res.status_code == 400


# ============== Profile ==============

class TestProfileEndpoints:
    def test_requires_token(self, client):
        res = client.get(f"{API}/profile")
        assert res.status_code == 401
        assert res.json()["message"] == "Access token required"

    def test_get_profile(self, client, test_user, auth_headers):
        res = client.get(f"{API}/profile", headers=auth_headers)
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["username"] == "alice"
        assert data["full_name"] == "Alice Example"
        assert "password" not in data
        assert "password_hash" not in data

    def test_partial_update(self, client, auth_headers):
        res = client.put(f"{API}/profile", json={"phone": "+15550100"}, headers=auth_headers)
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["phone"] == "+15550100"
        assert data["full_name"] == "Alice Example"
        assert data["email"] == "alice@example.com"

    def test_role_and_status_ignored(self, client, auth_headers):
        res = client.put(
            f"{API}/profile",
            json={"role": "admin", "status": "inactive", "full_name": "Still Alice"},
            headers=auth_headers,
        )
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["role"] == "user"
        assert data["status"] == "active"

    def test_only_ignored_fields_is_400(self, client, auth_headers):
        res = client.put(f"{API}/profile", json={"role": "admin"}, headers=auth_headers)
        assert res.status_code == 400
        assert res.json()["message"] == "No fields to update"

    def test_updated_at_refreshed(self, client, make_user):
        user = make_user(updated_at=datetime(2020, 1, 1))
        res = client.put(f"{API}/profile", json={"full_name": "New"}, headers=_auth_for(user))
        assert res.status_code == 200
        assert not res.json()["data"]["updated_at"].startswith("2020")

    def test_email_taken_is_409(self, client, make_user, auth_headers):
        make_user(username="bob", email="bob@example.com")
        res = client.put(f"{API}/profile", json={"email": "bob@example.com"}, headers=auth_headers)
        assert res.status_code == 409


class TestChangePassword:
    def test_change_then_login_with_new(self, client, auth_headers):
        res = client.put(f"{API}/change-password", headers=auth_headers, json={
            "currentPassword": "secret123",
            "newPassword": "newpass99",
            "confirmPassword": "newpass99",
        })
        assert res.status_code == 200
        assert res.json() == {"success": True, "message": "Password changed successfully", "data": None}

        old = client.post(f"{API}/login", json={"email": "alice@example.com", "password": "secret123"})
        assert old.status_code == 401
        new = client.post(f"{API}/login", json={"email": "alice@example.com", "password": "newpass99"})
        assert new.status_code == 200

    def test_wrong_current_password(self, client, auth_headers):
        res = client.put(f"{API}/change-password", headers=auth_headers, json={
            "currentPassword": "wrong123",
            "newPassword": "newpass99",
            "confirmPassword": "newpass99",
        })
        assert res.status_code == 400
        assert res.json()["message"] == "Current password is incorrect"

    def test_confirmation_mismatch(self, client, auth_headers):
        res = client.put(f"{API}/change-password", headers=auth_headers, json={
            "currentPassword": "secret123",
            "newPassword": "newpass99",
            "confirmPassword": "newpass98",
        })
        assert res.status_code == 400
        error = res.json()["errors"][0]
        assert error["field"] == "confirmPassword"
        assert error["message"] == "Password confirmation does not match new password"

    def test_new_password_over_72_bytes(self, client, auth_headers):
        long_password = "a1" * 36 + "b"
        res = client.put(f"{API}/change-password", headers=auth_headers, json={
            "currentPassword": "secret123",
            "newPassword": long_password,
            "confirmPassword": long_password,
        })
        assert res.status_code == 400
        assert res.json()["errors"][0]["message"] == "New password must not exceed 72 bytes"

    def test_current_password_over_72_bytes(self, client, auth_headers):
        res = client.put(f"{API}/change-password", headers=auth_headers, json={
            "currentPassword": "a1" * 36 + "b",
            "newPassword": "newpass99",
            "confirmPassword": "newpass99",
        })
        assert res.status_code == 400
        error = res.json()["errors"][0]
        assert error["field"] == "currentPassword"
        assert error["message"] == "Current password must not exceed 72 bytes"


# ============== Admin ==============

class TestAdminList:
    def test_requires_admin(self, client, auth_headers):
        res = client.get(f"{API}/", headers=auth_headers)
        assert res.status_code == 403
        assert res.json()["message"] == "Admin access required"

    def test_list_envelope(self, client, make_user, admin_headers):
        for _ in range(11):
            make_user()
        res = client.get(f"{API}/", params={"page": 2}, headers=admin_headers)
        assert res.status_code == 200
        body = res.json()
        assert body["message"] == "Users retrieved successfully"
        assert len(body["data"]["data"]) == 2
        assert body["data"]["pagination"] == {
            "currentPage": 2,
            "totalPages": 2,
            "totalItems": 12,
            "itemsPerPage": 10,
            "hasNextPage": False,
            "hasPrevPage": True,
        }
        assert "search" not in body["data"]

    def test_limit_clamped_to_fifty(self, client, admin_headers):
        res = client.get(f"{API}/", params={"limit": 500}, headers=admin_headers)
        assert res.json()["data"]["pagination"]["itemsPerPage"] == 50

    def test_page_zero_is_400(self, client, admin_headers):
        res = client.get(f"{API}/", params={"page": 0}, headers=admin_headers)
        assert res.status_code == 400
        assert res.json()["message"] == "Page must be greater than 0"

    def test_search(self, client, make_user, admin_headers):
        make_user(username="needle")
        make_user(username="haystack")
        res = client.get(f"{API}/", params={"q": "needle"}, headers=admin_headers)
        body = res.json()["data"]
        assert [u["username"] for u in body["data"]] == ["needle"]
        assert body["search"] == "needle"

    def test_search_echo_is_trimmed(self, client, make_user, admin_headers):
        make_user(username="needle")
        res = client.get(f"{API}/", params={"q": "  needle  "}, headers=admin_headers)
        assert res.json()["data"]["search"] == "needle"

    def test_blank_search_not_echoed(self, client, admin_headers):
        res = client.get(f"{API}/", params={"q": "   "}, headers=admin_headers)
        assert res.status_code == 200
        assert "search" not in res.json()["data"]

    def test_search_too_long(self, client, admin_headers):
        res = client.get(f"{API}/", params={"q": "x" * 101}, headers=admin_headers)
        assert res.status_code == 400

    def test_huge_page_is_400(self, client, admin_headers):
        res = client.get(f"{API}/", params={"page": "100000000000000000000"}, headers=admin_headers)
        assert res.status_code == 400
        assert res.json()["message"] == "Page is out of range"


class TestAdminUserCrud:
    def test_get_user(self, client, test_user, admin_headers):
        res = client.get(f"{API}/{test_user.id}", headers=admin_headers)
        assert res.status_code == 200
        assert res.json()["data"]["username"] == "alice"

    def test_get_missing_user(self, client, admin_headers):
        res = client.get(f"{API}/999", headers=admin_headers)
        assert res.status_code == 404
        assert res.json()["message"] == "User not found"

    def test_non_positive_id_is_400(self, client, admin_headers):
        assert client.get(f"{API}/0", headers=admin_headers).status_code == 400
        assert client.get(f"{API}/abc", headers=admin_headers).status_code == 400

    def test_regular_user_cannot_read_others(self, client, test_user, auth_headers):
        res = client.get(f"{API}/{test_user.id}", headers=auth_headers)
        assert res.status_code == 403

    def test_update_role_takes_effect_next_request(self, client, test_user, auth_headers, admin_headers):
        assert client.get(f"{API}/", headers=auth_headers).status_code == 403

        res = client.put(f"{API}/{test_user.id}", json={"role": "admin"}, headers=admin_headers)
        assert res.status_code == 200
        assert res.json()["data"]["role"] == "admin"

        # Same token as before; role comes from the store
        assert client.get(f"{API}/", headers=auth_headers).status_code == 200

    def test_invalid_role_is_400(self, client, test_user, admin_headers):
        res = client.put(f"{API}/{test_user.id}", json={"role": "root"}, headers=admin_headers)
        assert res.status_code == 400
        assert res.json()["errors"][0]["message"] == "Role must be either user or admin"

    def test_update_missing_user(self, client, admin_headers):
        res = client.put(f"{API}/999", json={"full_name": "Ghost"}, headers=admin_headers)
        assert res.status_code == 404

    def test_delete_deactivates(self, client, db_session, test_user, auth_headers, admin_headers):
        res = client.delete(f"{API}/{test_user.id}", headers=admin_headers)
        assert res.status_code == 200
        assert res.json()["message"] == "User deleted successfully"

        db_session.expire_all()
        assert db_session.get(User, test_user.id).status == UserStatus.INACTIVE

        # The unexpired token is now refused
        res = client.get(f"{API}/profile", headers=auth_headers)
        assert res.status_code == 403
        assert res.json()["message"] == "User account is inactive"

    def test_admin_cannot_delete_self(self, client, make_user):
        for _ in range(4):
            make_user()
        admin = make_user(username="root", role=UserRole.ADMIN)
        assert admin.id == 5

        res = client.delete(f"{API}/5", headers=_auth_for(admin))
        assert res.status_code == 400
        assert res.json()["message"] == "Cannot delete your own account"


# ============== End to end ==============

class TestAccountLifecycle:
    def test_full_scenario(self, client, admin_headers):
        registered = client.post(f"{API}/register", json={
            "username": "erin",
            "email": "erin@example.com",
            "password": "secret123",
        })
        assert registered.status_code == 201
        first_token = registered.json()["data"]["token"]
        user_id = registered.json()["data"]["user"]["id"]

        assert client.post(f"{API}/login", json={
            "email": "erin@example.com",
            "password": "wrong123",
        }).status_code == 401

        logged_in = client.post(f"{API}/login", json={
            "email": "erin@example.com",
            "password": "secret123",
        })
        assert logged_in.status_code == 200
        token = logged_in.json()["data"]["token"]

        profile = client.get(f"{API}/profile", headers=_auth(token))
        assert profile.status_code == 200
        assert profile.json()["data"]["email"] == "erin@example.com"
        assert "password" not in profile.json()["data"]

        updated = client.put(f"{API}/profile", json={"full_name": "Erin E"}, headers=_auth(first_token))
        assert updated.json()["data"]["full_name"] == "Erin E"

        assert client.delete(f"{API}/{user_id}", headers=admin_headers).status_code == 200
        assert client.get(f"{API}/profile", headers=_auth(token)).status_code == 403
        assert client.post(f"{API}/login", json={
            "email": "erin@example.com",
            "password": "secret123",
        }).status_code == 403
