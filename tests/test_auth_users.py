from conftest import TEST_PASSWORD, auth_headers, create_user, login

from stockpos.core.rate_limit import LoginRateLimiter, login_key
from stockpos.core.security import create_access_token


def test_login_me_validate_and_token_form(test_context):
    client, session_factory = test_context
    create_user(session_factory, username="Gerente", role="owner")

    res = client.post("/auth/login", json={"username": "gerente", "password": TEST_PASSWORD})
    assert res.status_code == 200, res.text
    data = res.json()["data"]
    assert data["user"]["role"] == "owner"
    assert data["expires_in"] > 0
    headers = auth_headers(data["token"])

    me = client.get("/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["data"]["username"] == "Gerente"
    assert me.json()["data"]["last_login_at"] is not None

    validated = client.get("/auth/validate", headers=headers)
    assert validated.json()["data"]["valid"] is True

    form = client.post("/auth/token", data={"username": "Gerente", "password": TEST_PASSWORD})
    assert form.status_code == 200
    assert form.json()["token_type"] == "bearer"

    assert client.post("/auth/logout", headers=headers).json()["success"] is True


def test_invalid_credentials_and_rate_limit(test_context):
    client, session_factory = test_context
    create_user(session_factory, username="cajero", role="cashier")

    for _ in range(5):
        res = client.post("/auth/login", json={"username": "cajero", "password": "wrong"})
        assert res.status_code == 401
        assert res.json()["error"] == "unauthorized"

    locked = client.post("/auth/login", json={"username": "cajero", "password": TEST_PASSWORD})
    assert locked.status_code == 429
    assert locked.json()["error"] == "rate_limited"
    assert int(locked.headers["Retry-After"]) > 0


def test_inactive_user_and_bad_tokens_are_rejected(test_context):
    client, session_factory = test_context
    user_id = create_user(session_factory, username="baja", role="cashier", active=False)

    assert client.post("/auth/login", json={"username": "baja", "password": TEST_PASSWORD}).status_code == 401
    token = create_access_token(user_id, "cashier")
    assert client.get("/auth/me", headers=auth_headers(token)).status_code == 401
    assert client.get("/auth/me", headers=auth_headers("not-a-token")).status_code == 401
    assert client.get("/auth/me").status_code == 401


def test_change_password(test_context):
    client, session_factory = test_context
    create_user(session_factory, username="ana", role="cashier")
    headers = auth_headers(login(client, "ana"))

    bad = client.post(
        "/auth/change-password",
        json={"current_password": "nope", "new_password": "nuevaclave"},
        headers=headers,
    )
    assert bad.status_code == 400

    ok = client.post(
        "/auth/change-password",
        json={"current_password": TEST_PASSWORD, "new_password": "nuevaclave"},
        headers=headers,
    )
    assert ok.status_code == 200
    login(client, "ana", "nuevaclave")


def test_user_management_by_admin(test_context, admin_headers):
    client, _ = test_context

    created = client.post(
        "/users",
        json={"username": "pedro", "password": "secreto1", "full_name": "Pedro Diaz", "role": "cashier"},
        headers=admin_headers,
    )
    assert created.status_code == 201, created.text
    user_id = created.json()["data"]["id"]

    duplicate = client.post(
        "/users",
        json={"username": "PEDRO", "password": "secreto1", "full_name": "Otro", "role": "cashier"},
        headers=admin_headers,
    )
    assert duplicate.status_code == 409

    short = client.post(
        "/users",
        json={"username": "luis", "password": "123", "full_name": "Luis"},
        headers=admin_headers,
    )
    assert short.status_code == 400

    updated = client.put(f"/users/{user_id}", json={"role": "owner"}, headers=admin_headers)
    assert updated.json()["data"]["role"] == "owner"

    reset = client.post(f"/users/{user_id}/reset-password", json={"new_password": "otraclave"}, headers=admin_headers)
    assert reset.status_code == 200
    login(client, "pedro", "otraclave")

    toggled = client.patch(f"/users/{user_id}/active", json={"active": False}, headers=admin_headers)
    assert toggled.json()["data"]["is_active"] is False

    listed = client.get("/users", params={"active": False}, headers=admin_headers).json()["data"]
    assert [user["username"] for user in listed] == ["pedro"]


def test_users_cannot_deactivate_themselves_and_delete_is_admin_only(test_context, admin_headers, owner_headers):
    client, session_factory = test_context
    me = client.get("/auth/me", headers=admin_headers).json()["data"]
    target_id = create_user(session_factory, username="temporal", role="cashier")

    self_delete = client.delete(f"/users/{me['id']}", headers=admin_headers)
    assert self_delete.status_code == 400

    assert client.delete(f"/users/{target_id}", headers=owner_headers).status_code == 403
    deleted = client.delete(f"/users/{target_id}", headers=admin_headers)
    assert deleted.status_code == 200
    assert deleted.json()["data"]["is_active"] is False


def test_roles_listing_and_cashier_forbidden(test_context, owner_headers, cashier_headers):
    client, _ = test_context

    roles = client.get("/users/roles", headers=owner_headers).json()["data"]
    by_role = {role["role"]: role for role in roles}
    assert by_role["admin"]["permissions"] == ["*"]
    assert "sales.void" not in by_role["cashier"]["permissions"]
    assert "sales.create" in by_role["cashier"]["permissions"]

    forbidden = client.get("/users", headers=cashier_headers)
    assert forbidden.status_code == 403
    assert forbidden.json()["error"] == "forbidden"


def test_rate_limiter_forgets_stale_keys_and_expired_locks():
    now = [1000.0]
    limiter = LoginRateLimiter(max_attempts=2, window_seconds=60, lock_seconds=300, clock=lambda: now[0])

    limiter.record_failure(login_key("ana", "10.0.0.1"))
    limiter.record_failure(login_key("luis", "10.0.0.2"))
    limiter.record_failure(login_key("luis", "10.0.0.2"))
    assert len(limiter) == 2
    assert limiter.retry_after(login_key("luis", "10.0.0.2")) == 301

    now[0] += 61
    assert limiter.retry_after(login_key("ana", "10.0.0.1")) == 0
    assert len(limiter) == 1

    now[0] += 300
    assert limiter.retry_after(login_key("luis", "10.0.0.2")) == 0
    assert len(limiter) == 0
