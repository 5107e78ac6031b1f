from datetime import datetime, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from auth import dependencies as auth_dependencies
from auth import repository as auth_repository
from auth import security
from integrations import oauth
from integrations import repository as integrations_repository
from main import app


def _user_row(**overrides):
    row = {
        "id": 1,
        "email": "ada@example.com",
        "password_hash": None,
        "name": "Ada",
        "avatar": None,
        "is_active": True,
        "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


@pytest.fixture
def refresh_store(monkeypatch):
    inserted = []

    async def fake_insert_refresh_token(**kwargs):
        inserted.append(kwargs)
        return {"id": len(inserted), **kwargs}

    monkeypatch.setattr(auth_repository, "insert_refresh_token", fake_insert_refresh_token)
    return inserted


def test_password_hash_roundtrip():
    hashed = security.hash_password("correct horse battery")

    assert security.verify_password("correct horse battery", hashed)
    assert not security.verify_password("wrong password", hashed)
    assert not security.verify_password("anything", None)


def test_access_token_claims():
    token = security.build_access_token(user_id=42, email="ada@example.com")
    payload = security.decode_access_token(token)

    assert payload["sub"] == "42"
    assert payload["type"] == "access"


def test_decode_rejects_non_access_and_expired_tokens():
    refresh_like = jwt.encode({"sub": "1", "type": "refresh"}, security.jwt_secret(), algorithm="HS256")
    with pytest.raises(security.AuthSecurityError, match="not an access token"):
        security.decode_access_token(refresh_like)

    expired = jwt.encode({"sub": "1", "type": "access", "exp": 1}, security.jwt_secret(), algorithm="HS256")
    with pytest.raises(security.AuthSecurityError, match="expired"):
        security.decode_access_token(expired)


def test_refresh_token_hash_is_stable_and_not_plaintext():
    raw = security.build_refresh_token()

    assert security.hash_refresh_token(raw) == security.hash_refresh_token(raw)
    assert security.hash_refresh_token(raw) != raw


def test_register_creates_user_and_issues_tokens(monkeypatch, refresh_store):
    created = {}

    async def fake_get_user_by_email(email):
        return None

    async def fake_create_user(**kwargs):
        created.update(kwargs)
        return _user_row(password_hash=kwargs["password_hash"], name=kwargs.get("name"))

    monkeypatch.setattr(auth_repository, "get_user_by_email", fake_get_user_by_email)
    monkeypatch.setattr(auth_repository, "create_user", fake_create_user)

    client = TestClient(app)
    resp = client.post(
        "/api/auth/register",
        json={"email": "ada@example.com", "password": "longenough", "name": "Ada"},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["user"]["email"] == "ada@example.com"
    assert security.decode_access_token(body["tokens"]["access_token"])["sub"] == "1"
    assert security.verify_password("longenough", created["password_hash"])
    assert refresh_store[0]["token_hash"] == security.hash_refresh_token(body["tokens"]["refresh_token"])


def test_register_rejects_invalid_email_with_validation_envelope():
    client = TestClient(app)
    resp = client.post("/api/auth/register", json={"email": "nope", "password": "longenough"})

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Validation failed"
    assert any(detail.startswith("email:") for detail in body["details"])


def test_register_conflict(monkeypatch):
    async def fake_get_user_by_email(email):
        return _user_row()

    monkeypatch.setattr(auth_repository, "get_user_by_email", fake_get_user_by_email)

    client = TestClient(app)
    resp = client.post("/api/auth/register", json={"email": "ada@example.com", "password": "longenough"})

    assert resp.status_code == 409
    assert resp.json() == {"error": "Email is already registered."}


def test_login_rejects_google_only_account(monkeypatch):
    async def fake_get_user_by_email(email):
        return _user_row(password_hash=None)

    monkeypatch.setattr(auth_repository, "get_user_by_email", fake_get_user_by_email)

    client = TestClient(app)
    resp = client.post("/api/auth/login", json={"email": "ada@example.com", "password": "whatever"})

    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid email or password."


def test_login_is_rate_limited(monkeypatch):
    async def fake_get_user_by_email(email):
        return None

    monkeypatch.setattr(auth_repository, "get_user_by_email", fake_get_user_by_email)

    client = TestClient(app)
    statuses = [
        client.post("/api/auth/login", json={"email": "ada@example.com", "password": "x"}).status_code
        for _ in range(6)
    ]

    assert statuses[:5] == [401] * 5
    assert statuses[5] == 429


def test_me_requires_bearer_token():
    client = TestClient(app)
    resp = client.get("/api/auth/me")

    assert resp.status_code == 401
    assert resp.json() == {"error": "Missing Authorization header."}


def test_me_returns_connected_integrations(monkeypatch):
    async def fake_get_user_by_id(user_id):
        return _user_row(id=user_id)

    async def fake_list_integration_summaries(user_id):
        return [
            {
                "id": 3,
                "type": "SLACK",
                "name": "Slack",
                "is_connected": True,
                "created_at": datetime(2026, 2, 1, tzinfo=timezone.utc),
            }
        ]

    monkeypatch.setattr(auth_repository, "get_user_by_id", fake_get_user_by_id)
    monkeypatch.setattr(auth_repository, "list_integration_summaries", fake_list_integration_summaries)

    token = security.build_access_token(user_id=1, email="ada@example.com")
    client = TestClient(app)
    resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == 1
    assert body["integrations"][0]["type"] == "SLACK"


def test_google_auth_url_requests_offline_access():
    client = TestClient(app)
    resp = client.get("/api/auth/google")

    assert resp.status_code == 200
    url = resp.json()["auth_url"]
    assert url.startswith(oauth.AUTH_URL)
    assert "access_type=offline" in url


def test_google_callback_creates_user_and_connects_google_integrations(monkeypatch, refresh_store):
    upserts = []

    async def fake_exchange_code(code, transport=None):
        assert code == "auth-code"
        return oauth.TokenGrant(access_token="ya29.access", refresh_token="1//refresh", expires_at=None)

    async def fake_fetch_userinfo(access_token, transport=None):
        return {"email": "grace@example.com", "name": "Grace", "picture": "https://img/x.png"}

    async def fake_get_user_by_email(email):
        return None

    async def fake_create_user(**kwargs):
        assert kwargs["password_hash"] is None
        return _user_row(id=9, email=kwargs["email"], name=kwargs["name"], avatar=kwargs["avatar"])

    async def fake_upsert_integration(**kwargs):
        upserts.append(kwargs)
        return {"id": len(upserts), **kwargs}

    monkeypatch.setattr(oauth, "exchange_code", fake_exchange_code)
    monkeypatch.setattr(oauth, "fetch_userinfo", fake_fetch_userinfo)
    monkeypatch.setattr(auth_repository, "get_user_by_email", fake_get_user_by_email)
    monkeypatch.setattr(auth_repository, "create_user", fake_create_user)
    monkeypatch.setattr(integrations_repository, "upsert_integration", fake_upsert_integration)

    client = TestClient(app)
    resp = client.post("/api/auth/google/callback", json={"code": "auth-code"})

    assert resp.status_code == 200
    assert resp.json()["user"]["email"] == "grace@example.com"
    assert sorted(u["integration_type"] for u in upserts) == ["GMAIL", "GOOGLE_CALENDAR"]
    assert all(u["refresh_token"] == "1//refresh" for u in upserts)


def test_google_callback_maps_oauth_failure_to_502(monkeypatch):
    async def fake_exchange_code(code, transport=None):
        raise oauth.OAuthError("invalid_grant")

    monkeypatch.setattr(oauth, "exchange_code", fake_exchange_code)

    client = TestClient(app)
    resp = client.post("/api/auth/google/callback", json={"code": "bad"})

    assert resp.status_code == 502
    assert resp.json() == {"error": "Authentication failed"}


def test_oauth_state_roundtrip_and_type_check():
    state = security.build_oauth_state(user_id=7, integration_type="GMAIL")

    assert security.decode_oauth_state(state) == {"user_id": 7, "type": "GMAIL"}
    with pytest.raises(security.AuthSecurityError):
        security.decode_access_token(state)
    with pytest.raises(security.AuthSecurityError):
        security.decode_oauth_state(security.build_access_token(user_id=7, email="ada@example.com"))


def test_google_callback_rejects_forged_state(monkeypatch):
    async def fake_exchange_code(code, transport=None):
        raise AssertionError("code must not be exchanged for a bad state")

    monkeypatch.setattr(oauth, "exchange_code", fake_exchange_code)

    client = TestClient(app)
    resp = client.post("/api/auth/google/callback", json={"code": "auth-code", "state": '{"user_id": 1}'})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid OAuth state."}


def test_google_callback_with_state_connects_only_that_integration(monkeypatch, refresh_store):
    upserts = []

    async def fake_exchange_code(code, transport=None):
        return oauth.TokenGrant(access_token="ya29.access", refresh_token=None, expires_at=None)

    async def fake_fetch_userinfo(access_token, transport=None):
        return {"email": "work-account@example.com"}

    async def fake_get_user_by_id(user_id):
        return _user_row(id=user_id)

    async def fake_upsert_integration(**kwargs):
        upserts.append(kwargs)
        return {"id": len(upserts), **kwargs}

    monkeypatch.setattr(oauth, "exchange_code", fake_exchange_code)
    monkeypatch.setattr(oauth, "fetch_userinfo", fake_fetch_userinfo)
    monkeypatch.setattr(auth_repository, "get_user_by_id", fake_get_user_by_id)
    monkeypatch.setattr(integrations_repository, "upsert_integration", fake_upsert_integration)

    state = security.build_oauth_state(user_id=3, integration_type="GOOGLE_CALENDAR")
    resp = TestClient(app).post("/api/auth/google/callback", json={"code": "auth-code", "state": state})

    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == 3
    assert [(u["user_id"], u["integration_type"]) for u in upserts] == [(3, "GOOGLE_CALENDAR")]


def _stored_refresh(**overrides):
    row = {
        "id": 21,
        "user_id": 1,
        "revoked_at": None,
        "expires_at": datetime(2099, 1, 1, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


def test_refresh_rotates_and_links_tokens(monkeypatch):
    rotations = []

    async def fake_get_refresh_token_by_hash(token_hash):
        assert token_hash == security.hash_refresh_token("r" * 40)
        return _stored_refresh()

    async def fake_get_user_by_id(user_id):
        return _user_row(id=user_id)

    async def fake_rotate_refresh_token(old_token_id, **kwargs):
        rotations.append((old_token_id, kwargs))
        return {"id": 22, **kwargs}

    monkeypatch.setattr(auth_repository, "get_refresh_token_by_hash", fake_get_refresh_token_by_hash)
    monkeypatch.setattr(auth_repository, "get_user_by_id", fake_get_user_by_id)
    monkeypatch.setattr(auth_repository, "rotate_refresh_token", fake_rotate_refresh_token)

    resp = TestClient(app).post("/api/auth/refresh", json={"refresh_token": "r" * 40})

    assert resp.status_code == 200
    body = resp.json()
    assert security.decode_access_token(body["access_token"])["sub"] == "1"
    assert rotations[0][0] == 21
    assert rotations[0][1]["token_hash"] == security.hash_refresh_token(body["refresh_token"])


@pytest.mark.parametrize(
    ("stored", "detail"),
    [
        (None, "Invalid refresh token."),
        (_stored_refresh(revoked_at=datetime(2026, 1, 1, tzinfo=timezone.utc)), "Refresh token is revoked."),
        (_stored_refresh(expires_at=datetime(2020, 1, 1, tzinfo=timezone.utc)), "Refresh token is expired."),
    ],
)
def test_refresh_rejects_unusable_tokens(monkeypatch, stored, detail):
    revoked = []

    async def fake_get_refresh_token_by_hash(token_hash):
        return stored

    async def fake_revoke_refresh_token_by_id(token_id):
        revoked.append(token_id)
        return True

    monkeypatch.setattr(auth_repository, "get_refresh_token_by_hash", fake_get_refresh_token_by_hash)
    monkeypatch.setattr(auth_repository, "revoke_refresh_token_by_id", fake_revoke_refresh_token_by_id)

    resp = TestClient(app).post("/api/auth/refresh", json={"refresh_token": "r" * 40})

    assert resp.status_code == 401
    assert resp.json() == {"error": detail}
    assert revoked == ([21] if detail == "Refresh token is expired." else [])


def test_refresh_lost_race_is_401(monkeypatch):
    async def fake_get_refresh_token_by_hash(token_hash):
        return _stored_refresh()

    async def fake_get_user_by_id(user_id):
        return _user_row(id=user_id)

    async def fake_rotate_refresh_token(old_token_id, **kwargs):
        return None

    monkeypatch.setattr(auth_repository, "get_refresh_token_by_hash", fake_get_refresh_token_by_hash)
    monkeypatch.setattr(auth_repository, "get_user_by_id", fake_get_user_by_id)
    monkeypatch.setattr(auth_repository, "rotate_refresh_token", fake_rotate_refresh_token)

    resp = TestClient(app).post("/api/auth/refresh", json={"refresh_token": "r" * 40})

    assert resp.status_code == 401


def test_logout_revokes_presented_refresh_token(monkeypatch):
    revoked = []

    async def fake_revoke_refresh_token_by_hash(token_hash):
        revoked.append(token_hash)
        return True

    monkeypatch.setattr(auth_repository, "revoke_refresh_token_by_hash", fake_revoke_refresh_token_by_hash)

    resp = TestClient(app).post("/api/auth/logout", json={"refresh_token": "r" * 40})

    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    assert revoked == [security.hash_refresh_token("r" * 40)]


def test_logout_without_token_revokes_all_sessions_of_caller(monkeypatch):
    revoked_for = []

    async def fake_revoke_all_refresh_tokens_for_user(user_id):
        revoked_for.append(user_id)
        return 3

    monkeypatch.setattr(auth_repository, "revoke_all_refresh_tokens_for_user", fake_revoke_all_refresh_tokens_for_user)
    app.dependency_overrides[auth_dependencies.get_optional_user] = lambda: _user_row(id=9)
    try:
        resp = TestClient(app).post("/api/auth/logout", json={})
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    assert revoked_for == [9]


def test_logout_needs_token_or_signed_in_caller():
    resp = TestClient(app).post("/api/auth/logout", json={})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Provide refresh_token or authenticated user."}
