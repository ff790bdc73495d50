import time

import jwt
import pytest

from auth import security
from core import mailer


def _register(client, username="ada", email="ada@example.com", password="secret123"):
    return client.post(
        "/api/auth/register",
        json={"username": username, "email": email, "password": password},
    )


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_register_issues_session_and_cookie(client, store):
    resp = _register(client)

    assert resp.status_code == 200
    body = resp.json()
    assert body["accessToken"]
    assert body["maxAge"] > int(time.time() * 1000)

    set_cookie = resp.headers["set-cookie"].lower()
    assert set_cookie.startswith("jwt=")
    assert "httponly" in set_cookie
    assert "samesite=strict" in set_cookie

    claims = security.decode_access_token(body["accessToken"])
    user_id = claims["UserInfo"]["userId"]

    profile = client.get(f"/api/user/{user_id}")
    assert profile.status_code == 200
    assert profile.json()["role"] == "user"
    assert profile.json()["isActivated"] is True


def test_register_lowercases_username_and_email(client, store):
    resp = _register(client, username="Ada_L", email="ADA@Example.com")

    assert resp.status_code == 200
    (row,) = store.users.values()
    assert row["username"] == "ada_l"
    assert row["email"] == "ada@example.com"


def test_register_missing_fields(client, store):
    resp = client.post("/api/auth/register", json={"username": "ada", "password": "secret123"})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "All fields are required"


def test_register_rejects_special_characters_before_store_access(client, store):
    resp = _register(client, username="ada lovelace!")

    assert resp.status_code == 423
    assert store.calls == []


def test_register_rejects_short_password(client, store):
    resp = _register(client, password="12345")

    assert resp.status_code == 400
    assert store.users == {}


@pytest.mark.parametrize(
    "username, email",
    [
        ("ADA", "other@example.com"),
        ("other", "Ada@Example.com"),
    ],
)
def test_register_duplicate_is_conflict(client, store, username, email):
    assert _register(client).status_code == 200

    resp = _register(client, username=username, email=email)

    assert resp.status_code == 422
    assert resp.json()["detail"] == "User already exist"
    assert len(store.users) == 1


def test_login_snapshot_matches_stored_profile(client, store):
    user = store.add_user("grace", profession="Admiral", company="Navy", show_comments=True)

    resp = client.post("/api/auth/login", json={"username": "grace", "password": "secret123"})

    assert resp.status_code == 200
    snapshot = security.decode_access_token(resp.json()["accessToken"])["UserInfo"]
    assert snapshot == {
        "username": "grace",
        "email": "grace@example.com",
        "userId": str(user["id"]),
        "role": "user",
        "avatar": None,
        "profession": "Admiral",
        "company": "Navy",
        "isActivated": True,
        "privacySettings": {"showSavedCalculators": False, "showComments": True},
    }
    assert store.users[user["id"]]["user_ip"] == "testclient"


def test_login_accepts_email_in_username_field(client, store):
    store.add_user("grace")

    resp = client.post("/api/auth/login", json={"username": "grace@example.com", "password": "secret123"})

    assert resp.status_code == 200


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"username": "grace"}, 400),
        ({"username": "grace", "password": "wrong-pass"}, 401),
        ({"username": "nobody", "password": "secret123"}, 401),
    ],
)
def test_login_failures(client, store, payload, expected):
    store.add_user("grace")

    resp = client.post("/api/auth/login", json=payload)

    assert resp.status_code == expected


def test_login_rejects_account_without_password(client, store):
    store.add_user("federated", password=None, google_id="g-1")

    resp = client.post("/api/auth/login", json={"username": "federated", "password": "anything"})

    assert resp.status_code == 401


def test_refresh_returns_new_access_token(client, store, login):
    user = store.add_user("grace")
    login(user)

    resp = client.get("/api/auth/refresh")

    assert resp.status_code == 200
    claims = security.decode_access_token(resp.json()["accessToken"])
    assert claims["sub"] == str(user["id"])


def test_refresh_without_cookie(client, store):
    resp = client.get("/api/auth/refresh")

    assert resp.status_code == 401
    assert resp.json()["detail"] == "No authentication token found, authentication denied"


def test_refresh_with_tampered_cookie(client, store):
    user = store.add_user("grace")
    token = security.build_refresh_token(store.users[user["id"]])
    client.cookies.set("jwt", token[:-2] + "xx", domain="testserver.local")

    resp = client.get("/api/auth/refresh")

    assert resp.status_code == 401
    assert resp.json()["detail"] == "Authentication failed"


def test_refresh_with_expired_cookie(client, store):
    user = store.add_user("grace")
    now = int(time.time())
    expired = jwt.encode(
        {"userId": str(user["id"]), "type": "refresh", "ver": 0, "iat": now - 120, "exp": now - 60},
        security.refresh_token_secret(),
        algorithm="HS256",
    )
    client.cookies.set("jwt", expired, domain="testserver.local")

    resp = client.get("/api/auth/refresh")

    assert resp.status_code == 401


def test_refresh_rejects_access_token_in_cookie(client, store):
    user = store.add_user("grace")
    client.cookies.set("jwt", security.build_access_token(store.users[user["id"]]), domain="testserver.local")

    resp = client.get("/api/auth/refresh")

    assert resp.status_code == 401


def test_logout_without_cookie_is_no_content(client, store):
    resp = client.post("/api/auth/logout")

    assert resp.status_code == 204
    assert resp.content == b""


def test_logout_clears_cookie(client, store, login):
    login(store.add_user("grace"))

    resp = client.post("/api/auth/logout")

    assert resp.status_code == 200
    assert resp.json() == {"message": "Cookie cleared"}
    set_cookie = resp.headers["set-cookie"].lower()
    assert set_cookie.startswith("jwt=")
    assert "max-age=0" in set_cookie


def test_logout_all_revokes_outstanding_tokens(client, store, login):
    user = store.add_user("grace")
    access_token = login(user)
    old_refresh = security.build_refresh_token(store.users[user["id"]])

    resp = client.post("/api/auth/logout-all")

    assert resp.status_code == 200
    assert store.users[user["id"]]["token_version"] == 1

    client.cookies.set("jwt", old_refresh, domain="testserver.local")
    assert client.get("/api/auth/refresh").status_code == 401
    assert client.get("/api/auth/me", headers=_bearer(access_token)).status_code == 403


def test_me_with_bearer_token(client, store, login):
    user = store.add_user("grace")
    access_token = login(user)

    resp = client.get("/api/auth/me", headers=_bearer(access_token))

    assert resp.status_code == 200
    assert resp.json()["user"]["userId"] == str(user["id"])


@pytest.mark.parametrize(
    "headers, expected",
    [
        ({}, 401),
        ({"Authorization": "Token abc"}, 401),
        ({"Authorization": "Bearer not-a-token"}, 403),
    ],
)
def test_me_rejects_bad_credentials(client, store, headers, expected):
    resp = client.get("/api/auth/me", headers=headers)

    assert resp.status_code == expected


def test_access_login_reissues_session(client, store):
    user = store.add_user("grace")
    access_token = security.build_access_token(store.users[user["id"]])

    resp = client.post("/api/auth/access", json={"userToken": access_token})

    assert resp.status_code == 200
    assert resp.cookies.get("jwt")


def _google_token(**claims):
    base = {
        "sub": "google-123",
        "email": "Ada@Example.com",
        "name": "Ada Lovelace",
        "picture": "https://img.example.com/ada.png",
        "email_verified": True,
    }
    base.update(claims)
    return jwt.encode(base, "google-signing-key-not-checked-here", algorithm="HS256")


def test_google_login_creates_user(client, store):
    resp = client.post("/api/auth/googleLogin", json={"google_id_token": _google_token()})

    assert resp.status_code == 200
    (row,) = store.users.values()
    assert row["username"] == "ada_lovelace"
    assert row["email"] == "ada@example.com"
    assert row["google_id"] == "google-123"
    assert row["password_hash"] is None

    again = client.post("/api/auth/googleLogin", json={"google_id_token": _google_token()})
    assert again.status_code == 200
    assert len(store.users) == 1


def test_google_login_links_existing_email(client, store):
    user = store.add_user("ada", email="ada@example.com", is_activated=False)

    resp = client.post("/api/auth/googleLogin", json={"google_id_token": _google_token()})

    assert resp.status_code == 200
    row = store.users[user["id"]]
    assert row["google_id"] == "google-123"
    assert row["is_activated"] is True
    assert len(store.users) == 1


def test_google_login_suffixes_taken_username(client, store):
    store.add_user("ada_lovelace", email="someone@example.com")

    resp = client.post("/api/auth/googleLogin", json={"google_id_token": _google_token()})

    assert resp.status_code == 200
    assert store.users[max(store.users)]["username"] == "ada_lovelace_1"


def test_google_login_rejects_garbage(client, store):
    assert client.post("/api/auth/googleLogin", json={}).status_code == 400
    assert client.post("/api/auth/googleLogin", json={"google_id_token": "garbage"}).status_code == 401


def test_password_reset_flow(client, store, sent_emails):
    user = store.add_user("grace")
    old_refresh = security.build_refresh_token(store.users[user["id"]])

    resp = client.post("/api/auth/forgot-password", json={"email": "grace@example.com"})

    assert resp.status_code == 200
    (email,) = sent_emails
    assert email["template_name"] == "reset-password.html"
    reset_link = email["replacements"]["resetLink"]
    assert reset_link.startswith("http://client.test/reset-password?t=")
    token = reset_link.split("t=", 1)[1]

    resp = client.put("/api/auth/reset-password", json={"password": "brand-new", "t": token})

    assert resp.status_code == 200
    assert resp.json()["accessToken"]
    assert security.verify_password("brand-new", store.users[user["id"]]["password_hash"])

    client.cookies.set("jwt", old_refresh, domain="testserver.local")
    assert client.get("/api/auth/refresh").status_code == 401


def test_reset_link_cannot_be_reused(client, store, sent_emails):
    user = store.add_user("grace")
    client.post("/api/auth/forgot-password", json={"email": "grace@example.com"})
    token = sent_emails[0]["replacements"]["resetLink"].split("t=", 1)[1]

    first = client.put("/api/auth/reset-password", json={"password": "owner-pass", "t": token})
    second = client.put("/api/auth/reset-password", json={"password": "other-pass", "t": token})

    assert first.status_code == 200
    assert second.status_code == 401
    assert security.verify_password("owner-pass", store.users[user["id"]]["password_hash"])


def test_reset_password_rejects_other_purpose_tokens(client, store):
    user = store.add_user("grace")
    activation = security.build_purpose_token(
        security.ACTIVATION,
        {"userId": str(user["id"]), "email": "grace@example.com"},
        ttl_minutes=5,
    )

    resp = client.put("/api/auth/reset-password", json={"password": "brand-new", "t": activation})

    assert resp.status_code == 401


def test_forgot_password_unknown_email(client, store, sent_emails):
    resp = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})

    assert resp.status_code == 401
    assert sent_emails == []


def test_forgot_password_mail_failure(client, store, monkeypatch):
    store.add_user("grace")

    def broken_send(**kwargs):
        raise mailer.MailerError("smtp down")

    monkeypatch.setattr(mailer, "send_templated_email", broken_send)

    resp = client.post("/api/auth/forgot-password", json={"email": "grace@example.com"})

    assert resp.status_code == 404
    assert resp.json()["detail"] == "Something went wrong, try again!"


def test_auth_routes_are_rate_limited(client, store):
    store.add_user("grace")
    payload = {"username": "grace", "password": "wrong-pass"}

    statuses = [client.post("/api/auth/login", json=payload).status_code for _ in range(6)]

    assert statuses[:5] == [401] * 5
    assert statuses[5] == 429

    resp = client.post("/api/auth/login", json=payload)
    assert resp.json()["detail"] == "Too many attempts, please try again later."
    assert int(resp.headers["retry-after"]) > 0


def test_rate_limit_ignores_spoofed_forwarded_for(client, store):
    store.add_user("grace")
    payload = {"username": "grace", "password": "wrong-pass"}

    statuses = [
        client.post("/api/auth/login", json=payload, headers={"X-Forwarded-For": f"10.0.0.{i}"}).status_code
        for i in range(6)
    ]

    assert statuses == [401] * 5 + [429]


def test_login_records_socket_address_not_forwarded_for(client, store):
    user = store.add_user("grace")

    resp = client.post(
        "/api/auth/login",
        json={"username": "grace", "password": "secret123"},
        headers={"X-Forwarded-For": "6.6.6.6"},
    )

    assert resp.status_code == 200
    assert store.users[user["id"]]["user_ip"] == "testclient"


def test_login_records_forwarded_for_behind_trusted_proxy(client, store, monkeypatch):
    monkeypatch.setenv("TRUST_PROXY_HEADERS", "true")
    user = store.add_user("grace")

    client.post(
        "/api/auth/login",
        json={"username": "grace", "password": "secret123"},
        headers={"X-Forwarded-For": "198.51.100.7, 10.0.0.1"},
    )

    assert store.users[user["id"]]["user_ip"] == "198.51.100.7"


def test_cors_preflight_skips_auth(client, store):
    resp = client.options(
        "/api/auth/refresh",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "GET",
        },
    )

    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert resp.headers["access-control-allow-credentials"] == "true"


def test_bare_options_is_routed_not_authenticated(client, store):
    resp = client.options("/api/auth/refresh")

    assert resp.status_code == 405


def test_malformed_body_is_bad_request(client, store):
    resp = client.post(
        "/api/auth/login",
        content="{not json",
        headers={"Content-Type": "application/json"},
    )

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid inputs passed."
