"""
tests/test_api_routes.py -- Integration tests for the account and auth routes.

These tests exercise the full stack: FastAPI routing -> cookie extraction ->
AccountService -> TokenEngine/stores -> envelope serialization. Unit testing
individual route functions would miss middleware, validation handlers, and
cookie handling -- integration tests are the right tool here.

Coverage:
  - Login sets an httpOnly AccessToken cookie and never returns the token
  - Logout always 200, blacklists the token, clears the cookie
  - /auth/me requires a live, non-blacklisted cookie
  - Register -> verify-email -> replay over HTTP, with envelope codes
  - Reset request is 200 for unknown emails; reset link redirects
  - Change email rejects a blacklisted cookie with 401
  - Validation errors -> 422 envelope; Accept-Language picks the message
  - Passwords over 72 UTF-8 bytes are rejected with 422, 72 bytes is accepted

Fixtures used (from conftest.py):
  - api_client: (client, stack) -- TestClient with a patched lifespan.
    verified@example.com / stack.password is a verified owner.
"""

from __future__ import annotations

from types import SimpleNamespace

from fastapi.testclient import TestClient

from auth.models import TokenKind

COOKIE = "AccessToken"


def _login(client: TestClient, email: str, password: str) -> str:
    client.cookies.clear()
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.cookies[COOKIE]


def _signup_body(email: str, password: str, **overrides) -> dict:
    body = {
        "identification_number": "1234567890",
        "full_name": "Anna Andersson",
        "email": email,
        "terms_and_conditions": True,
        "password": password,
        "confirm_password": password,
        "primary_address": {
            "street_address": "Storgatan 1",
            "postal_code": "111 22",
            "city": "Stockholm",
            "region": "stockholm",
        },
    }
    body.update(overrides)
    return body


class TestLogin:
    def test_login_sets_cookie(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        """A valid login returns 200, an httpOnly cookie, and no raw token in the body."""
        client, s = api_client
        client.cookies.clear()
        resp = client.post("/api/v1/auth/login", json={"email": "verified@example.com", "password": s.password})
        assert resp.status_code == 200, resp.text

        data = resp.json()
        assert data["code"] == "signed_in"
        assert data["owner_id"] == s.verified_owner.id
        assert data["is_verified"] is True

        set_cookie = resp.headers["set-cookie"].lower()
        assert set_cookie.startswith("accesstoken=")
        assert "httponly" in set_cookie
        assert "samesite=lax" in set_cookie
        assert resp.cookies[COOKIE] not in resp.text
        assert resp.headers["cache-control"] == "no-store"

    def test_wrong_password(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/auth/login", json={"email": "verified@example.com", "password": "wrong"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_credentials"

    def test_unknown_email_same_error(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, s = api_client
        resp = client.post("/api/v1/auth/login", json={"email": "ghost@example.com", "password": s.password})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_credentials"


class TestMeAndLogout:
    def test_me_requires_cookie(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, _ = api_client
        client.cookies.clear()
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_me_returns_owner(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, s = api_client
        _login(client, "verified@example.com", s.password)
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json()["email"] == "verified@example.com"
        assert resp.json()["kind"] == "user"
        assert resp.json()["login_session_active"] is True

    def test_logout_blacklists_token(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        """After logout the old token is rejected even if the client replays it."""
        client, s = api_client
        token = _login(client, "verified@example.com", s.password)

        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert resp.json()["code"] == "signed_out"
        assert "max-age=0" in resp.headers["set-cookie"].lower()

        client.cookies.clear()
        replay = client.get("/api/v1/auth/me", headers={"Cookie": f"{COOKIE}={token}"})
        assert replay.status_code == 401

    def test_logout_without_cookie(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, _ = api_client
        client.cookies.clear()
        assert client.post("/api/v1/auth/logout").status_code == 200


class TestRegistration:
    def test_register_verify_replay(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, s = api_client
        resp = client.post("/api/v1/account/register", json=_signup_body("flow@example.com", s.password))
        assert resp.status_code == 201, resp.text
        assert resp.json()["code"] == "registered"

        issued = s.dispatch.last
        assert issued.kind is TokenKind.EMAIL_VERIFICATION

        bad = client.post("/api/v1/account/verify-email", json={"verification_id": "garbage"})
        assert bad.status_code == 400
        assert bad.json()["error"]["code"] == "invalid_token"

        ok = client.post("/api/v1/account/verify-email", json={"verification_id": issued.token_id})
        assert ok.status_code == 200
        assert ok.json()["code"] == "verified"

        replay = client.post("/api/v1/account/verify-email", json={"verification_id": issued.token_id})
        assert replay.status_code == 400
        assert replay.json()["error"]["code"] == "invalid_token"

        addresses = s.owners.list_addresses(s.owners.get_by_email("flow@example.com").id)
        assert [a.city for a in addresses] == ["Stockholm"]

    def test_duplicate_email(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, s = api_client
        resp = client.post("/api/v1/account/register", json=_signup_body("verified@example.com", s.password))
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "email_already_in_use"

    def test_restricted_email(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, s = api_client
        resp = client.post("/api/v1/account/register", json=_signup_body("blocked@example.com", s.password))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "email_restricted"

    def test_weak_password_422(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/account/register", json=_signup_body("weak@example.com", "onlyletters"))
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_multibyte_password_over_byte_cap_422(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        """64 characters but 126 UTF-8 bytes: rejected before bcrypt sees it."""
        client, _ = api_client
        password = "å" * 62 + "1!"
        resp = client.post("/api/v1/account/register", json=_signup_body("wide@example.com", password))
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_password_byte_cap_boundary(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, _ = api_client
        at_cap = "å" * 35 + "1!"
        over_cap = at_cap + "a"
        assert len(at_cap.encode("utf-8")) == 72

        over = client.post("/api/v1/account/register", json=_signup_body("over-cap@example.com", over_cap))
        assert over.status_code == 422

        ok = client.post("/api/v1/account/register", json=_signup_body("at-cap@example.com", at_cap))
        assert ok.status_code == 201, ok.text
        _login(client, "at-cap@example.com", at_cap)

    def test_company_requires_business_type(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, s = api_client
        body = _signup_body("co@example.com", s.password, is_company=True, company_name="Acme AB")
        assert client.post("/api/v1/account/register", json=body).status_code == 422

    def test_company_registration(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, s = api_client
        body = _signup_body(
            "acme@example.com", s.password, is_company=True, company_name="Acme AB", business_type="retail"
        )
        assert client.post("/api/v1/account/register", json=body).status_code == 201
        owner = s.owners.get_by_email("acme@example.com")
        assert owner.kind.value == "company"
        assert owner.display_name == "Acme AB"

    def test_resend_for_verified_owner(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/account/resend-verification", json={"email": "verified@example.com"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "already_verified"


class TestPasswordReset:
    def test_unknown_email_is_200(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, s = api_client
        sent_before = len(s.dispatch.sent)
        resp = client.post("/api/v1/account/reset-password", json={"email": "nobody@example.com"})
        assert resp.status_code == 200
        assert resp.json()["code"] == "reset_requested"
        assert len(s.dispatch.sent) == sent_before

    def test_reset_link_redirects(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, s = api_client
        s.make_owner("reset-link@example.com", verified=True)
        client.post("/api/v1/account/reset-password", json={"email": "reset-link@example.com"})
        reset_id = s.dispatch.last.token_id
        base = s.settings.frontend_base_url.rstrip("/")

        ok = client.get(f"/api/v1/account/reset-password?token={reset_id}", follow_redirects=False)
        assert ok.status_code == 302
        assert ok.headers["location"] == f"{base}/reset-password?token={reset_id}"

        bad = client.get("/api/v1/account/reset-password?token=bogus", follow_redirects=False)
        assert bad.status_code == 302
        assert bad.headers["location"] == f"{base}/reset-password/invalid"

    def test_complete_reset(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, s = api_client
        s.make_owner("reset-done@example.com", verified=True)
        client.post("/api/v1/account/reset-password", json={"email": "reset-done@example.com"})
        reset_id = s.dispatch.last.token_id

        body = {"token": reset_id, "new_password": "Brand2New!", "confirm_password": "Brand2New!"}
        resp = client.post("/api/v1/account/reset-password/complete", json=body)
        assert resp.status_code == 200
        _login(client, "reset-done@example.com", "Brand2New!")

        again = client.post("/api/v1/account/reset-password/complete", json=body)
        assert again.status_code == 400
        assert again.json()["error"]["code"] == "invalid_token"

    def test_complete_reset_multibyte_over_byte_cap_422(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, _ = api_client
        password = "ö" * 40 + "1!"
        body = {"token": "whatever", "new_password": password, "confirm_password": password}
        resp = client.post("/api/v1/account/reset-password/complete", json=body)
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestAuthenticatedChanges:
    def test_change_email_with_blacklisted_cookie(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, s = api_client
        s.make_owner("mover@example.com", verified=True)
        token = _login(client, "mover@example.com", s.password)
        client.post("/api/v1/auth/logout")

        client.cookies.clear()
        resp = client.post(
            "/api/v1/account/change-email",
            json={"current_password": s.password, "new_email": "moved@example.com"},
            headers={"Cookie": f"{COOKIE}={token}"},
        )
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"
        assert s.owners.get_by_email("mover@example.com") is not None

    def test_change_email_clears_cookie(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, s = api_client
        s.make_owner("switch@example.com", verified=True)
        _login(client, "switch@example.com", s.password)

        resp = client.post(
            "/api/v1/account/change-email",
            json={"current_password": s.password, "new_email": "switched@example.com"},
        )
        assert resp.status_code == 200, resp.text
        assert "max-age=0" in resp.headers["set-cookie"].lower()
        assert s.dispatch.last.kind is TokenKind.ACCOUNT_VERIFICATION
        assert s.owners.get_by_email("switched@example.com").is_verified is False

    def test_change_password(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, s = api_client
        s.make_owner("pw@example.com", verified=True)
        _login(client, "pw@example.com", s.password)
        resp = client.post(
            "/api/v1/account/change-password",
            json={"current_password": s.password, "new_password": "Changed9!", "confirm_password": "Changed9!"},
        )
        assert resp.status_code == 200
        _login(client, "pw@example.com", "Changed9!")

    def test_delete_account(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, s = api_client
        s.make_owner("leaver@example.com", verified=True)
        _login(client, "leaver@example.com", s.password)
        resp = client.post("/api/v1/account/delete", json={"password": s.password})
        assert resp.status_code == 200
        assert s.owners.get_by_email("leaver@example.com") is None


class TestLocaleAndReference:
    def test_default_locale_is_swedish(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/auth/login", json={"email": "ghost@example.com", "password": "x"})
        assert resp.json()["error"]["message"] == "Ogiltiga inloggningsuppgifter."

    def test_english_locale(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, _ = api_client
        resp = client.post(
            "/api/v1/auth/login",
            json={"email": "ghost@example.com", "password": "x"},
            headers={"Accept-Language": "en-GB,en;q=0.9"},
        )
        assert resp.json()["error"]["message"] == "The login details you provided are incorrect."

    def test_reference_lists(self, api_client: tuple[TestClient, SimpleNamespace]) -> None:
        client, _ = api_client
        regions = client.get("/api/v1/regions").json()
        assert len(regions) == 21
        assert {"value": "skane", "display_name": "Skåne län"} in regions
        business = client.get("/api/v1/business-types").json()
        assert any(item["value"] == "retail" for item in business)
