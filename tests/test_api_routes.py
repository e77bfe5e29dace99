"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Runs the real app against the in-memory SQLite engine via dependency
overrides (see ``client`` in conftest).

These tests verify:
- Auth guards on member and admin endpoints
- Domain errors mapped to 401/422
- Response structure of the karma, moderation, verification and
  notification endpoints
"""

from __future__ import annotations

import httpx
import pytest
from conftest import auth, make_token

from medcircle.api import deps
from medcircle.api.main import app
from medcircle.config import VerificationSettings
from medcircle.services.verification_service import VerificationService

PROFANE = "What the fuck is this handover"


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Auth guards
# ===========================================================================
class TestAuthGuards:
    MEMBER_ENDPOINTS = [
        ("GET", "/api/karma/me"),
        ("GET", "/api/karma/me/activities"),
        ("GET", "/api/moderation/me"),
        ("GET", "/api/notifications/me"),
        ("POST", "/api/karma/activities"),
        ("POST", "/api/moderation/check"),
    ]

    @pytest.mark.parametrize("method,endpoint", MEMBER_ENDPOINTS)
    def test_no_token_returns_401(self, client, method, endpoint):
        resp = client.request(method, endpoint)
        assert resp.status_code == 401

    def test_invalid_token_returns_401(self, client):
        resp = client.get("/api/karma/me", headers=auth("not-a-jwt"))
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid token"

    def test_token_without_subject_returns_401(self, client):
        resp = client.get("/api/karma/me", headers=auth(make_token(sub="")))
        assert resp.status_code == 401

    @pytest.mark.parametrize(
        "method,endpoint",
        [("POST", "/api/admin/moderation/u1/reset"), ("GET", "/api/admin/audit")],
    )
    def test_admin_endpoints_reject_members(self, client, user_token, method, endpoint):
        resp = client.request(method, endpoint, headers=auth(user_token))
        assert resp.status_code == 403


# ===========================================================================
# Karma
# ===========================================================================
class TestKarmaRoutes:
    def test_record_activity(self, client, user_token):
        resp = client.post(
            "/api/karma/activities",
            json={"activity_type": "CREATE_POST"},
            headers=auth(user_token),
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["activity"]["points"] == 10
        assert body["activity"]["user_id"] == "user-1"
        assert body["total_karma"] == 10

    def test_unknown_activity_is_422(self, client, user_token):
        resp = client.post(
            "/api/karma/activities",
            json={"activity_type": "BOGUS"},
            headers=auth(user_token),
        )
        assert resp.status_code == 422
        assert "Unknown activity type" in resp.json()["detail"]

    @pytest.mark.parametrize(
        "kind",
        ["RECEIVE_UPVOTE", "RECEIVE_COMMENT", "RECEIVE_DOWNVOTE", "MODERATION_PENALTY"],
    )
    def test_server_booked_types_are_422(self, client, user_token, kind):
        resp = client.post(
            "/api/karma/activities",
            json={"activity_type": kind},
            headers=auth(user_token),
        )
        assert resp.status_code == 422
        assert "cannot be reported" in resp.json()["detail"]
        summary = client.get("/api/karma/me", headers=auth(user_token)).json()
        assert summary["total_karma"] == 0

    @pytest.mark.parametrize("kind", ["CREATE_POST", "CREATE_COMMENT", "CREATE_COMMUNITY"])
    def test_banned_member_cannot_earn_from_content(self, client, user_token, kind):
        for _ in range(4):
            client.post(
                "/api/moderation/check", json={"content": PROFANE}, headers=auth(user_token)
            )
        client.get("/api/notifications/me", headers=auth(user_token))

        resp = client.post(
            "/api/karma/activities",
            json={"activity_type": kind},
            headers=auth(user_token),
        )
        assert resp.status_code == 403
        summary = client.get("/api/karma/me", headers=auth(user_token)).json()
        assert summary["total_karma"] == -80
        history = client.get(
            "/api/karma/me/activities", headers=auth(user_token)
        ).json()["activities"]
        assert all(a["activity_type"] == "MODERATION_PENALTY" for a in history)
        notes = client.get("/api/notifications/me", headers=auth(user_token)).json()
        assert [n["title"] for n in notes["notifications"]] == ["Account Banned"]

    def test_banned_member_can_still_upvote(self, client, user_token):
        for _ in range(4):
            client.post(
                "/api/moderation/check", json={"content": PROFANE}, headers=auth(user_token)
            )
        resp = client.post(
            "/api/karma/activities",
            json={"activity_type": "GIVE_UPVOTE"},
            headers=auth(user_token),
        )
        assert resp.status_code == 201

    def test_summary_and_history(self, client, user_token):
        for kind in ("CREATE_POST", "GIVE_UPVOTE"):
            client.post(
                "/api/karma/activities",
                json={"activity_type": kind},
                headers=auth(user_token),
            )

        summary = client.get("/api/karma/me", headers=auth(user_token)).json()
        assert summary["total_karma"] == 11
        assert summary["rank"] == "Intern"
        assert summary["breakdown"] == {
            "post_points": 10, "comment_points": 0, "vote_points": 1,
        }

        history = client.get(
            "/api/karma/me/activities", params={"limit": 1}, headers=auth(user_token)
        ).json()["activities"]
        assert len(history) == 1
        assert history[0]["activity_type"] == "GIVE_UPVOTE"

    def test_rank_table(self, client):
        ranks = client.get("/api/karma/ranks").json()["ranks"]
        assert ranks[0] == {
            "label": "Probation", "min": None, "max": 0, "color": "text-slate-500",
        }
        assert ranks[-1]["label"] == "Chief of Medicine"
        assert ranks[-1]["max"] is None

    def test_leaderboard(self, client):
        for sub, kind in (("a", "CREATE_POST"), ("b", "CREATE_COMMUNITY"), ("c", "GIVE_UPVOTE"), ("d", "JOIN_COMMUNITY")):
            client.post(
                "/api/karma/activities",
                json={"activity_type": kind},
                headers=auth(make_token(sub=sub, username=f"Dr. {sub.upper()}")),
            )

        entries = client.get("/api/leaderboard").json()["entries"]
        assert [e["id"] for e in entries[:2]] == ["b", "a"]
        assert entries[0]["position"] == 1
        assert entries[0]["badge"] == "\U0001f947"
        assert entries[0]["display_name"] == "Dr. B"
        assert entries[3]["badge"] is None

    def test_leaderboard_limit_validated(self, client):
        assert client.get("/api/leaderboard", params={"limit": 0}).status_code == 422


# ===========================================================================
# Moderation
# ===========================================================================
class TestModerationRoutes:
    def test_clean_content_allowed(self, client, user_token):
        resp = client.post(
            "/api/moderation/check",
            json={"content": "Interesting ECG from the night shift"},
            headers=auth(user_token),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["allowed"] is True
        assert body["banned"] is False
        assert body["offenses"]["count"] == 0

    def test_profane_content_penalised(self, client, user_token):
        resp = client.post(
            "/api/moderation/check", json={"content": PROFANE}, headers=auth(user_token)
        )
        body = resp.json()
        assert body["allowed"] is False
        assert body["offenses"]["count"] == 1
        assert body["offenses"]["warnings_remaining"] == 2
        assert body["total_karma"] == -20

    def test_blank_content_is_422(self, client, user_token):
        resp = client.post(
            "/api/moderation/check", json={"content": "   "}, headers=auth(user_token)
        )
        assert resp.status_code == 422

    def test_ban_then_admin_reset(self, client, user_token, admin_token):
        for _ in range(4):
            client.post(
                "/api/moderation/check", json={"content": PROFANE}, headers=auth(user_token)
            )
        state = client.get("/api/moderation/me", headers=auth(user_token)).json()
        assert state["is_banned"] is True
        assert state["status"] == "banned"

        resp = client.post(
            "/api/admin/moderation/user-1/reset",
            json={"reason": "appeal granted"},
            headers=auth(admin_token),
        )
        assert resp.status_code == 200
        assert resp.json()["count"] == 0
        assert resp.json()["is_banned"] is False

        audit = client.get("/api/admin/audit", headers=auth(admin_token)).json()["entries"]
        assert audit[0]["action_type"] == "RESET_OFFENSES"
        assert audit[0]["actor_id"] == "admin-1"
        assert audit[0]["reason"] == "appeal granted"

    def test_reset_without_body(self, client, admin_token):
        resp = client.post("/api/admin/moderation/someone/reset", headers=auth(admin_token))
        assert resp.status_code == 200


# ===========================================================================
# Notifications
# ===========================================================================
class TestNotificationRoutes:
    def test_drains_pending(self, client, user_token):
        client.post(
            "/api/karma/activities",
            json={"activity_type": "CREATE_POST"},
            headers=auth(user_token),
        )
        notes = client.get("/api/notifications/me", headers=auth(user_token)).json()
        assert [n["title"] for n in notes["notifications"]] == ["+10 Karma!"]

        again = client.get("/api/notifications/me", headers=auth(user_token)).json()
        assert again["notifications"] == []


# ===========================================================================
# Verification
# ===========================================================================
def _verification_service() -> VerificationService:
    def handle(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url.startswith("https://board.test/ca"):
            return httpx.Response(200, json={"status": "active"})
        if url.startswith("https://npi.test/api/"):
            return httpx.Response(200, json={"result_count": 1})
        return httpx.Response(200, json={"confidence": 0.95, "data": {}})

    settings = VerificationSettings(
        npi_api_url="https://npi.test/api/",
        document_endpoint="https://ocr.test/verify-document",
        license_boards={"CA": "https://board.test/ca"},
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(handle))
    return VerificationService(settings, client=client)


class TestVerificationRoutes:
    FORM = {
        "license_number": "A12345",
        "state": "CA",
        "institution": "UCSF Medical Center",
        "npi": "1234567893",
    }

    @pytest.fixture(autouse=True)
    def _mock_service(self, client):
        app.dependency_overrides[deps.get_verification_service] = _verification_service

    def _files(self, content: bytes = b"%PDF-1.4 scan"):
        return {"document": ("license.pdf", content, "application/pdf")}

    def test_successful_verification(self, client, user_token):
        resp = client.post(
            "/api/verification",
            data=self.FORM,
            files=self._files(),
            headers=auth(user_token),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["is_valid"] is True
        assert body["confidence"] == 1.0
        assert body["profile_verified"] is True

        notes = client.get("/api/notifications/me", headers=auth(user_token)).json()
        assert "Verification complete" in [n["title"] for n in notes["notifications"]]

    def test_blank_field_is_422(self, client, user_token):
        resp = client.post(
            "/api/verification",
            data={**self.FORM, "institution": "  "},
            files=self._files(),
            headers=auth(user_token),
        )
        assert resp.status_code == 422
        assert "institution" in resp.json()["detail"]

    def test_missing_document_is_422(self, client, user_token):
        resp = client.post("/api/verification", data=self.FORM, headers=auth(user_token))
        assert resp.status_code == 422

    def test_requires_auth(self, client):
        resp = client.post("/api/verification", data=self.FORM, files=self._files())
        assert resp.status_code == 401
