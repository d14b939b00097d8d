"""
Tests for visit tracking.
"""
import pytest

from harbor.app.models import db, UsageSession, UserUsageSummary
from harbor.app.api.usage import minutes_from_ms


class TestUsageSessions:

    def test_anonymous_visit(self, client):
        started = client.post("/api/usage/start-session", json={"anonymousId": "anon-1"},
                              headers={"User-Agent": "pytest-browser"})
        assert started.status_code == 200
        session_id = started.get_json()["sessionId"]

        ended = client.post("/api/usage/end-session",
                            json={"sessionId": session_id, "pageViews": 4, "durationMs": 150000})
        assert ended.status_code == 200

        session = db.session.get(UsageSession, session_id)
        assert session.user_agent == "pytest-browser"
        assert (session.page_views, session.duration_ms) == (4, 150000)

        summary = UserUsageSummary.query.filter_by(visitor_key="anon-1").one()
        assert summary.total_sessions == 1
        assert summary.total_page_views == 4
        assert summary.total_minutes == 3

    def test_signed_in_visits_accumulate(self, client, user, auth_headers):
        for _ in range(2):
            session_id = client.post("/api/usage/start-session", json={},
                                     headers=auth_headers).get_json()["sessionId"]
            client.post("/api/usage/end-session", json={"sessionId": session_id, "pageViews": 1,
                                                        "durationMs": 60000})

        summary = UserUsageSummary.query.filter_by(visitor_key=user.id).one()
        assert summary.user_id == user.id
        assert (summary.total_sessions, summary.total_page_views, summary.total_minutes) == (2, 2, 2)

    def test_duration_defaults_to_elapsed(self, client):
        session_id = client.post("/api/usage/start-session",
                                 json={"anonymousId": "anon-2"}).get_json()["sessionId"]
        body = client.post("/api/usage/end-session", json={"sessionId": session_id}).get_json()
        assert body["durationMs"] >= 0

    def test_identity_required(self, client):
        assert client.post("/api/usage/start-session", json={}).status_code == 400

    def test_unknown_session(self, client):
        assert client.post("/api/usage/end-session", json={}).status_code == 400
        assert client.post("/api/usage/end-session", json={"sessionId": "nope"}).status_code == 404
        session_id = client.post("/api/usage/start-session",
                                 json={"anonymousId": "anon-3"}).get_json()["sessionId"]
        assert client.post("/api/usage/end-session",
                           json={"sessionId": session_id, "pageViews": "many"}).status_code == 400

    @pytest.mark.parametrize("duration_ms,minutes", [
        (0, 0), (29999, 0), (30000, 1), (90000, 2), (150000, 3), (210000, 4),
    ])
    def test_half_minutes_round_up(self, duration_ms, minutes):
        assert minutes_from_ms(duration_ms) == minutes
