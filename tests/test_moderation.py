"""
Tests for content moderation, crisis detection and the moderation endpoint.
"""
import pytest

from harbor.app.models import db, ModerationResult, ClinicalReviewQueue, CrisisDetection, UserSafetyTracking
from harbor.app.utils import moderation
from harbor.app.utils.llm_service import llm_service, LLMServiceError


class TestKeywordFlags:

    def test_flags_in_stable_order(self):
        flags = moderation.keyword_flags("I want to END MY LIFE tonight")
        assert flags == ["suicide_ideation", "crisis_escalation"]

    def test_clean_text(self):
        assert moderation.keyword_flags("Had a nice walk with my dog") == []
        assert moderation.keyword_flags(None) == []


class TestPriority:

    @pytest.mark.parametrize("flags, categories, expected", [
        (["suicide_ideation"], None, "immediate"),
        (["crisis_escalation", "self_harm"], None, "immediate"),
        (["self_harm"], None, "urgent"),
        (["eating_disorder"], None, "urgent"),
        ([], {"violence/graphic": True}, "urgent"),
        ([], {"violence": False, "harassment": True}, "standard"),
    ])
    def test_moderation_priority(self, flags, categories, expected):
        assert moderation.moderation_priority(flags, categories) == expected

    def test_crisis_severity(self):
        assert moderation.crisis_severity(["crisis_escalation"]) == "immediate"
        assert moderation.crisis_severity(["self_harm"]) == "high"
        assert moderation.crisis_severity(["eating_disorder"]) == "medium"


class TestAnalyzeContent:

    def test_vendor_unavailable_falls_back_to_keywords(self):
        result = moderation.analyze_content("I keep cutting myself")
        assert result["decision"] == "flagged"
        assert result["priority"] == "urgent"
        assert result["toxicity_score"] == moderation.CLEAN_TOXICITY
        assert result["moderation_details"]["vendor_available"] is False
        assert result["moderation_details"]["flag_source"] == "keywords"

    def test_vendor_flagged(self, monkeypatch):
        monkeypatch.setattr(llm_service, "moderate", lambda text: {
            "flagged": True, "categories": {"violence": True}, "category_scores": {"violence": 0.9}})
        monkeypatch.setattr(llm_service, "detect_mental_health_flags", lambda text: [])

        result = moderation.analyze_content("some hostile text")
        assert result["decision"] == "flagged"
        assert result["requires_review"] is True
        assert result["priority"] == "urgent"
        assert result["toxicity_score"] == moderation.FLAGGED_TOXICITY

    def test_ai_flags_used_without_keywords(self, monkeypatch):
        monkeypatch.setattr(llm_service, "detect_mental_health_flags", lambda text: ["suicide_ideation"])
        result = moderation.analyze_content("Nothing matters any more")
        assert result["mental_health_flags"] == ["suicide_ideation"]
        assert result["priority"] == "immediate"
        assert result["moderation_details"]["flag_source"] == "ai_analysis"

    def test_ai_failure_is_tolerated(self, monkeypatch):
        def boom(text):
            raise LLMServiceError("down")
        monkeypatch.setattr(llm_service, "detect_mental_health_flags", boom)

        result = moderation.analyze_content("Had a nice walk with my dog")
        assert result["decision"] == "approved"
        assert result["priority"] == "standard"
        assert result["moderation_details"]["flag_source"] is None


class TestCrisisDetection:

    def test_tracking_escalates(self, app, user):
        moderation.record_crisis_detection(user.id, "post", "p1", ["self_harm"], "text")
        db.session.commit()
        tracking = UserSafetyTracking.query.filter_by(user_id=user.id).one()
        assert (tracking.risk_level, tracking.flag_count) == ("high", 1)

        moderation.record_crisis_detection(user.id, "post", "p2", ["suicide_ideation"], "text")
        db.session.commit()
        tracking = UserSafetyTracking.query.filter_by(user_id=user.id).one()
        assert (tracking.risk_level, tracking.flag_count) == ("crisis", 2)

    def test_anonymous_detection(self, app):
        detection = moderation.record_crisis_detection(None, "chat", None, ["crisis_escalation"], "x" * 900)
        db.session.commit()
        assert len(detection.content_excerpt) == 500
        assert UserSafetyTracking.query.count() == 0


class TestModerationEndpoint:

    def test_crisis_content_queued_for_review(self, client, user, auth_headers):
        response = client.post("/api/community/moderation", headers=auth_headers, json={
            "content": "I want to end my life tonight", "content_type": "post", "content_id": "post-1"})
        assert response.status_code == 200
        body = response.get_json()
        assert body["decision"] == "flagged"
        assert body["priority"] == "immediate"

        result = ModerationResult.query.one()
        queued = ClinicalReviewQueue.query.one()
        assert queued.moderation_result_id == result.id
        assert queued.priority == "immediate"
        assert CrisisDetection.query.filter_by(user_id=user.id).count() == 1

    def test_urgent_content_not_queued(self, client, auth_headers):
        client.post("/api/community/moderation", headers=auth_headers, json={
            "content": "I havent eaten in days", "content_type": "comment", "content_id": "c-1"})
        assert ModerationResult.query.one().priority == "urgent"
        assert ClinicalReviewQueue.query.count() == 0
        assert CrisisDetection.query.count() == 0

    def test_clean_content_approved(self, client, auth_headers):
        body = client.post("/api/community/moderation", headers=auth_headers, json={
            "content": "Had a nice walk with my dog", "content_type": "post", "content_id": "p"}).get_json()
        assert body["decision"] == "approved"
        assert body["requires_review"] is False

    def test_validation(self, client, auth_headers):
        response = client.post("/api/community/moderation", headers=auth_headers,
                               json={"content": "hi", "content_type": "video", "content_id": "x"})
        assert response.status_code == 400
        assert "content_type" in response.get_json()["details"]

    def test_requires_auth(self, client):
        assert client.post("/api/community/moderation", json={}).status_code == 401
