"""
Tests for prompt loading, specialist handoffs and conversation storage.
"""
import pytest

from harbor.app.models import (db, AIPrompt, Greeting, Book, OpeningLine, Conversation, Message,
                               UserProfile, CrisisDetection, UserSafetyTracking)


@pytest.fixture
def prompts(app):
    db.session.add_all([
        AIPrompt(prompt_type="triage", content="You are the triage AI.", is_active=True),
        AIPrompt(prompt_type="universal", content="Universal rules.", is_active=True),
        AIPrompt(prompt_type="anxiety_specialist", content="You help with anxiety.", is_active=True),
    ])
    db.session.commit()


def _conversation(human_id=None):
    conversation = Conversation(human_id=human_id)
    db.session.add(conversation)
    db.session.commit()
    return conversation


class TestLoadPrompt:

    def test_type_required(self, client):
        assert client.get("/api/load-prompt").status_code == 400

    def test_missing_prompt(self, client, prompts):
        response = client.get("/api/load-prompt?type=dbt_specialist")
        assert response.status_code == 404
        assert "dbt_specialist" in response.get_json()["error"]

    def test_merges_universal_and_language(self, client, prompts):
        data = client.get("/api/load-prompt?type=triage&language=es").get_json()
        content = data["prompt"]["content"]
        assert content.startswith("You are the triage AI.")
        assert "--- UNIVERSAL SPECIALIST PROTOCOLS ---" in content
        assert "Universal rules." in content
        assert "Always communicate in Spanish" in content

    def test_merge_can_be_disabled(self, client, prompts):
        content = client.get("/api/load-prompt?type=triage&merge=false").get_json()["prompt"]["content"]
        assert "Universal rules." not in content
        assert "Always communicate in English" in content

    def test_memory_context_for_signed_in_user(self, client, prompts, user, auth_headers):
        profile = UserProfile.for_user(user.id)
        profile.ai_instructions_summary = "Prefers breathing exercises."
        db.session.commit()

        content = client.get("/api/load-prompt?type=triage", headers=auth_headers).get_json()["prompt"]["content"]
        assert "IMPORTANT USER MEMORY CONTEXT" in content
        assert "Prefers breathing exercises." in content

    def test_unknown_language_falls_back_to_english(self, client, prompts):
        content = client.get("/api/load-prompt?type=triage&language=xx").get_json()["prompt"]["content"]
        assert "Always communicate in English" in content


class TestSpecialistSessions:

    def test_start_requires_specialist(self, client):
        assert client.post("/api/start-session", json={}).status_code == 400

    def test_start_records_history_and_handoff(self, client, prompts):
        conversation = _conversation()
        response = client.post("/api/start-session", json={
            "specialistType": "anxiety_specialist",
            "conversationId": conversation.id,
            "contextSummary": "User reports panic attacks at work."
        })
        assert response.status_code == 200
        data = response.get_json()
        assert "=== NEW SPECIALIST SESSION ===" in data["prompt"]["content"]
        assert "IMPORTANT CONTEXT FROM TRIAGE AI" in data["prompt"]["content"]

        conversation = db.session.get(Conversation, conversation.id)
        assert conversation.current_specialist == "anxiety_specialist"
        assert conversation.specialist_history[-1]["context_summary"] == "User reports panic attacks at work."

    def test_start_without_prompt_fails(self, client, prompts):
        response = client.post("/api/start-session", json={"specialistType": "dbt_specialist"})
        assert response.status_code == 500
        assert "Failed to load specialist prompt" in response.get_json()["error"]

    def test_end_then_resume_uses_stored_summary(self, client, prompts):
        conversation = _conversation()
        client.post("/api/start-session", json={"specialistType": "anxiety_specialist",
                                                "conversationId": conversation.id,
                                                "contextSummary": "Work stress."})
        response = client.post("/api/end-session", json={
            "conversationId": conversation.id,
            "contextSummary": "Practised grounding; wants to continue.",
            "reason": "user_request"
        })
        assert response.status_code == 200

        conversation = db.session.get(Conversation, conversation.id)
        assert conversation.current_specialist is None
        assert "ended_at" in conversation.specialist_history[-1]
        system_message = conversation.messages.filter_by(role="system").first()
        assert system_message.routing_metadata["type"] == "session_end"

        response = client.post("/api/start-session", json={
            "specialistType": "anxiety_specialist",
            "conversationId": conversation.id,
            "contextSummary": "Resuming conversation from earlier"
        })
        assert response.get_json()["contextSummary"] == "Practised grounding; wants to continue."

    def test_end_requires_existing_conversation(self, client):
        assert client.post("/api/end-session", json={}).status_code == 400
        assert client.post("/api/end-session", json={"conversationId": "missing"}).status_code == 404


class TestMessages:

    def test_save_creates_conversation(self, client, user, auth_headers):
        response = client.post("/api/save-message", headers=auth_headers, json={
            "message": {"id": "m1", "role": "user", "text": "Hello", "isFinal": True}
        })
        assert response.status_code == 200
        data = response.get_json()
        assert data["originalMessageId"] == "m1"

        conversation = db.session.get(Conversation, data["conversationId"])
        assert conversation.human_id == user.id
        message = db.session.get(Message, data["messageId"])
        assert message.message_metadata["original_id"] == "m1"

    def test_save_rejects_bad_role(self, client):
        response = client.post("/api/save-message", json={"message": {"role": "robot", "text": "hi"}})
        assert response.status_code == 400

    def test_cannot_write_to_someone_elses_conversation(self, client, other_user, auth_headers):
        conversation = _conversation(human_id=other_user.id)
        response = client.post("/api/save-message", headers=auth_headers, json={
            "conversationId": conversation.id,
            "message": {"role": "user", "text": "Hi"}
        })
        assert response.status_code == 404

    def test_resume_and_list(self, client, user, other_user, auth_headers):
        mine = _conversation(human_id=user.id)
        db.session.add(Message(conversation_id=mine.id, role="user", content="First"))
        db.session.add(Message(conversation_id=mine.id, role="assistant", content="Reply"))
        theirs = _conversation(human_id=other_user.id)
        db.session.commit()

        data = client.post("/api/resume-conversation", json={"conversationId": mine.id},
                           headers=auth_headers).get_json()
        assert [m["content"] for m in data["messages"]] == ["First", "Reply"]
        assert data["currentSpecialist"] == "triage"

        denied = client.post("/api/resume-conversation", json={"conversationId": theirs.id},
                             headers=auth_headers)
        assert denied.status_code == 404

        listed = client.get("/api/conversations", headers=auth_headers).get_json()["conversations"]
        assert [c["id"] for c in listed] == [mine.id]
        assert listed[0]["message_count"] == 2

    def test_list_failure_reports_details(self, client, user, auth_headers, monkeypatch):
        _conversation(human_id=user.id)
        db.session.commit()

        def broken_to_dict(self):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(Conversation, "to_dict", broken_to_dict)
        response = client.get("/api/conversations", headers=auth_headers)
        assert response.status_code == 500
        assert response.get_json() == {"error": "Failed to fetch conversations",
                                       "details": "database unavailable"}


class TestGreetings:

    def test_type_required(self, client):
        response = client.get("/api/greeting-prompt")
        assert response.status_code == 400
        assert "resources, triage, crisis" in response.get_json()["details"]

    def test_returns_active_greeting(self, client):
        db.session.add(Greeting(greeting_type="triage", language_code="en",
                                greeting_content="Hi, I'm here to listen.", is_active=True))
        db.session.commit()
        data = client.get("/api/greeting-prompt?type=triage").get_json()
        assert data["greeting"]["greeting_content"] == "Hi, I'm here to listen."
        assert client.get("/api/greeting-prompt?type=triage&language=fr").status_code == 404

    def test_lookup_failure_reports_details(self, client, monkeypatch):
        class BrokenQuery:
            def __getattr__(self, name):
                raise RuntimeError("database unavailable")

        monkeypatch.setattr(Greeting, "query", BrokenQuery())
        response = client.get("/api/greeting-prompt?type=triage")
        assert response.status_code == 500
        assert response.get_json()["details"] == "database unavailable"


class TestNextQuestion:

    @pytest.fixture
    def book(self, app):
        book = Book(title="Feeling Good")
        db.session.add(book)
        db.session.flush()
        db.session.add_all([
            OpeningLine(id="q1", book_id=book.id, opening_line="What brought you here?", topic="intro"),
            OpeningLine(id="q2", book_id=book.id, opening_line="How did you sleep?", topic="sleep"),
        ])
        db.session.commit()
        return book

    def test_book_required(self, client):
        assert client.post("/api/next-question", json={}).status_code == 400

    def test_skips_asked_and_excluded_questions(self, client, book):
        conversation = _conversation()
        db.session.add(Message(conversation_id=conversation.id, role="assistant",
                               content="What brought you here?", question_id="q1"))
        db.session.commit()

        data = client.post("/api/next-question", json={"book": book.id}).get_json()
        assert data["questionId"] == "q2"
        assert data["bookTitle"] == "Feeling Good"
        assert data["category"] == "general"

        response = client.post("/api/next-question", json={"book": book.id, "exclude": ["q2"]})
        assert response.status_code == 404
        assert response.get_json()["bookTitle"] == "Feeling Good"

    def test_creates_conversation_for_signed_in_user(self, client, book, user, auth_headers):
        data = client.post("/api/next-question", json={"book": book.id}, headers=auth_headers).get_json()
        conversation = db.session.get(Conversation, data["conversationId"])
        assert conversation.human_id == user.id


def test_crisis_response_records_event(client, user, auth_headers):
    response = client.post("/api/crisis-response", headers=auth_headers,
                           json={"message": "I want to end my life tonight"})
    assert response.status_code == 200
    data = response.get_json()
    assert "988" in data["message"]
    assert "suicide_ideation" in data["flags"]

    detection = CrisisDetection.query.filter_by(user_id=user.id).one()
    assert detection.response_sent is True
    assert UserSafetyTracking.query.filter_by(user_id=user.id).one().risk_level == "crisis"
