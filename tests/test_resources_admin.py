"""
Tests for resource search and the admin content endpoints.
"""
from harbor.app.api.resources import filter_resources
from harbor.app.models import db, AIPrompt, Greeting
from harbor.app.utils.llm_service import llm_service


class TestResourceFiltering:

    def test_drops_placeholders_and_211(self):
        items = [
            {"name": "Denver Anxiety Clinic", "address": "100 Main St, Denver, CO", "type": "clinic"},
            {"name": "Help", "address": "100 Main St, Denver, CO"},
            {"name": "Colorado 211 Directory", "address": "1 State Plaza, Denver, CO"},
            {"name": "Boulder Peer Support", "address": "short"},
        ]
        resources = filter_resources(items, None)
        assert [r["name"] for r in resources] == ["Denver Anxiety Clinic"]
        assert resources[0]["resource_type"] == "clinic"
        assert resources[0]["verified"] is False

    def test_location_filter(self):
        items = [
            {"name": "Denver Anxiety Clinic", "address": "100 Main St, Denver, CO"},
            {"name": "Austin Anxiety Clinic", "address": "200 Congress Ave, Austin, TX"},
        ]
        assert [r["name"] for r in filter_resources(items, "denver")] == ["Denver Anxiety Clinic"]


class TestResourceSearch:

    def test_query_required(self, client):
        assert client.post("/api/resources/search", json={}).status_code == 400

    def test_search(self, client, monkeypatch):
        monkeypatch.setattr(llm_service, "search_resources", lambda query, location=None: "raw results")
        monkeypatch.setattr(llm_service, "format_resources", lambda raw, location=None: [
            {"name": "Denver Food Bank", "address": "500 Food Way, Denver, CO", "phone": "555-0100"}
        ])
        response = client.post("/api/resources/search", json={"query": "food", "location": "Denver"})
        assert response.status_code == 200
        data = response.get_json()
        assert data["location"] == "Denver"
        assert data["resources"][0]["phone"] == "555-0100"

    def test_search_without_api_key_fails(self, client):
        response = client.post("/api/resources/search", json={"query": "food"})
        assert response.status_code == 500


class TestAdminAccess:

    def test_non_admin_forbidden(self, client, auth_headers):
        assert client.get("/api/admin/ai-prompts", headers=auth_headers).status_code == 403

    def test_anonymous_unauthorized(self, client):
        assert client.get("/api/admin/greetings").status_code == 401


class TestAdminPrompts:

    def test_invalid_type(self, client, admin_headers):
        response = client.get("/api/admin/ai-prompts?type=bogus", headers=admin_headers)
        assert response.status_code == 400

    def test_missing_prompt_is_null(self, client, admin_headers):
        response = client.get("/api/admin/ai-prompts?type=triage", headers=admin_headers)
        assert response.get_json() == {"prompt": None}

    def test_create_then_update(self, client, admin_headers):
        payload = {"type": "triage", "content": "v1", "functions": [{"name": "trigger_specialist_handoff"}]}
        created = client.post("/api/admin/ai-prompts", json=payload, headers=admin_headers).get_json()
        assert created["action"] == "created"
        assert created["prompt"]["merge_with_universal_protocols"] is True

        payload.update(content="v2", mergeWithUniversalProtocols=False)
        updated = client.post("/api/admin/ai-prompts", json=payload, headers=admin_headers).get_json()
        assert updated["action"] == "updated"
        assert AIPrompt.query.filter_by(prompt_type="triage").count() == 1
        assert AIPrompt.active("triage").content == "v2"
        assert AIPrompt.active("triage").merge_with_universal_protocols is False


class TestAdminGreetings:

    def _create(self, client, headers, **overrides):
        payload = {"greeting_type": "triage", "language_code": "en", "greeting_content": " Hello "}
        payload.update(overrides)
        return client.post("/api/admin/greetings", json=payload, headers=headers)

    def test_create_trims_and_rejects_duplicates(self, client, admin_headers):
        response = self._create(client, admin_headers)
        assert response.status_code == 201
        assert response.get_json()["greeting"]["greeting_content"] == "Hello"
        assert self._create(client, admin_headers).status_code == 409

    def test_create_requires_fields(self, client, admin_headers):
        assert self._create(client, admin_headers, greeting_content="  ").status_code == 400

    def test_update_conflict_and_missing(self, client, admin_headers):
        self._create(client, admin_headers)
        spanish = self._create(client, admin_headers, language_code="es").get_json()["greeting"]

        conflict = client.put("/api/admin/greetings", json={"id": spanish["id"], "language_code": "en"},
                              headers=admin_headers)
        assert conflict.status_code == 409

        missing = client.put("/api/admin/greetings", json={"id": "nope", "greeting_content": "x"},
                             headers=admin_headers)
        assert missing.status_code == 404

        ok = client.put("/api/admin/greetings", json={"id": spanish["id"], "greeting_content": "Hola"},
                        headers=admin_headers)
        assert ok.status_code == 200
        assert db.session.get(Greeting, spanish["id"]).greeting_content == "Hola"

    def test_list_and_delete(self, client, admin_headers):
        greeting_id = self._create(client, admin_headers).get_json()["greeting"]["id"]
        listed = client.get("/api/admin/greetings", headers=admin_headers).get_json()["greetings"]
        assert [g["id"] for g in listed] == [greeting_id]

        assert client.delete(f"/api/admin/greetings?id={greeting_id}", headers=admin_headers).status_code == 200
        assert db.session.get(Greeting, greeting_id) is None
        assert client.delete(f"/api/admin/greetings?id={greeting_id}", headers=admin_headers).status_code == 404

    def test_is_active_accepts_string_booleans(self, client, admin_headers):
        created = self._create(client, admin_headers, is_active="false")
        assert created.status_code == 201
        greeting_id = created.get_json()["greeting"]["id"]
        assert db.session.get(Greeting, greeting_id).is_active is False

        # A second inactive greeting for the same key is allowed
        assert self._create(client, admin_headers, is_active="false").status_code == 201

        activated = client.put("/api/admin/greetings", json={"id": greeting_id, "is_active": "true"},
                               headers=admin_headers)
        assert activated.status_code == 200
        assert db.session.get(Greeting, greeting_id).is_active is True

        deactivated = client.put("/api/admin/greetings", json={"id": greeting_id, "is_active": "false"},
                                 headers=admin_headers)
        assert deactivated.status_code == 200
        assert db.session.get(Greeting, greeting_id).is_active is False

    def test_is_active_rejects_non_booleans(self, client, admin_headers):
        response = self._create(client, admin_headers, is_active="maybe")
        assert response.status_code == 400
        assert "is_active" in response.get_json()["details"]
        assert Greeting.query.count() == 0

    def test_list_failure_reports_details(self, client, admin_headers, monkeypatch):
        self._create(client, admin_headers)

        def broken_to_dict(self):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(Greeting, "to_dict", broken_to_dict)
        response = client.get("/api/admin/greetings", headers=admin_headers)
        assert response.status_code == 500
        assert response.get_json() == {"error": "Failed to fetch greetings", "details": "database unavailable"}
