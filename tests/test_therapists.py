"""
Tests for therapist profiles, directory search and matching.
"""
import pytest

from harbor.app.models import db, TherapistProfile
from harbor.app.api.therapists import match_score


def _profile(**overrides):
    payload = {
        "fullName": "Dana Rivers",
        "title": "LCSW",
        "degrees": ["MSW"],
        "primaryLocation": "Portland, OR",
        "offersOnline": True,
        "genderIdentity": "female",
        "yearsOfExperience": 8,
        "languagesSpoken": ["English", "Spanish"],
        "mentalHealthSpecialties": ["Anxiety", "Grief"],
        "lgbtqAffirming": True,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def directory(app, make_user):
    """Three therapists, one of whom has not finished onboarding."""
    entries = [
        ("dana", dict(full_name="Dana Rivers", title="LCSW", primary_location="Portland, OR",
                      offers_online=True, gender_identity="female", years_of_experience=8,
                      languages_spoken=["English", "Spanish"], mental_health_specialties=["Anxiety", "Grief"],
                      lgbtq_affirming=True, completion_status="profile_complete")),
        ("sam", dict(full_name="Sam Okafor", title="PhD", primary_location="Seattle, WA",
                     offers_online=False, gender_identity="male", years_of_experience=3,
                     languages_spoken=["English"], mental_health_specialties=["Depression"],
                     lgbtq_affirming=False, completion_status="profile_complete")),
        ("lee", dict(full_name="Lee Park", title="LCSW", primary_location="Portland, OR",
                     languages_spoken=["Korean"], mental_health_specialties=["Anxiety"],
                     completion_status="incomplete")),
    ]
    for username, fields in entries:
        user = make_user(username)
        db.session.add(TherapistProfile(user_id=user.id, degrees=["MA"], **fields))
    db.session.commit()


class TestTherapistProfile:

    def test_create_then_update(self, client, user, auth_headers):
        created = client.post("/api/therapist/profile", json=_profile(fullName="  Dana Rivers "),
                              headers=auth_headers)
        assert created.status_code == 201
        profile = created.get_json()["profile"]
        assert profile["fullName"] == "Dana Rivers"
        assert profile["completionStatus"] == "profile_complete"

        updated = client.post("/api/therapist/profile", json=_profile(title="LMFT"), headers=auth_headers)
        assert updated.status_code == 200
        assert TherapistProfile.query.filter_by(user_id=user.id).one().title == "LMFT"

        fetched = client.get("/api/therapist/profile", headers=auth_headers).get_json()
        assert fetched["profile"]["title"] == "LMFT"

    def test_degrees_required(self, client, auth_headers):
        response = client.post("/api/therapist/profile", json=_profile(degrees=[]), headers=auth_headers)
        assert response.status_code == 400
        assert "degrees" in response.get_json()["details"]

    def test_negative_experience_rejected(self, client, auth_headers):
        response = client.post("/api/therapist/profile", json=_profile(yearsOfExperience=-1),
                               headers=auth_headers)
        assert response.status_code == 400

    def test_no_profile_yet(self, client, auth_headers):
        assert client.get("/api/therapist/profile", headers=auth_headers).get_json()["profile"] is None

    def test_fetch_failure_reports_details(self, client, auth_headers, monkeypatch):
        client.post("/api/therapist/profile", json=_profile(), headers=auth_headers)

        def broken_to_dict(self):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(TherapistProfile, "to_dict", broken_to_dict)
        response = client.get("/api/therapist/profile", headers=auth_headers)
        assert response.status_code == 500
        assert response.get_json()["details"] == "database unavailable"


class TestSearch:

    def _names(self, client, query=""):
        body = client.get(f"/api/therapists/search{query}").get_json()
        return sorted(t["fullName"] for t in body["therapists"])

    def test_browse_skips_incomplete(self, client, directory):
        assert self._names(client) == ["Dana Rivers", "Sam Okafor"]

    def test_filters(self, client, directory):
        assert self._names(client, "?q=portland") == ["Dana Rivers"]
        assert self._names(client, "?specialty=Anxiety") == ["Dana Rivers"]
        assert self._names(client, "?language=English&experience=5") == ["Dana Rivers"]
        assert self._names(client, "?title=PhD") == ["Sam Okafor"]
        assert self._names(client, "?gender=male&location=seattle") == ["Sam Okafor"]

    def test_invalid_experience(self, client, directory):
        assert client.get("/api/therapists/search?experience=lots").status_code == 400


class TestMatching:

    def test_match_score_weights(self):
        profile = TherapistProfile(mental_health_specialties=["Anxiety", "Grief"], languages_spoken=["Spanish"],
                                   primary_location="Portland, OR", offers_online=True, lgbtq_affirming=True)
        prefs = {"specialties": ["anxiety", "grief"], "language": "spanish", "location": "portland",
                 "lgbtq_affirming": True}
        assert match_score(profile, prefs) == 3 * 2 + 2 + 2 + 2
        assert match_score(profile, {"location": "Boston"}) == 1
        assert match_score(profile, {}) == 0

    def test_match_endpoint_ranks(self, client, directory):
        response = client.post("/api/therapists/match",
                               json={"specialties": ["Anxiety", "Depression"], "location": "Seattle"})
        matches = response.get_json()["matches"]
        assert [(m["fullName"], m["matchScore"]) for m in matches] == [("Sam Okafor", 5), ("Dana Rivers", 4)]
        assert "Lee Park" not in [m["fullName"] for m in matches]

    def test_no_preferences_no_matches(self, client, directory):
        assert client.post("/api/therapists/match", json={}).get_json()["matches"] == []
