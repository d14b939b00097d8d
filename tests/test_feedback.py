"""
Tests for votes, reactions and reports on community content.
"""
import pytest

from harbor.app.models import db, Post, Comment, Report


@pytest.fixture
def post(app, user):
    post = Post(user_id=user.id, title="Coping with stress", content="What helps you?", tags=[])
    db.session.add(post)
    db.session.commit()
    return post


@pytest.fixture
def comment(app, post, other_user):
    comment = Comment(post_id=post.id, user_id=other_user.id, content="Walking helps")
    db.session.add(comment)
    db.session.commit()
    return comment


class TestVotes:

    def test_create_switch_and_toggle(self, client, post, other_headers):
        created = client.post("/api/community/votes", json={"post_id": post.id, "vote_type": "upvote"},
                              headers=other_headers)
        assert created.status_code == 201
        assert created.get_json()["upvotes"] == 1

        switched = client.post("/api/community/votes", json={"post_id": post.id, "vote_type": "downvote"},
                               headers=other_headers).get_json()
        assert switched["action"] == "updated"
        assert switched["previous_vote"] == "upvote"
        assert (switched["upvotes"], switched["downvotes"]) == (0, 1)

        removed = client.post("/api/community/votes", json={"post_id": post.id, "vote_type": "downvote"},
                              headers=other_headers).get_json()
        assert removed["action"] == "removed"
        assert removed["downvotes"] == 0

    def test_exactly_one_target(self, client, post, comment, auth_headers):
        both = client.post("/api/community/votes",
                           json={"post_id": post.id, "comment_id": comment.id, "vote_type": "upvote"},
                           headers=auth_headers)
        assert both.status_code == 400
        neither = client.post("/api/community/votes", json={"vote_type": "upvote"}, headers=auth_headers)
        assert neither.status_code == 400

    def test_invalid_type_and_missing_target(self, client, auth_headers):
        assert client.post("/api/community/votes", json={"post_id": "x", "vote_type": "meh"},
                           headers=auth_headers).status_code == 400
        assert client.post("/api/community/votes", json={"post_id": "missing", "vote_type": "upvote"},
                           headers=auth_headers).status_code == 404

    def test_comment_vote_and_delete(self, client, comment, auth_headers):
        client.post("/api/community/votes", json={"comment_id": comment.id, "vote_type": "upvote"},
                    headers=auth_headers)
        assert db.session.get(Comment, comment.id).upvotes == 1

        response = client.delete("/api/community/votes", json={"comment_id": comment.id}, headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json()["upvotes"] == 0

        again = client.delete("/api/community/votes", json={"comment_id": comment.id}, headers=auth_headers)
        assert again.status_code == 404
        assert again.get_json()["error"] == "Vote not found"

    def test_requires_auth(self, client, post):
        assert client.post("/api/community/votes",
                           json={"post_id": post.id, "vote_type": "upvote"}).status_code == 401


class TestReactions:

    def test_reaction_lifecycle(self, client, post, auth_headers, other_headers):
        created = client.post("/api/community/reactions", json={"post_id": post.id, "reaction_type": "care"},
                              headers=auth_headers)
        assert created.status_code == 201
        client.post("/api/community/reactions", json={"post_id": post.id, "reaction_type": "care"},
                    headers=other_headers)

        updated = client.post("/api/community/reactions", json={"post_id": post.id, "reaction_type": "hugs"},
                              headers=auth_headers).get_json()
        assert updated["action"] == "updated"
        assert updated["previous_reaction"] == "care"

        summary = client.get(f"/api/community/reactions?post_id={post.id}", headers=auth_headers).get_json()
        assert summary["counts"] == {"care": 1, "hugs": 1}
        assert [r["reaction_type"] for r in summary["reactions"]] == ["hugs"]

        removed = client.post("/api/community/reactions", json={"post_id": post.id, "reaction_type": None},
                              headers=auth_headers).get_json()
        assert removed["action"] == "removed"

    def test_invalid_reaction(self, client, post, auth_headers):
        response = client.post("/api/community/reactions", json={"post_id": post.id, "reaction_type": "angry"},
                               headers=auth_headers)
        assert response.status_code == 400

    def test_delete_missing(self, client, post, auth_headers):
        response = client.delete(f"/api/community/reactions?post_id={post.id}", headers=auth_headers)
        assert response.status_code == 404


class TestReports:

    def test_report_flags_and_rejects_duplicates(self, client, post, other_headers):
        payload = {"post_id": post.id, "reason": "self_harm", "details": "worrying"}
        response = client.post("/api/community/reports", json=payload, headers=other_headers)
        assert response.status_code == 201
        body = response.get_json()
        assert body["message"] == "Report submitted successfully"
        assert db.session.get(Report, body["report_id"]).status == "pending"
        assert db.session.get(Post, post.id).is_flagged is True

        duplicate = client.post("/api/community/reports", json=payload, headers=other_headers)
        assert duplicate.status_code == 409

    def test_spam_does_not_flag(self, client, post, other_headers):
        client.post("/api/community/reports", json={"post_id": post.id, "reason": "spam"}, headers=other_headers)
        assert db.session.get(Post, post.id).is_flagged is False

    def test_invalid_reason(self, client, post, other_headers):
        response = client.post("/api/community/reports", json={"post_id": post.id, "reason": "boring"},
                               headers=other_headers)
        assert response.status_code == 400

    def test_admin_listing(self, client, post, comment, auth_headers, admin_headers):
        client.post("/api/community/reports", json={"post_id": post.id, "reason": "spam"}, headers=auth_headers)
        client.post("/api/community/reports", json={"comment_id": comment.id, "reason": "harassment"},
                    headers=auth_headers)

        assert client.get("/api/community/reports", headers=auth_headers).status_code == 403

        listing = client.get("/api/community/reports", headers=admin_headers).get_json()
        assert listing["total_count"] == 2
        filtered = client.get("/api/community/reports?reason=harassment", headers=admin_headers).get_json()
        assert [r["comment_id"] for r in filtered["reports"]] == [comment.id]
