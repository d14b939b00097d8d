"""
Tests for community posts and comments.
"""
import pytest

from harbor.app.models import db, Post, Comment, Circle, CircleMembership, UserProfile


def _post(client, headers, **overrides):
    payload = {"title": " First post ", "content": " Hello everyone ", "post_type": "text", "tags": ["intro"]}
    payload.update(overrides)
    return client.post("/api/community/posts", json=payload, headers=headers)


@pytest.fixture
def post(client, user, auth_headers):
    post_id = _post(client, auth_headers).get_json()["post"]["id"]
    return db.session.get(Post, post_id)


@pytest.fixture
def circle(app, user):
    circle = Circle(name="grief", display_name="Grief", created_by=user.id, member_count=1, post_count=0)
    db.session.add(circle)
    db.session.flush()
    db.session.add(CircleMembership(circle_id=circle.id, user_id=user.id, role="admin"))
    db.session.commit()
    return circle


class TestCreatePost:

    def test_create_trims_and_counts(self, client, user, auth_headers):
        response = _post(client, auth_headers)
        assert response.status_code == 201
        post = response.get_json()["post"]
        assert post["title"] == "First post"
        assert post["content"] == "Hello everyone"
        assert post["author_display_name"] == "Alice"
        assert UserProfile.for_user(user.id).post_count == 1

    def test_display_name_required(self, client, make_user, headers_for):
        nameless = make_user("nameless")
        response = _post(client, headers_for(nameless))
        assert response.status_code == 400
        assert response.get_json()["error"] == "User must have a display name set before posting"

    def test_invalid_post_type(self, client, auth_headers):
        assert _post(client, auth_headers, post_type="poll").status_code == 400

    def test_circle_membership_required(self, client, circle, other_user, other_headers):
        response = _post(client, other_headers, circle_id=circle.id)
        assert response.status_code == 403
        assert response.get_json()["error"] == "You must be a member of this circle to post"

    def test_circle_post_count(self, client, circle, auth_headers):
        response = _post(client, auth_headers, circle_id=circle.id)
        assert response.status_code == 201
        assert response.get_json()["post"]["circle"]["name"] == "grief"
        assert db.session.get(Circle, circle.id).post_count == 1


class TestFeed:

    def test_anonymous_sees_general_posts_only(self, client, circle, auth_headers, other_headers):
        _post(client, auth_headers, title="General")
        _post(client, auth_headers, title="In circle", circle_id=circle.id)

        anonymous = client.get("/api/community/posts").get_json()
        assert [p["title"] for p in anonymous["posts"]] == ["General"]

        member = client.get("/api/community/posts", headers=auth_headers).get_json()
        assert member["total_count"] == 2

        outsider = client.get("/api/community/posts", headers=other_headers).get_json()
        assert outsider["total_count"] == 1

        in_circle = client.get(f"/api/community/posts?circle_id={circle.id}").get_json()
        assert [p["title"] for p in in_circle["posts"]] == ["In circle"]

    def test_pagination_and_tags(self, client, auth_headers):
        for i in range(3):
            _post(client, auth_headers, title=f"Post {i}", tags=["sleep"] if i % 2 == 0 else ["work"])

        page = client.get("/api/community/posts?limit=2").get_json()
        assert len(page["posts"]) == 2
        assert page["has_next_page"] is True

        tagged = client.get("/api/community/posts?tags=sleep,nothing").get_json()
        assert tagged["total_count"] == 2

    def test_deleted_posts_hidden(self, client, post, auth_headers):
        client.delete(f"/api/community/posts/{post.id}", headers=auth_headers)
        assert client.get("/api/community/posts").get_json()["total_count"] == 0


class TestSinglePost:

    def test_get_increments_views(self, client, post):
        data = client.get(f"/api/community/posts/{post.id}").get_json()["post"]
        assert data["view_count"] == 1
        assert data["comments"] == []
        assert client.get("/api/community/posts/missing").status_code == 404

    def test_update_author_only(self, client, post, auth_headers, other_headers):
        assert client.put(f"/api/community/posts/{post.id}", json={"title": "x"},
                          headers=other_headers).status_code == 403
        assert client.put(f"/api/community/posts/{post.id}", json={"tags": "notalist"},
                          headers=auth_headers).status_code == 400

        response = client.put(f"/api/community/posts/{post.id}", json={"title": "Edited", "tags": ["a"]},
                              headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json()["post"]["tags"] == ["a"]

    def test_soft_delete(self, client, user, post, auth_headers):
        response = client.delete(f"/api/community/posts/{post.id}", headers=auth_headers)
        assert response.status_code == 200
        post = db.session.get(Post, post.id)
        assert post.is_deleted is True
        assert post.deleted_reason == "User deleted"
        assert UserProfile.for_user(user.id).post_count == 0


class TestComments:

    def test_comment_and_reply(self, client, user, post, auth_headers, other_headers):
        response = client.post("/api/community/comments", json={"post_id": post.id, "content": "Welcome!"},
                               headers=other_headers)
        assert response.status_code == 201
        parent_id = response.get_json()["comment"]["id"]

        reply = client.post("/api/community/comments",
                            json={"post_id": post.id, "content": "Thanks", "parent_id": parent_id},
                            headers=auth_headers)
        assert reply.status_code == 201
        assert db.session.get(Post, post.id).comment_count == 2

        listed = client.get(f"/api/community/comments?post_id={post.id}").get_json()
        assert listed["total_count"] == 1
        assert listed["comments"][0]["replies"][0]["content"] == "Thanks"

        replies = client.get(f"/api/community/comments?post_id={post.id}&parent_id={parent_id}").get_json()
        assert [c["content"] for c in replies["comments"]] == ["Thanks"]

    def test_parent_must_belong_to_post(self, client, post, auth_headers):
        response = client.post("/api/community/comments",
                               json={"post_id": post.id, "content": "Hi", "parent_id": "missing"},
                               headers=auth_headers)
        assert response.status_code == 404
        assert response.get_json()["error"] == "Parent comment not found"

    def test_post_id_required(self, client):
        assert client.get("/api/community/comments").status_code == 400

    def test_edit_and_delete(self, client, user, post, auth_headers, other_headers):
        comment_id = client.post("/api/community/comments", json={"post_id": post.id, "content": "Hi"},
                                 headers=auth_headers).get_json()["comment"]["id"]

        assert client.put(f"/api/community/comments/{comment_id}", json={"content": "Nope"},
                          headers=other_headers).status_code == 403
        edited = client.put(f"/api/community/comments/{comment_id}", json={"content": "Hello"},
                            headers=auth_headers)
        assert edited.get_json()["comment"]["content"] == "Hello"

        assert client.delete(f"/api/community/comments/{comment_id}", headers=auth_headers).status_code == 200
        assert db.session.get(Comment, comment_id).is_deleted is True
        assert db.session.get(Post, post.id).comment_count == 0
        assert UserProfile.for_user(user.id).comment_count == 0
        assert client.get(f"/api/community/comments/{comment_id}").status_code == 404
