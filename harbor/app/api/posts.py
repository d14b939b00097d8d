"""
Community posts and comments.
"""
import logging
from flask import Blueprint, request, jsonify
from marshmallow import Schema, fields, validate, ValidationError, EXCLUDE
from sqlalchemy import or_

from ..models import db, Post, Comment, Circle, CircleMembership, UserProfile
from ..utils.auth_adapter import auth_required, auth_optional, current_user_id

posts_bp = Blueprint('posts', __name__)
logger = logging.getLogger(__name__)

POST_TYPES = ['text', 'audio', 'question']
MAX_POSTS_PAGE = 50
MAX_COMMENTS_PAGE = 100
REPLY_PREVIEW_COUNT = 5

POST_SORT_ORDERS = {
    'new': Post.created_at.desc(),
    'hot': Post.created_at.desc(),
    'top': Post.upvotes.desc(),
    'controversial': Post.comment_count.desc(),
}


class PostSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    title = fields.String(required=True, validate=validate.Length(min=1, max=300))
    content = fields.String(required=True, validate=validate.Length(min=1))
    post_type = fields.String(load_default='text', validate=validate.OneOf(POST_TYPES))
    circle_id = fields.String(load_default=None, allow_none=True)
    audio_url = fields.String(load_default=None, allow_none=True)
    audio_duration = fields.Float(load_default=None, allow_none=True)
    tags = fields.List(fields.String(), load_default=list)


class CommentSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    post_id = fields.String(required=True)
    content = fields.String(required=True, validate=validate.Length(min=1))
    parent_id = fields.String(load_default=None, allow_none=True)


def _int_arg(name, default, maximum):
    value = int(request.args.get(name, default))
    return min(maximum, max(1, value))


def _require_display_name(user_id, action):
    """Profile of a user allowed to publish, or an error response."""
    profile = UserProfile.for_user(user_id)
    if profile is None or not profile.has_display_name:
        return None, (jsonify({"error": f"User must have a display name set before {action}"}), 400)
    return profile, None


def _live_post(post_id):
    post = db.session.get(Post, post_id)
    if post is None or post.is_deleted:
        return None
    return post


# --- Posts ---
@posts_bp.route('/community/posts', methods=['GET'])
@auth_optional
def list_posts():
    """Community feed.

    Query params:
        page, limit: Pagination (limit at most 50).
        sort_by: new, hot, top or controversial.
        post_type: text, audio, question or all.
        tags: Comma separated; posts sharing any tag match.
        user_id: Only posts by this author.
        circle_id: Only posts in this circle.
    """
    try:
        page = _int_arg('page', 1, 10 ** 6)
        limit = _int_arg('limit', 20, MAX_POSTS_PAGE)
    except ValueError:
        return jsonify({"error": "page and limit must be integers"}), 400

    user_id = current_user_id()
    query = Post.query.filter(Post.is_deleted.is_(False))

    circle_id = request.args.get('circle_id')
    if circle_id:
        query = query.filter(Post.circle_id == circle_id)
    elif user_id:
        member_circles = db.session.query(CircleMembership.circle_id).filter(CircleMembership.user_id == user_id)
        query = query.filter(or_(Post.circle_id.is_(None), Post.circle_id.in_(member_circles)))
    else:
        query = query.filter(Post.circle_id.is_(None))

    post_type = request.args.get('post_type')
    if post_type and post_type != 'all':
        query = query.filter(Post.post_type == post_type)

    author_id = request.args.get('user_id')
    if author_id:
        query = query.filter(Post.user_id == author_id)

    query = query.order_by(POST_SORT_ORDERS.get(request.args.get('sort_by', 'new'), POST_SORT_ORDERS['new']))
    offset = (page - 1) * limit

    tags = [t.strip() for t in (request.args.get('tags') or '').split(',') if t.strip()]
    if tags:
        # JSON arrays are not portably queryable, so tag overlap is checked here
        matching = [post for post in query.all() if post.has_any_tag(tags)]
        total_count = len(matching)
        posts = matching[offset:offset + limit]
    else:
        total_count = query.count()
        posts = query.offset(offset).limit(limit).all()

    return jsonify({
        "posts": [p.to_dict() for p in posts],
        "total_count": total_count,
        "page": page,
        "limit": limit,
        "has_next_page": offset + limit < total_count
    })


@posts_bp.route('/community/posts', methods=['POST'])
@auth_required
def create_post():
    try:
        data = PostSchema().load(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.messages}), 400

    title = data['title'].strip()
    content = data['content'].strip()
    if not title or not content:
        return jsonify({"error": "Title and content are required"}), 400

    user_id = current_user_id()
    circle = None
    if data['circle_id']:
        circle = db.session.get(Circle, data['circle_id'])
        if circle is None:
            return jsonify({"error": "Circle not found"}), 404
        if circle.membership_for(user_id) is None:
            return jsonify({"error": "You must be a member of this circle to post"}), 403

    profile, error = _require_display_name(user_id, 'posting')
    if error:
        return error

    try:
        post = Post(
            user_id=user_id,
            circle_id=circle.id if circle else None,
            title=title,
            content=content,
            post_type=data['post_type'],
            audio_url=data['audio_url'],
            audio_duration=data['audio_duration'],
            tags=data['tags'],
            upvotes=0,
            downvotes=0,
            comment_count=0,
            view_count=0
        )
        db.session.add(post)
        profile.bump_stat('post_count', 1)
        if circle:
            circle.adjust('post_count', 1)
        db.session.commit()

        logger.info(f"User {user_id} created post {post.id}")
        return jsonify({"message": "Post created successfully", "post": post.to_dict()}), 201
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating post: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to create post", "details": str(e)}), 500


@posts_bp.route('/community/posts/<post_id>', methods=['GET'])
@auth_optional
def get_post(post_id):
    post = _live_post(post_id)
    if post is None:
        return jsonify({"error": "Post not found"}), 404

    try:
        post.adjust('view_count', 1)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.warning(f"Failed to record view for post {post_id}: {str(e)}")

    comments = (Comment.query.filter_by(post_id=post.id, is_deleted=False)
                .order_by(Comment.created_at.asc()).all())
    return jsonify({"post": {**post.to_dict(), "comments": [c.to_dict() for c in comments]}})


@posts_bp.route('/community/posts/<post_id>', methods=['PUT'])
@auth_required
def update_post(post_id):
    post = _live_post(post_id)
    if post is None:
        return jsonify({"error": "Post not found"}), 404
    if post.user_id != current_user_id():
        return jsonify({"error": "You can only edit your own posts"}), 403

    data = request.get_json(silent=True) or {}
    if 'tags' in data and not isinstance(data['tags'], list):
        return jsonify({"error": "Tags must be an array"}), 400

    title = (data.get('title') or '').strip() if 'title' in data else post.title
    content = (data.get('content') or '').strip() if 'content' in data else post.content
    if not title or not content:
        return jsonify({"error": "Title and content cannot be empty"}), 400

    try:
        post.title = title
        post.content = content
        if 'tags' in data:
            post.tags = [str(tag) for tag in data['tags']]
        db.session.commit()
        return jsonify({"message": "Post updated successfully", "post": post.to_dict()})
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating post {post_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update post", "details": str(e)}), 500


@posts_bp.route('/community/posts/<post_id>', methods=['DELETE'])
@auth_required
def delete_post(post_id):
    """Soft delete a post owned by the caller."""
    post = _live_post(post_id)
    if post is None:
        return jsonify({"error": "Post not found"}), 404
    if post.user_id != current_user_id():
        return jsonify({"error": "You can only delete your own posts"}), 403

    data = request.get_json(silent=True) or {}
    try:
        post.is_deleted = True
        post.deleted_reason = data.get('reason') or 'User deleted'
        profile = UserProfile.for_user(post.user_id)
        if profile:
            profile.bump_stat('post_count', -1)
        if post.circle:
            post.circle.adjust('post_count', -1)
        db.session.commit()
        return jsonify({"message": "Post deleted successfully"})
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error deleting post {post_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to delete post", "details": str(e)}), 500


# --- Comments ---
@posts_bp.route('/community/comments', methods=['GET'])
@auth_optional
def list_comments():
    """Top-level comments of a post with reply previews, or replies to one comment."""
    post_id = request.args.get('post_id')
    if not post_id:
        return jsonify({"error": "post_id is required"}), 400
    try:
        limit = _int_arg('limit', 50, MAX_COMMENTS_PAGE)
    except ValueError:
        return jsonify({"error": "limit must be an integer"}), 400

    query = Comment.query.filter_by(post_id=post_id, is_deleted=False)
    parent_id = request.args.get('parent_id')
    if parent_id:
        query = query.filter(Comment.parent_id == parent_id)
    else:
        query = query.filter(Comment.parent_id.is_(None))

    total_count = query.count()
    comments = query.order_by(Comment.created_at.asc()).limit(limit).all()

    results = []
    for comment in comments:
        item = comment.to_dict()
        if not parent_id:
            replies = (Comment.query.filter_by(parent_id=comment.id, is_deleted=False)
                       .order_by(Comment.created_at.asc()).limit(REPLY_PREVIEW_COUNT).all())
            item["replies"] = [r.to_dict() for r in replies]
        results.append(item)

    return jsonify({"comments": results, "total_count": total_count})


@posts_bp.route('/community/comments', methods=['POST'])
@auth_required
def create_comment():
    try:
        data = CommentSchema().load(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.messages}), 400

    content = data['content'].strip()
    if not content:
        return jsonify({"error": "Content is required"}), 400

    post = _live_post(data['post_id'])
    if post is None:
        return jsonify({"error": "Post not found"}), 404

    if data['parent_id']:
        parent = db.session.get(Comment, data['parent_id'])
        if parent is None or parent.post_id != post.id or parent.is_deleted:
            return jsonify({"error": "Parent comment not found"}), 404

    user_id = current_user_id()
    profile, error = _require_display_name(user_id, 'commenting')
    if error:
        return error

    try:
        comment = Comment(
            post_id=post.id,
            user_id=user_id,
            parent_id=data['parent_id'],
            content=content,
            upvotes=0,
            downvotes=0
        )
        db.session.add(comment)
        post.adjust('comment_count', 1)
        profile.bump_stat('comment_count', 1)
        db.session.commit()
        return jsonify({"message": "Comment created successfully", "comment": comment.to_dict()}), 201
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating comment: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to create comment", "details": str(e)}), 500


def _live_comment(comment_id):
    comment = db.session.get(Comment, comment_id)
    if comment is None or comment.is_deleted:
        return None
    return comment


@posts_bp.route('/community/comments/<comment_id>', methods=['GET'])
@auth_optional
def get_comment(comment_id):
    comment = _live_comment(comment_id)
    if comment is None:
        return jsonify({"error": "Comment not found"}), 404
    return jsonify({"comment": comment.to_dict()})


@posts_bp.route('/community/comments/<comment_id>', methods=['PUT'])
@auth_required
def update_comment(comment_id):
    comment = _live_comment(comment_id)
    if comment is None:
        return jsonify({"error": "Comment not found"}), 404
    if comment.user_id != current_user_id():
        return jsonify({"error": "You can only edit your own comments"}), 403

    content = ((request.get_json(silent=True) or {}).get('content') or '').strip()
    if not content:
        return jsonify({"error": "Content is required"}), 400

    try:
        comment.content = content
        db.session.commit()
        return jsonify({"message": "Comment updated successfully", "comment": comment.to_dict()})
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating comment {comment_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update comment", "details": str(e)}), 500


@posts_bp.route('/community/comments/<comment_id>', methods=['DELETE'])
@auth_required
def delete_comment(comment_id):
    comment = _live_comment(comment_id)
    if comment is None:
        return jsonify({"error": "Comment not found"}), 404
    if comment.user_id != current_user_id():
        return jsonify({"error": "You can only delete your own comments"}), 403

    try:
        comment.is_deleted = True
        comment.deleted_reason = (request.get_json(silent=True) or {}).get('reason') or 'User deleted'
        if comment.post:
            comment.post.adjust('comment_count', -1)
        profile = UserProfile.for_user(comment.user_id)
        if profile:
            profile.bump_stat('comment_count', -1)
        db.session.commit()
        return jsonify({"message": "Comment deleted successfully"})
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error deleting comment {comment_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to delete comment", "details": str(e)}), 500
