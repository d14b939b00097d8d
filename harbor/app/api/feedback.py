"""
Community feedback on posts and comments: votes, reactions and reports.
"""
import logging
from flask import Blueprint, request, jsonify
from sqlalchemy import func

from ..models import db, Post, Comment, Vote, Reaction, Report
from ..utils.auth_adapter import auth_required, admin_required, current_user_id

feedback_bp = Blueprint('feedback', __name__)
logger = logging.getLogger(__name__)

VOTE_TYPES = ['upvote', 'downvote']
REACTION_TYPES = ['care', 'hugs', 'helpful', 'strength', 'relatable', 'thoughtful', 'growth', 'grateful']
REPORT_REASONS = ['spam', 'harassment', 'hate_speech', 'misinformation',
                  'inappropriate_content', 'self_harm', 'violence', 'other']
# Reports for these reasons flag the content right away
FLAGGING_REASONS = {'self_harm', 'violence', 'hate_speech'}
MAX_REPORTS_PAGE = 100

VOTE_COLUMNS = {'upvote': 'upvotes', 'downvote': 'downvotes'}


def _target_from(data):
    """Resolve exactly one of post_id / comment_id.

    Returns:
        Tuple of (filter kwargs, target object, error response).
    """
    post_id = data.get('post_id')
    comment_id = data.get('comment_id')
    if bool(post_id) == bool(comment_id):
        return None, None, (jsonify({"error": "Provide exactly one of post_id or comment_id"}), 400)

    if post_id:
        target = db.session.get(Post, post_id)
        if target is None or target.is_deleted:
            return None, None, (jsonify({"error": "Post not found"}), 404)
        return {"post_id": post_id, "comment_id": None}, target, None

    target = db.session.get(Comment, comment_id)
    if target is None or target.is_deleted:
        return None, None, (jsonify({"error": "Comment not found"}), 404)
    return {"post_id": None, "comment_id": comment_id}, target, None


def _counts(target):
    return {"upvotes": target.upvotes, "downvotes": target.downvotes}


# --- Votes ---
@feedback_bp.route('/community/votes', methods=['POST'])
@auth_required
def cast_vote():
    """Create, switch or toggle off the caller's vote on a post or comment."""
    data = request.get_json(silent=True) or {}
    vote_type = data.get('vote_type')
    if vote_type not in VOTE_TYPES:
        return jsonify({"error": f"vote_type must be one of: {', '.join(VOTE_TYPES)}"}), 400

    keys, target, error = _target_from(data)
    if error:
        return error

    user_id = current_user_id()
    try:
        existing = Vote.query.filter_by(user_id=user_id, **keys).first()
        if existing and existing.vote_type == vote_type:
            db.session.delete(existing)
            target.adjust(VOTE_COLUMNS[vote_type], -1)
            db.session.commit()
            return jsonify({"message": "Vote removed", "action": "removed", **_counts(target)})

        if existing:
            previous = existing.vote_type
            existing.vote_type = vote_type
            target.adjust(VOTE_COLUMNS[previous], -1)
            target.adjust(VOTE_COLUMNS[vote_type], 1)
            db.session.commit()
            return jsonify({
                "message": "Vote updated",
                "action": "updated",
                "previous_vote": previous,
                "vote": existing.to_dict(),
                **_counts(target)
            })

        vote = Vote(user_id=user_id, vote_type=vote_type, **keys)
        db.session.add(vote)
        target.adjust(VOTE_COLUMNS[vote_type], 1)
        db.session.commit()
        return jsonify({"message": "Vote created", "action": "created", "vote": vote.to_dict(),
                        **_counts(target)}), 201
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error recording vote: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to record vote", "details": str(e)}), 500


@feedback_bp.route('/community/votes', methods=['DELETE'])
@auth_required
def remove_vote():
    data = request.get_json(silent=True) or dict(request.args)
    keys, target, error = _target_from(data)
    if error:
        return error

    vote = Vote.query.filter_by(user_id=current_user_id(), **keys).first()
    if vote is None:
        return jsonify({"error": "Vote not found"}), 404

    try:
        target.adjust(VOTE_COLUMNS[vote.vote_type], -1)
        db.session.delete(vote)
        db.session.commit()
        return jsonify({"message": "Vote removed", **_counts(target)})
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error removing vote: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to remove vote", "details": str(e)}), 500


# --- Reactions ---
@feedback_bp.route('/community/reactions', methods=['GET'])
@auth_required
def get_reactions():
    """The caller's reaction and per-type counts for a post or comment."""
    keys, _, error = _target_from(request.args)
    if error:
        return error

    try:
        rows = (db.session.query(Reaction.reaction_type, func.count(Reaction.id))
                .filter_by(**keys).group_by(Reaction.reaction_type).all())
        mine = Reaction.query.filter_by(user_id=current_user_id(), **keys).all()
        return jsonify({
            "reactions": [r.to_dict() for r in mine],
            "counts": {reaction_type: count for reaction_type, count in rows}
        })
    except Exception as e:
        logger.error(f"Error fetching reactions: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to fetch reactions", "details": str(e)}), 500


@feedback_bp.route('/community/reactions', methods=['POST'])
@auth_required
def set_reaction():
    """Add, change or toggle off the caller's reaction; a null type removes it."""
    data = request.get_json(silent=True) or {}
    reaction_type = data.get('reaction_type')
    if reaction_type is not None and reaction_type not in REACTION_TYPES:
        return jsonify({"error": f"reaction_type must be one of: {', '.join(REACTION_TYPES)}"}), 400

    keys, _, error = _target_from(data)
    if error:
        return error

    user_id = current_user_id()
    try:
        existing = Reaction.query.filter_by(user_id=user_id, **keys).first()
        if reaction_type is None or (existing and existing.reaction_type == reaction_type):
            if existing is None:
                return jsonify({"message": "No reaction to remove", "action": "none"})
            db.session.delete(existing)
            db.session.commit()
            return jsonify({"message": "Reaction removed", "action": "removed"})

        if existing:
            previous = existing.reaction_type
            existing.reaction_type = reaction_type
            db.session.commit()
            return jsonify({"message": "Reaction updated", "action": "updated",
                            "previous_reaction": previous, "reaction": existing.to_dict()})

        reaction = Reaction(user_id=user_id, reaction_type=reaction_type, **keys)
        db.session.add(reaction)
        db.session.commit()
        return jsonify({"message": "Reaction added", "action": "created", "reaction": reaction.to_dict()}), 201
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error recording reaction: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to record reaction", "details": str(e)}), 500


@feedback_bp.route('/community/reactions', methods=['DELETE'])
@auth_required
def remove_reaction():
    data = request.get_json(silent=True) or dict(request.args)
    keys, _, error = _target_from(data)
    if error:
        return error

    reaction = Reaction.query.filter_by(user_id=current_user_id(), **keys).first()
    if reaction is None:
        return jsonify({"error": "Reaction not found"}), 404

    try:
        db.session.delete(reaction)
        db.session.commit()
        return jsonify({"message": "Reaction removed"})
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error removing reaction: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to remove reaction", "details": str(e)}), 500


# --- Reports ---
@feedback_bp.route('/community/reports', methods=['POST'])
@auth_required
def submit_report():
    data = request.get_json(silent=True) or {}
    reason = data.get('reason')
    if reason not in REPORT_REASONS:
        return jsonify({"error": f"reason must be one of: {', '.join(REPORT_REASONS)}"}), 400

    keys, target, error = _target_from(data)
    if error:
        return error

    user_id = current_user_id()
    duplicate = Report.query.filter_by(reported_by=user_id, reason=reason, **keys).first()
    if duplicate:
        return jsonify({"error": "You have already reported this content for this reason"}), 409

    try:
        report = Report(reported_by=user_id, reason=reason, details=data.get('details'),
                        status='pending', **keys)
        db.session.add(report)
        if reason in FLAGGING_REASONS:
            target.is_flagged = True
        db.session.commit()

        logger.info(f"User {user_id} reported {'post' if keys['post_id'] else 'comment'} for {reason}")
        return jsonify({"message": "Report submitted successfully", "report_id": report.id}), 201
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error submitting report: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to submit report", "details": str(e)}), 500


@feedback_bp.route('/community/reports', methods=['GET'])
@admin_required
def list_reports():
    """Reports for moderators, newest first."""
    try:
        page = max(1, int(request.args.get('page', 1)))
        limit = min(MAX_REPORTS_PAGE, max(1, int(request.args.get('limit', 20))))
    except ValueError:
        return jsonify({"error": "page and limit must be integers"}), 400

    query = Report.query
    status = request.args.get('status', 'pending')
    if status != 'all':
        query = query.filter_by(status=status)
    reason = request.args.get('reason')
    if reason:
        query = query.filter_by(reason=reason)

    total_count = query.count()
    reports = (query.order_by(Report.created_at.desc())
               .offset((page - 1) * limit).limit(limit).all())
    return jsonify({
        "reports": [r.to_dict() for r in reports],
        "total_count": total_count,
        "page": page,
        "limit": limit,
        "has_next_page": (page - 1) * limit + limit < total_count
    })
