"""
Visit tracking for signed-in and anonymous visitors.
"""
import logging
from flask import Blueprint, request, jsonify

from ..models import db, UsageSession, UserUsageSummary, utcnow
from ..utils.auth_adapter import auth_optional, current_user_id

usage_bp = Blueprint('usage', __name__)
logger = logging.getLogger(__name__)


def _client_ip():
    # ProxyFix has already applied X-Forwarded-For
    return request.remote_addr


def minutes_from_ms(duration_ms: int) -> int:
    """Whole minutes in a duration, with half a minute rounding up."""
    return (duration_ms + 30000) // 60000


def _summary_for(user_id, anonymous_id):
    key = user_id or anonymous_id
    summary = UserUsageSummary.query.filter_by(visitor_key=key).first()
    if summary is None:
        summary = UserUsageSummary(visitor_key=key, user_id=user_id, anonymous_id=anonymous_id,
                                   first_visit=utcnow(), total_sessions=0,
                                   total_page_views=0, total_minutes=0)
        db.session.add(summary)
    return summary


@usage_bp.route('/usage/start-session', methods=['POST'])
@auth_optional
def start_usage_session():
    data = request.get_json(silent=True) or {}
    user_id = current_user_id()
    anonymous_id = data.get('anonymousId')
    if not user_id and not anonymous_id:
        return jsonify({"error": "userId or anonymousId is required"}), 400

    try:
        session = UsageSession(
            user_id=user_id,
            anonymous_id=anonymous_id,
            ip_address=_client_ip(),
            user_agent=(request.headers.get('User-Agent') or '')[:512],
            session_start=utcnow(),
            page_views=0
        )
        db.session.add(session)

        summary = _summary_for(user_id, anonymous_id)
        summary.total_sessions = (summary.total_sessions or 0) + 1
        summary.last_visit = utcnow()
        db.session.commit()

        return jsonify({"success": True, "sessionId": session.id})
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error starting usage session: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to start usage session", "details": str(e)}), 500


@usage_bp.route('/usage/end-session', methods=['POST'])
@auth_optional
def end_usage_session():
    data = request.get_json(silent=True) or {}
    session_id = data.get('sessionId')
    if not session_id:
        return jsonify({"error": "sessionId is required"}), 400

    session = db.session.get(UsageSession, session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404

    try:
        page_views = max(0, int(data.get('pageViews') or 0))
        duration_ms = data.get('durationMs')
        ended_at = utcnow()
        if duration_ms is None:
            duration_ms = int((ended_at - session.session_start).total_seconds() * 1000)
        duration_ms = max(0, int(duration_ms))
    except (TypeError, ValueError):
        return jsonify({"error": "pageViews and durationMs must be numbers"}), 400

    try:
        session.session_end = ended_at
        session.page_views = page_views
        session.duration_ms = duration_ms

        summary = _summary_for(session.user_id, session.anonymous_id)
        summary.total_page_views = (summary.total_page_views or 0) + page_views
        summary.total_minutes = (summary.total_minutes or 0) + minutes_from_ms(duration_ms)
        summary.last_visit = ended_at
        db.session.commit()

        return jsonify({"success": True, "sessionId": session.id, "durationMs": duration_ms})
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error ending usage session {session_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to end usage session", "details": str(e)}), 500
