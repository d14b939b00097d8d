"""
Moderation endpoint run on community content before and after publishing.
"""
import logging
from flask import Blueprint, request, jsonify
from marshmallow import Schema, fields, validate, ValidationError, EXCLUDE

from ..models import db, ModerationResult, ClinicalReviewQueue
from ..utils.auth_adapter import auth_required, current_user_id
from ..utils.moderation import analyze_content, is_crisis, record_crisis_detection

moderation_bp = Blueprint('moderation', __name__)
logger = logging.getLogger(__name__)


class ModerationRequestSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    content = fields.String(required=True, validate=validate.Length(min=1))
    content_type = fields.String(required=True, validate=validate.OneOf(['post', 'comment']))
    content_id = fields.String(required=True)


@moderation_bp.route('/community/moderation', methods=['POST'])
@auth_required
def moderate_content():
    """Analyze a post or comment and persist the moderation outcome.

    Returns:
        JSON with the decision, review flag, priority, toxicity score,
        detected mental health flags and vendor details.
    """
    try:
        data = ModerationRequestSchema().load(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.messages}), 400

    user_id = current_user_id()
    try:
        analysis = analyze_content(data['content'])

        result = ModerationResult(
            content_type=data['content_type'],
            content_id=data['content_id'],
            user_id=user_id,
            decision=analysis['decision'],
            toxicity_score=analysis['toxicity_score'],
            mental_health_flags=analysis['mental_health_flags'],
            requires_review=analysis['requires_review'],
            priority=analysis['priority'],
            moderation_details=analysis['moderation_details']
        )
        db.session.add(result)
        db.session.flush()

        if is_crisis(analysis['mental_health_flags']):
            record_crisis_detection(user_id, data['content_type'], data['content_id'],
                                    analysis['mental_health_flags'], data['content'])

        if analysis['requires_review'] and analysis['priority'] == 'immediate':
            db.session.add(ClinicalReviewQueue(
                moderation_result_id=result.id,
                content_type=data['content_type'],
                content_id=data['content_id'],
                user_id=user_id,
                priority='immediate'
            ))

        db.session.commit()
        logger.info(f"Moderated {data['content_type']} {data['content_id']}: {analysis['decision']} "
                    f"(priority {analysis['priority']})")
        return jsonify(analysis)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error moderating content: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to moderate content", "details": str(e)}), 500
