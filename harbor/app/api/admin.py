"""
Admin console endpoints for AI prompts and persona greetings.
"""
import logging
from flask import Blueprint, request, jsonify
from marshmallow import Schema, fields, validate, ValidationError, EXCLUDE

from ..models import db, AIPrompt, Greeting
from ..models.content import PROMPT_TYPES
from ..utils.auth_adapter import admin_required, current_user_id

admin_bp = Blueprint('admin', __name__)
logger = logging.getLogger(__name__)


class PromptSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    prompt_type = fields.String(required=True, validate=validate.OneOf(PROMPT_TYPES), data_key="type")
    content = fields.String(required=True, validate=validate.Length(min=1))
    voice_settings = fields.Dict(load_default=None, allow_none=True, data_key="voiceSettings")
    metadata = fields.Dict(load_default=None, allow_none=True)
    functions = fields.List(fields.Dict(), load_default=list)
    merge_with_universal_functions = fields.Boolean(load_default=True, data_key="mergeWithUniversalFunctions")
    merge_with_universal_protocols = fields.Boolean(load_default=True, data_key="mergeWithUniversalProtocols")


class GreetingFlagsSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    is_active = fields.Boolean()


def _clean(value) -> str:
    return value.strip() if isinstance(value, str) else ''


def _active_duplicate(greeting_type: str, language_code: str, exclude_id=None):
    query = Greeting.query.filter_by(greeting_type=greeting_type, language_code=language_code, is_active=True)
    if exclude_id:
        query = query.filter(Greeting.id != exclude_id)
    return query.first()


@admin_bp.route('/admin/ai-prompts', methods=['GET'])
@admin_required
def get_ai_prompts():
    """Get the active prompt of one type, or every active prompt."""
    prompt_type = request.args.get('type')
    if prompt_type and prompt_type not in PROMPT_TYPES:
        return jsonify({
            "error": "Invalid prompt type",
            "details": f"Valid types: {', '.join(PROMPT_TYPES)}"
        }), 400

    try:
        if prompt_type:
            prompt = AIPrompt.active(prompt_type)
            return jsonify({"prompt": prompt.to_dict() if prompt else None})

        prompts = AIPrompt.query.filter_by(is_active=True).order_by(AIPrompt.prompt_type).all()
        return jsonify({"prompts": [p.to_dict() for p in prompts]})
    except Exception as e:
        logger.error(f"Error fetching AI prompts: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to fetch prompts", "details": str(e)}), 500


@admin_bp.route('/admin/ai-prompts', methods=['POST'])
@admin_required
def save_ai_prompt():
    """Create or update the active prompt for a type."""
    try:
        data = PromptSchema().load(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.messages}), 400

    try:
        prompt = AIPrompt.active(data['prompt_type'])
        action = 'updated'
        if prompt is None:
            prompt = AIPrompt(prompt_type=data['prompt_type'], is_active=True, created_by=current_user_id())
            db.session.add(prompt)
            action = 'created'

        prompt.content = data['content']
        prompt.voice_settings = data['voice_settings']
        prompt.prompt_metadata = data['metadata']
        prompt.functions = data['functions']
        prompt.merge_with_universal_functions = data['merge_with_universal_functions']
        prompt.merge_with_universal_protocols = data['merge_with_universal_protocols']
        db.session.commit()

        logger.info(f"Admin {current_user_id()} {action} {prompt.prompt_type} prompt")
        return jsonify({"success": True, "action": action, "prompt": prompt.to_dict()})
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error saving AI prompt: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to save prompt", "details": str(e)}), 500


@admin_bp.route('/admin/greetings', methods=['GET'])
@admin_required
def list_greetings():
    try:
        greetings = (Greeting.query
                     .order_by(Greeting.greeting_type, Greeting.language_code, Greeting.updated_at.desc())
                     .all())
        return jsonify({"greetings": [g.to_dict() for g in greetings]})
    except Exception as e:
        logger.error(f"Error listing greetings: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to fetch greetings", "details": str(e)}), 500


@admin_bp.route('/admin/greetings', methods=['POST'])
@admin_required
def create_greeting():
    """Create a greeting; only one may be active per type and language."""
    data = request.get_json(silent=True) or {}
    greeting_type = _clean(data.get('greeting_type'))
    language_code = _clean(data.get('language_code'))
    content = _clean(data.get('greeting_content'))
    if not greeting_type or not language_code or not content:
        return jsonify({"error": "greeting_type, language_code and greeting_content are required"}), 400

    try:
        is_active = GreetingFlagsSchema().load(data).get('is_active', True)
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.messages}), 400

    if is_active and _active_duplicate(greeting_type, language_code):
        return jsonify({
            "error": f"An active greeting already exists for {greeting_type} ({language_code})"
        }), 409

    try:
        greeting = Greeting(
            greeting_type=greeting_type,
            language_code=language_code,
            greeting_content=content,
            is_active=is_active,
            greeting_metadata=data.get('metadata')
        )
        db.session.add(greeting)
        db.session.commit()
        logger.info(f"Created greeting {greeting.id} ({greeting_type}/{language_code})")
        return jsonify({"success": True, "greeting": greeting.to_dict()}), 201
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error creating greeting: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to create greeting", "details": str(e)}), 500


@admin_bp.route('/admin/greetings', methods=['PUT'])
@admin_required
def update_greeting():
    data = request.get_json(silent=True) or {}
    greeting_id = data.get('id')
    if not greeting_id:
        return jsonify({"error": "Greeting id is required"}), 400

    greeting = db.session.get(Greeting, greeting_id)
    if greeting is None:
        return jsonify({"error": "Greeting not found"}), 404

    greeting_type = _clean(data.get('greeting_type')) or greeting.greeting_type
    language_code = _clean(data.get('language_code')) or greeting.language_code
    try:
        is_active = GreetingFlagsSchema().load(data).get('is_active', greeting.is_active)
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.messages}), 400

    changed_key = greeting_type != greeting.greeting_type or language_code != greeting.language_code
    if is_active and (changed_key or not greeting.is_active) and \
            _active_duplicate(greeting_type, language_code, exclude_id=greeting.id):
        return jsonify({
            "error": f"An active greeting already exists for {greeting_type} ({language_code})"
        }), 409

    content = _clean(data.get('greeting_content')) if 'greeting_content' in data else greeting.greeting_content
    if not content:
        return jsonify({"error": "greeting_content cannot be empty"}), 400

    try:
        greeting.greeting_type = greeting_type
        greeting.language_code = language_code
        greeting.greeting_content = content
        if 'metadata' in data:
            greeting.greeting_metadata = data['metadata']
        greeting.is_active = is_active
        db.session.commit()
        return jsonify({"success": True, "greeting": greeting.to_dict()})
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error updating greeting {greeting_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update greeting", "details": str(e)}), 500


@admin_bp.route('/admin/greetings', methods=['DELETE'])
@admin_required
def delete_greeting():
    greeting_id = request.args.get('id') or (request.get_json(silent=True) or {}).get('id')
    if not greeting_id:
        return jsonify({"error": "Greeting id is required"}), 400

    greeting = db.session.get(Greeting, greeting_id)
    if greeting is None:
        return jsonify({"error": "Greeting not found"}), 404

    try:
        db.session.delete(greeting)
        db.session.commit()
        logger.info(f"Deleted greeting {greeting_id}")
        return jsonify({"success": True, "message": "Greeting deleted successfully"})
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error deleting greeting {greeting_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to delete greeting", "details": str(e)}), 500
