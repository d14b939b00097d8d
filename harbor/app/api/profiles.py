"""
User profile API: community display names and the AI memory profile
(memory processing, merge, summary and warm handoff generation).
"""
import logging
from flask import Blueprint, request, jsonify
from marshmallow import Schema, fields, ValidationError, EXCLUDE
from sqlalchemy import func

from ..models import db, UserProfile, AIPrompt, WarmHandoff, Conversation, Message
from ..utils.auth_adapter import auth_required, current_user_id
from ..utils.llm_service import llm_service, LLMServiceError

profiles_bp = Blueprint('profiles', __name__)
logger = logging.getLogger(__name__)

DISPLAY_NAME_MIN = 2
DISPLAY_NAME_MAX = 50


class ProfileMergeSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    analysis_data = fields.Dict(required=True, data_key="analysisData")
    system_prompt = fields.String(load_default=None, allow_none=True, data_key="systemPrompt")
    user_prompt = fields.String(load_default=None, allow_none=True, data_key="userPrompt")


def _prompt_content(prompt_type: str):
    prompt = AIPrompt.active(prompt_type)
    return prompt.content if prompt else None


def refresh_ai_summary(profile: UserProfile) -> str:
    """Regenerate the memory summary injected into specialist prompts."""
    summary = llm_service.generate_profile_summary(profile.profile_data or {},
                                                   _prompt_content('ai_summary_system'))
    profile.ai_instructions_summary = summary
    return summary


def _apply_analysis(profile: UserProfile, analysis, system_prompt=None, user_prompt=None):
    """Merge an analysis into ``profile`` and refresh its summary.

    A failed summary keeps the merge; the previous summary stays in place.
    """
    merged = llm_service.merge_profile(
        dict(profile.profile_data or {}),
        analysis,
        system_prompt=system_prompt or _prompt_content('profile_merge_system'),
        user_prompt=user_prompt or _prompt_content('profile_merge_user')
    )
    profile.profile_data = merged
    profile.version = (profile.version or 0) + 1

    try:
        return refresh_ai_summary(profile)
    except LLMServiceError as e:
        logger.warning(f"Kept merged profile for user {profile.user_id} without a new AI summary: {str(e)}")
        return profile.ai_instructions_summary


@profiles_bp.route('/user/profile', methods=['GET'])
@auth_required
def get_profile():
    """Get the caller's community identity."""
    user_id = current_user_id()
    profile = UserProfile.for_user(user_id)
    return jsonify({
        "user_id": user_id,
        "display_name": profile.display_name if profile else None,
        "has_display_name": bool(profile and profile.has_display_name)
    })


@profiles_bp.route('/user/profile', methods=['POST'])
@auth_required
def set_display_name():
    """Set the display name shown on community posts and comments."""
    try:
        user_id = current_user_id()
        data = request.get_json(silent=True) or {}
        display_name = (data.get('display_name') or '').strip()

        if not DISPLAY_NAME_MIN <= len(display_name) <= DISPLAY_NAME_MAX:
            return jsonify({
                "error": f"Display name must be between {DISPLAY_NAME_MIN} and {DISPLAY_NAME_MAX} characters"
            }), 400

        taken = UserProfile.query.filter(
            func.lower(UserProfile.display_name) == display_name.lower(),
            UserProfile.user_id != user_id
        ).first()
        if taken:
            return jsonify({"error": "This display name is already taken"}), 409

        profile = UserProfile.for_user(user_id, create=True)
        profile.display_name = display_name
        profile.profile_data = {**(profile.profile_data or {}), "display_name": display_name}
        db.session.commit()

        logger.info(f"Display name set for user {user_id}")
        return jsonify({
            "success": True,
            "user_id": user_id,
            "display_name": display_name,
            "has_display_name": True
        })
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error setting display name: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to update profile", "details": str(e)}), 500


@profiles_bp.route('/user/profile/merge', methods=['POST'])
@auth_required
def merge_profile():
    """Merge a conversation analysis into the caller's profile with Claude.

    The merged profile replaces ``profile_data`` and the AI summary is
    regenerated from it.
    """
    try:
        payload = ProfileMergeSchema().load(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.messages}), 400

    user_id = current_user_id()
    try:
        profile = UserProfile.for_user(user_id, create=True)
        summary = _apply_analysis(profile, payload['analysis_data'],
                                  payload['system_prompt'], payload['user_prompt'])
        db.session.commit()

        logger.info(f"Merged profile for user {user_id} (version {profile.version})")
        return jsonify({
            "success": True,
            "profile": profile.to_dict(),
            "ai_summary": summary
        })
    except LLMServiceError as e:
        db.session.rollback()
        logger.error(f"Profile merge failed for user {user_id}: {str(e)}")
        return jsonify({"error": "Failed to merge profile", "details": str(e)}), 500
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error merging profile for user {user_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to merge profile", "details": str(e)}), 500


@profiles_bp.route('/user/process-memory', methods=['POST'])
@auth_required
def process_memory():
    """Analyze one of the caller's conversations and fold it into their profile."""
    data = request.get_json(silent=True) or {}
    conversation_id = data.get('conversationId')
    if not conversation_id:
        return jsonify({"error": "conversationId is required"}), 400

    user_id = current_user_id()
    try:
        conversation = db.session.get(Conversation, conversation_id)
        if not conversation or conversation.human_id != user_id:
            return jsonify({"error": "Conversation not found or access denied"}), 404

        messages = Message.query.filter(
            Message.conversation_id == conversation_id,
            Message.role != 'system'
        ).order_by(Message.created_at).all()
        if not messages:
            return jsonify({"error": "Conversation has no messages"}), 400

        transcript = "\n".join(f"{m.role}: {m.content}" for m in messages)
        analysis = llm_service.analyze_conversation(
            transcript, system_prompt=_prompt_content('profile_analysis_system'))

        profile = UserProfile.for_user(user_id, create=True)
        summary = _apply_analysis(profile, analysis)
        db.session.commit()

        logger.info(f"Processed memory from conversation {conversation_id} for user {user_id} "
                    f"(version {profile.version})")
        return jsonify({
            "success": True,
            "profile": profile.to_dict(),
            "analysis": analysis,
            "ai_summary": summary
        })
    except LLMServiceError as e:
        db.session.rollback()
        logger.error(f"Memory processing failed for conversation {conversation_id}: {str(e)}")
        return jsonify({"error": "Failed to process memory", "details": str(e)}), 500
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error processing memory for user {user_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to process memory", "details": str(e)}), 500


@profiles_bp.route('/user/profile/ai-summary', methods=['POST'])
@auth_required
def generate_ai_summary():
    """Regenerate the caller's memory summary from their stored profile."""
    user_id = current_user_id()
    try:
        profile = UserProfile.for_user(user_id)
        if profile is None:
            profile = UserProfile.for_user(user_id, create=True)
        else:
            profile.version = (profile.version or 0) + 1

        summary = refresh_ai_summary(profile)
        db.session.commit()
        return jsonify({"success": True, "ai_summary": summary, "version": profile.version})
    except LLMServiceError as e:
        db.session.rollback()
        logger.error(f"AI summary generation failed for user {user_id}: {str(e)}")
        return jsonify({"error": "Failed to generate AI summary", "details": str(e)}), 500
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error generating AI summary: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to generate AI summary", "details": str(e)}), 500


@profiles_bp.route('/user/warm-handoff', methods=['POST'])
@auth_required
def generate_warm_handoff():
    """Write a warm handoff note for a human provider from the caller's profile."""
    user_id = current_user_id()
    profile = UserProfile.for_user(user_id)
    if profile is None or not profile.profile_data:
        return jsonify({"error": "No user profile found"}), 404

    try:
        content = llm_service.generate_warm_handoff(
            profile.profile_data,
            system_prompt=_prompt_content('warm_handoff_system'),
            user_prompt=_prompt_content('warm_handoff_user')
        )
        handoff = WarmHandoff(user_id=user_id, handoff_content=content, profile_version=profile.version)
        db.session.add(handoff)
        db.session.commit()

        logger.info(f"Generated warm handoff {handoff.id} for user {user_id}")
        return jsonify({"success": True, "handoff": handoff.to_dict()}), 201
    except LLMServiceError as e:
        db.session.rollback()
        logger.error(f"Warm handoff generation failed for user {user_id}: {str(e)}")
        return jsonify({"error": "Failed to generate warm handoff", "details": str(e)}), 500
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error generating warm handoff: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to generate warm handoff", "details": str(e)}), 500


@profiles_bp.route('/user/warm-handoff', methods=['GET'])
@auth_required
def get_latest_warm_handoff():
    user_id = current_user_id()
    try:
        handoff = (WarmHandoff.query.filter_by(user_id=user_id)
                   .order_by(WarmHandoff.created_at.desc()).first())
        return jsonify({"success": True, "handoff": handoff.to_dict() if handoff else None})
    except Exception as e:
        logger.error(f"Error fetching warm handoff for user {user_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to fetch warm handoff", "details": str(e)}), 500
