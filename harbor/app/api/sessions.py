"""
API endpoints for AI chat sessions: prompt loading, triage-to-specialist
handoffs, message persistence and conversation starters.
"""
import logging
import random
from typing import Optional

from flask import Blueprint, request, jsonify
from marshmallow import Schema, fields, validate, ValidationError, EXCLUDE

from ..models import (db, Conversation, Message, AIPrompt, Greeting, Book, OpeningLine,
                      UserProfile, utcnow)
from ..utils.auth_adapter import auth_required, auth_optional, current_user_id
from ..utils.keywords import generate_topic
from ..utils.moderation import (keyword_flags, record_crisis_detection,
                                CRISIS_RESPONSE_MESSAGE, CRISIS_RESOURCES)
from ..utils.prompts import (merge_universal_protocols, add_memory_context, add_language_instruction,
                             add_specialist_handoff, needs_stored_context, DEFAULT_LANGUAGE)

sessions_bp = Blueprint('sessions', __name__)
logger = logging.getLogger(__name__)

GREETING_TYPES = ['resources', 'triage', 'crisis']
IGNORED_QUESTION_IDS = {'error-fallback-question', 'debug-question'}


# --- Input Validation Schemas ---
class ChatMessageSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    id = fields.String(load_default=None, allow_none=True)
    role = fields.String(required=True, validate=validate.OneOf(['user', 'assistant', 'system']))
    text = fields.String(load_default='')
    timestamp = fields.String(load_default=None, allow_none=True)
    is_final = fields.Boolean(load_default=True, data_key="isFinal")
    question_id = fields.String(load_default=None, allow_none=True)


class SaveMessageSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    message = fields.Nested(ChatMessageSchema, required=True)
    conversation_id = fields.String(load_default=None, allow_none=True, data_key="conversationId")
    book_id = fields.String(load_default=None, allow_none=True, data_key="bookId")
    anonymous_id = fields.String(load_default=None, allow_none=True, data_key="anonymousId")


def _owner_key(data: Optional[dict] = None) -> Optional[str]:
    """Identity a conversation is stored under: user id, else the client's anonymous id."""
    return current_user_id() or (data or {}).get('anonymousId')


def _find_conversation(conversation_id: str, owner: Optional[str]) -> Optional[Conversation]:
    conversation = db.session.get(Conversation, conversation_id)
    if conversation is None:
        return None
    if conversation.human_id and conversation.human_id != owner:
        return None
    return conversation


def _memory_summary(user_id: Optional[str]) -> Optional[str]:
    if not user_id or user_id == 'anonymous':
        return None
    profile = UserProfile.for_user(user_id)
    return profile.ai_instructions_summary if profile else None


@sessions_bp.route('/load-prompt', methods=['GET'])
@auth_optional
def load_prompt():
    """Load the full system prompt for an AI persona.

    Query params:
        type: Prompt type (required).
        language: Language code the AI must speak (default en).
        merge: Set to 'false' to skip the universal protocols.

    Returns:
        JSON response with the assembled prompt.
    """
    prompt_type = request.args.get('type')
    if not prompt_type:
        return jsonify({"error": "Prompt type is required"}), 400

    try:
        prompt = AIPrompt.active(prompt_type)
        if not prompt:
            logger.warning(f"No active prompt found for type: {prompt_type}")
            return jsonify({"error": f"No active prompt found for type: {prompt_type}"}), 404

        content = prompt.content
        merge_requested = request.args.get('merge', 'true').lower() != 'false'
        if prompt_type != 'universal' and prompt.merge_with_universal_protocols and merge_requested:
            universal = AIPrompt.active('universal')
            content = merge_universal_protocols(content, universal.content if universal else None)

        content = add_memory_context(content, _memory_summary(current_user_id()))
        content = add_language_instruction(content, request.args.get('language', DEFAULT_LANGUAGE))

        return jsonify({
            "success": True,
            "prompt": {
                "id": prompt.id,
                "type": prompt.prompt_type,
                "content": content,
                "voice_settings": prompt.voice_settings,
                "metadata": prompt.prompt_metadata,
                "functions": prompt.functions or []
            }
        })
    except Exception as e:
        logger.error(f"Error loading prompt {prompt_type}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to load prompt", "details": str(e)}), 500


@sessions_bp.route('/start-session', methods=['POST'])
@auth_optional
def start_session():
    """Hand a conversation from triage to a specialist."""
    data = request.get_json(silent=True) or {}
    specialist_type = data.get('specialistType')
    if not specialist_type:
        return jsonify({"error": "specialistType is required"}), 400

    conversation_id = data.get('conversationId')
    context_summary = data.get('contextSummary')

    try:
        conversation = None
        if conversation_id:
            conversation = _find_conversation(conversation_id, _owner_key(data))
            if conversation is None:
                return jsonify({"error": "Conversation not found"}), 404

            if needs_stored_context(context_summary):
                last_end = (conversation.messages
                            .filter(Message.role == 'system')
                            .order_by(Message.created_at.desc())
                            .all())
                stored = next((m.routing_metadata.get('context_summary') for m in last_end
                               if (m.routing_metadata or {}).get('type') == 'session_end'), None)
                if stored:
                    context_summary = stored

            conversation.start_specialist(specialist_type, context_summary, utcnow().isoformat())

        prompt = AIPrompt.active(specialist_type)
        if not prompt:
            db.session.rollback()
            logger.error(f"No active prompt for specialist {specialist_type}")
            return jsonify({
                "error": f"Failed to load specialist prompt: no active prompt for {specialist_type}"
            }), 500

        content = add_specialist_handoff(prompt.content, specialist_type, context_summary)
        content = add_memory_context(content, _memory_summary(current_user_id()))
        content = add_language_instruction(content, data.get('language', DEFAULT_LANGUAGE))

        db.session.commit()
        logger.info(f"Started {specialist_type} session for conversation {conversation_id}")
        return jsonify({
            "success": True,
            "specialistType": specialist_type,
            "conversationId": conversation.id if conversation else None,
            "contextSummary": context_summary,
            "prompt": {
                "id": prompt.id,
                "type": prompt.prompt_type,
                "content": content,
                "voice_settings": prompt.voice_settings,
                "metadata": prompt.prompt_metadata
            }
        })
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error starting specialist session: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to start specialist session", "details": str(e)}), 500


@sessions_bp.route('/end-session', methods=['POST'])
@auth_optional
def end_session():
    """Close the current specialist segment and store its context summary."""
    data = request.get_json(silent=True) or {}
    conversation_id = data.get('conversationId')
    if not conversation_id:
        return jsonify({"error": "conversationId is required"}), 400

    try:
        conversation = _find_conversation(conversation_id, _owner_key(data))
        if conversation is None:
            return jsonify({"error": "Conversation not found"}), 404

        ended_at = utcnow().isoformat()
        specialist = conversation.end_specialist(ended_at)
        context_summary = data.get('contextSummary')

        if context_summary:
            db.session.add(Message(
                conversation_id=conversation.id,
                role='system',
                content=f"Session ended. Context summary: {context_summary}",
                routing_metadata={
                    "type": "session_end",
                    "specialist": specialist,
                    "reason": data.get('reason', 'session_complete'),
                    "context_summary": context_summary,
                    "timestamp": ended_at
                }
            ))

        texts = [m.content for m in conversation.messages.filter(Message.role != 'system').all()]
        topic = generate_topic(texts)
        if topic:
            conversation.topic = topic

        db.session.commit()
        logger.info(f"Ended {specialist or 'no'} specialist session for conversation {conversation.id}")
        return jsonify({
            "success": True,
            "conversationId": conversation.id,
            "contextSummary": context_summary,
            "endedAt": ended_at,
            "topic": conversation.topic
        })
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error ending session: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to end session", "details": str(e)}), 500


@sessions_bp.route('/save-message', methods=['POST'])
@auth_optional
def save_message():
    """Persist one chat message, creating the conversation on first use."""
    raw = request.get_json(silent=True) or {}
    try:
        data = SaveMessageSchema().load(raw)
    except ValidationError as e:
        return jsonify({"error": "Validation failed", "details": e.messages}), 400

    owner = _owner_key(raw)
    message_data = data['message']

    try:
        if data['conversation_id']:
            conversation = _find_conversation(data['conversation_id'], owner)
            if conversation is None:
                return jsonify({"error": "Conversation not found"}), 404
        else:
            conversation = Conversation(human_id=owner)
            db.session.add(conversation)
            db.session.flush()

        message = Message(
            conversation_id=conversation.id,
            role=message_data['role'],
            content=message_data['text'],
            question_id=message_data['question_id'],
            message_metadata={
                "isFinal": message_data['is_final'],
                "question_id": message_data['question_id'],
                "bookId": data['book_id'],
                "original_id": message_data['id'],
                "timestamp": message_data['timestamp']
            }
        )
        db.session.add(message)
        conversation.last_activity_at = utcnow()
        db.session.commit()

        return jsonify({
            "success": True,
            "message": "Message saved successfully",
            "conversationId": conversation.id,
            "messageId": message.id,
            "originalMessageId": message_data['id']
        })
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error saving message: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to save message", "details": str(e)}), 500


@sessions_bp.route('/resume-conversation', methods=['POST'])
@auth_required
def resume_conversation():
    """Reopen one of the caller's conversations with its full history."""
    data = request.get_json(silent=True) or {}
    conversation_id = data.get('conversationId')
    if not conversation_id:
        return jsonify({"error": "conversationId is required"}), 400

    try:
        conversation = db.session.get(Conversation, conversation_id)
        if conversation is None or conversation.human_id != current_user_id():
            return jsonify({"error": "Conversation not found or access denied"}), 404

        conversation.last_activity_at = utcnow()
        conversation.is_active = True
        db.session.commit()

        messages = [m.to_dict() for m in conversation.messages.all()]
        return jsonify({
            "success": True,
            "conversation": conversation.to_dict(),
            "messages": messages,
            "currentSpecialist": conversation.current_specialist or 'triage',
            "messageCount": len(messages)
        })
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error resuming conversation {conversation_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to resume conversation", "details": str(e)}), 500


@sessions_bp.route('/conversations', methods=['GET'])
@auth_required
def list_conversations():
    """List the caller's conversations, most recently active first."""
    user_id = current_user_id()
    try:
        conversations = (Conversation.query.filter_by(human_id=user_id)
                         .order_by(Conversation.last_activity_at.desc()).all())
        return jsonify({
            "success": True,
            "conversations": [
                {**c.to_dict(), "message_count": c.messages.count()} for c in conversations
            ]
        })
    except Exception as e:
        logger.error(f"Error listing conversations for user {user_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to fetch conversations", "details": str(e)}), 500


@sessions_bp.route('/greeting-prompt', methods=['GET'])
def greeting_prompt():
    """Get the active greeting for an AI persona in a language."""
    greeting_type = request.args.get('type')
    if not greeting_type:
        return jsonify({
            "error": "Greeting type is required",
            "details": f"Available types: {', '.join(GREETING_TYPES)}"
        }), 400

    language = request.args.get('language', DEFAULT_LANGUAGE)
    try:
        greeting = (Greeting.query.filter_by(greeting_type=greeting_type, language_code=language, is_active=True)
                    .order_by(Greeting.updated_at.desc()).first())
    except Exception as e:
        logger.error(f"Error fetching {greeting_type} greeting: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to fetch greeting", "details": str(e)}), 500

    if not greeting:
        return jsonify({
            "error": f"No active greeting found for type: {greeting_type}",
            "details": f"Language: {language}"
        }), 404

    return jsonify({"success": True, "greeting": greeting.to_dict()})


@sessions_bp.route('/next-question', methods=['POST'])
@auth_optional
def next_question():
    """Pick a random conversation starter for a book that has not been asked yet."""
    data = request.get_json(silent=True) or {}
    book_id = data.get('book')
    if not book_id:
        return jsonify({"error": "Book ID is required"}), 400

    try:
        excluded = set(data.get('exclude') or [])
        asked = db.session.query(Message.question_id).filter(Message.question_id.isnot(None)).distinct()
        excluded.update(qid for (qid,) in asked if qid not in IGNORED_QUESTION_IDS)

        query = OpeningLine.query.filter_by(book_id=book_id)
        if excluded:
            query = query.filter(OpeningLine.id.notin_(excluded))
        available = query.all()

        book = db.session.get(Book, book_id)
        book_title = book.title if book else "Unknown Book"

        if not available:
            logger.info(f"No more available questions for book {book_id}")
            return jsonify({
                "error": "No available questions",
                "details": "All available questions have been asked for this book",
                "bookTitle": book_title
            }), 404

        selected = random.choice(available)

        conversation_id = None
        if current_user_id():
            conversation = Conversation(human_id=current_user_id())
            db.session.add(conversation)
            db.session.commit()
            conversation_id = conversation.id

        return jsonify({
            "questionId": selected.id,
            "question": selected.opening_line,
            "bookTitle": book_title,
            "category": "general",
            "topic": selected.topic,
            "conversationId": conversation_id
        })
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error selecting next question for book {book_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to select next question", "details": str(e)}), 500


@sessions_bp.route('/crisis-response', methods=['POST'])
@auth_optional
def crisis_response():
    """Immediate safety response used by the crisis function call."""
    data = request.get_json(silent=True) or {}
    message = data.get('message', '')
    flags = keyword_flags(message)
    # Reaching this endpoint is itself an escalation
    if 'crisis_escalation' not in flags:
        flags.append('crisis_escalation')

    try:
        record_crisis_detection(
            user_id=current_user_id(),
            content_type='conversation',
            content_id=data.get('conversationId'),
            flags=flags,
            content=message,
            response_sent=True
        )
        db.session.commit()
    except Exception as e:
        # The safety message is returned even if bookkeeping fails
        db.session.rollback()
        logger.error(f"Failed to record crisis event: {str(e)}", exc_info=True)

    return jsonify({
        "success": True,
        "message": CRISIS_RESPONSE_MESSAGE,
        "resources": CRISIS_RESOURCES,
        "flags": flags
    })
