"""
Chunked upload of intake voice recordings and their combination into a
single file.
"""
import logging
from flask import Blueprint, request, jsonify, current_app

from ..models import db, IntakeSession, AudioChunk, User, UserProfile, utcnow
from ..utils.auth_adapter import auth_optional, current_user_id
from ..utils.notifications import notify_intake_recording_ready
from ..utils.storage import get_storage, StorageError

voice_bp = Blueprint('voice', __name__)
logger = logging.getLogger(__name__)

STORAGE_PREFIX = 'therapist-voice'
DEFAULT_MIME_TYPE = 'audio/webm'


def chunk_path(session_id: str, chunk_index: int) -> str:
    return f"{STORAGE_PREFIX}/{session_id}/chunk-{chunk_index:03d}.webm"


def combined_path(session_id: str, timestamp: int) -> str:
    return f"{STORAGE_PREFIX}/{session_id}/combined-{timestamp}.webm"


def chunk_stats(session_id: str):
    chunks = AudioChunk.query.filter_by(session_id=session_id).all()
    return {
        "total": len(chunks),
        "uploaded": sum(1 for c in chunks if c.upload_status == 'uploaded'),
        "combined": sum(1 for c in chunks if c.upload_status == 'combined'),
        "failed": sum(1 for c in chunks if c.upload_status == 'failed')
    }


@voice_bp.route('/voice/upload-chunk', methods=['POST'])
@auth_optional
def upload_chunk():
    """Store one recorded audio chunk.

    Form fields:
        audio: The chunk file (required).
        session_id: Intake session the chunk belongs to (required).
        chunk_index: Zero-based position of the chunk (required).
    """
    audio = request.files.get('audio')
    session_id = (request.form.get('session_id') or '').strip()
    raw_index = request.form.get('chunk_index')
    if audio is None or not session_id or raw_index is None:
        return jsonify({"error": "audio, session_id and chunk_index are required"}), 400
    try:
        chunk_index = int(raw_index)
    except ValueError:
        return jsonify({"error": "chunk_index must be an integer"}), 400
    if chunk_index < 0:
        return jsonify({"error": "chunk_index must be zero or greater"}), 400

    data = audio.read()
    max_bytes = current_app.config.get('MAX_AUDIO_CHUNK_BYTES')
    if max_bytes and len(data) > max_bytes:
        return jsonify({"error": "Audio chunk is too large"}), 413

    path = chunk_path(session_id, chunk_index)
    try:
        session = db.session.get(IntakeSession, session_id)
        if session is None:
            session = IntakeSession(id=session_id, user_id=current_user_id(), status='recording')
            db.session.add(session)
            db.session.flush()

        chunk = AudioChunk.query.filter_by(session_id=session_id, chunk_index=chunk_index).first()
        if chunk is not None and chunk.upload_status in ('uploaded', 'combined'):
            db.session.commit()
            return jsonify({
                "success": True,
                "duplicate": True,
                "chunk_index": chunk_index,
                "storage_path": chunk.storage_path
            })

        if chunk is None:
            chunk = AudioChunk(session_id=session_id, chunk_index=chunk_index, storage_path=path,
                               retry_count=0)
            db.session.add(chunk)
        chunk.file_size = len(data)
        chunk.mime_type = audio.mimetype or DEFAULT_MIME_TYPE

        try:
            get_storage().upload(path, data, content_type=chunk.mime_type, upsert=True)
        except StorageError as e:
            chunk.upload_status = 'failed'
            chunk.retry_count = (chunk.retry_count or 0) + 1
            chunk.error_message = str(e)
            db.session.commit()
            logger.error(f"Upload of chunk {chunk_index} for session {session_id} failed: {str(e)}")
            return jsonify({"error": "Failed to upload audio chunk", "details": str(e)}), 500

        chunk.upload_status = 'uploaded'
        chunk.error_message = None
        db.session.commit()

        logger.info(f"Stored chunk {chunk_index} ({len(data)} bytes) for session {session_id}")
        return jsonify({
            "success": True,
            "duplicate": False,
            "chunk_index": chunk_index,
            "storage_path": path,
            "file_size": len(data)
        })
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error storing audio chunk: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to store audio chunk", "details": str(e)}), 500


@voice_bp.route('/voice/combine', methods=['POST'])
@auth_optional
def combine_chunks():
    """Concatenate a session's uploaded chunks into one recording."""
    data = request.get_json(silent=True) or {}
    session_id = data.get('session_id')
    if not session_id:
        return jsonify({"error": "session_id is required"}), 400

    chunks = (AudioChunk.query.filter_by(session_id=session_id, upload_status='uploaded')
              .order_by(AudioChunk.chunk_index.asc()).all())
    if not chunks:
        return jsonify({"error": "No uploaded chunks found for this session"}), 404

    storage = get_storage()
    parts, combined_chunks, failed = [], [], []
    for chunk in chunks:
        try:
            parts.append(storage.download(chunk.storage_path))
            combined_chunks.append(chunk)
        except StorageError as e:
            logger.warning(f"Skipping chunk {chunk.chunk_index} of session {session_id}: {str(e)}")
            failed.append(chunk.chunk_index)

    if not parts:
        return jsonify({"error": "Failed to download any audio chunks", "failed_chunks": failed}), 500

    combined = b''.join(parts)
    path = combined_path(session_id, int(utcnow().timestamp() * 1000))
    try:
        storage.upload(path, combined, content_type=DEFAULT_MIME_TYPE)
        url = storage.public_url(path)

        session = db.session.get(IntakeSession, session_id)
        if session is None:
            session = IntakeSession(id=session_id, user_id=current_user_id())
            db.session.add(session)
        session.voice_recording_url = url
        session.voice_recording_uploaded = True
        session.voice_recording_size = len(combined)
        session.chunks_combined_at = utcnow()
        session.status = 'completed'
        for chunk in combined_chunks:
            chunk.upload_status = 'combined'
        db.session.commit()
    except StorageError as e:
        db.session.rollback()
        logger.error(f"Failed to store combined recording for session {session_id}: {str(e)}")
        return jsonify({"error": "Failed to store combined recording", "details": str(e)}), 500
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error combining chunks for session {session_id}: {str(e)}", exc_info=True)
        return jsonify({"error": "Failed to combine audio chunks", "details": str(e)}), 500

    if session.user_id:
        owner = db.session.get(User, session.user_id)
        profile = UserProfile.for_user(session.user_id)
        notify_intake_recording_ready(
            owner.email if owner else None,
            profile.email_notifications if profile else True,
            session_id
        )

    logger.info(f"Combined {len(combined_chunks)} chunks for session {session_id} ({len(combined)} bytes)")
    return jsonify({
        "success": True,
        "session_id": session_id,
        "recording_url": url,
        "storage_path": path,
        "total_size": len(combined),
        "chunks_combined": len(combined_chunks),
        "failed_chunks": failed
    })


@voice_bp.route('/voice/combine', methods=['GET'])
@auth_optional
def combine_status():
    session_id = request.args.get('session_id')
    if not session_id:
        return jsonify({"error": "session_id is required"}), 400

    session = db.session.get(IntakeSession, session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404

    return jsonify({
        "success": True,
        "session": session.to_dict(),
        "chunk_stats": chunk_stats(session_id)
    })
