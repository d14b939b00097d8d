"""
Voice intake recording: a session collects audio chunks that are later
combined into one recording.
"""
from typing import Dict, Any

from sqlalchemy import Column, String, DateTime, ForeignKey, Boolean, Integer, UniqueConstraint

from . import db, generate_uuid, utcnow, isoformat


class IntakeSession(db.Model):
    __tablename__ = 'intake_sessions'

    id = Column(String(64), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    status = Column(String(20), nullable=False, default='recording')
    voice_recording_url = Column(String, nullable=True)
    voice_recording_uploaded = Column(Boolean, nullable=False, default=False)
    voice_recording_size = Column(Integer, nullable=True)
    chunks_combined_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "voice_recording_url": self.voice_recording_url,
            "voice_recording_uploaded": self.voice_recording_uploaded,
            "voice_recording_size": self.voice_recording_size,
            "chunks_combined_at": isoformat(self.chunks_combined_at),
            "created_at": isoformat(self.created_at)
        }


class AudioChunk(db.Model):
    __tablename__ = 'audio_chunks'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    session_id = Column(String(64), ForeignKey('intake_sessions.id', ondelete='CASCADE'), nullable=False, index=True)
    chunk_index = Column(Integer, nullable=False)
    storage_path = Column(String, nullable=False)
    file_size = Column(Integer, nullable=False, default=0)
    mime_type = Column(String(64), nullable=True)
    upload_status = Column(String(20), nullable=False, default='pending')
    retry_count = Column(Integer, nullable=False, default=0)
    error_message = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint('session_id', 'chunk_index', name='uq_audio_chunk_index'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "chunk_index": self.chunk_index,
            "storage_path": self.storage_path,
            "file_size": self.file_size,
            "upload_status": self.upload_status,
            "retry_count": self.retry_count,
            "created_at": isoformat(self.created_at)
        }
