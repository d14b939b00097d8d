"""
Admin-managed content: AI prompts, greetings, conversation starters and
generated warm handoffs.
"""
from typing import Dict, Any, Optional

from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Boolean, Integer, JSON

from . import db, generate_uuid, utcnow, isoformat

SPECIALIST_PROMPT_TYPES = [
    'triage',
    'crisis_specialist',
    'anxiety_specialist',
    'depression_specialist',
    'trauma_specialist',
    'substance_use_specialist',
    'practical_support_specialist',
    'cbt_specialist',
    'dbt_specialist',
    'universal',
    'universal_functions',
]

# Prompts used by server-side generation rather than live chat
SUPPORT_PROMPT_TYPES = [
    'profile_analysis_system',
    'profile_merge_system',
    'profile_merge_user',
    'warm_handoff_system',
    'warm_handoff_user',
    'ai_summary_system',
]

PROMPT_TYPES = SPECIALIST_PROMPT_TYPES + SUPPORT_PROMPT_TYPES


class AIPrompt(db.Model):
    """Versioned system prompt for an AI specialist or generation task."""
    __tablename__ = 'ai_prompts'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    prompt_type = Column(String(64), nullable=False, index=True)
    content = Column(Text, nullable=False)
    voice_settings = Column(JSON, nullable=True)
    prompt_metadata = Column('metadata', JSON, nullable=True)
    functions = Column(JSON, nullable=False, default=list)
    merge_with_universal_functions = Column(Boolean, nullable=False, default=True)
    merge_with_universal_protocols = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @classmethod
    def active(cls, prompt_type: str) -> Optional['AIPrompt']:
        """Most recently updated active prompt of a type."""
        return (cls.query.filter_by(prompt_type=prompt_type, is_active=True)
                .order_by(cls.updated_at.desc()).first())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "prompt_type": self.prompt_type,
            "content": self.content,
            "voice_settings": self.voice_settings,
            "metadata": self.prompt_metadata,
            "functions": self.functions or [],
            "merge_with_universal_functions": self.merge_with_universal_functions,
            "merge_with_universal_protocols": self.merge_with_universal_protocols,
            "is_active": self.is_active,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at)
        }

    def __repr__(self) -> str:
        return f"<AIPrompt {self.prompt_type}>"


class Greeting(db.Model):
    """Opening line spoken by an AI persona, per language."""
    __tablename__ = 'greetings'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    greeting_type = Column(String(64), nullable=False, index=True)
    language_code = Column(String(8), nullable=False, default='en')
    greeting_content = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    greeting_metadata = Column('metadata', JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "greeting_type": self.greeting_type,
            "language_code": self.language_code,
            "greeting_content": self.greeting_content,
            "is_active": self.is_active,
            "metadata": self.greeting_metadata,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at)
        }


class Book(db.Model):
    __tablename__ = 'books'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    title = Column(String(255), nullable=False)
    author = Column(String(255), nullable=True)


class OpeningLine(db.Model):
    """Conversation starter question attached to a book."""
    __tablename__ = 'opening_lines'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    book_id = Column(String(36), ForeignKey('books.id', ondelete='CASCADE'), nullable=False, index=True)
    opening_line = Column(Text, nullable=False)
    topic = Column(String(255), nullable=True)


class WarmHandoff(db.Model):
    """Generated summary handed to a human provider."""
    __tablename__ = 'warm_handoffs'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    handoff_content = Column(Text, nullable=False)
    profile_version = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "handoff_content": self.handoff_content,
            "profile_version": self.profile_version,
            "created_at": isoformat(self.created_at)
        }
