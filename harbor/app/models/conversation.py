"""
Models for AI chat conversations and their messages, including the
specialist handoff history used by triage sessions.
"""
from typing import Dict, Any, List, Optional

from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Boolean, JSON, CheckConstraint
from sqlalchemy.orm import relationship

from . import db, generate_uuid, utcnow, isoformat


class Conversation(db.Model):
    """A chat conversation between a person and the AI specialists."""
    __tablename__ = 'conversations'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    # User id for signed-in people, an anonymous client id otherwise
    human_id = Column(String(64), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    current_specialist = Column(String(64), nullable=True)
    specialist_history = Column(JSON, nullable=False, default=list)
    topic = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    last_activity_at = Column(DateTime, default=utcnow)

    messages = relationship('Message', back_populates='conversation',
                            cascade='all, delete-orphan', lazy='dynamic',
                            order_by='Message.created_at')

    def __init__(self, human_id: Optional[str] = None, is_active: bool = True):
        self.human_id = human_id
        self.is_active = is_active
        self.specialist_history = []

    def start_specialist(self, specialist: str, context_summary: Optional[str], started_at: str) -> None:
        """Record a specialist taking over the conversation."""
        entry = {
            "specialist": specialist,
            "started_at": started_at,
            "context_summary": context_summary
        }
        # Reassign so the JSON column sees the change
        self.specialist_history = list(self.specialist_history or []) + [entry]
        self.current_specialist = specialist
        self.last_activity_at = utcnow()

    def end_specialist(self, ended_at: str) -> Optional[str]:
        """Close the current specialist segment and return who was active."""
        previous = self.current_specialist
        history: List[Dict[str, Any]] = [dict(entry) for entry in (self.specialist_history or [])]
        if history:
            history[-1]["ended_at"] = ended_at
        self.specialist_history = history
        self.current_specialist = None
        self.last_activity_at = utcnow()
        return previous

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "human_id": self.human_id,
            "is_active": self.is_active,
            "current_specialist": self.current_specialist,
            "specialist_history": self.specialist_history or [],
            "topic": self.topic,
            "created_at": isoformat(self.created_at),
            "last_activity_at": isoformat(self.last_activity_at)
        }

    def __repr__(self) -> str:
        return f"<Conversation {self.id}>"


class Message(db.Model):
    """A single message within a conversation."""
    __tablename__ = 'messages'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    conversation_id = Column(String(36), ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False, index=True)
    role = Column(String(20), nullable=False)
    content = Column(Text, nullable=False, default='')
    question_id = Column(String(64), nullable=True, index=True)
    routing_metadata = Column(JSON, nullable=True)
    message_metadata = Column('metadata', JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    conversation = relationship('Conversation', back_populates='messages')

    __table_args__ = (
        CheckConstraint(role.in_(['user', 'assistant', 'system']), name='message_role_check'),
    )

    def __init__(self, conversation_id: str, role: str, content: str,
                 question_id: Optional[str] = None,
                 routing_metadata: Optional[Dict[str, Any]] = None,
                 message_metadata: Optional[Dict[str, Any]] = None):
        self.conversation_id = conversation_id
        self.role = role
        self.content = content
        self.question_id = question_id
        self.routing_metadata = routing_metadata
        self.message_metadata = message_metadata
        self.created_at = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "role": self.role,
            "content": self.content,
            "question_id": self.question_id,
            "routing_metadata": self.routing_metadata,
            "metadata": self.message_metadata,
            "created_at": isoformat(self.created_at)
        }

    def __repr__(self) -> str:
        return f"<Message {self.role} in {self.conversation_id}>"
