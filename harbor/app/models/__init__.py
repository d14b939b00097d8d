"""
Models package that defines the database schema.
"""
from datetime import datetime, timezone
from uuid import uuid4

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Initialize SQLAlchemy
db = SQLAlchemy()
migrate = Migrate()


def generate_uuid() -> str:
    """Primary key default; ids are stored as canonical UUID strings."""
    return str(uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, comparable with values read back from any backend."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    return value.isoformat() if value else None


# Import models to ensure they are registered by SQLAlchemy
from .user import User, UserProfile
from .conversation import Conversation, Message
from .content import AIPrompt, Greeting, Book, OpeningLine, WarmHandoff
from .community import (Circle, CircleMembership, CircleJoinRequest, CircleAccessLink,
                        AdminNotificationLog, Post, Comment, Vote, Reaction, Report)
from .safety import ModerationResult, CrisisDetection, UserSafetyTracking, ClinicalReviewQueue
from .therapist import TherapistProfile
from .voice import IntakeSession, AudioChunk
from .usage import UsageSession, UserUsageSummary

__all__ = ['db', 'migrate', 'generate_uuid', 'utcnow', 'isoformat',
           'User', 'UserProfile', 'Conversation', 'Message',
           'AIPrompt', 'Greeting', 'Book', 'OpeningLine', 'WarmHandoff',
           'Circle', 'CircleMembership', 'CircleJoinRequest', 'CircleAccessLink', 'AdminNotificationLog',
           'Post', 'Comment', 'Vote', 'Reaction', 'Report',
           'ModerationResult', 'CrisisDetection', 'UserSafetyTracking', 'ClinicalReviewQueue',
           'TherapistProfile', 'IntakeSession', 'AudioChunk', 'UsageSession', 'UserUsageSummary']
