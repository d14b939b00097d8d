"""
User model module for authentication plus the per-user profile the AI
features and the community share.
"""
from typing import Dict, Any, Optional

from passlib.hash import bcrypt
from sqlalchemy import Column, String, DateTime, Integer, Boolean, Text, JSON, ForeignKey
from sqlalchemy.orm import relationship

from . import db, generate_uuid, utcnow, isoformat


class User(db.Model):
    """User model for authentication and authorization."""
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    username = Column(String(80), unique=True, nullable=False)
    email = Column(String(120), unique=True, nullable=False)
    password_hash = Column(String(128), nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)

    profile = relationship('UserProfile', back_populates='user', uselist=False,
                           cascade='all, delete-orphan')

    def __init__(self, username: str, email: str, password: str, is_admin: bool = False):
        """Initialize a new user.

        Args:
            username: A unique username.
            email: User's email address.
            password: Plain text password (will be hashed).
            is_admin: Grants access to the admin consoles.
        """
        self.username = username
        self.email = email
        self.password_hash = bcrypt.hash(password)
        self.is_admin = is_admin

    def verify_password(self, password: str) -> bool:
        """Verify a password against the stored hash.

        Args:
            password: Plain text password to verify.

        Returns:
            True if the password matches, False otherwise.
        """
        return bcrypt.verify(password, self.password_hash)

    def to_dict(self) -> Dict[str, Any]:
        """Convert user to dictionary representation, excluding sensitive fields."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "is_admin": self.is_admin,
            "display_name": self.profile.display_name if self.profile else None,
            "created_at": isoformat(self.created_at)
        }

    def __repr__(self) -> str:
        return f"<User {self.username}>"


class UserProfile(db.Model):
    """Profile learned from conversations plus community identity and stats."""
    __tablename__ = 'user_profiles'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False)
    display_name = Column(String(50), nullable=True, index=True)
    profile_data = Column(JSON, nullable=False, default=dict)
    ai_instructions_summary = Column(Text, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    email_notifications = Column(Boolean, nullable=False, default=True)
    phone = Column(String(32), nullable=True)
    post_count = Column(Integer, nullable=False, default=0)
    comment_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship('User', back_populates='profile')

    def __init__(self, user_id: str, display_name: Optional[str] = None,
                 profile_data: Optional[Dict[str, Any]] = None):
        self.user_id = user_id
        self.display_name = display_name
        self.profile_data = profile_data or {}
        self.version = 1
        self.post_count = 0
        self.comment_count = 0

    @classmethod
    def for_user(cls, user_id: str, create: bool = False) -> Optional['UserProfile']:
        """Fetch a user's profile, optionally adding an empty one to the session."""
        profile = cls.query.filter_by(user_id=user_id).first()
        if profile is None and create:
            profile = cls(user_id=user_id)
            db.session.add(profile)
        return profile

    @property
    def has_display_name(self) -> bool:
        return bool(self.display_name and self.display_name.strip())

    def bump_stat(self, field: str, delta: int) -> None:
        """Adjust a community counter, never going below zero."""
        setattr(self, field, max(0, (getattr(self, field) or 0) + delta))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "display_name": self.display_name,
            "profile_data": self.profile_data or {},
            "ai_instructions_summary": self.ai_instructions_summary,
            "version": self.version,
            "email_notifications": self.email_notifications,
            "post_count": self.post_count,
            "comment_count": self.comment_count,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at)
        }

    def __repr__(self) -> str:
        return f"<UserProfile {self.user_id}>"
