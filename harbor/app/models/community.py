"""
Community forum models: circles and their memberships, posts, comments and
the feedback attached to them.
"""
from typing import Dict, Any, Optional, List

from sqlalchemy import (Column, String, Text, DateTime, ForeignKey, Boolean, Integer, Float, JSON,
                        UniqueConstraint, CheckConstraint)
from sqlalchemy.orm import relationship

from . import db, generate_uuid, utcnow, isoformat


class CounterMixin:
    """Denormalised counters that must never go negative."""

    def adjust(self, field: str, delta: int) -> int:
        value = max(0, (getattr(self, field) or 0) + delta)
        setattr(self, field, value)
        return value


class Circle(CounterMixin, db.Model):
    """A community sub-forum."""
    __tablename__ = 'circles'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String(64), unique=True, nullable=False)
    display_name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    icon_url = Column(String, nullable=True)
    is_private = Column(Boolean, nullable=False, default=False)
    requires_approval = Column(Boolean, nullable=False, default=False)
    is_approved = Column(Boolean, nullable=False, default=False)
    member_count = Column(Integer, nullable=False, default=0)
    post_count = Column(Integer, nullable=False, default=0)
    rules = Column(JSON, nullable=False, default=list)
    created_by = Column(String(36), ForeignKey('users.id'), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    memberships = relationship('CircleMembership', back_populates='circle',
                               cascade='all, delete-orphan', lazy='dynamic')

    def membership_for(self, user_id: Optional[str]) -> Optional['CircleMembership']:
        if not user_id:
            return None
        return self.memberships.filter_by(user_id=user_id).first()

    def is_admin(self, user_id: Optional[str]) -> bool:
        membership = self.membership_for(user_id)
        return membership is not None and membership.role == 'admin'

    def to_summary(self) -> Dict[str, Any]:
        """Short form embedded in posts."""
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "icon_url": self.icon_url,
            "is_private": self.is_private
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "icon_url": self.icon_url,
            "is_private": self.is_private,
            "requires_approval": self.requires_approval,
            "is_approved": self.is_approved,
            "member_count": self.member_count,
            "post_count": self.post_count,
            "rules": self.rules or [],
            "created_by": self.created_by,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at)
        }

    def __repr__(self) -> str:
        return f"<Circle {self.name}>"


class CircleMembership(db.Model):
    __tablename__ = 'circle_memberships'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    circle_id = Column(String(36), ForeignKey('circles.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    role = Column(String(20), nullable=False, default='member')
    joined_at = Column(DateTime, default=utcnow)

    circle = relationship('Circle', back_populates='memberships')

    __table_args__ = (
        UniqueConstraint('circle_id', 'user_id', name='uq_circle_membership'),
        CheckConstraint(role.in_(['member', 'moderator', 'admin']), name='circle_membership_role_check'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "circle_id": self.circle_id,
            "user_id": self.user_id,
            "role": self.role,
            "joined_at": isoformat(self.joined_at)
        }


class CircleJoinRequest(db.Model):
    """Request to join a private or approval-gated circle."""
    __tablename__ = 'circle_join_requests'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    circle_id = Column(String(36), ForeignKey('circles.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    status = Column(String(20), nullable=False, default='pending')
    message = Column(Text, nullable=True)
    notification_email = Column(String(255), nullable=True)
    notification_phone = Column(String(32), nullable=True)
    access_link_id = Column(String(36), ForeignKey('circle_access_links.id'), nullable=True)
    reviewed_by = Column(String(36), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    admin_response = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint('circle_id', 'user_id', name='uq_circle_join_request'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "circle_id": self.circle_id,
            "user_id": self.user_id,
            "status": self.status,
            "message": self.message,
            "notification_email": self.notification_email,
            "notification_phone": self.notification_phone,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": isoformat(self.reviewed_at),
            "admin_response": self.admin_response,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at)
        }


class CircleAccessLink(db.Model):
    """Invite token that lets people request access to a circle."""
    __tablename__ = 'circle_access_links'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    circle_id = Column(String(36), ForeignKey('circles.id', ondelete='CASCADE'), nullable=False, index=True)
    token = Column(String(64), unique=True, nullable=False)
    created_by = Column(String(36), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime, nullable=True)
    max_uses = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)

    def usable(self) -> bool:
        if not self.is_active:
            return False
        if self.expires_at and self.expires_at < utcnow():
            return False
        if self.max_uses is not None and (self.usage_count or 0) >= self.max_uses:
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "circle_id": self.circle_id,
            "token": self.token,
            "is_active": self.is_active,
            "expires_at": isoformat(self.expires_at),
            "max_uses": self.max_uses,
            "usage_count": self.usage_count,
            "created_at": isoformat(self.created_at)
        }


class AdminNotificationLog(db.Model):
    __tablename__ = 'admin_notification_log'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    join_request_id = Column(String(36), ForeignKey('circle_join_requests.id', ondelete='SET NULL'), nullable=True)
    circle_id = Column(String(36), nullable=False)
    admin_id = Column(String(36), nullable=False)
    recipient_user_id = Column(String(36), nullable=False)
    notification_method = Column(String(20), nullable=False)
    decision = Column(String(20), nullable=False)
    admin_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class Post(CounterMixin, db.Model):
    """Community post, either general or inside a circle."""
    __tablename__ = 'community_posts'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id'), nullable=False, index=True)
    circle_id = Column(String(36), ForeignKey('circles.id', ondelete='SET NULL'), nullable=True, index=True)
    title = Column(String(300), nullable=False)
    content = Column(Text, nullable=False)
    post_type = Column(String(20), nullable=False, default='text')
    audio_url = Column(String, nullable=True)
    audio_duration = Column(Float, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    upvotes = Column(Integer, nullable=False, default=0)
    downvotes = Column(Integer, nullable=False, default=0)
    comment_count = Column(Integer, nullable=False, default=0)
    view_count = Column(Integer, nullable=False, default=0)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_reason = Column(String(255), nullable=True)
    is_flagged = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    author = relationship('User')
    circle = relationship('Circle')

    __table_args__ = (
        CheckConstraint(post_type.in_(['text', 'audio', 'question']), name='community_post_type_check'),
    )

    def has_any_tag(self, tags: List[str]) -> bool:
        return bool(set(self.tags or []) & set(tags))

    def to_dict(self) -> Dict[str, Any]:
        profile = self.author.profile if self.author else None
        return {
            "id": self.id,
            "user_id": self.user_id,
            "author_display_name": profile.display_name if profile else None,
            "circle_id": self.circle_id,
            "circle": self.circle.to_summary() if self.circle else None,
            "title": self.title,
            "content": self.content,
            "post_type": self.post_type,
            "audio_url": self.audio_url,
            "audio_duration": self.audio_duration,
            "tags": self.tags or [],
            "upvotes": self.upvotes,
            "downvotes": self.downvotes,
            "comment_count": self.comment_count,
            "view_count": self.view_count,
            "is_flagged": self.is_flagged,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at)
        }

    def __repr__(self) -> str:
        return f"<Post {self.title}>"


class Comment(CounterMixin, db.Model):
    __tablename__ = 'community_comments'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    post_id = Column(String(36), ForeignKey('community_posts.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey('users.id'), nullable=False, index=True)
    parent_id = Column(String(36), ForeignKey('community_comments.id', ondelete='CASCADE'), nullable=True, index=True)
    content = Column(Text, nullable=False)
    upvotes = Column(Integer, nullable=False, default=0)
    downvotes = Column(Integer, nullable=False, default=0)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_reason = Column(String(255), nullable=True)
    is_flagged = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    author = relationship('User')
    post = relationship('Post')

    def to_dict(self) -> Dict[str, Any]:
        profile = self.author.profile if self.author else None
        return {
            "id": self.id,
            "post_id": self.post_id,
            "user_id": self.user_id,
            "author_display_name": profile.display_name if profile else None,
            "parent_id": self.parent_id,
            "content": self.content,
            "upvotes": self.upvotes,
            "downvotes": self.downvotes,
            "is_flagged": self.is_flagged,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at)
        }


class Vote(db.Model):
    __tablename__ = 'community_votes'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    post_id = Column(String(36), ForeignKey('community_posts.id', ondelete='CASCADE'), nullable=True)
    comment_id = Column(String(36), ForeignKey('community_comments.id', ondelete='CASCADE'), nullable=True)
    vote_type = Column(String(10), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(vote_type.in_(['upvote', 'downvote']), name='community_vote_type_check'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "post_id": self.post_id,
            "comment_id": self.comment_id,
            "vote_type": self.vote_type,
            "created_at": isoformat(self.created_at)
        }


class Reaction(db.Model):
    __tablename__ = 'community_reactions'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    post_id = Column(String(36), ForeignKey('community_posts.id', ondelete='CASCADE'), nullable=True)
    comment_id = Column(String(36), ForeignKey('community_comments.id', ondelete='CASCADE'), nullable=True)
    reaction_type = Column(String(20), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "post_id": self.post_id,
            "comment_id": self.comment_id,
            "reaction_type": self.reaction_type,
            "created_at": isoformat(self.created_at)
        }


class Report(db.Model):
    __tablename__ = 'community_reports'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    reported_by = Column(String(36), ForeignKey('users.id'), nullable=False, index=True)
    post_id = Column(String(36), ForeignKey('community_posts.id', ondelete='CASCADE'), nullable=True)
    comment_id = Column(String(36), ForeignKey('community_comments.id', ondelete='CASCADE'), nullable=True)
    reason = Column(String(32), nullable=False)
    details = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default='pending')
    reviewed_by = Column(String(36), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reported_by": self.reported_by,
            "post_id": self.post_id,
            "comment_id": self.comment_id,
            "reason": self.reason,
            "details": self.details,
            "status": self.status,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": isoformat(self.reviewed_at),
            "created_at": isoformat(self.created_at)
        }
