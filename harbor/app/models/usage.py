"""
Site usage tracking per visit and per person.
"""
from typing import Dict, Any

from sqlalchemy import Column, String, DateTime, Integer

from . import db, generate_uuid, utcnow, isoformat


class UsageSession(db.Model):
    __tablename__ = 'usage_sessions'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), nullable=True, index=True)
    anonymous_id = Column(String(64), nullable=True, index=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    session_start = Column(DateTime, default=utcnow)
    session_end = Column(DateTime, nullable=True)
    page_views = Column(Integer, nullable=False, default=0)
    duration_ms = Column(Integer, nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "anonymous_id": self.anonymous_id,
            "session_start": isoformat(self.session_start),
            "session_end": isoformat(self.session_end),
            "page_views": self.page_views,
            "duration_ms": self.duration_ms
        }


class UserUsageSummary(db.Model):
    """Lifetime totals keyed by user id or anonymous id."""
    __tablename__ = 'user_usage_summary'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    visitor_key = Column(String(64), unique=True, nullable=False)
    user_id = Column(String(36), nullable=True)
    anonymous_id = Column(String(64), nullable=True)
    first_visit = Column(DateTime, default=utcnow)
    last_visit = Column(DateTime, default=utcnow)
    total_sessions = Column(Integer, nullable=False, default=0)
    total_page_views = Column(Integer, nullable=False, default=0)
    total_minutes = Column(Integer, nullable=False, default=0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "anonymous_id": self.anonymous_id,
            "first_visit": isoformat(self.first_visit),
            "last_visit": isoformat(self.last_visit),
            "total_sessions": self.total_sessions,
            "total_page_views": self.total_page_views,
            "total_minutes": self.total_minutes
        }
