"""
Models recording moderation outcomes and crisis escalation state.
"""
from typing import Dict, Any

from sqlalchemy import Column, String, Text, DateTime, Boolean, Integer, Float, JSON

from . import db, generate_uuid, utcnow, isoformat


class ModerationResult(db.Model):
    __tablename__ = 'moderation_results'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    content_type = Column(String(20), nullable=False)
    content_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=True, index=True)
    decision = Column(String(20), nullable=False)
    toxicity_score = Column(Float, nullable=False, default=0.0)
    mental_health_flags = Column(JSON, nullable=False, default=list)
    requires_review = Column(Boolean, nullable=False, default=False)
    priority = Column(String(20), nullable=False, default='standard')
    moderation_details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content_type": self.content_type,
            "content_id": self.content_id,
            "user_id": self.user_id,
            "decision": self.decision,
            "toxicity_score": self.toxicity_score,
            "mental_health_flags": self.mental_health_flags or [],
            "requires_review": self.requires_review,
            "priority": self.priority,
            "created_at": isoformat(self.created_at)
        }


class CrisisDetection(db.Model):
    __tablename__ = 'crisis_detections'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), nullable=True, index=True)
    content_type = Column(String(20), nullable=False)
    content_id = Column(String(36), nullable=True)
    detected_flags = Column(JSON, nullable=False, default=list)
    severity = Column(String(20), nullable=False)
    confidence = Column(Float, nullable=False, default=0.8)
    content_excerpt = Column(Text, nullable=True)
    response_sent = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "content_type": self.content_type,
            "content_id": self.content_id,
            "detected_flags": self.detected_flags or [],
            "severity": self.severity,
            "confidence": self.confidence,
            "response_sent": self.response_sent,
            "created_at": isoformat(self.created_at)
        }


class UserSafetyTracking(db.Model):
    """Rolling risk level per user."""
    __tablename__ = 'user_safety_tracking'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), unique=True, nullable=False)
    risk_level = Column(String(20), nullable=False, default='low')
    flag_count = Column(Integer, nullable=False, default=0)
    last_flagged_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "risk_level": self.risk_level,
            "flag_count": self.flag_count,
            "last_flagged_at": isoformat(self.last_flagged_at)
        }


class ClinicalReviewQueue(db.Model):
    __tablename__ = 'clinical_review_queue'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    moderation_result_id = Column(String(36), nullable=False)
    content_type = Column(String(20), nullable=False)
    content_id = Column(String(36), nullable=False)
    user_id = Column(String(36), nullable=True)
    priority = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default='pending')
    created_at = Column(DateTime, default=utcnow)
