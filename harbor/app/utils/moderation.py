"""
Content moderation and crisis detection helpers.

Keyword matching catches the explicit cases; the vendor moderation API and an
LLM pass fill in the rest. Routes persist the outcome.
"""
import logging
from typing import Dict, Any, List, Optional

from ..models import db, CrisisDetection, UserSafetyTracking, utcnow
from .llm_service import llm_service, LLMServiceError

logger = logging.getLogger(__name__)

MENTAL_HEALTH_KEYWORDS = {
    'suicide_ideation': [
        'want to die', 'wish i was dead', 'kill myself', 'end my life',
        'suicide', 'suicidal', 'not worth living', 'better off dead'
    ],
    'self_harm': [
        'cut myself', 'hurt myself', 'self harm', 'cutting',
        'burning myself', 'harm myself'
    ],
    'crisis_escalation': [
        'tonight', 'today', 'right now', 'cant take it anymore',
        'final message', 'goodbye', 'last time'
    ],
    'eating_disorder': [
        'havent eaten', 'threw up', 'purging', 'binge',
        'fat', 'ugly', 'calories', 'restrict'
    ],
}

CRISIS_FLAGS = {'suicide_ideation', 'self_harm', 'crisis_escalation'}
IMMEDIATE_FLAGS = {'suicide_ideation', 'crisis_escalation'}
URGENT_FLAGS = {'self_harm', 'eating_disorder'}

FLAGGED_TOXICITY = 0.8
CLEAN_TOXICITY = 0.1
CRISIS_CONFIDENCE = 0.8

CRISIS_RESPONSE_MESSAGE = (
    "I'm concerned about your safety. It's important that you talk to someone who can help "
    "immediately. Please call the 988 Suicide and Crisis Lifeline at 988, text HOME to 741741 "
    "to reach the Crisis Text Line, or go to your nearest emergency room. Would you like me to "
    "provide more resources or help you think through your next steps to stay safe right now?"
)

CRISIS_RESOURCES = [
    {"name": "988 Suicide and Crisis Lifeline", "phone": "988", "available": "24/7"},
    {"name": "Crisis Text Line", "contact": "Text HOME to 741741", "available": "24/7"},
    {"name": "Emergency Services", "phone": "911", "available": "24/7"},
]


def keyword_flags(content: str) -> List[str]:
    """Flags whose keywords appear in the content, in a stable order."""
    lowered = (content or '').lower()
    return [flag for flag, words in MENTAL_HEALTH_KEYWORDS.items()
            if any(word in lowered for word in words)]


def vendor_moderation(content: str) -> Optional[Dict[str, Any]]:
    """OpenAI moderation result, or None when the vendor is unavailable."""
    try:
        return llm_service.moderate(content)
    except LLMServiceError as e:
        logger.warning(f"Moderation API unavailable, continuing with keyword checks: {e}")
        return None


def ai_flags(content: str) -> List[str]:
    """LLM-labelled flags, or an empty list when the call fails."""
    try:
        return llm_service.detect_mental_health_flags(content)
    except LLMServiceError as e:
        logger.warning(f"AI flag analysis failed: {e}")
        return []


def moderation_priority(flags: List[str], categories: Optional[Dict[str, bool]] = None) -> str:
    """Review priority: immediate, urgent or standard."""
    flag_set = set(flags)
    if flag_set & IMMEDIATE_FLAGS:
        return 'immediate'
    violent = any(active for name, active in (categories or {}).items() if name.startswith('violence'))
    if flag_set & URGENT_FLAGS or violent:
        return 'urgent'
    return 'standard'


def crisis_severity(flags: List[str]) -> str:
    flag_set = set(flags)
    if flag_set & IMMEDIATE_FLAGS:
        return 'immediate'
    if 'self_harm' in flag_set:
        return 'high'
    return 'medium'


def analyze_content(content: str) -> Dict[str, Any]:
    """Run every moderation check and derive the decision.

    Returns:
        Dict with ``decision``, ``requires_review``, ``priority``,
        ``toxicity_score``, ``mental_health_flags`` and
        ``moderation_details``.
    """
    vendor_result = vendor_moderation(content)
    flagged = bool(vendor_result and vendor_result.get('flagged'))
    categories = (vendor_result or {}).get('categories') or {}

    flags = keyword_flags(content)
    source = 'keywords'
    if not flags:
        flags = ai_flags(content)
        source = 'ai_analysis'

    requires_review = flagged or bool(flags)
    return {
        "decision": 'flagged' if requires_review else 'approved',
        "requires_review": requires_review,
        "priority": moderation_priority(flags, categories),
        "toxicity_score": FLAGGED_TOXICITY if flagged else CLEAN_TOXICITY,
        "mental_health_flags": flags,
        "moderation_details": {
            "vendor_flagged": flagged,
            "vendor_available": vendor_result is not None,
            "categories": categories,
            "category_scores": (vendor_result or {}).get('category_scores') or {},
            "flag_source": source if flags else None
        }
    }


def is_crisis(flags: List[str]) -> bool:
    return bool(set(flags) & CRISIS_FLAGS)


def record_crisis_detection(user_id: Optional[str], content_type: str, content_id: Optional[str],
                            flags: List[str], content: str, response_sent: bool = False):
    """Store a crisis detection and raise the user's tracked risk level.

    Adds rows to the session; the caller commits.
    """
    severity = crisis_severity(flags)
    detection = CrisisDetection(
        user_id=user_id,
        content_type=content_type,
        content_id=content_id,
        detected_flags=list(flags),
        severity=severity,
        confidence=CRISIS_CONFIDENCE,
        content_excerpt=(content or '')[:500],
        response_sent=response_sent
    )
    db.session.add(detection)

    if user_id:
        tracking = UserSafetyTracking.query.filter_by(user_id=user_id).first()
        if tracking is None:
            tracking = UserSafetyTracking(user_id=user_id, flag_count=0)
            db.session.add(tracking)
        tracking.risk_level = 'crisis' if severity == 'immediate' else 'high'
        tracking.flag_count = (tracking.flag_count or 0) + 1
        tracking.last_flagged_at = utcnow()

    logger.warning(f"Crisis detected for user {user_id or 'anonymous'} ({content_type}): "
                   f"flags={flags}, severity={severity}")
    return detection
