"""
Assembly of the system prompts handed to the voice/text AI specialists.
"""
from typing import Optional

UNIVERSAL_PROTOCOLS_HEADER = "\n\n--- UNIVERSAL SPECIALIST PROTOCOLS ---\n\n"
RESUMING_MARKER = "Resuming conversation from"

DEFAULT_LANGUAGE = 'en'

SUPPORTED_LANGUAGES = {
    'en': 'English', 'es': 'Spanish', 'fr': 'French', 'de': 'German', 'it': 'Italian',
    'pt': 'Portuguese', 'ru': 'Russian', 'ja': 'Japanese', 'ko': 'Korean',
    'zh': 'Chinese (Mandarin)', 'ar': 'Arabic', 'hi': 'Hindi', 'th': 'Thai',
    'vi': 'Vietnamese', 'tl': 'Tagalog', 'ms': 'Malay', 'id': 'Indonesian',
    'nl': 'Dutch', 'sv': 'Swedish', 'no': 'Norwegian', 'da': 'Danish', 'fi': 'Finnish',
    'pl': 'Polish', 'cs': 'Czech', 'sk': 'Slovak', 'hu': 'Hungarian', 'ro': 'Romanian',
    'bg': 'Bulgarian', 'hr': 'Croatian', 'sr': 'Serbian', 'sl': 'Slovenian',
    'et': 'Estonian', 'lv': 'Latvian', 'lt': 'Lithuanian', 'uk': 'Ukrainian',
    'be': 'Belarusian', 'tr': 'Turkish', 'el': 'Greek', 'he': 'Hebrew', 'fa': 'Persian',
    'ur': 'Urdu', 'bn': 'Bengali', 'ta': 'Tamil', 'te': 'Telugu', 'mr': 'Marathi',
    'gu': 'Gujarati', 'kn': 'Kannada', 'ml': 'Malayalam', 'pa': 'Punjabi', 'ne': 'Nepali',
    'si': 'Sinhala', 'my': 'Myanmar', 'km': 'Khmer', 'lo': 'Lao', 'ka': 'Georgian',
    'hy': 'Armenian', 'az': 'Azerbaijani', 'kk': 'Kazakh', 'ky': 'Kyrgyz', 'uz': 'Uzbek',
    'tg': 'Tajik',
}

MEMORY_CONTEXT_TEMPLATE = (
    "\n\nIMPORTANT USER MEMORY CONTEXT:\n"
    "The following information has been learned about this user from previous conversations. "
    "Use this context to provide more personalized and relevant support.\n"
    "{summary}\n\n"
    "THERAPEUTIC CONTINUITY GUIDELINES:\n"
    "- Reference previous conversations naturally when relevant, without reciting the summary.\n"
    "- Build on coping strategies that helped before.\n"
    "- Do not assume the situation is unchanged; check in gently."
)

LANGUAGE_TEMPLATE = (
    "\n\nLANGUAGE REQUIREMENT:\n"
    "Always communicate in {language}. Respond only in {language}, even if the user "
    "writes in another language, unless they explicitly ask you to switch."
)

HANDOFF_TEMPLATE = (
    "\n\n=== NEW SPECIALIST SESSION ===\n"
    "You are now the {specialist} specialist taking over from the triage AI. This is a fresh "
    "start for you - introduce yourself as the specialist and acknowledge the handoff."
)

TRIAGE_CONTEXT_TEMPLATE = (
    "\n\nIMPORTANT CONTEXT FROM TRIAGE AI:\n{context}\n\n"
    "Based on this context, provide focused and relevant support for the user's specific "
    "needs. Reference their situation naturally in your responses."
)


def language_name(code: Optional[str]) -> str:
    """Display name for a language code; unknown codes fall back to English."""
    return SUPPORTED_LANGUAGES.get((code or DEFAULT_LANGUAGE).lower(), 'English')


def merge_universal_protocols(content: str, universal_content: Optional[str]) -> str:
    if not universal_content:
        return content
    return f"{content}{UNIVERSAL_PROTOCOLS_HEADER}{universal_content}"


def add_memory_context(content: str, ai_summary: Optional[str]) -> str:
    if not ai_summary or not ai_summary.strip():
        return content
    return content + MEMORY_CONTEXT_TEMPLATE.format(summary=ai_summary.strip())


def add_language_instruction(content: str, language_code: Optional[str]) -> str:
    return content + LANGUAGE_TEMPLATE.format(language=language_name(language_code))


def add_specialist_handoff(content: str, specialist: str, context_summary: Optional[str]) -> str:
    """Handoff framing used when a specialist picks up from triage."""
    if not context_summary:
        return content
    return (content
            + HANDOFF_TEMPLATE.format(specialist=specialist)
            + TRIAGE_CONTEXT_TEMPLATE.format(context=context_summary))


def needs_stored_context(context_summary: Optional[str]) -> bool:
    """True when the client sent no usable summary and the stored one should be used."""
    return not context_summary or RESUMING_MARKER in context_summary
