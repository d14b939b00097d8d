"""
Service for interacting with the hosted LLM vendors (Anthropic and OpenAI).
"""
import os
import json
import logging
from typing import List, Dict, Any, Optional

import requests

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
OPENAI_MODERATION_URL = "https://api.openai.com/v1/moderations"

# Constants for LLM parameters (can be adjusted)
DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.3
REQUEST_TIMEOUT = 60

WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 5}

DEFAULT_SUMMARY_PROMPT = (
    "You write short instruction summaries that tell an AI support companion what it "
    "should remember about a person. Focus on preferences, ongoing challenges, coping "
    "strategies that helped, and topics to handle with care. Never include diagnoses "
    "the person did not state themselves."
)
DEFAULT_MERGE_SYSTEM_PROMPT = (
    "You maintain a structured JSON profile of a person using a mental health support "
    "service. Merge new conversation analysis into the existing profile without losing "
    "prior information, resolving conflicts in favour of the newer analysis. Respond "
    "with the complete updated profile as a single JSON object and nothing else."
)
DEFAULT_MERGE_USER_PROMPT = "Merge the new analysis into the existing profile."
DEFAULT_ANALYSIS_SYSTEM_PROMPT = (
    "You analyze a conversation between a person and an AI support companion. Extract "
    "what is worth remembering for future conversations: stated concerns, goals, coping "
    "strategies, preferences and important life context. Respond with a single JSON "
    "object and nothing else."
)
DEFAULT_HANDOFF_SYSTEM_PROMPT = (
    "You prepare warm handoff notes that introduce a person to a human mental health "
    "provider. Be concise, respectful and factual."
)
DEFAULT_HANDOFF_USER_PROMPT = (
    "Write a warm handoff summary for a provider based on this profile:\n\n{PROFILE_DATA}"
)
FLAG_ANALYSIS_PROMPT = (
    "Analyze this text for mental health concerns. Respond with JSON only, in the form "
    '{{"flags": [...]}}, using any of: suicide_ideation, self_harm, crisis_escalation, '
    "eating_disorder, severe_depression. Use an empty list when nothing applies.\n\n"
    "Text: {content}"
)


class LLMServiceError(Exception):
    """Raised when a vendor call fails or returns an unusable response."""


class LLMService:
    """Thin client over the Anthropic Messages and OpenAI REST APIs."""

    def __init__(self):
        """Initialize the LLM service.

        Loads configuration from environment variables:
        - ANTHROPIC_API_KEY / CLAUDE_MODEL for Claude calls.
        - OPENAI_API_KEY / OPENAI_MODEL for chat completions and moderation.
        """
        self.anthropic_api_key = os.getenv("ANTHROPIC_API_KEY")
        self.claude_model = os.getenv("CLAUDE_MODEL", "claude-3-5-sonnet-20241022")
        self.openai_api_key = os.getenv("OPENAI_API_KEY")
        self.openai_model = os.getenv("OPENAI_MODEL", "gpt-4o")

    def configure(self, config: Dict[str, Any]) -> None:
        """Apply keys and model names from the Flask config."""
        self.anthropic_api_key = config.get("ANTHROPIC_API_KEY") or self.anthropic_api_key
        self.claude_model = config.get("CLAUDE_MODEL") or self.claude_model
        self.openai_api_key = config.get("OPENAI_API_KEY") or self.openai_api_key
        self.openai_model = config.get("OPENAI_MODEL") or self.openai_model
        if not self.anthropic_api_key:
            logger.warning("ANTHROPIC_API_KEY not set. Claude calls will fail.")
        if not self.openai_api_key:
            logger.warning("OPENAI_API_KEY not set. OpenAI calls will fail.")

    def get_anthropic_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.anthropic_api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json"
        }

    def get_openai_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.openai_api_key}",
            "Content-Type": "application/json"
        }

    def _post(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON payload and return the decoded JSON body.

        Raises:
            LLMServiceError: On timeouts, HTTP errors or non-JSON bodies.
        """
        try:
            logger.debug(f"Sending request to {url}")
            response = requests.post(url, headers=headers, json=payload, timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.Timeout as e:
            logger.error(f"Request to {url} timed out.")
            raise LLMServiceError("LLM request timed out") from e
        except requests.exceptions.RequestException as e:
            status = e.response.status_code if e.response is not None else 'N/A'
            body = e.response.text if e.response is not None else "No response body"
            logger.error(f"Error calling {url} (status {status}): {body}")
            raise LLMServiceError(f"Failed to communicate with LLM API (Status: {status})") from e
        except ValueError as e:
            raise LLMServiceError("LLM API returned a non-JSON response") from e

    def call_claude(self, prompt: str,
                    system: Optional[str] = None,
                    max_tokens: int = DEFAULT_MAX_TOKENS,
                    temperature: float = DEFAULT_TEMPERATURE,
                    tools: Optional[List[Dict[str, Any]]] = None) -> str:
        """Send one user turn to Claude and return the joined text blocks."""
        if not self.anthropic_api_key:
            raise LLMServiceError("ANTHROPIC_API_KEY is not configured")

        payload: Dict[str, Any] = {
            "model": self.claude_model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}]
        }
        if system:
            payload["system"] = system
        if tools:
            payload["tools"] = tools

        result = self._post(ANTHROPIC_API_URL, self.get_anthropic_headers(), payload)
        text = "\n\n".join(
            block.get("text", "") for block in result.get("content", [])
            if block.get("type") == "text"
        ).strip()
        if not text:
            raise LLMServiceError("Claude returned an empty response")
        return text

    def call_openai_chat(self, messages: List[Dict[str, str]],
                         max_tokens: int = DEFAULT_MAX_TOKENS,
                         temperature: float = DEFAULT_TEMPERATURE) -> str:
        """Run a chat completion and return the first choice's content."""
        if not self.openai_api_key:
            raise LLMServiceError("OPENAI_API_KEY is not configured")

        payload = {
            "model": self.openai_model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature
        }
        result = self._post(OPENAI_CHAT_URL, self.get_openai_headers(), payload)
        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMServiceError("Unexpected chat completion format") from e
        if not content or not content.strip():
            raise LLMServiceError("OpenAI returned an empty response")
        return content.strip()

    def moderate(self, text: str) -> Dict[str, Any]:
        """Run the OpenAI moderation endpoint on a piece of text.

        Returns:
            The first moderation result: ``flagged``, ``categories`` and
            ``category_scores``.
        """
        if not self.openai_api_key:
            raise LLMServiceError("OPENAI_API_KEY is not configured")
        result = self._post(OPENAI_MODERATION_URL, self.get_openai_headers(), {"input": text})
        results = result.get("results") or []
        if not results:
            raise LLMServiceError("Moderation API returned no results")
        return results[0]

    @staticmethod
    def _clean_response(response: str) -> str:
        """Strip markdown code fences the models like to wrap JSON in."""
        cleaned = (response or "").strip()
        if cleaned.startswith("```json"):
            cleaned = cleaned[7:]
        elif cleaned.startswith("```"):
            cleaned = cleaned[3:]
        if cleaned.endswith("```"):
            cleaned = cleaned[:-3]
        return cleaned.strip()

    def parse_json_response(self, response: str) -> Any:
        """Decode a model reply as JSON.

        Raises:
            LLMServiceError: When the reply is not valid JSON.
        """
        cleaned = self._clean_response(response)
        try:
            return json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse LLM JSON response: {cleaned[:500]}")
            raise LLMServiceError(f"Invalid JSON from LLM: {e}") from e

    def analyze_conversation(self, transcript: str,
                             system_prompt: Optional[str] = None) -> Dict[str, Any]:
        """Extract memory-worthy facts from a conversation transcript.

        Raises:
            LLMServiceError: When the reply is not a JSON object.
        """
        content = (
            f"CONVERSATION TRANSCRIPT:\n{transcript}\n\n"
            "Return your analysis of this conversation as JSON."
        )
        raw = self.call_claude(content, system=system_prompt or DEFAULT_ANALYSIS_SYSTEM_PROMPT,
                               max_tokens=2000)
        analysis = self.parse_json_response(raw)
        if not isinstance(analysis, dict):
            raise LLMServiceError("Conversation analysis must be a JSON object")
        return analysis

    def merge_profile(self, existing_profile: Dict[str, Any], analysis: Dict[str, Any],
                      system_prompt: Optional[str] = None,
                      user_prompt: Optional[str] = None) -> Dict[str, Any]:
        """Merge a new conversation analysis into an existing profile."""
        content = (
            f"{user_prompt or DEFAULT_MERGE_USER_PROMPT}\n\n"
            f"EXISTING USER PROFILE:\n{json.dumps(existing_profile, indent=2)}\n\n"
            f"NEW CONVERSATION ANALYSIS:\n{json.dumps(analysis, indent=2)}\n\n"
            "Please merge this information intelligently and return the updated profile as JSON."
        )
        raw = self.call_claude(content, system=system_prompt or DEFAULT_MERGE_SYSTEM_PROMPT,
                               max_tokens=4000)
        merged = self.parse_json_response(raw)
        if not isinstance(merged, dict):
            raise LLMServiceError("Merged profile must be a JSON object")
        return merged

    def generate_profile_summary(self, profile_data: Dict[str, Any],
                                 summary_prompt: Optional[str] = None) -> str:
        """Summarise a profile in at most five sentences for prompt injection."""
        content = (
            f"{summary_prompt or DEFAULT_SUMMARY_PROMPT}\n\n"
            f"USER PROFILE DATA TO SUMMARIZE:\n{json.dumps(profile_data, indent=2)}\n\n"
            "Generate an AI instruction summary (up to 5 sentences) based on this user profile data."
        )
        return self.call_claude(content)

    def generate_warm_handoff(self, profile_data: Dict[str, Any],
                              system_prompt: Optional[str] = None,
                              user_prompt: Optional[str] = None) -> str:
        """Write a provider-facing handoff note from a profile."""
        template = user_prompt or DEFAULT_HANDOFF_USER_PROMPT
        messages = [
            {"role": "system", "content": system_prompt or DEFAULT_HANDOFF_SYSTEM_PROMPT},
            {"role": "user", "content": template.replace("{PROFILE_DATA}", json.dumps(profile_data, indent=2))}
        ]
        return self.call_openai_chat(messages, max_tokens=1500, temperature=0.7)

    def detect_mental_health_flags(self, content: str) -> List[str]:
        """Ask the chat model to label mental health concerns in a text."""
        messages = [{"role": "user", "content": FLAG_ANALYSIS_PROMPT.format(content=content)}]
        raw = self.call_openai_chat(messages, max_tokens=200, temperature=0.1)
        parsed = self.parse_json_response(raw)
        flags = parsed.get("flags", []) if isinstance(parsed, dict) else []
        return [str(flag) for flag in flags if flag]

    def search_resources(self, query: str, location: Optional[str] = None) -> str:
        """Run a Claude web search for support resources and return raw text."""
        where = f" in {location}" if location else ""
        prompt = (
            f"Find real organizations that provide {query}{where}. For each one give the "
            "name, full street address, phone number, website and a short description "
            "of the services offered."
        )
        return self.call_claude(prompt, max_tokens=2048, tools=[WEB_SEARCH_TOOL])

    def format_resources(self, raw_content: str, location: Optional[str] = None) -> List[Dict[str, Any]]:
        """Second pass that turns raw search text into resource records."""
        scope = (
            f"Extract and structure ONLY the resources that are located in {location} from the search results below.\n"
            f"Only include resources that have addresses in {location}."
            if location else
            "Extract and structure the resources from the search results below."
        )
        prompt = (
            f"{scope}\n\nSEARCH RESULTS TO PROCESS:\n{raw_content}\n\n"
            'Return clean JSON of the form {"resources": [{"name": "", "address": "", "phone": "", '
            '"description": "", "type": "", "verified": false, "website": "", "contact": ""}]}. '
            "Exclude directories like 211 and general information sites."
        )
        raw = self.call_claude(prompt, max_tokens=2048)
        try:
            parsed = self.parse_json_response(raw)
        except LLMServiceError:
            return []
        if not isinstance(parsed, dict):
            return []
        return [item for item in parsed.get("resources", []) if isinstance(item, dict)]


# --- Singleton Instance ---
llm_service = LLMService()
