"""
LLM Guardrails Service
Shapes model replies for the phone: short, clean, complete sentences.
"""
import logging
import re
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class LLMGuardrailsConfig(BaseModel):
    """Configuration for reply shaping"""
    max_sentences: int = Field(default=3, ge=1, le=5, description="Max sentences per spoken reply")
    max_characters: int = Field(default=600, ge=50, le=2000, description="Hard cap on reply length")


class LLMGuardrails:
    """
    Post-processing applied to every model reply before it is stored and spoken.
    """

    # Common filler starts that sound odd when synthesized
    FILLER_STARTS = [
        r"^(Well,?\s+)",
        r"^(So,?\s+)",
        r"^(Actually,?\s+)",
        r"^(Alright,?\s+)",
    ]

    # Role labels some models echo back
    ROLE_PREFIX = re.compile(r"^(Assistant|Agent|AI)\s*:\s*", re.IGNORECASE)

    def __init__(self, config: Optional[LLMGuardrailsConfig] = None):
        self.config = config or LLMGuardrailsConfig()

    def shape(self, response: str) -> str:
        """Clean then truncate a reply. Returns "" for an unusable reply."""
        return self.truncate_response(self.clean_response(response))

    def truncate_response(self, response: str, max_sentences: Optional[int] = None) -> str:
        """Truncate response to max sentences for voice brevity."""
        if not response:
            return response

        max_sentences = max_sentences or self.config.max_sentences
        response = response.strip()
        sentences = re.split(r"(?<=[.!?])\s+", response)

        if len(sentences) > max_sentences:
            response = " ".join(sentences[:max_sentences])
            logger.debug(f"Truncated response from {len(sentences)} to {max_sentences} sentences")

        if len(response) > self.config.max_characters:
            response = response[: self.config.max_characters].rsplit(" ", 1)[0]

        if response and response[-1] not in ".!?":
            response += "."
        return response

    def clean_response(self, response: str) -> str:
        """
        Remove common artifacts: echoed role labels, filler starts,
        surrounding quotes and excess whitespace.
        """
        if not response:
            return ""

        cleaned = self.ROLE_PREFIX.sub("", response.strip())
        for pattern in self.FILLER_STARTS:
            cleaned = re.sub(pattern, "", cleaned, flags=re.IGNORECASE)

        cleaned = cleaned.strip().strip('"').strip()
        cleaned = re.sub(r"\s+", " ", cleaned).strip()
        if cleaned and cleaned[0].islower():
            cleaned = cleaned[0].upper() + cleaned[1:]
        return cleaned
