"""
Intent Classifier
Consent and human-handoff detection for caller utterances.

The default implementation is a keyword heuristic; the engine depends only
on the IntentClassifier interface so it can be swapped for a model-based one.
"""
import re
from abc import ABC, abstractmethod
from typing import Optional

# Explicit transfer flag the model is instructed to emit
TRANSFER_MARKER = "[TRANSFER]"

TRANSFER_REASON = "Customer requested human assistance"


class IntentClassifier(ABC):
    """Decides consent and transfer intent for the call engine"""

    @abstractmethod
    def is_affirmative(self, text: Optional[str], digits: Optional[str] = None) -> bool:
        """Whether the caller's consent response is a clear yes"""
        pass

    @abstractmethod
    def transfer_reason(self, user_text: Optional[str], reply_text: Optional[str]) -> Optional[str]:
        """Reason for a human handoff, or None when no transfer is wanted"""
        pass

    @staticmethod
    def strip_marker(reply_text: str) -> str:
        """Remove the model's transfer flag before the reply is stored or spoken."""
        return " ".join(reply_text.replace(TRANSFER_MARKER, " ").split())


class KeywordIntentClassifier(IntentClassifier):
    """
    Keyword heuristics, case-insensitive and matched on word boundaries.

    A negation phrase anywhere in the consent answer overrides an
    affirmative keyword ("I don't agree", "not okay").
    """

    AFFIRMATIVE_PATTERNS = [
        r"\byes\b",
        r"\byeah\b",
        r"\byep\b",
        r"\bagree\b",
        r"\bokay\b",
        r"\bok\b",
        r"\bsure\b",
        r"\bconsent\b",
        r"\bof course\b",
    ]

    NEGATION_PATTERNS = [
        r"\bdon'?t\b",
        r"\bdo not\b",
        r"\bdisagree\b",
        r"\bnot\b",
        r"\bno way\b",
    ]

    TRANSFER_PATTERNS = [
        r"\btransfer\b",
        r"\bhuman\b",
        r"\brepresentative\b",
        r"\breal person\b",
        r"\bspeak to someone\b",
        r"\btalk to someone\b",
        r"\bescalate\b",
        r"\bmanager\b",
        r"\boperator\b",
    ]

    AFFIRMATIVE_DIGIT = "1"

    def __init__(self):
        self._affirmative = [re.compile(p, re.IGNORECASE) for p in self.AFFIRMATIVE_PATTERNS]
        self._negation = [re.compile(p, re.IGNORECASE) for p in self.NEGATION_PATTERNS]
        self._transfer = [re.compile(p, re.IGNORECASE) for p in self.TRANSFER_PATTERNS]

    def is_affirmative(self, text: Optional[str], digits: Optional[str] = None) -> bool:
        if digits and digits.strip() == self.AFFIRMATIVE_DIGIT:
            return True
        if not text or not text.strip():
            return False
        if any(p.search(text) for p in self._negation):
            return False
        return any(p.search(text) for p in self._affirmative)

    def transfer_reason(self, user_text: Optional[str], reply_text: Optional[str]) -> Optional[str]:
        if reply_text and TRANSFER_MARKER in reply_text:
            return TRANSFER_REASON
        for text in (user_text, reply_text):
            if text and any(p.search(text) for p in self._transfer):
                return TRANSFER_REASON
        return None
