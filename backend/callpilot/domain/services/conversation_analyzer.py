"""
Conversation Analyzer
Post-call rating, sentiment, categories and summary for a finished transcript.

Model-backed analysis is best effort: any failure or malformed answer falls
back to a fixed neutral result, and categories always come from a
deterministic keyword pass so analytics survive a model outage.
"""
import asyncio
import json
import logging
import re
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from callpilot.domain.interfaces.llm_provider import LLMProvider
from callpilot.domain.models.conversation import ConversationAnalysis, Sentiment, Turn, TurnRole

logger = logging.getLogger(__name__)

FALLBACK_RATING = 5

CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "sales": ["buy", "purchase", "price", "cost", "order"],
    "support": ["help", "problem", "issue", "not working", "broken"],
    "billing": ["bill", "payment", "charge", "refund", "invoice"],
    "general": ["information", "about", "question", "hours"],
}

ANALYSIS_PROMPT = """You review phone conversations between an AI agent and a customer.
Return only a JSON object with these keys:
  "rating": integer 1-10 for how well the agent handled the call,
  "sentiment": one of "positive", "neutral", "negative", "mixed",
  "topics": list of short topic strings,
  "resolved": true if the customer's need was met,
  "summary": one or two sentences.
"""

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class _ModelAnalysis(BaseModel):
    """Shape the model must answer with"""
    rating: int = Field(..., ge=1, le=10)
    sentiment: Sentiment = Sentiment.NEUTRAL
    topics: List[str] = Field(default_factory=list)
    resolved: bool = False
    summary: Optional[str] = None


def categorize(transcript: Sequence[Turn]) -> List[str]:
    """Keyword categories for a transcript, sorted; ["general"] when nothing matches."""
    text = " ".join(turn.content.lower() for turn in transcript)
    categories = {
        category
        for category, keywords in CATEGORY_KEYWORDS.items()
        if any(re.search(rf"\b{re.escape(keyword)}", text) for keyword in keywords)
    }
    return sorted(categories) or ["general"]


def fallback_analysis(transcript: Sequence[Turn], transfer_requested: bool = False) -> ConversationAnalysis:
    return ConversationAnalysis(
        rating=FALLBACK_RATING,
        sentiment=Sentiment.NEUTRAL,
        categories=categorize(transcript),
        topics=[],
        resolved=False,
        transfer_requested=transfer_requested,
        summary=None,
        source="fallback",
    )


class ConversationAnalyzer:
    """
    Rates a completed transcript.

    Usage:
        analyzer = ConversationAnalyzer(llm)
        analysis = await analyzer.analyze(conversation.transcript)
    """

    def __init__(
        self,
        llm: Optional[LLMProvider] = None,
        max_tokens: int = 300,
        timeout_seconds: float = 15.0,
    ):
        self._llm = llm
        self._max_tokens = max_tokens
        self._timeout = timeout_seconds

    async def analyze(
        self,
        transcript: Sequence[Turn],
        transfer_requested: bool = False,
    ) -> ConversationAnalysis:
        """Never raises; returns the fallback analysis on any model failure."""
        if self._llm is None or not transcript:
            return fallback_analysis(transcript, transfer_requested)

        try:
            raw = await asyncio.wait_for(
                self._llm.generate(
                    messages=[Turn(role=TurnRole.USER, content=self._format_transcript(transcript))],
                    system_prompt=ANALYSIS_PROMPT,
                    temperature=0.0,
                    max_tokens=self._max_tokens,
                ),
                timeout=self._timeout,
            )
            parsed = self._parse(raw)
        except Exception as e:
            logger.warning(f"Conversation analysis failed, using fallback: {type(e).__name__}: {e}")
            return fallback_analysis(transcript, transfer_requested)

        if parsed is None:
            logger.warning("Conversation analysis returned malformed output, using fallback")
            return fallback_analysis(transcript, transfer_requested)

        return ConversationAnalysis(
            rating=parsed.rating,
            sentiment=parsed.sentiment,
            categories=categorize(transcript),
            topics=parsed.topics,
            resolved=parsed.resolved,
            transfer_requested=transfer_requested,
            summary=parsed.summary,
            source="llm",
        )

    @staticmethod
    def _format_transcript(transcript: Sequence[Turn]) -> str:
        lines = []
        for turn in transcript:
            speaker = "Customer" if turn.role == TurnRole.USER else "Agent"
            lines.append(f"{speaker}: {turn.content}")
        return "\n".join(lines)

    @staticmethod
    def _parse(raw: Optional[str]) -> Optional[_ModelAnalysis]:
        if not raw:
            return None
        match = _JSON_OBJECT.search(raw)
        if not match:
            return None
        try:
            return _ModelAnalysis(**json.loads(match.group(0)))
        except (json.JSONDecodeError, ValidationError, TypeError):
            return None
