import json
import logging
import re

from app.ports.llm import LLMPort
from app.prompts.templates import estimate_tokens

logger = logging.getLogger(__name__)

_POSITIVE = {"great", "love", "loved", "amazing", "fantastic", "excellent", "wonderful", "enjoyed", "brilliant", "recommend"}
_NEGATIVE = {"bad", "boring", "awful", "terrible", "hated", "hate", "worst", "dull", "disappointing", "waste"}
_BLOCKED = {"buy now", "click here", "idiot", "stupid"}

_CATALOG_LINE = re.compile(r'^- "(?P<title>.+?)" by (?P<author>.+?) \(', re.MULTILINE)
_LIMIT = re.compile(r"exactly (\d+) books")


def _between(text: str, marker: str) -> str:
    """Return the block framed by --- MARKER (START) --- and --- MARKER (END) ---."""
    start = text.find(f"--- {marker} (START) ---")
    end = text.find(f"--- {marker} (END) ---")
    if start == -1 or end == -1:
        return text
    return text[start + len(marker) + 16 : end]


class MockLLMAdapter(LLMPort):
    """
    Mock LLM adapter for development and tests without API access.

    Returns deterministic JSON shaped like the real models' answers,
    keyed on the prompt template name.
    """

    provider = "mock"
    model = "mock"

    async def complete(self, prompt: dict[str, str], max_tokens: int) -> str:
        name = prompt.get("name", "")
        user = prompt["user"]
        logger.info(
            "MockLLM: %s called (%d estimated tokens)", name, estimate_tokens(user)
        )

        if name == "analyze_review":
            return json.dumps(self._analyze(_between(user, "REVIEW")))
        if name == "moderate_content":
            return json.dumps(self._moderate(_between(user, "CONTENT")))
        if name == "query_recommendations":
            return json.dumps(self._pick_from_catalog(user))
        if name == "describe_book":
            return (
                "A thoughtful, engaging read that rewards curious readers. "
                "The author balances vivid storytelling with ideas that linger "
                "long after the final page."
            )
        if name == "similar_books":
            return json.dumps({"similarBooks": [], "explanation": "Mock similarity search"})
        return json.dumps({"recommendations": [], "explanation": "Mock recommendations"})

    @staticmethod
    def _analyze(text: str) -> dict:
        words = set(re.findall(r"[a-z]+", text.lower()))
        pos = len(words & _POSITIVE)
        neg = len(words & _NEGATIVE)
        if pos > neg:
            sentiment = "positive"
        elif neg > pos:
            sentiment = "negative"
        else:
            sentiment = "neutral"
        return {
            "sentiment": sentiment,
            "themes": sorted(words & (_POSITIVE | _NEGATIVE))[:3],
            "quality": 0.7,
            "summary": f"Mock analysis: {sentiment} review",
        }

    @staticmethod
    def _moderate(text: str) -> dict:
        lowered = text.lower()
        hits = sorted(b for b in _BLOCKED if b in lowered)
        return {
            "isAppropriate": not hits,
            "confidence": 0.9,
            "reasons": [f"Contains '{h}'" for h in hits],
            "suggestedAction": "reject" if hits else "approve",
        }

    @staticmethod
    def _pick_from_catalog(text: str) -> dict:
        match = _LIMIT.search(text)
        limit = int(match.group(1)) if match else 3
        picks = [
            {
                "title": m.group("title"),
                "author": m.group("author"),
                "reason": "Mock pick from the catalog",
                "confidence": 0.9,
            }
            for m in _CATALOG_LINE.finditer(text)
        ][:limit]
        return {"recommendations": picks, "explanation": "Mock catalog selection"}
