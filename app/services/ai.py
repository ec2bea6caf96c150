"""
GenAI glue: render a prompt, call the configured model, parse JSON out of
the reply, and fall back to a canned answer when anything goes wrong.

Nothing in this module raises on model failure. Callers always receive a
usable value, and the failure is logged.
"""

import json
import logging
import re
from typing import Any

from app.api.schemas import AIStatusResponse, ModerationResult, ReviewAnalysis
from app.ports.llm import LLMPort
from app.prompts.templates import (
    PROMPT_REGISTRY,
    render_description_prompt,
    render_moderation_prompt,
    render_review_analysis_prompt,
)

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
_SENTIMENTS = {"positive", "negative", "neutral"}
_ACTIONS = {"approve", "reject", "edit"}


def extract_json(text: str) -> dict[str, Any]:
    """
    Pull a JSON object out of free-form model output.

    A fenced ```json block wins; otherwise the span from the first ``{`` to
    the last ``}`` is parsed.

    Raises:
        ValueError: if no JSON object can be found or parsed.
    """
    match = _FENCED_JSON.search(text)
    if match:
        candidate = match.group(1)
    else:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("No JSON object found in model output")
        candidate = text[start : end + 1]

    data = json.loads(candidate)
    if not isinstance(data, dict):
        raise ValueError("Model output is JSON but not an object")
    return data


def clamp_unit(value: Any, default: float) -> float:
    """Coerce a model-supplied score into [0, 1], or ``default`` if it is not a number."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return min(max(number, 0.0), 1.0)


class AIService:
    """Thin wrapper around an ``LLMPort`` with per-operation fallbacks."""

    def __init__(self, llm: LLMPort) -> None:
        self._llm = llm

    async def generate_json(self, prompt: dict[str, str]) -> dict[str, Any]:
        """Run a rendered prompt and parse its JSON answer. Errors propagate."""
        template = PROMPT_REGISTRY.get(prompt.get("name", ""))
        max_tokens = template.max_tokens if template else 1024
        text = await self._llm.complete(prompt, max_tokens)
        return extract_json(text)

    async def generate_text(self, prompt: dict[str, str]) -> str:
        template = PROMPT_REGISTRY.get(prompt.get("name", ""))
        max_tokens = template.max_tokens if template else 1024
        return (await self._llm.complete(prompt, max_tokens)).strip()

    async def analyze_review(self, review_text: str) -> ReviewAnalysis:
        try:
            data = await self.generate_json(render_review_analysis_prompt(review_text))
        except Exception as exc:
            logger.warning("Review analysis failed (%s): %s", self._llm.provider, exc)
            return ReviewAnalysis(
                sentiment="neutral", themes=[], quality=0.5, summary="Analysis failed"
            )

        sentiment = str(data.get("sentiment") or "neutral").lower()
        themes = data.get("themes")
        return ReviewAnalysis(
            sentiment=sentiment if sentiment in _SENTIMENTS else "neutral",
            themes=[str(t) for t in themes] if isinstance(themes, list) else [],
            quality=clamp_unit(data.get("quality"), 0.5),
            summary=str(data.get("summary") or "Review analysis completed"),
        )

    async def sentiment_of(self, review_text: str | None) -> str:
        """Sentiment tag for a stored review; empty text is neutral."""
        if not review_text or not review_text.strip():
            return "neutral"
        return (await self.analyze_review(review_text)).sentiment

    async def generate_description(
        self, title: str, author: str, existing: str | None = None
    ) -> str:
        try:
            text = await self.generate_text(render_description_prompt(title, author, existing))
        except Exception as exc:
            logger.warning("Description generation failed (%s): %s", self._llm.provider, exc)
            return existing or "Description unavailable"
        return text or existing or "Description unavailable"

    async def moderate_content(self, content: str, content_type: str = "review") -> ModerationResult:
        try:
            data = await self.generate_json(render_moderation_prompt(content, content_type))
        except Exception as exc:
            logger.warning("Moderation failed (%s): %s", self._llm.provider, exc)
            return ModerationResult(
                is_appropriate=True,
                confidence=0.3,
                reasons=["AI analysis failed"],
                suggested_action="approve",
            )

        appropriate = data.get("isAppropriate", data.get("is_appropriate", True))
        action = str(data.get("suggestedAction", data.get("suggested_action", ""))).lower()
        if action not in _ACTIONS:
            action = "approve" if appropriate else "reject"
        reasons = data.get("reasons")
        return ModerationResult(
            is_appropriate=bool(appropriate),
            confidence=clamp_unit(data.get("confidence"), 0.5),
            reasons=[str(r) for r in reasons] if isinstance(reasons, list) else [],
            suggested_action=action,
        )

    def status(self) -> AIStatusResponse:
        return AIStatusResponse(
            provider=self._llm.provider,
            model=self._llm.model,
            configured=bool(self._llm.configured),
            prompts={name: t.version for name, t in PROMPT_REGISTRY.items()},
        )
