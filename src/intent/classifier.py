"""Intent classification (rules first; optional LLM for unmatched text)."""

from __future__ import annotations

import logging

from src.intent.llm import LLMClient, LLMError, call_llm, load_prompt
from src.intent.rules import match_rule
from src.intent.schema import Intent, intent_from_name

logger = logging.getLogger(__name__)


def intent_from_llm_answer(answer: str) -> Intent | None:
    """Pick the intent named in a free-form LLM answer, or `None` if it names none."""

    exact = intent_from_name(answer.strip().strip(".\"'`"))
    if exact is not None:
        return exact

    lowered = answer.lower()
    for intent in Intent:
        if intent.value.lower() in lowered:
            return intent
    return None


class IntentClassifier:
    """Maps raw text to exactly one `Intent`; never raises.

    Strategy:
        1) Ordered rule table (`src.intent.rules.INTENT_RULES`); a rule match is final.
        2) If no rule matches and an LLM is configured, one bounded call constrained to the
           known intent names.
        3) Anything else resolves to `Intent.assistance`.
    """

    def __init__(self, llm: LLMClient | None = None, *, llm_timeout_s: float = 10.0) -> None:
        self._llm = llm
        self._llm_timeout_s = llm_timeout_s

    async def classify(self, text: str) -> Intent:
        rule = match_rule(text)
        if rule is not None:
            logger.debug("classified source=rules rule=%s intent=%s", rule.name, rule.intent)
            return rule.intent

        if self._llm is None or not (text or "").strip():
            return Intent.assistance

        try:
            answer = await call_llm(
                self._llm,
                load_prompt("classify_v1.md"),
                f'Transcripción: "{text}"',
                expected_shape="text",
                timeout_s=self._llm_timeout_s,
            )
        except LLMError as exc:
            logger.warning("llm classification unavailable reason=%s", exc)
            return Intent.assistance

        intent = intent_from_llm_answer(answer)
        if intent is None:
            logger.info("llm classification unrecognized answer=%r", answer[:80])
            return Intent.assistance

        logger.debug("classified source=llm intent=%s", intent)
        return intent
