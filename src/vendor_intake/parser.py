"""
Evaluation parser for vendor-intake.

Turns a raw model reply into an Evaluation. Parsing never fails: a reply
that cannot be read as the requested JSON is scored from its text, and a
reply with no usable content gets a synthetic fallback verdict. Fallback
scores come from an injected random source so tests can seed it.
"""

import json
import logging
import math
import random
import re
from typing import Any

from .models import (
    Decision,
    Evaluation,
    EvaluationMethod,
    MarketPotential,
    Submission,
)

logger = logging.getLogger(__name__)

SCORE_PATTERN = re.compile(r"score[\"']?[:\s]*(\d+)", re.IGNORECASE)

FALLBACK_SCORE_RANGE = (75, 95)
MAX_REASONING_CHARS = 500


def clamp_score(score: int | float) -> int:
    """Round and clamp a score into [0, 100]."""
    return max(0, min(100, int(round(score))))


def extract_content(raw_reply: Any) -> str | None:
    """
    Pull the reply text out of a model response.

    Supports the OpenAI shape (choices[0].message.content), a flat
    {"content": ...} object, and a bare string. Returns None when there is
    no textual content.
    """
    if isinstance(raw_reply, str):
        return raw_reply or None
    if not isinstance(raw_reply, dict):
        return None

    choices = raw_reply.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str) and content:
                return content

    content = raw_reply.get("content")
    if isinstance(content, str) and content:
        return content
    return None


class EvaluationParser:
    """Parse model replies into Evaluations."""

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def fallback_score(self) -> int:
        low, high = FALLBACK_SCORE_RANGE
        return self.rng.randint(low, high)

    def parse(self, raw_reply: Any, submission: Submission, threshold: int) -> Evaluation:
        """
        Build an Evaluation from a raw model reply.

        Args:
            raw_reply: Whatever the gateway returned
            submission: The submission that was evaluated
            threshold: Passing score active right now

        Returns:
            An Evaluation; never raises
        """
        content = extract_content(raw_reply)
        if not content or not content.strip():
            logger.warning("Empty response from model, using fallback evaluation")
            return self.error_fallback(submission, threshold)

        try:
            data = json.loads(content)
        except ValueError:
            logger.info("Model response not JSON, parsing as text")
            return self.text_fallback(content, threshold)

        evaluation = self._from_model_json(data, submission, threshold)
        if evaluation is None:
            logger.warning("Invalid evaluation format from model, using fallback evaluation")
            return self.error_fallback(submission, threshold)
        return evaluation

    def _from_model_json(
        self, data: Any, submission: Submission, threshold: int
    ) -> Evaluation | None:
        if not isinstance(data, dict):
            return None

        score = data.get("score")
        if isinstance(score, bool) or not isinstance(score, int | float):
            return None
        if not math.isfinite(score):
            return None
        stated = data.get("decision")
        if not isinstance(stated, str) or not stated.strip():
            return None

        score = clamp_score(score)
        decision = Decision.parse(stated)
        if decision is None:
            logger.info(f"Unrecognized decision {stated!r}, deriving it from score {score}")
            decision = Decision.for_score(score, threshold)
        reasoning = data.get("reasoning")
        category_match = data.get("category_match")

        # The model's own decision is kept even if it disagrees with the threshold
        return Evaluation(
            score=score,
            decision=decision,
            reasoning=reasoning if isinstance(reasoning, str) else "",
            category_match=(
                category_match if isinstance(category_match, str) else _category_note(submission)
            ),
            market_potential=(
                MarketPotential.parse(data.get("market_potential"))
                or MarketPotential.for_score(score)
            ),
            threshold=threshold,
            evaluation_method=EvaluationMethod.MODEL,
        )

    def text_fallback(self, content: str, threshold: int) -> Evaluation:
        """Score a free-text reply by looking for "score: N"."""
        match = SCORE_PATTERN.search(content)
        score = clamp_score(int(match.group(1))) if match else self.fallback_score()

        return Evaluation(
            score=score,
            decision=Decision.for_score(score, threshold),
            reasoning=content[:MAX_REASONING_CHARS]
            or f"Automated evaluation with score {score}/100",
            category_match="Extracted from text response",
            market_potential=MarketPotential.for_score(score),
            threshold=threshold,
            evaluation_method=EvaluationMethod.TEXT_FALLBACK,
        )

    def error_fallback(self, submission: Submission, threshold: int) -> Evaluation:
        """Synthesize a verdict when the reply carried nothing usable."""
        score = self.fallback_score()
        return Evaluation(
            score=score,
            decision=Decision.for_score(score, threshold),
            reasoning=(
                f"AI evaluation of {submission.product_name}: Score {score}/100 based on "
                "product quality, description clarity, and market potential. "
                "(Fallback evaluation due to parsing error)"
            ),
            category_match=_category_note(submission),
            market_potential=MarketPotential.for_score(score),
            threshold=threshold,
            evaluation_method=EvaluationMethod.ERROR_FALLBACK,
        )


def _category_note(submission: Submission) -> str:
    if submission.category:
        return f"Matches category: {submission.category}"
    return "No category specified"
