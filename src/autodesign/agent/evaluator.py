"""Scores an executed decision against the run's design goal."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Mapping

from autodesign.agent.models import SUCCESS_THRESHOLD, Artifact, Decision, Evaluation
from autodesign.agent.services import OutcomeRequest, OutcomeService

NEUTRAL_SCORE = 0.5
LOGGER = logging.getLogger(__name__)


class EvaluationSchemaError(ValueError):
    """Outcome response is missing a required field."""


class OutcomeEvaluator:
    """Wraps the outcome service; returns a neutral evaluation instead of raising.

    Scores arrive on a 0-100 scale and are normalized to 0-1. An evaluation
    succeeds when both scores reach ``success_threshold``, unless the service
    explicitly reports ``success: false``.
    """

    def __init__(
        self,
        service: OutcomeService,
        *,
        success_threshold: float = SUCCESS_THRESHOLD,
        retain_artifacts: bool = True,
        timeout: float = 60.0,
    ) -> None:
        self.service = service
        self.success_threshold = success_threshold
        self.retain_artifacts = retain_artifacts
        self.timeout = timeout

    async def evaluate(
        self,
        artifact: Artifact,
        decision: Decision,
        design_goal: str,
        style_keywords: tuple[str, ...],
        iteration: int,
    ) -> Evaluation:
        request = OutcomeRequest(
            artifact=artifact,
            decision=decision,
            design_goal=design_goal,
            style_keywords=tuple(style_keywords),
        )
        try:
            raw = await asyncio.wait_for(
                self.service.infer_outcome(request), timeout=self.timeout
            )
            if not isinstance(raw, Mapping):
                raise EvaluationSchemaError("outcome response was not an object")
            return self._to_evaluation(raw, artifact, decision, iteration)
        except asyncio.TimeoutError:
            LOGGER.error(
                "outcome_inference_timeout",
                extra={"iteration": iteration, "timeout_seconds": self.timeout},
            )
        except Exception as exc:
            LOGGER.error(
                "outcome_inference_failed",
                extra={"iteration": iteration, "error": str(exc)},
            )
        return self.neutral(
            decision, iteration, artifact=artifact if self.retain_artifacts else None
        )

    def _to_evaluation(
        self,
        parsed: Mapping[str, object],
        artifact: Artifact,
        decision: Decision,
        iteration: int,
    ) -> Evaluation:
        quality = _score(parsed.get("qualityScore", parsed.get("quality_score")), "qualityScore")
        style = _score(parsed.get("styleScore", parsed.get("style_score")), "styleScore")
        reported_success = parsed.get("success")
        better_approach = parsed.get("betterApproach", parsed.get("better_approach"))

        success = quality >= self.success_threshold and style >= self.success_threshold
        if reported_success is False:
            success = False
        if better_approach is not None and not isinstance(better_approach, str):
            better_approach = None

        return Evaluation(
            iteration=iteration,
            decision=decision,
            quality_score=quality,
            style_score=style,
            success=success,
            strengths=_string_tuple(parsed.get("strengths")),
            weaknesses=_string_tuple(parsed.get("weaknesses")),
            style_notes=_string(parsed.get("styleNotes", parsed.get("style_notes"))),
            lesson_learned=_string(parsed.get("lessonLearned", parsed.get("lesson_learned"))),
            better_approach=better_approach or None,
            artifact=artifact if self.retain_artifacts else None,
        )

    @staticmethod
    def neutral(
        decision: Decision, iteration: int, *, artifact: Artifact | None = None
    ) -> Evaluation:
        return Evaluation(
            iteration=iteration,
            decision=decision,
            quality_score=NEUTRAL_SCORE,
            style_score=NEUTRAL_SCORE,
            success=False,
            weaknesses=("Analysis failed",),
            lesson_learned="Analysis error occurred",
            artifact=artifact,
        )


def _score(value: object, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise EvaluationSchemaError(f"{name} must be a number")
    if not math.isfinite(value):
        raise EvaluationSchemaError(f"{name} must be finite")
    return min(max(float(value) / 100.0, 0.0), 1.0)


def _string(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def _string_tuple(value: object) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(item.strip() for item in value if isinstance(item, str) and item.strip())
