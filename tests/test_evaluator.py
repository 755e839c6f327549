from __future__ import annotations

import asyncio
from collections.abc import Mapping

from autodesign.agent.evaluator import OutcomeEvaluator
from autodesign.agent.models import Decision, Evaluation
from autodesign.agent.services import OutcomeRequest

DECISION = Decision(
    iteration=2,
    action="EDIT",
    target="Curtains",
    rationale="Too dark",
    instruction="Swap the curtains for linen sheers",
    confidence=0.7,
    estimated_cost=0.04,
)


class FakeService:
    def __init__(self, response: object = None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.requests: list[OutcomeRequest] = []

    async def infer_outcome(self, request: OutcomeRequest) -> Mapping[str, object]:
        self.requests.append(request)
        if self.error:
            raise self.error
        return self.response  # type: ignore[return-value]


def _evaluate(evaluator: OutcomeEvaluator) -> Evaluation:
    return asyncio.run(
        evaluator.evaluate("new-image", DECISION, "airy coastal room", ("coastal",), 2)
    )


def _response(**overrides: object) -> dict[str, object]:
    response: dict[str, object] = {
        "qualityScore": 82,
        "styleScore": 64,
        "success": True,
        "strengths": ["Soft light", ""],
        "weaknesses": ["Hem looks blurry"],
        "styleNotes": "Linen reads coastal",
        "lessonLearned": "Light fabrics lift the room",
        "betterApproach": None,
    }
    response.update(overrides)
    return response


def test_scores_are_normalized_and_success_uses_threshold() -> None:
    service = FakeService(_response())

    evaluation = _evaluate(OutcomeEvaluator(service))

    assert evaluation.quality_score == 0.82
    assert evaluation.style_score == 0.64
    assert evaluation.success is True
    assert evaluation.strengths == ("Soft light",)
    assert evaluation.weaknesses == ("Hem looks blurry",)
    assert evaluation.artifact == "new-image"
    assert evaluation.iteration == 2
    assert service.requests[0].decision is DECISION


def test_score_below_threshold_fails_even_if_service_claims_success() -> None:
    evaluation = _evaluate(OutcomeEvaluator(FakeService(_response(styleScore=59))))

    assert evaluation.success is False


def test_threshold_is_tunable() -> None:
    evaluator = OutcomeEvaluator(FakeService(_response(styleScore=59)), success_threshold=0.5)

    assert _evaluate(evaluator).success is True


def test_reported_failure_vetoes_success() -> None:
    evaluation = _evaluate(OutcomeEvaluator(FakeService(_response(success=False))))

    assert evaluation.success is False


def test_missing_success_flag_uses_scores() -> None:
    response = _response()
    del response["success"]

    assert _evaluate(OutcomeEvaluator(FakeService(response))).success is True


def test_scores_are_clamped() -> None:
    evaluation = _evaluate(OutcomeEvaluator(FakeService(_response(qualityScore=140, styleScore=-5))))

    assert evaluation.quality_score == 1.0
    assert evaluation.style_score == 0.0


def test_simulated_runs_do_not_retain_artifacts() -> None:
    evaluation = _evaluate(OutcomeEvaluator(FakeService(_response()), retain_artifacts=False))

    assert evaluation.artifact is None


def test_service_failure_returns_neutral_evaluation() -> None:
    evaluation = _evaluate(OutcomeEvaluator(FakeService(error=RuntimeError("quota"))))

    assert evaluation.quality_score == 0.5
    assert evaluation.style_score == 0.5
    assert evaluation.success is False
    assert evaluation.weaknesses == ("Analysis failed",)
    assert evaluation.decision is DECISION


def test_schema_violation_returns_neutral_evaluation() -> None:
    evaluation = _evaluate(OutcomeEvaluator(FakeService(_response(qualityScore="high"))))

    assert evaluation.weaknesses == ("Analysis failed",)
    assert evaluation.success is False


def test_non_finite_score_returns_neutral_evaluation() -> None:
    evaluation = _evaluate(OutcomeEvaluator(FakeService(_response(qualityScore=float("nan")))))

    assert evaluation.quality_score == 0.5
    assert evaluation.weaknesses == ("Analysis failed",)
    assert evaluation.success is False


def test_timeout_returns_neutral_evaluation() -> None:
    class SlowService:
        async def infer_outcome(self, request: OutcomeRequest) -> Mapping[str, object]:
            await asyncio.sleep(5)
            return _response()

    evaluation = _evaluate(OutcomeEvaluator(SlowService(), timeout=0.01))

    assert evaluation.weaknesses == ("Analysis failed",)
