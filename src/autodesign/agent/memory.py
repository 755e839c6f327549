"""In-run memory of what worked, what failed, and which style notes held up."""

from __future__ import annotations

from autodesign.agent.models import Evaluation, LearnedPatterns

LEARNING_QUALITY_THRESHOLD = 0.7
LEARNING_STYLE_THRESHOLD = 0.7


class LearningMemory:
    """Deduplicated observations scoped to a single run."""

    def __init__(self) -> None:
        self._success_patterns: list[str] = []
        self._failure_patterns: list[str] = []
        self._style_insights: list[str] = []

    @classmethod
    def from_patterns(cls, patterns: LearnedPatterns) -> LearningMemory:
        """Seed a run with patterns loaded by an external preference store."""
        memory = cls()
        for pattern in patterns.success_patterns:
            _append_unique(memory._success_patterns, pattern)
        for pattern in patterns.failure_patterns:
            _append_unique(memory._failure_patterns, pattern)
        for insight in patterns.style_insights:
            _append_unique(memory._style_insights, insight)
        return memory

    def update(self, evaluation: Evaluation) -> None:
        decision = evaluation.decision
        if evaluation.success and evaluation.quality_score > LEARNING_QUALITY_THRESHOLD:
            pattern = f"{decision.action} {decision.target}: {evaluation.lesson_learned}"
            _append_unique(self._success_patterns, pattern)
        else:
            weaknesses = ", ".join(evaluation.weaknesses)
            pattern = f"Avoid: {decision.action} {decision.target} - {weaknesses}"
            _append_unique(self._failure_patterns, pattern)

        style_notes = evaluation.style_notes.strip()
        if evaluation.style_score > LEARNING_STYLE_THRESHOLD and style_notes:
            _append_unique(self._style_insights, style_notes)

    def snapshot(self) -> LearnedPatterns:
        return LearnedPatterns(
            success_patterns=tuple(self._success_patterns),
            failure_patterns=tuple(self._failure_patterns),
            style_insights=tuple(self._style_insights),
        )

    def summary(self) -> str:
        return summarize_patterns(self.snapshot())


def summarize_patterns(patterns: LearnedPatterns) -> str:
    """Render patterns as the text block sent to the decision service."""
    return "\n".join(
        [
            "Success patterns (repeat these): "
            + ("; ".join(patterns.success_patterns) or "None yet"),
            "Failure patterns (avoid these): "
            + ("; ".join(patterns.failure_patterns) or "None yet"),
            "Style insights: " + ("; ".join(patterns.style_insights) or "None yet"),
        ]
    )


def _append_unique(items: list[str], value: str) -> None:
    if value not in items:
        items.append(value)
