"""Decision engine that asks the inference service for the next edit."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Iterable, Mapping
from typing import cast

from autodesign.agent.memory import summarize_patterns
from autodesign.agent.models import (
    DEFAULT_UNIT_COST,
    ActionKind,
    Artifact,
    Decision,
    LearnedPatterns,
)
from autodesign.agent.services import DecisionRequest, DecisionService

VALID_ACTIONS: set[ActionKind] = {"MOVE", "EDIT", "REMOVE", "WAIT"}
DEFAULT_TARGET = "Room"
DEFAULT_CONFIDENCE = 0.5
LOGGER = logging.getLogger(__name__)


class DecisionEngine:
    """Turns service responses into validated decisions, degrading to WAIT."""

    def __init__(
        self,
        service: DecisionService,
        *,
        unit_cost: float = DEFAULT_UNIT_COST,
        timeout: float = 60.0,
    ) -> None:
        self.service = service
        self.unit_cost = unit_cost
        self.timeout = timeout

    async def decide(
        self,
        artifact: Artifact,
        design_goal: str,
        style_keywords: tuple[str, ...],
        history_summary: str,
        memory: LearnedPatterns,
        *,
        iteration: int,
    ) -> Decision:
        request = DecisionRequest(
            artifact=artifact,
            design_goal=design_goal,
            style_keywords=tuple(style_keywords),
            history_summary=history_summary,
            memory=memory,
            memory_summary=summarize_patterns(memory),
            iteration=iteration,
        )
        try:
            raw = await asyncio.wait_for(
                self.service.infer_decision(request), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            LOGGER.error(
                "decision_inference_timeout",
                extra={"iteration": iteration, "timeout_seconds": self.timeout},
            )
            return self._fallback_wait(iteration, "Decision request timed out")
        except Exception as exc:
            LOGGER.error(
                "decision_inference_failed",
                extra={"iteration": iteration, "error": str(exc)},
            )
            return self._fallback_wait(iteration, f"Decision request failed: {exc}")

        if not isinstance(raw, Mapping):
            return self._fallback_wait(iteration, "Decision response was not an object")

        decision = self._to_decision(raw, iteration=iteration)
        LOGGER.debug(
            "decision_parsed",
            extra={
                "iteration": iteration,
                "action": decision.action,
                "target": decision.target,
                "confidence": decision.confidence,
            },
        )
        return decision

    def _to_decision(self, parsed: Mapping[str, object], *, iteration: int) -> Decision:
        action = parsed.get("action")
        target = parsed.get("target")
        reason = parsed.get("reason")
        prompt = parsed.get("prompt")
        confidence = parsed.get("confidence")
        style_alignment = parsed.get("style_alignment", parsed.get("styleAlignment"))

        if isinstance(action, str):
            action = action.strip().upper()
        if action not in VALID_ACTIONS:
            action = "WAIT"
        normalized_action = cast(ActionKind, action)
        if not isinstance(target, str) or not target.strip():
            target = DEFAULT_TARGET
        if not isinstance(reason, str):
            reason = ""
        if not isinstance(prompt, str) or not prompt.strip():
            prompt = ""
            # Nothing to hand to the synthesis service.
            normalized_action = "WAIT"
        if (
            isinstance(confidence, bool)
            or not isinstance(confidence, (int, float))
            or not math.isfinite(confidence)
        ):
            confidence = DEFAULT_CONFIDENCE
        if style_alignment is not None and not isinstance(style_alignment, str):
            style_alignment = None

        return Decision(
            iteration=iteration,
            action=normalized_action,
            target=target.strip(),
            rationale=reason.strip(),
            instruction=prompt.strip(),
            confidence=min(max(float(confidence), 0.0), 1.0),
            estimated_cost=0.0 if normalized_action == "WAIT" else self.unit_cost,
            style_alignment=style_alignment or None,
        )

    @staticmethod
    def _fallback_wait(iteration: int, reason: str) -> Decision:
        return Decision(
            iteration=iteration,
            action="WAIT",
            target="System",
            rationale=reason,
            instruction="",
            confidence=0.0,
            estimated_cost=0.0,
        )


def summarize_history(decisions: Iterable[Decision]) -> str:
    """Summarize prior decisions, e.g. ``EDIT Sofa, MOVE Lamp``."""
    rendered = [f"{decision.action} {decision.target}" for decision in decisions]
    return ", ".join(rendered) or "None"
