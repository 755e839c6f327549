"""Applies decisions to the artifact through the synthesis service."""

from __future__ import annotations

import asyncio
import logging

from autodesign.agent.models import Artifact, Decision, ExecutionResult
from autodesign.agent.services import SynthesisRequest, SynthesisService

LOGGER = logging.getLogger(__name__)


class ExecutionAdapter:
    """Never raises: every synthesis failure becomes a failed ``ExecutionResult``."""

    def __init__(self, service: SynthesisService, *, timeout: float = 60.0) -> None:
        self.service = service
        self.timeout = timeout

    async def execute(self, artifact: Artifact, decision: Decision) -> ExecutionResult:
        if decision.is_wait:
            return ExecutionResult(error="WAIT decisions are not executable")

        request = SynthesisRequest(
            artifact=artifact,
            instruction=decision.instruction,
            target=decision.target,
            action=decision.action,
            rationale=decision.rationale,
            force_override=True,
        )
        try:
            new_artifact = await asyncio.wait_for(
                self.service.synthesize(request), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            LOGGER.error(
                "synthesis_timeout",
                extra={
                    "iteration": decision.iteration,
                    "target": decision.target,
                    "timeout_seconds": self.timeout,
                },
            )
            return ExecutionResult(
                error=f"Synthesis timed out after {self.timeout:.1f}s for: {decision.target}"
            )
        except Exception as exc:
            LOGGER.error(
                "synthesis_failed",
                extra={
                    "iteration": decision.iteration,
                    "target": decision.target,
                    "error": str(exc),
                },
            )
            return ExecutionResult(error=f"Failed to generate for: {decision.target} ({exc})")

        if not isinstance(new_artifact, str) or not new_artifact:
            LOGGER.warning(
                "synthesis_empty_result",
                extra={"iteration": decision.iteration, "target": decision.target},
            )
            return ExecutionResult(error=f"Failed to generate for: {decision.target}")
        return ExecutionResult(artifact=new_artifact)
