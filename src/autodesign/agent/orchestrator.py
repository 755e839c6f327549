"""Control loop for the autonomous design agent."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path

from autodesign.agent.budget import BudgetTracker
from autodesign.agent.decision import DecisionEngine, summarize_history
from autodesign.agent.evaluator import OutcomeEvaluator
from autodesign.agent.execution import ExecutionAdapter
from autodesign.agent.memory import LearningMemory
from autodesign.agent.models import (
    AgentState,
    AgentStatus,
    Artifact,
    Decision,
    Evaluation,
    LearnedPatterns,
    OverallProgress,
    RunConfiguration,
    StopReason,
)
from autodesign.agent.report import build_report, compute_progress
from autodesign.agent.services import DecisionService, OutcomeService, SynthesisService

SnapshotCallback = Callable[[AgentState], None]
Sleep = Callable[[float], Awaitable[object]]
LOG_VERSION = 1
LOGGER = logging.getLogger(__name__)


class Orchestrator:
    """Runs the decide/execute/evaluate/learn cycle for one run.

    The orchestrator owns every piece of mutable run state. Hosts steer it
    with ``pause``/``resume``/``stop`` and observe it through ``subscribe``;
    control signals are only honoured between external calls, so an in-flight
    request always finishes before the loop reacts.
    """

    def __init__(
        self,
        *,
        decision_service: DecisionService,
        outcome_service: OutcomeService,
        synthesis_service: SynthesisService,
        log_dir: str | Path | None = None,
        initial_memory: LearnedPatterns | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.decision_service = decision_service
        self.outcome_service = outcome_service
        self.synthesis_service = synthesis_service
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self._sleep = sleep
        self._memory = (
            LearningMemory.from_patterns(initial_memory) if initial_memory else LearningMemory()
        )
        self._subscribers: list[SnapshotCallback] = []

        self._config: RunConfiguration | None = None
        self._budget: BudgetTracker | None = None
        self._engine: DecisionEngine | None = None
        self._evaluator: OutcomeEvaluator | None = None
        self._adapter: ExecutionAdapter | None = None

        self._status: AgentStatus = "idle"
        self._stop_requested = False
        self._stop_reason: StopReason | None = None
        self._resume_event = asyncio.Event()
        self._resume_event.set()
        self._stop_event = asyncio.Event()

        self._iteration = 0
        self._artifact: Artifact = ""
        self._decisions: list[Decision] = []
        self._evaluations: list[Evaluation] = []
        self._improvements: list[str] = []
        self._errors: list[str] = []
        self._progress = OverallProgress()
        self._state = AgentState()

    def snapshot(self) -> AgentState:
        return self._state

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Register a snapshot listener; returns a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def start(self, config: RunConfiguration, initial_artifact: Artifact) -> asyncio.Task[AgentState]:
        """Begin a run in the background on the current event loop."""
        self._begin(config, initial_artifact)
        return asyncio.get_running_loop().create_task(self._run_loop())

    async def run(self, config: RunConfiguration, initial_artifact: Artifact) -> AgentState:
        """Run to completion and return the terminal snapshot."""
        self._begin(config, initial_artifact)
        return await self._run_loop()

    def pause(self) -> None:
        if self._status != "running" or self._stop_requested:
            return
        self._status = "paused"
        self._resume_event.clear()
        LOGGER.info("agent_paused", extra={"iteration": self._iteration})
        self._publish()

    def resume(self) -> None:
        if self._status != "paused":
            return
        self._status = "running"
        self._resume_event.set()
        LOGGER.info("agent_resumed", extra={"iteration": self._iteration})
        self._publish()

    def stop(self) -> None:
        if self._status == "stopped" or self._stop_requested:
            return
        self._stop_requested = True
        self._stop_event.set()
        LOGGER.info("agent_stop_requested", extra={"iteration": self._iteration})
        if self._status == "idle":
            self._stop_reason = "user_stopped"
            self._status = "stopped"
            self._publish()
            return
        if self._status == "paused":
            self._status = "running"
            self._resume_event.set()

    def export_report(self) -> dict[str, object]:
        if self._config is None:
            raise RuntimeError("No run has been started")
        return build_report(self._config, self._state)

    def export_report_json(self) -> str:
        return json.dumps(self.export_report(), indent=2, ensure_ascii=False)

    def export_artifacts(self) -> list[dict[str, object]]:
        return [
            {"iteration": evaluation.iteration, "artifact": evaluation.artifact}
            for evaluation in self._state.evaluations
            if evaluation.artifact
        ]

    def _begin(self, config: RunConfiguration, initial_artifact: Artifact) -> None:
        if self._status != "idle":
            raise RuntimeError(f"Cannot start a run from state {self._status!r}")
        self._config = config
        self._budget = BudgetTracker(config.max_cost)
        self._engine = DecisionEngine(
            self.decision_service,
            unit_cost=config.unit_cost,
            timeout=config.call_timeout,
        )
        self._evaluator = OutcomeEvaluator(
            self.outcome_service,
            success_threshold=config.success_threshold,
            retain_artifacts=not config.simulate_only,
            timeout=config.call_timeout,
        )
        self._adapter = ExecutionAdapter(self.synthesis_service, timeout=config.call_timeout)
        self._artifact = initial_artifact
        self._status = "running"
        LOGGER.info(
            "agent_run_started",
            extra={
                "design_goal": config.design_goal,
                "style_keywords": list(config.style_keywords),
                "simulate_only": config.simulate_only,
                "max_iterations": config.max_iterations,
                "max_cost": config.max_cost,
            },
        )
        self._publish()

    async def _run_loop(self) -> AgentState:
        config = self._require_config()
        try:
            while not self._stop_requested and self._iteration < config.max_iterations:
                if self._status == "paused":
                    await self._resume_event.wait()
                    if self._stop_requested:
                        break

                self._iteration += 1
                self._publish()
                try:
                    keep_going = await self._run_iteration(config, self._iteration)
                except Exception as exc:
                    self._errors.append(f"Iteration {self._iteration} failed: {exc}")
                    LOGGER.exception("agent_iteration_error", extra={"iteration": self._iteration})
                    self._publish()
                    if self._stop_reason is not None:
                        break
                    continue
                if not keep_going:
                    break
        finally:
            self._finish()
        return self._state

    async def _run_iteration(self, config: RunConfiguration, iteration: int) -> bool:
        engine, evaluator, adapter, budget = self._require_components()

        decision = await engine.decide(
            self._artifact,
            config.design_goal,
            config.style_keywords,
            summarize_history(self._decisions),
            self._memory.snapshot(),
            iteration=iteration,
        )
        if self._stop_requested:
            LOGGER.info("agent_stopped_before_execution", extra={"iteration": iteration})
            return False

        self._decisions.append(decision)
        LOGGER.info(
            "decision_made",
            extra={
                "iteration": iteration,
                "action": decision.action,
                "target": decision.target,
                "confidence": decision.confidence,
            },
        )

        if decision.is_wait:
            self._append_log(decision, outcome="wait")
            self._publish()
            await self._delay(config.iteration_delay * 2)
            return True

        if config.simulate_only:
            self._improvements.append(f"[Simulated] {decision.action} - {decision.target}")
        else:
            if not budget.try_reserve(decision.estimated_cost):
                self._errors.append("Budget limit reached")
                self._stop_reason = "budget_exhausted"
                LOGGER.info(
                    "budget_exhausted",
                    extra={"iteration": iteration, "total_cost": budget.get_spent()},
                )
                self._append_log(decision, outcome="budget_exhausted")
                return False

            result = await adapter.execute(self._artifact, decision)
            if not result.ok or result.artifact is None:
                error = result.error or f"Failed to generate for: {decision.target}"
                self._errors.append(error)
                self._append_log(decision, outcome="execution_failed", error=error)
                self._publish()
                await self._delay(config.iteration_delay)
                return True

            self._artifact = result.artifact
            self._improvements.append(f"{decision.action} - {decision.target}")

        evaluation = await evaluator.evaluate(
            self._artifact,
            decision,
            config.design_goal,
            config.style_keywords,
            iteration,
        )
        self._evaluations.append(evaluation)
        self._memory.update(evaluation)
        self._progress = compute_progress(
            self._evaluations, total_changes=len(self._improvements)
        )
        self._append_log(decision, outcome="evaluated", evaluation=evaluation)
        self._publish()
        await self._delay(config.iteration_delay)
        return True

    async def _delay(self, seconds: float) -> None:
        if self._stop_requested:
            return
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        stopper = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            stopper.cancel()

    def _finish(self) -> None:
        if self._stop_reason is None:
            config = self._require_config()
            if not self._stop_requested and self._iteration >= config.max_iterations:
                self._stop_reason = "iteration_cap"
            else:
                # Stop requested, or the host cancelled the task.
                self._stop_reason = "user_stopped"
        self._status = "stopped"
        self._resume_event.set()
        LOGGER.info(
            "agent_run_finished",
            extra={
                "stop_reason": self._stop_reason,
                "iterations": self._iteration,
                "evaluations": len(self._evaluations),
                "total_cost": self._total_cost(),
            },
        )
        self._publish()

    def _publish(self) -> None:
        self._state = AgentState(
            status=self._status,
            current_iteration=self._iteration,
            total_cost=self._total_cost(),
            decisions=tuple(self._decisions),
            evaluations=tuple(self._evaluations),
            improvements=tuple(self._improvements),
            errors=tuple(self._errors),
            current_artifact=self._artifact,
            progress=self._progress,
            memory=self._memory.snapshot(),
            stop_reason=self._stop_reason if self._status == "stopped" else None,
        )
        for callback in list(self._subscribers):
            try:
                callback(self._state)
            except Exception:
                LOGGER.exception("snapshot_subscriber_failed")

    def _total_cost(self) -> float:
        return self._budget.get_spent() if self._budget is not None else 0.0

    def _require_config(self) -> RunConfiguration:
        if self._config is None:
            raise RuntimeError("No run has been started")
        return self._config

    def _require_components(
        self,
    ) -> tuple[DecisionEngine, OutcomeEvaluator, ExecutionAdapter, BudgetTracker]:
        if (
            self._engine is None
            or self._evaluator is None
            or self._adapter is None
            or self._budget is None
        ):
            raise RuntimeError("No run has been started")
        return self._engine, self._evaluator, self._adapter, self._budget

    def _append_log(
        self,
        decision: Decision,
        *,
        outcome: str,
        evaluation: Evaluation | None = None,
        error: str | None = None,
    ) -> None:
        if self.log_dir is None:
            return
        config = self._require_config()
        day_file = self.log_dir / f"run-{datetime.now(timezone.utc).date().isoformat()}.log"
        entry = {
            "log_version": LOG_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "goal": config.design_goal,
            "simulate_only": config.simulate_only,
            "iteration": decision.iteration,
            "action": decision.action,
            "target": decision.target,
            "confidence": decision.confidence,
            "estimated_cost": decision.estimated_cost,
            "outcome": outcome,
            "quality_score": evaluation.quality_score if evaluation else None,
            "style_score": evaluation.style_score if evaluation else None,
            "success": evaluation.success if evaluation else None,
            "total_cost": self._total_cost(),
            "error": error,
        }
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with day_file.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry) + "\n")
        except OSError:
            LOGGER.exception(
                "run_log_write_failed",
                extra={"log_dir": str(self.log_dir), "iteration": decision.iteration},
            )
