"""Data models shared by the autonomous design loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

ActionKind = Literal["MOVE", "EDIT", "REMOVE", "WAIT"]
AgentStatus = Literal["idle", "running", "paused", "stopped"]
StopReason = Literal["iteration_cap", "budget_exhausted", "user_stopped"]

Artifact = str
"""Base64-encoded image being refined by the run."""

DEFAULT_UNIT_COST = 0.04
SUCCESS_THRESHOLD = 0.6


@dataclass(frozen=True, slots=True)
class RunConfiguration:
    """Settings for a single run. Never mutated once the run starts."""

    design_goal: str
    style_keywords: tuple[str, ...] = ()
    simulate_only: bool = False
    max_iterations: int = 10
    iteration_delay: float = 2.0
    max_cost: float = 1.0
    unit_cost: float = DEFAULT_UNIT_COST
    success_threshold: float = SUCCESS_THRESHOLD
    call_timeout: float = 60.0

    def __post_init__(self) -> None:
        if self.max_iterations <= 0:
            raise ValueError("max_iterations must be positive")
        if self.iteration_delay < 0:
            raise ValueError("iteration_delay must not be negative")
        if self.max_cost < 0 or self.unit_cost < 0:
            raise ValueError("costs must not be negative")
        if not 0.0 <= self.success_threshold <= 1.0:
            raise ValueError("success_threshold must be within [0, 1]")
        if self.call_timeout <= 0:
            raise ValueError("call_timeout must be positive")
        object.__setattr__(self, "style_keywords", tuple(self.style_keywords))


@dataclass(frozen=True, slots=True)
class Decision:
    """A proposed next action for the current artifact."""

    iteration: int
    action: ActionKind
    target: str
    rationale: str
    instruction: str
    confidence: float
    estimated_cost: float
    style_alignment: str | None = None

    @property
    def is_wait(self) -> bool:
        return self.action == "WAIT"


@dataclass(frozen=True, slots=True)
class Evaluation:
    """Scored critique of one executed decision."""

    iteration: int
    decision: Decision
    quality_score: float
    style_score: float
    success: bool
    strengths: tuple[str, ...] = ()
    weaknesses: tuple[str, ...] = ()
    style_notes: str = ""
    lesson_learned: str = ""
    better_approach: str | None = None
    artifact: Artifact | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Outcome of applying one decision through the synthesis service."""

    artifact: Artifact | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.artifact is not None and self.error is None


@dataclass(frozen=True, slots=True)
class LearnedPatterns:
    """Read-only view of what a run has learned so far."""

    success_patterns: tuple[str, ...] = ()
    failure_patterns: tuple[str, ...] = ()
    style_insights: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class OverallProgress:
    avg_quality: float = 0.0
    avg_style_score: float = 0.0
    success_rate: float = 0.0
    total_changes: int = 0


@dataclass(frozen=True, slots=True)
class AgentState:
    """Snapshot of a run, published after every transition."""

    status: AgentStatus = "idle"
    current_iteration: int = 0
    total_cost: float = 0.0
    decisions: tuple[Decision, ...] = ()
    evaluations: tuple[Evaluation, ...] = ()
    improvements: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    current_artifact: Artifact = ""
    progress: OverallProgress = field(default_factory=OverallProgress)
    memory: LearnedPatterns = field(default_factory=LearnedPatterns)
    stop_reason: StopReason | None = None

    @property
    def is_running(self) -> bool:
        return self.status in ("running", "paused")

    @property
    def is_paused(self) -> bool:
        return self.status == "paused"

    @property
    def last_error(self) -> str | None:
        return self.errors[-1] if self.errors else None
