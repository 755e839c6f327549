"""Contracts for the external inference and synthesis services."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from autodesign.agent.models import Artifact, Decision, LearnedPatterns


class ServiceError(RuntimeError):
    """Raised by service clients when a request cannot produce a usable response."""


@dataclass(frozen=True, slots=True)
class DecisionRequest:
    artifact: Artifact
    design_goal: str
    style_keywords: tuple[str, ...]
    history_summary: str
    memory: LearnedPatterns
    memory_summary: str
    iteration: int


@dataclass(frozen=True, slots=True)
class OutcomeRequest:
    artifact: Artifact
    decision: Decision
    design_goal: str
    style_keywords: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class SynthesisRequest:
    artifact: Artifact
    instruction: str
    target: str
    action: str
    rationale: str
    force_override: bool = True


class DecisionService(Protocol):
    async def infer_decision(self, request: DecisionRequest) -> Mapping[str, object]: ...


class OutcomeService(Protocol):
    async def infer_outcome(self, request: OutcomeRequest) -> Mapping[str, object]: ...


class SynthesisService(Protocol):
    async def synthesize(self, request: SynthesisRequest) -> Artifact | None: ...
