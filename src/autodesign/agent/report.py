"""Exportable run reports."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime, timezone

from autodesign.agent.models import (
    AgentState,
    Evaluation,
    OverallProgress,
    RunConfiguration,
)

REPORT_VERSION = 1


def compute_progress(
    evaluations: Sequence[Evaluation], *, total_changes: int
) -> OverallProgress:
    """Running means and success rate over all evaluations so far."""
    total = len(evaluations)
    if total == 0:
        return OverallProgress(total_changes=total_changes)
    return OverallProgress(
        avg_quality=sum(item.quality_score for item in evaluations) / total,
        avg_style_score=sum(item.style_score for item in evaluations) / total,
        success_rate=sum(1 for item in evaluations if item.success) / total,
        total_changes=total_changes,
    )


def build_report(config: RunConfiguration, state: AgentState) -> dict[str, object]:
    return {
        "report_version": REPORT_VERSION,
        "metadata": {
            "design_goal": config.design_goal,
            "style_keywords": list(config.style_keywords),
            "simulate_only": config.simulate_only,
            "max_iterations": config.max_iterations,
            "max_cost": config.max_cost,
            "iterations_run": state.current_iteration,
            "total_iterations": len(state.evaluations),
            "total_cost": state.total_cost,
            "status": state.status,
            "stop_reason": state.stop_reason,
            "completed_at": datetime.now(timezone.utc).isoformat(),
        },
        "overall_progress": {
            "avg_quality": state.progress.avg_quality,
            "avg_style_score": state.progress.avg_style_score,
            "success_rate": state.progress.success_rate,
            "total_changes": state.progress.total_changes,
        },
        "learned_patterns": {
            "success_patterns": list(state.memory.success_patterns),
            "failure_patterns": list(state.memory.failure_patterns),
            "style_insights": list(state.memory.style_insights),
        },
        "iterations": [_serialize_evaluation(item) for item in state.evaluations],
        "errors": list(state.errors),
    }


def recompute_progress(report: Mapping[str, object]) -> OverallProgress:
    """Rebuild aggregate progress from a report's per-iteration entries."""
    raw_iterations = report.get("iterations")
    iterations = raw_iterations if isinstance(raw_iterations, list) else []
    raw_progress = report.get("overall_progress")
    progress = raw_progress if isinstance(raw_progress, Mapping) else {}
    total_changes = progress.get("total_changes", 0)
    if not isinstance(total_changes, int):
        total_changes = 0

    total = len(iterations)
    if total == 0:
        return OverallProgress(total_changes=total_changes)
    return OverallProgress(
        avg_quality=sum(float(entry["quality_score"]) for entry in iterations) / total,
        avg_style_score=sum(float(entry["style_score"]) for entry in iterations) / total,
        success_rate=sum(1 for entry in iterations if entry.get("success") is True) / total,
        total_changes=total_changes,
    )


def _serialize_evaluation(evaluation: Evaluation) -> dict[str, object]:
    decision = evaluation.decision
    return {
        "iteration": evaluation.iteration,
        "timestamp": evaluation.timestamp.isoformat(),
        "action": f"{decision.action} - {decision.target}",
        "action_kind": decision.action,
        "target": decision.target,
        "reason": decision.rationale,
        "instruction": decision.instruction,
        "confidence": decision.confidence,
        "quality_score": evaluation.quality_score,
        "style_score": evaluation.style_score,
        "quality_display": f"{evaluation.quality_score * 100:.0f}%",
        "style_display": f"{evaluation.style_score * 100:.0f}%",
        "success": evaluation.success,
        "strengths": list(evaluation.strengths),
        "weaknesses": list(evaluation.weaknesses),
        "style_notes": evaluation.style_notes,
        "lesson_learned": evaluation.lesson_learned,
        "better_approach": evaluation.better_approach,
    }
