"""Command-line interface for autodesign."""

from __future__ import annotations

import argparse
import asyncio
import base64
import binascii
import logging
import signal
from pathlib import Path
from typing import cast

from .agent.models import AgentState, Artifact, RunConfiguration
from .agent.orchestrator import Orchestrator
from .config import AppConfig
from .llm.client import VisionClient
from .llm.synthesis import SynthesisClient

LOGGER = logging.getLogger(__name__)

STOP_REASON_MESSAGES = {
    "iteration_cap": "Reached the iteration limit.",
    "budget_exhausted": "Stopped: budget limit reached.",
    "user_stopped": "Stopped by user.",
}


class CLIArgs(argparse.Namespace):
    image: str
    goal: str | None
    style: list[str] | None
    max_iterations: int | None
    delay: float | None
    max_cost: float | None
    simulate: bool
    report: str | None
    export_dir: str | None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autodesign",
        description="Autonomous room design agent",
    )
    parser.add_argument("image", help="Room photo or floor plan to refine")
    parser.add_argument("--goal", help="Design goal, e.g. 'cozy reading corner'")
    parser.add_argument(
        "--style",
        action="append",
        help="Style keyword; repeat for several (e.g. --style minimalist --style 'warm tones')",
    )
    parser.add_argument("--max-iterations", dest="max_iterations", type=int)
    parser.add_argument("--delay", type=float, help="Seconds to wait between iterations")
    parser.add_argument("--max-cost", dest="max_cost", type=float, help="Spending ceiling")
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Decide and evaluate without calling the synthesis service",
    )
    parser.add_argument("--report", help="Write the JSON run report to this path")
    parser.add_argument(
        "--export-dir",
        dest="export_dir",
        help="Write every retained iteration image into this directory",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = cast(CLIArgs, parser.parse_args(argv))
    config = AppConfig.from_env()
    logging.basicConfig(level=config.log_level)

    image_path = Path(args.image).expanduser()
    if not image_path.is_file():
        print(f"Image not found: {args.image}")
        return 1

    goal = args.goal or input("Design goal: ").strip()
    if not goal:
        print("No design goal provided.")
        return 1

    try:
        run_config = config.run_configuration(
            goal,
            tuple(keyword.strip() for keyword in args.style or [] if keyword.strip()),
            max_iterations=args.max_iterations,
            iteration_delay=args.delay,
            max_cost=args.max_cost,
            simulate_only=True if args.simulate else None,
        )
    except ValueError as exc:
        print(f"Invalid run configuration: {exc}")
        return 1

    vision = VisionClient(
        api_key=config.api_key,
        model=config.model,
        api_url=config.api_url,
        timeout=config.request_timeout,
    )
    synthesis = SynthesisClient(
        api_key=config.synthesis_api_key,
        model=config.synthesis_model,
        api_url=config.synthesis_url,
        timeout=config.request_timeout,
    )
    orchestrator = Orchestrator(
        decision_service=vision,
        outcome_service=vision,
        synthesis_service=synthesis,
        log_dir=config.log_dir,
    )

    artifact = base64.b64encode(image_path.read_bytes()).decode("ascii")
    final_state = asyncio.run(run_agent(orchestrator, run_config, artifact))
    print(_render_summary(final_state))

    if args.report:
        report_path = Path(args.report)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(orchestrator.export_report_json(), encoding="utf-8")
        print(f"Report written to {report_path}")

    if args.export_dir:
        written = export_artifacts(orchestrator.export_artifacts(), Path(args.export_dir))
        if written:
            print(f"Exported {len(written)} images to {args.export_dir}")
        else:
            print("No images to export (simulate-only run or no completed iterations).")
    return 0


async def run_agent(
    orchestrator: Orchestrator, run_config: RunConfiguration, artifact: Artifact
) -> AgentState:
    """Run the agent, printing progress and turning Ctrl-C into a stop signal."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.stop)
    except (NotImplementedError, RuntimeError):
        LOGGER.debug("signal_handler_unavailable")

    orchestrator.subscribe(ProgressPrinter())
    try:
        return await orchestrator.start(run_config, artifact)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


class ProgressPrinter:
    """Prints decisions, evaluations and errors as they appear in snapshots."""

    def __init__(self) -> None:
        self.decisions_seen = 0
        self.evaluations_seen = 0
        self.errors_seen = 0

    def __call__(self, state: AgentState) -> None:
        for decision in state.decisions[self.decisions_seen :]:
            print(
                f"[{decision.iteration}] {decision.action} {decision.target}"
                f" (confidence {decision.confidence:.2f})"
            )
            if decision.rationale:
                print(f"    reason: {decision.rationale}")
        for evaluation in state.evaluations[self.evaluations_seen :]:
            status = "ok" if evaluation.success else "miss"
            print(
                f"[{evaluation.iteration}] {status} quality={evaluation.quality_score:.0%}"
                f" style={evaluation.style_score:.0%} cost={state.total_cost:.2f}"
            )
            if evaluation.lesson_learned:
                print(f"    learned: {evaluation.lesson_learned}")
        for error in state.errors[self.errors_seen :]:
            print(f"    error: {error}")
        self.decisions_seen = len(state.decisions)
        self.evaluations_seen = len(state.evaluations)
        self.errors_seen = len(state.errors)


def export_artifacts(artifacts: list[dict[str, object]], export_dir: Path) -> list[Path]:
    export_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for entry in artifacts:
        encoded = entry.get("artifact")
        if not isinstance(encoded, str):
            continue
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            LOGGER.warning("artifact_decode_failed", extra={"iteration": entry.get("iteration")})
            continue
        path = export_dir / f"iteration-{entry.get('iteration')}.jpg"
        path.write_bytes(data)
        written.append(path)
    return written


def _render_summary(state: AgentState) -> str:
    progress = state.progress
    lines = [
        "=== Run complete ===",
        STOP_REASON_MESSAGES.get(state.stop_reason or "", "Run ended."),
        f"iterations: {state.current_iteration}",
        f"changes: {progress.total_changes}",
        f"avg quality: {progress.avg_quality:.0%}",
        f"avg style: {progress.avg_style_score:.0%}",
        f"success rate: {progress.success_rate:.0%}",
        f"total cost: {state.total_cost:.2f}",
    ]
    if state.last_error:
        lines.append(f"last error: {state.last_error}")
    return "\n".join(lines)


if __name__ == "__main__":
    raise SystemExit(main())
