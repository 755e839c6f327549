"""Environment-backed application configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from autodesign.agent.models import DEFAULT_UNIT_COST, SUCCESS_THRESHOLD, RunConfiguration

DEFAULT_API_URL = "https://api.openai.com/v1/responses"
DEFAULT_SYNTHESIS_URL = "http://localhost:8080/v1/images/edit"


def _to_bool(value: str | None, default: bool = False) -> bool:
    """Convert common env var truthy/falsy values into booleans."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


@dataclass(slots=True)
class AppConfig:
    """Runtime settings loaded from environment variables and config files."""

    api_key: str | None
    model: str
    api_url: str
    synthesis_api_key: str | None
    synthesis_model: str
    synthesis_url: str
    request_timeout: float
    log_dir: str | None
    log_level: str
    max_iterations: int
    iteration_delay: float
    max_cost: float
    unit_cost: float
    success_threshold: float
    simulate_only: bool

    @classmethod
    def from_env(cls) -> AppConfig:
        file_config = _load_preferred_file_config()
        openai_from_file = file_config.get("openai")
        openai_config = openai_from_file if isinstance(openai_from_file, dict) else {}
        synthesis_from_file = file_config.get("synthesis")
        synthesis_config = synthesis_from_file if isinstance(synthesis_from_file, dict) else {}
        agent_from_file = file_config.get("agent")
        agent_config = agent_from_file if isinstance(agent_from_file, dict) else {}

        api_key = (
            os.getenv("AUTODESIGN_OPENAI_API_KEY")
            or os.getenv("AUTODESIGN_API_KEY")
            or _to_optional_string(openai_config.get("api_key"))
            or _to_optional_string(file_config.get("api_key"))
        )
        return cls(
            api_key=api_key,
            model=(
                os.getenv("AUTODESIGN_MODEL")
                or _to_optional_string(file_config.get("model"))
                or "gpt-4.1-mini"
            ),
            api_url=(
                os.getenv("AUTODESIGN_API_URL")
                or _to_optional_string(openai_config.get("api_url"))
                or DEFAULT_API_URL
            ),
            synthesis_api_key=(
                os.getenv("AUTODESIGN_SYNTHESIS_API_KEY")
                or _to_optional_string(synthesis_config.get("api_key"))
                or api_key
            ),
            synthesis_model=(
                os.getenv("AUTODESIGN_SYNTHESIS_MODEL")
                or _to_optional_string(synthesis_config.get("model"))
                or "gpt-image-1"
            ),
            synthesis_url=(
                os.getenv("AUTODESIGN_SYNTHESIS_URL")
                or _to_optional_string(synthesis_config.get("api_url"))
                or DEFAULT_SYNTHESIS_URL
            ),
            request_timeout=_to_positive_float(
                os.getenv("AUTODESIGN_REQUEST_TIMEOUT") or file_config.get("request_timeout"),
                default=60.0,
            ),
            log_dir=(
                os.getenv("AUTODESIGN_LOG_DIR")
                or _to_optional_string(file_config.get("log_dir"))
                or "logs"
            ),
            log_level=(
                os.getenv("AUTODESIGN_LOG_LEVEL")
                or _to_optional_string(file_config.get("log_level"))
                or "WARNING"
            ).upper(),
            max_iterations=_to_positive_int(
                os.getenv("AUTODESIGN_MAX_ITERATIONS") or agent_config.get("max_iterations"),
                default=10,
            ),
            iteration_delay=_to_non_negative_float(
                os.getenv("AUTODESIGN_ITERATION_DELAY") or agent_config.get("iteration_delay"),
                default=2.0,
            ),
            max_cost=_to_non_negative_float(
                os.getenv("AUTODESIGN_MAX_COST") or agent_config.get("max_cost"),
                default=1.0,
            ),
            unit_cost=_to_non_negative_float(
                os.getenv("AUTODESIGN_UNIT_COST") or agent_config.get("unit_cost"),
                default=DEFAULT_UNIT_COST,
            ),
            success_threshold=_to_unit_interval(
                os.getenv("AUTODESIGN_SUCCESS_THRESHOLD")
                or agent_config.get("success_threshold"),
                default=SUCCESS_THRESHOLD,
            ),
            simulate_only=_to_bool(
                os.getenv("AUTODESIGN_SIMULATE_ONLY"),
                default=bool(agent_config.get("simulate_only", False)),
            ),
        )

    def run_configuration(
        self,
        design_goal: str,
        style_keywords: tuple[str, ...] = (),
        **overrides: object,
    ) -> RunConfiguration:
        """Build a per-run configuration, letting the host override defaults."""
        values: dict[str, object] = {
            "simulate_only": self.simulate_only,
            "max_iterations": self.max_iterations,
            "iteration_delay": self.iteration_delay,
            "max_cost": self.max_cost,
            "unit_cost": self.unit_cost,
            "success_threshold": self.success_threshold,
            "call_timeout": self.request_timeout,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return RunConfiguration(
            design_goal=design_goal,
            style_keywords=tuple(style_keywords),
            **values,  # type: ignore[arg-type]
        )


def _to_optional_string(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _load_file_config(path_value: str) -> dict[str, object]:
    path = Path(path_value)
    if not path.exists() or not path.is_file():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            parsed = json.load(fh)
    except (OSError, json.JSONDecodeError):
        return {}
    if isinstance(parsed, dict):
        return parsed
    return {}


def _load_preferred_file_config() -> dict[str, object]:
    explicit_path = os.getenv("AUTODESIGN_CONFIG_FILE")
    if explicit_path:
        return _load_file_config(explicit_path)

    shared_config = _load_file_config("autodesign.config.json")
    local_override = _load_file_config("autodesign.config.local.json")
    return _merge_dicts(shared_config, local_override)


def _merge_dicts(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    merged: dict[str, object] = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _merge_dicts(base_value, value)
        else:
            merged[key] = value
    return merged


def _to_positive_int(value: object, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value > 0 else default
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return default
        return parsed if parsed > 0 else default
    return default


def _to_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _to_positive_float(value: object, *, default: float) -> float:
    parsed = _to_float(value)
    return parsed if parsed is not None and parsed > 0 else default


def _to_non_negative_float(value: object, *, default: float) -> float:
    parsed = _to_float(value)
    return parsed if parsed is not None and parsed >= 0 else default


def _to_unit_interval(value: object, *, default: float) -> float:
    parsed = _to_float(value)
    return parsed if parsed is not None and 0.0 <= parsed <= 1.0 else default
