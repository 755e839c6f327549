import json

import pytest

from autodesign.config import AppConfig

ENV_VARS = [
    "AUTODESIGN_CONFIG_FILE",
    "AUTODESIGN_OPENAI_API_KEY",
    "AUTODESIGN_API_KEY",
    "AUTODESIGN_MODEL",
    "AUTODESIGN_MAX_ITERATIONS",
    "AUTODESIGN_MAX_COST",
    "AUTODESIGN_ITERATION_DELAY",
    "AUTODESIGN_SIMULATE_ONLY",
    "AUTODESIGN_SUCCESS_THRESHOLD",
    "AUTODESIGN_SYNTHESIS_API_KEY",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_app_config_loads_values_from_file(tmp_path, monkeypatch) -> None:
    config_path = tmp_path / "custom.json"
    config_path.write_text(
        json.dumps(
            {
                "openai": {"api_key": "test-key", "api_url": "https://proxy.test/v1/responses"},
                "synthesis": {"api_url": "https://images.test/edit", "model": "flux-edit"},
                "model": "gpt-4.1",
                "log_dir": "run-logs",
                "agent": {
                    "max_iterations": 6,
                    "iteration_delay": 0.5,
                    "max_cost": 0.2,
                    "simulate_only": True,
                },
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("AUTODESIGN_CONFIG_FILE", str(config_path))

    config = AppConfig.from_env()

    assert config.api_key == "test-key"
    assert config.api_url == "https://proxy.test/v1/responses"
    assert config.synthesis_url == "https://images.test/edit"
    assert config.synthesis_model == "flux-edit"
    assert config.synthesis_api_key == "test-key"
    assert config.model == "gpt-4.1"
    assert config.log_dir == "run-logs"
    assert config.max_iterations == 6
    assert config.iteration_delay == 0.5
    assert config.max_cost == 0.2
    assert config.simulate_only is True


def test_env_overrides_file(tmp_path, monkeypatch) -> None:
    config_path = tmp_path / "custom.json"
    config_path.write_text(json.dumps({"agent": {"max_iterations": 6}}), encoding="utf-8")
    monkeypatch.setenv("AUTODESIGN_CONFIG_FILE", str(config_path))
    monkeypatch.setenv("AUTODESIGN_MAX_ITERATIONS", "12")
    monkeypatch.setenv("AUTODESIGN_SIMULATE_ONLY", "yes")

    config = AppConfig.from_env()

    assert config.max_iterations == 12
    assert config.simulate_only is True


def test_invalid_numbers_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("AUTODESIGN_MAX_ITERATIONS", "-3")
    monkeypatch.setenv("AUTODESIGN_MAX_COST", "lots")
    monkeypatch.setenv("AUTODESIGN_SUCCESS_THRESHOLD", "1.5")

    config = AppConfig.from_env()

    assert config.max_iterations == 10
    assert config.max_cost == 1.0
    assert config.success_threshold == 0.6


def test_local_override_merges_with_shared_file(tmp_path) -> None:
    (tmp_path / "autodesign.config.json").write_text(
        json.dumps({"agent": {"max_iterations": 4, "max_cost": 0.5}}), encoding="utf-8"
    )
    (tmp_path / "autodesign.config.local.json").write_text(
        json.dumps({"agent": {"max_cost": 0.3}}), encoding="utf-8"
    )

    config = AppConfig.from_env()

    assert config.max_iterations == 4
    assert config.max_cost == 0.3


def test_run_configuration_applies_overrides() -> None:
    config = AppConfig.from_env()

    run_config = config.run_configuration(
        "warm scandinavian bedroom",
        ("scandinavian",),
        max_iterations=3,
        max_cost=None,
    )

    assert run_config.design_goal == "warm scandinavian bedroom"
    assert run_config.style_keywords == ("scandinavian",)
    assert run_config.max_iterations == 3
    assert run_config.max_cost == config.max_cost
    assert run_config.call_timeout == config.request_timeout


def test_run_configuration_rejects_invalid_override() -> None:
    with pytest.raises(ValueError):
        AppConfig.from_env().run_configuration("goal", max_iterations=0)
