import pytest
from pathlib import Path
from pydantic import ValidationError

from serial_writer.config import (
    Config,
    GeneratorConfig,
    PacingConfig,
    QualityConfig,
    StrategyConfig,
)


def test_default_config():
    config = Config()
    assert config.quality.threshold == 7.0
    assert config.quality.weights["plot"] == 0.30
    assert config.automation.completion_threshold == 95.0
    assert config.pacing.stage_boundaries == [25.0, 50.0, 75.0]
    assert set(config.strategy.strategies) == {"efficiency", "balanced", "high_investment", "emergency"}
    assert config.storage.session_hours == 24.0


def test_config_from_yaml(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("""
storage:
  data_dir: custom/data
quality:
  threshold: 6.5
  max_attempts: 2
strategy:
  budget: 250
generator:
  provider: gemini
  model: gemini-2.0-flash
""")

    config = Config.from_yaml(config_file)
    assert str(config.storage.data_dir) == "custom/data"
    assert config.quality.threshold == 6.5
    assert config.quality.max_attempts == 2
    assert config.strategy.budget == 250
    assert config.generator.provider == "gemini"
    # untouched sections keep their defaults
    assert config.automation.max_active_works == 3


def test_empty_yaml_gives_defaults(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("")
    assert Config.from_yaml(config_file) == Config()


def test_config_validation():
    with pytest.raises(ValidationError):
        Config(quality=QualityConfig(max_attempts=0))


def test_weights_must_sum_to_one():
    with pytest.raises(ValidationError):
        QualityConfig(weights={"plot": 0.5, "character": 0.5, "literary": 0.5, "chemistry": 0.5})


def test_weights_must_name_every_engine():
    with pytest.raises(ValidationError):
        QualityConfig(weights={"plot": 0.5, "character": 0.5})


def test_stage_boundaries_must_increase():
    with pytest.raises(ValidationError):
        PacingConfig(stage_boundaries=[50.0, 25.0, 75.0])
    with pytest.raises(ValidationError):
        PacingConfig(stage_boundaries=[25.0, 50.0])


def test_alert_tiers_must_be_ordered():
    with pytest.raises(ValidationError):
        StrategyConfig(warning=0.9, critical=0.8)


def test_unknown_provider_rejected():
    with pytest.raises(ValidationError):
        GeneratorConfig(provider="carrier-pigeon")


def test_config_to_yaml(tmp_path):
    config = Config(quality=QualityConfig(threshold=8.0))
    output_file = tmp_path / "output.yaml"

    config.to_yaml(output_file)

    assert output_file.exists()
    loaded_config = Config.from_yaml(output_file)
    assert loaded_config.quality.threshold == 8.0
    assert loaded_config.strategy.strategies["balanced"].target_tokens == 2750
