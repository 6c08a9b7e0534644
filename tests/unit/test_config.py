# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for YAML loading, tutor configuration and settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from src.core.config import (
    ModelProfile,
    ModelsConfig,
    RoutingRules,
    Settings,
    TutorConfig,
    TutorConfigError,
    YAMLLoadError,
    deep_merge,
    load_tutor_config,
    load_yaml,
    load_yaml_with_override,
)
from src.core.config.settings import LLMSettings, WorkerSettings

SHIPPED_CONFIG = Path(__file__).resolve().parents[2] / "config" / "tutor.yaml"


# =============================================================================
# YAML Loader
# =============================================================================


@pytest.mark.unit
class TestYAMLLoader:
    """Tests for YAML file loading."""

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing path is reported as such."""
        with pytest.raises(YAMLLoadError) as exc_info:
            load_yaml(tmp_path / "nope.yaml")

        assert exc_info.value.reason == "File does not exist"

    def test_directory(self, tmp_path: Path) -> None:
        """A directory is not a file."""
        with pytest.raises(YAMLLoadError) as exc_info:
            load_yaml(tmp_path)

        assert exc_info.value.reason == "Path is not a file"

    def test_empty_file(self, tmp_path: Path) -> None:
        """An empty file loads as an empty mapping."""
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_yaml(path) == {}

    def test_list_root_rejected(self, tmp_path: Path) -> None:
        """The root must be a mapping."""
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(YAMLLoadError, match="YAML root must be a mapping"):
            load_yaml(path)

    def test_invalid_syntax(self, tmp_path: Path) -> None:
        """Broken YAML raises YAMLLoadError."""
        path = tmp_path / "broken.yaml"
        path.write_text("a: [unclosed\n")

        with pytest.raises(YAMLLoadError, match="Invalid YAML syntax"):
            load_yaml(path)

    def test_deep_merge(self) -> None:
        """Nested mappings merge; lists and scalars are replaced."""
        base = {"a": 1, "b": {"c": 2, "d": [1, 2]}}

        merged = deep_merge(base, {"b": {"c": 10, "d": [3]}, "e": 5})

        assert merged == {"a": 1, "b": {"c": 10, "d": [3]}, "e": 5}
        assert base == {"a": 1, "b": {"c": 2, "d": [1, 2]}}

    def test_override_file(self, tmp_path: Path) -> None:
        """The override file wins over the base."""
        base = tmp_path / "base.yaml"
        base.write_text("persona:\n  name: Adeline\n  voice: warm\n")
        override = tmp_path / "override.yaml"
        override.write_text("persona:\n  voice: brisk\n")

        assert load_yaml_with_override(base, override) == {
            "persona": {"name": "Adeline", "voice": "brisk"}
        }


# =============================================================================
# Tutor Configuration
# =============================================================================


@pytest.mark.unit
class TestTutorConfig:
    """Tests for the tutor configuration model."""

    def test_shipped_config_loads(self) -> None:
        """The bundled tutor.yaml validates."""
        config = load_tutor_config(SHIPPED_CONFIG)

        assert config.persona.name == "Adeline"
        assert config.life_to_credit_rules["baking"] == "Chemistry: Fermentation, Math: Ratios"
        assert set(config.grade_expectations) == {"K-2", "3-5", "6-8", "9-12"}
        assert config.models.vision_model == "gpt-4o"

    def test_override_replaces_rules(self, tmp_path: Path) -> None:
        """An override file can swap the default model."""
        override = tmp_path / "local.yaml"
        override.write_text("models:\n  default: llama3\n")

        config = load_tutor_config(SHIPPED_CONFIG, override)

        assert config.models.default == "llama3"
        assert config.models.investigation == "gpt-4o"

    def test_invalid_config(self, tmp_path: Path) -> None:
        """Wrong types raise TutorConfigError with the validation error."""
        path = tmp_path / "bad.yaml"
        path.write_text("grade_expectations: 5\n")

        with pytest.raises(TutorConfigError) as exc_info:
            load_tutor_config(path)

        assert isinstance(exc_info.value.original_error, ValidationError)

    def test_missing_config(self, tmp_path: Path) -> None:
        """A missing file raises TutorConfigError."""
        with pytest.raises(TutorConfigError, match="Failed to read tutor configuration"):
            load_tutor_config(tmp_path / "missing.yaml")

    def test_config_is_frozen(self, tutor_config: TutorConfig) -> None:
        """The loaded configuration cannot be mutated."""
        with pytest.raises(ValidationError):
            tutor_config.life_to_credit_rules = {}

    def test_model_for_profiles(self) -> None:
        """Routing rule overrides win over tier defaults."""
        models = ModelsConfig(
            default="small",
            investigation="big",
            routing_rules=RoutingRules(deep_analysis_model="deep", general_chat="chat"),
        )

        assert models.model_for(ModelProfile.DEFAULT) == "chat"
        assert models.model_for(ModelProfile.INVESTIGATION) == "big"
        assert models.model_for(ModelProfile.DEEP_ANALYSIS) == "deep"
        assert models.vision_model == "small"

    def test_system_prompt(self, tutor_config: TutorConfig) -> None:
        """The persona prompt carries rules and the student context."""
        prompt = tutor_config.system_prompt("Grade level: 7")

        assert prompt.startswith("You are Adeline.")
        assert "- baking: Chemistry: Fermentation, Math: Ratios" in prompt
        assert prompt.endswith("STUDENT CONTEXT:\nGrade level: 7")
        assert "STUDENT CONTEXT" not in tutor_config.system_prompt()


# =============================================================================
# Settings
# =============================================================================


@pytest.mark.unit
class TestSettings:
    """Tests for environment settings."""

    def test_worker_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Worker defaults match the documented schedule."""
        for name in ("WORKER_JOB_BATCH_SIZE", "WORKER_JOB_RETENTION_DAYS", "WORKER_PROCESS_SECRET"):
            monkeypatch.delenv(name, raising=False)

        worker = WorkerSettings()

        assert worker.job_batch_size == 5
        assert worker.job_retention_days == 7
        assert worker.cleanup_cron == "0 3 * * *"
        assert worker.process_secret is None

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Prefixed environment variables are read."""
        monkeypatch.setenv("WORKER_JOB_BATCH_SIZE", "12")

        assert WorkerSettings().job_batch_size == 12

    def test_production_rejects_default_password(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Production refuses the development database password."""
        monkeypatch.delenv("DB_PASSWORD", raising=False)

        with pytest.raises(ValidationError, match="Database password must be changed"):
            Settings(environment="production", debug=False)

    def test_production_rejects_debug(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Production refuses debug mode."""
        monkeypatch.setenv("DB_PASSWORD", "a-real-secret")

        with pytest.raises(ValidationError, match="DEBUG must be disabled"):
            Settings(environment="production", debug=True)

    def test_production_accepts_real_password(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A changed password and no debug pass validation."""
        monkeypatch.setenv("DB_PASSWORD", "a-real-secret")

        settings = Settings(environment="production", debug=False)

        assert settings.is_production
        assert settings.database.url.startswith("postgresql+asyncpg://adeline:a-real-secret@")

    @pytest.mark.parametrize(
        "model,expected",
        [
            ("gpt-4o", "openai"),
            ("whisper-1", "openai"),
            ("claude-3-5-sonnet-20241022", "anthropic"),
            ("gemini/gemini-1.5-pro", "google"),
            ("ollama/llama3", None),
        ],
    )
    def test_api_key_for(
        self, monkeypatch: pytest.MonkeyPatch, model: str, expected: str | None
    ) -> None:
        """Keys are picked by provider name in the model id."""
        monkeypatch.setenv("OPENAI_API_KEY", "openai")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "anthropic")
        monkeypatch.setenv("GOOGLE_API_KEY", "google")

        assert LLMSettings().api_key_for(model) == expected
