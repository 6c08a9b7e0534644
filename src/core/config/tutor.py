# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tutor domain configuration.

The tutor configuration describes who Adeline is and how activities map to
credits: persona, pedagogy, life-to-credit rules, model tiers with their
routing keywords, and per grade band subject expectations. It is loaded once
at process start from YAML and handed to the pipeline constructor; the
model is frozen so nothing mutates it afterwards.

Example:
    >>> from src.core.config.tutor import load_tutor_config
    >>> config = load_tutor_config(Path("config/tutor.yaml"))
    >>> config.models.model_for(ModelProfile.INVESTIGATION)
    'gpt-4o'
"""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.core.config.yaml_loader import YAMLLoadError, load_yaml_with_override


class TutorConfigError(Exception):
    """Raised when the tutor configuration cannot be loaded or validated.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying YAML or validation error.
    """

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class ModelProfile(str, Enum):
    """Response generation tiers selected by the intent router."""

    DEFAULT = "default"
    INVESTIGATION = "investigation"
    DEEP_ANALYSIS = "deep_analysis"


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class PersonaConfig(_FrozenModel):
    """Persona used for the general chat system prompt."""

    name: str = "Adeline"
    role: str = "A warm, curious learning companion for homeschooled students"
    voice: str = "Encouraging, concrete, never condescending"
    foundation: str = "Learning happens through real work that serves real people"
    core_belief: str = "Every student is capable of meaningful work"
    rules: dict[str, str] = Field(default_factory=dict)


class DiscernmentConfig(_FrozenModel):
    """Investigation guidance and source ranking."""

    source_priority: list[str] = Field(
        default_factory=lambda: ["PRIMARY", "CURATED", "SECONDARY", "MAINSTREAM"]
    )
    always_ask: str = "Who benefits from this being believed?"
    teach_method: str = "Trace incentives and weigh primary sources first"


class PedagogyConfig(_FrozenModel):
    """Teaching method hints injected into the persona prompt."""

    method: str = "Socratic, project-based"
    prompt_on_brainstorm: str = "Deliver a full plan immediately, then invite a service idea"
    redirect_busywork: str = "Suggest a version of the task that helps someone real"
    discernment: DiscernmentConfig = Field(default_factory=DiscernmentConfig)


class RoutingRules(_FrozenModel):
    """Keyword lists and explicit model overrides for profile selection."""

    deep_analysis_keywords: list[str] = Field(default_factory=list)
    investigation_keywords: list[str] = Field(default_factory=list)
    investigation_model: str | None = None
    deep_analysis_model: str | None = None
    general_chat: str | None = None


class ModelsConfig(_FrozenModel):
    """Model identifiers in LiteLLM format."""

    default: str = "gpt-4o"
    investigation: str = "gpt-4o"
    deep_analysis: str = "claude-3-5-sonnet-20241022"
    embeddings: str = "text-embedding-3-small"
    vision: str | None = None
    routing_rules: RoutingRules = Field(default_factory=RoutingRules)

    def model_for(self, profile: ModelProfile) -> str:
        """Resolve a generation profile to a model identifier.

        Routing rule overrides win over the tier defaults.
        """
        rules = self.routing_rules
        if profile == ModelProfile.INVESTIGATION:
            return rules.investigation_model or self.investigation
        if profile == ModelProfile.DEEP_ANALYSIS:
            return rules.deep_analysis_model or self.deep_analysis
        return rules.general_chat or self.default

    @property
    def vision_model(self) -> str:
        """Model used for image analysis."""
        return self.vision or self.default


class TutorConfig(_FrozenModel):
    """Complete tutor configuration.

    Attributes:
        persona: Persona shown in chat replies.
        pedagogy: Teaching method hints.
        life_to_credit_rules: Activity key to subject/skill description.
        models: Model tiers and routing rules.
        grade_expectations: Grade band to expected subject names.
    """

    persona: PersonaConfig = Field(default_factory=PersonaConfig)
    pedagogy: PedagogyConfig = Field(default_factory=PedagogyConfig)
    life_to_credit_rules: dict[str, str] = Field(default_factory=dict)
    models: ModelsConfig = Field(default_factory=ModelsConfig)
    grade_expectations: dict[str, list[str]] = Field(default_factory=dict)

    def system_prompt(self, student_context: str | None = None) -> str:
        """Build the persona system prompt used for general chat.

        Args:
            student_context: Optional prompt-ready student summary.

        Returns:
            System prompt text.
        """
        persona = self.persona
        discernment = self.pedagogy.discernment
        lines = [
            f"You are {persona.name}. {persona.role}.",
            "",
            f"VOICE: {persona.voice}",
            f"FOUNDATION: {persona.foundation}",
            f"CORE BELIEF: {persona.core_belief}",
        ]
        if persona.rules:
            lines += ["", "RULES YOU MUST FOLLOW:"]
            lines += [f"- {key.upper()}: {value}" for key, value in persona.rules.items()]
        lines += [
            "",
            "PEDAGOGY:",
            f"- Method: {self.pedagogy.method}",
            f"- When brainstorming: {self.pedagogy.prompt_on_brainstorm}",
            f"- If student proposes busywork: {self.pedagogy.redirect_busywork}",
            f'- Discernment: {discernment.teach_method}. Always ask: "{discernment.always_ask}"',
            f"- Source priority: {' > '.join(discernment.source_priority)}",
        ]
        if self.life_to_credit_rules:
            lines += ["", "LIFE-TO-CREDIT RULES:"]
            lines += [f"- {key}: {value}" for key, value in self.life_to_credit_rules.items()]
        if student_context:
            lines += ["", "STUDENT CONTEXT:", student_context]
        return "\n".join(lines).strip()


def load_tutor_config(path: Path, override: Path | None = None) -> TutorConfig:
    """Load and validate the tutor configuration.

    Args:
        path: Base YAML file.
        override: Optional YAML deep merged over the base file.

    Returns:
        Validated, frozen TutorConfig.

    Raises:
        TutorConfigError: If the file cannot be read or fails validation.
    """
    try:
        raw = load_yaml_with_override(path, override)
    except YAMLLoadError as e:
        raise TutorConfigError("Failed to read tutor configuration", e) from e

    try:
        return TutorConfig.model_validate(raw)
    except ValidationError as e:
        raise TutorConfigError(f"Invalid tutor configuration in {path}", e) from e
