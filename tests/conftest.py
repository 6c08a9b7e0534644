# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests (in-memory stores, mocked LLM client)
- Integration tests (API routes over in-memory stores)
"""

import os
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

# Keep actor imports from reaching for a real Redis broker
os.environ.setdefault("DRAMATIQ_TEST_MODE", "true")

from src.core.config.tutor import ModelsConfig, RoutingRules, TutorConfig  # noqa: E402
from src.core.intelligence.llm import LLMClient, LLMResponse, Transcription  # noqa: E402
from src.core.memory import MasteryEngine  # noqa: E402
from src.core.memory.stores import InMemoryJobStore, InMemoryLearningStore  # noqa: E402


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires services)"
    )


# =============================================================================
# Helpers
# =============================================================================


def llm_response(content: str, model: str = "test-model") -> LLMResponse:
    """Build an LLMResponse as returned by the client."""
    return LLMResponse(content=content, model=model)


class FakeClock:
    """Controllable clock for the mastery engine."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: float) -> None:
        self.now = self.now + timedelta(days=days)


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def tutor_config() -> TutorConfig:
    """Tutor configuration with a small rule set."""
    return TutorConfig(
        life_to_credit_rules={
            "baking": "Chemistry: Fermentation, Math: Ratios",
            "woodworking": "Physics: Mechanics, Math: Geometry",
            "volunteering": "Social Studies: Civics",
        },
        models=ModelsConfig(
            default="gpt-4o-mini",
            investigation="gpt-4o",
            deep_analysis="claude-3-5-sonnet-20241022",
            routing_rules=RoutingRules(
                deep_analysis_keywords=["analyze", "compare"],
                investigation_keywords=["who funded"],
            ),
        ),
        grade_expectations={
            "3-5": ["English", "Math"],
            "6-8": ["English", "Math", "Chemistry"],
        },
    )


# =============================================================================
# LLM Fixtures
# =============================================================================


@pytest.fixture
def mock_llm() -> MagicMock:
    """LLM client whose calls return a plain reply by default."""
    llm = MagicMock(spec=LLMClient)
    llm.complete = AsyncMock(return_value=llm_response("Sounds wonderful!"))
    llm.complete_with_messages = AsyncMock(return_value=llm_response("Let's explore that."))
    llm.transcribe = AsyncMock(
        return_value=Transcription(text="i baked bread today", language="en", duration=4.2)
    )
    return llm


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def learning_store() -> InMemoryLearningStore:
    """Empty in-memory learning store."""
    return InMemoryLearningStore()


@pytest.fixture
def job_store() -> InMemoryJobStore:
    """Empty in-memory job store."""
    return InMemoryJobStore()


@pytest.fixture
def mastery_engine(learning_store: InMemoryLearningStore, clock: FakeClock) -> MasteryEngine:
    """Mastery engine over the in-memory store with a controllable clock."""
    return MasteryEngine(learning_store, clock=clock)
