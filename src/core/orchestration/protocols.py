# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Collaborator protocols consumed by callers of the pipeline.

PII masking and content moderation run before a message reaches the
pipeline. Only the shape is defined here; deployments plug in their own
implementation and the API layer applies it when one is configured.
"""

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass
class MaskResult:
    """Text with PII replaced by placeholders."""

    masked_text: str
    found: list[str] = field(default_factory=list)


@dataclass
class ModerationResult:
    allowed: bool
    reason: str | None = None
    categories: list[str] = field(default_factory=list)


@runtime_checkable
class ContentGuard(Protocol):
    """PII masking plus moderation."""

    def mask(self, text: str) -> MaskResult: ...

    async def moderate(self, text: str) -> ModerationResult: ...
