# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""LLM client module using LiteLLM.

Components:
- LLMClient: Completions (text and multimodal) and audio transcription
- json_output: Helpers for parsing structured JSON replies

Example:
    >>> from src.core.intelligence.llm import LLMClient
    >>> client = LLMClient(model="gpt-4o")
    >>> response = await client.complete("What is 2+2?")
"""

from src.core.intelligence.llm.client import (
    LLMClient,
    LLMError,
    LLMResponse,
    Message,
    Transcription,
)
from src.core.intelligence.llm.json_output import extract_json_array, extract_json_object

__all__ = [
    "LLMClient",
    "LLMError",
    "LLMResponse",
    "Message",
    "Transcription",
    "extract_json_array",
    "extract_json_object",
]
