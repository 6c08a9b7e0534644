# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Helpers for reading structured JSON out of LLM replies.

Models often wrap JSON in markdown fences or add a sentence before it.
These helpers strip the fences, locate the first object or array and
parse it. Callers decide what a parse failure means; most pipeline nodes
treat it as "no structured answer" rather than an error.
"""

import json
import re
from typing import Any

_CODE_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


def _strip_fences(text: str) -> str:
    text = text.strip()
    match = _CODE_BLOCK.search(text)
    if match:
        return match.group(1).strip()
    return text


def extract_json_object(response: str) -> dict[str, Any]:
    """Extract a JSON object from an LLM response.

    Args:
        response: Raw LLM response text.

    Returns:
        Parsed JSON object.

    Raises:
        ValueError: If no JSON object can be parsed.
    """
    text = _strip_fences(response)
    match = _JSON_OBJECT.search(text)
    if match:
        text = match.group(0)

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Failed to parse JSON object from response: {e}") from e

    if not isinstance(parsed, dict):
        raise ValueError(f"Expected JSON object, got {type(parsed).__name__}")
    return parsed


def extract_json_array(response: str) -> list[Any]:
    """Extract a JSON array from an LLM response.

    Raises:
        ValueError: If no JSON array can be parsed.
    """
    text = _strip_fences(response)
    match = _JSON_ARRAY.search(text)
    if match:
        text = match.group(0)

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Failed to parse JSON array from response: {e}") from e

    if not isinstance(parsed, list):
        raise ValueError(f"Expected JSON array, got {type(parsed).__name__}")
    return parsed
