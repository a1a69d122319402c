"""Shared LLM utility functions for fence-stripping and JSON parsing.

This module provides:
- _strip_json_fences: Remove markdown code fences from LLM output
- _parse_json_response: Parse JSON from LLM response after stripping fences
"""

import json
from typing import Any


def _strip_json_fences(content: str) -> str:
    """Remove markdown code fences wrapping JSON output."""
    content = content.strip()
    if content.startswith("```"):
        first_newline = content.find("\n")
        if first_newline != -1:
            content = content[first_newline + 1 :]
        if content.endswith("```"):
            content = content[:-3].rstrip()
    return content


def _parse_json_response(content: str) -> Any:
    """Parse JSON from LLM response, stripping fences first.

    Raises:
        json.JSONDecodeError: If the remaining text is not a single JSON value
    """
    return json.loads(_strip_json_fences(content))
