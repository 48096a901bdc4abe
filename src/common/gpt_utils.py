"""Utilities for handling language model responses."""

import json
import logging
import re
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

TRANSLATIONS_FIELD = "translations"

_CODE_FENCE_PATTERN = re.compile(r"```(?:json)?[ \t]*\n?", re.IGNORECASE)


class GPTJSONParsingError(Exception):
    """
    Exception for model JSON parsing failures.

    This is a transient error that should be retried, as the model may return
    properly formatted JSON on subsequent attempts.
    """

    pass


def clean_markdown_code_fences(response: str) -> str:
    """
    Remove markdown code fences from a model response.

    Models often wrap JSON responses in markdown code blocks like:
    ```json
    {...}
    ```

    Fences are removed wherever they appear, together with a leading
    language tag.

    Args:
        response: Raw response text from the model

    Returns:
        Cleaned response without markdown fences

    Examples:
        >>> clean_markdown_code_fences('```json\\n{"key": "value"}\\n```')
        '{"key": "value"}'
        >>> clean_markdown_code_fences('{"key": "value"}')
        '{"key": "value"}'
    """
    cleaned_response = _CODE_FENCE_PATTERN.sub("", response).strip()

    if cleaned_response.startswith("json"):
        cleaned_response = cleaned_response[4:].strip()

    return cleaned_response


def repair_truncated_json(text: str) -> Optional[str]:
    """
    Close a translations payload that was cut off by the output token limit.

    The text is cut right after the last string element that was fully
    received, and the array and object are closed. Escaped quotes inside
    strings are respected.

    Args:
        text: Cleaned, possibly truncated payload

    Returns:
        Repaired JSON text, the original text if it already looks closed,
        or None if there is no array to recover

    Examples:
        >>> repair_truncated_json('{"translations": ["a", "b", "c')
        '{"translations": ["a", "b"]}'
        >>> repair_truncated_json('{"translations": []}')
        '{"translations": []}'
    """
    stripped = text.rstrip()
    if stripped.endswith("}"):
        return stripped

    array_start = stripped.find("[")
    if array_start == -1:
        return None

    closing = "]" if stripped.lstrip().startswith("[") else "]}"
    last_complete = None
    in_string = False
    escaped = False
    for position in range(array_start + 1, len(stripped)):
        char = stripped[position]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
                last_complete = position
        elif char == '"':
            in_string = True
        elif char == "]":
            # Array closed, only the object brace went missing
            return stripped[: position + 1] + closing[1:]

    if last_complete is None:
        return stripped[: array_start + 1] + closing

    return stripped[: last_complete + 1] + closing


def parse_json_robustly(text: str) -> Any:
    """
    Parse JSON with error recovery for common model formatting issues.

    Strategies, in order:
    - standard parsing
    - extracting the outermost object when prose surrounds it
    - repairing a truncated payload

    Args:
        text: JSON text to parse (already stripped of code fences)

    Returns:
        Parsed JSON data

    Raises:
        GPTJSONParsingError: If all parsing strategies fail
    """
    # Strategy 1: Try standard JSON parsing first
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug(
            f"Standard JSON parsing failed: {e}. Trying recovery strategies..."
        )

    # Strategy 2: Extract the object if the model added commentary around it
    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if 0 <= first_brace < last_brace:
        try:
            return json.loads(text[first_brace : last_brace + 1])
        except json.JSONDecodeError:
            logger.debug("Object extraction strategy failed")

    # Strategy 3: Fix truncated JSON at the end
    candidate = text[first_brace:] if first_brace > 0 else text
    repaired = repair_truncated_json(candidate)
    if repaired is not None and repaired != candidate:
        try:
            parsed = json.loads(repaired)
            logger.warning("⚠️  Recovered truncated JSON response")
            return parsed
        except json.JSONDecodeError:
            logger.debug("Truncation fix strategy failed")

    raise GPTJSONParsingError(
        "Failed to parse JSON after trying all recovery strategies"
    )


def parse_translation_payload(response: str) -> List[str]:
    """
    Extract the translations array from a raw model response.

    Args:
        response: Raw response text from the model

    Returns:
        List of translated strings (may be shorter or longer than requested)

    Raises:
        GPTJSONParsingError: If the payload cannot be parsed or has the wrong shape
    """
    data = parse_json_robustly(clean_markdown_code_fences(response))

    if isinstance(data, list):
        translations = data
    elif isinstance(data, dict) and isinstance(data.get(TRANSLATIONS_FIELD), list):
        translations = data[TRANSLATIONS_FIELD]
    else:
        raise GPTJSONParsingError(
            f"Expected object with a '{TRANSLATIONS_FIELD}' array, "
            f"got {type(data).__name__}"
        )

    return ["" if item is None else str(item) for item in translations]
