"""Utilities for turning free-form model responses into structured data."""

import json
import logging
import re
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from json_repair import repair_json

from common.errors import ResponseParsingError
from common.utils import StringUtils

logger = logging.getLogger(__name__)

# Reasoning blocks emitted by "thinking" models before the actual answer
THINK_TAG_REGEX = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
# Fenced block, optionally tagged as json
FENCED_JSON_REGEX = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
# Double- or single-quoted string literal, escapes included
STRING_LITERAL_REGEX = re.compile(r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\"", re.DOTALL)
TRAILING_COMMA_REGEX = re.compile(r",\s*([}\]])")


class ParseTier(str, Enum):
    """Which parsing strategy accepted a payload."""

    STRICT = "strict"
    LENIENT = "lenient"
    REPAIRED = "repaired"


def strip_reasoning(response: str) -> str:
    """
    Remove reasoning markup from a model response.

    Complete ``<think>...</think>`` blocks are removed. If a closing tag is
    left without its opening tag (the opening was cut off by the provider),
    everything up to and including it is dropped.

    Examples:
        >>> strip_reasoning("<think>hmm</think>{\\"1\\": \\"a\\"}")
        '{"1": "a"}'
    """
    cleaned = THINK_TAG_REGEX.sub("", response)
    closing = cleaned.lower().rfind("</think>")
    if closing != -1:
        cleaned = cleaned[closing + len("</think>") :]
    return cleaned.strip()


def clean_markdown_code_fences(response: str) -> str:
    """
    Remove markdown code fences from a model response.

    Examples:
        >>> clean_markdown_code_fences('```json\\n{"key": "value"}\\n```')
        '{"key": "value"}'
        >>> clean_markdown_code_fences('{"key": "value"}')
        '{"key": "value"}'
    """
    match = FENCED_JSON_REGEX.search(response)
    if match:
        return match.group(1).strip()
    return response.strip()


def extract_json_payload(response: str) -> str:
    """
    Isolate the JSON object in a model response.

    Looks for a fenced block first, then for a bare object from the first
    ``{`` to the last ``}``. An object that is opened but never closed
    (truncated output) is returned from ``{`` to the end so the repair tier
    can still close it.

    Args:
        response: Response text with reasoning already stripped

    Returns:
        Candidate JSON text

    Raises:
        ResponseParsingError: If the response contains no JSON object at all
    """
    candidate = clean_markdown_code_fences(response)

    start = candidate.find("{")
    if start == -1:
        raise ResponseParsingError(
            "Invalid response format: No JSON content found",
            response_sample=StringUtils.truncate_for_logging(response),
        )

    end = candidate.rfind("}")
    if end > start:
        return candidate[start : end + 1]
    return candidate[start:]


def _split_string_literals(text: str) -> List[Tuple[bool, str]]:
    """Split text into ``(is_string_literal, chunk)`` pieces, in order."""
    pieces = []
    position = 0
    for match in STRING_LITERAL_REGEX.finditer(text):
        if match.start() > position:
            pieces.append((False, text[position : match.start()]))
        pieces.append((True, match.group(0)))
        position = match.end()
    if position < len(text):
        pieces.append((False, text[position:]))
    return pieces


def _map_outside_strings(text: str, rewrite: Callable[[str], str]) -> str:
    """Apply ``rewrite`` to the text between string literals only."""
    return "".join(
        chunk if is_string else rewrite(chunk)
        for is_string, chunk in _split_string_literals(text)
    )


def _double_quoted(literal: str) -> str:
    """Turn a single-quoted string literal into a JSON string literal."""
    if literal.startswith('"'):
        return literal
    inner = literal[1:-1].replace("\\'", "'")
    return '"' + re.sub(r'(?<!\\)"', r'\\"', inner) + '"'


def _remove_trailing_commas(text: str) -> str:
    return _map_outside_strings(text, lambda chunk: TRAILING_COMMA_REGEX.sub(r"\1", chunk))


def _insert_missing_commas(text: str) -> str:
    """Add the comma between a value and the next key on the following line."""
    pieces = _split_string_literals(text)
    parts = []
    for index, (is_string, chunk) in enumerate(pieces):
        # A non-literal piece that is not at either end sits between two literals
        if (
            not is_string
            and 0 < index < len(pieces) - 1
            and not chunk.strip()
            and "\n" in chunk
        ):
            chunk = "," + chunk
        parts.append(chunk)
    return "".join(parts)


def _relax_syntax(chunk: str) -> str:
    # Line and block comments
    chunk = re.sub(r"(?m)^\s*//.*$", "", chunk)
    chunk = re.sub(r"/\*.*?\*/", "", chunk, flags=re.DOTALL)
    chunk = TRAILING_COMMA_REGEX.sub(r"\1", chunk)
    # Unquoted keys
    chunk = re.sub(r"([{,]\s*)([A-Za-z0-9_\-]+)\s*:(?!//)", r'\1"\2":', chunk)
    # Python literals
    chunk = re.sub(r"\bTrue\b", "true", chunk)
    chunk = re.sub(r"\bFalse\b", "false", chunk)
    chunk = re.sub(r"\bNone\b", "null", chunk)
    return chunk


def _relax_json(text: str) -> str:
    """
    Rewrite common relaxed-JSON syntax into strict JSON.

    Only text between string literals is rewritten; string contents are
    left exactly as the model produced them, apart from requoting
    single-quoted strings.
    """
    requoted = "".join(
        _double_quoted(chunk) if is_string else _relax_syntax(chunk)
        for is_string, chunk in _split_string_literals(text)
    )
    return _insert_missing_commas(requoted)


def parse_json_strict(text: str) -> Any:
    """Tier 1: standard JSON parsing."""
    return json.loads(text)


def parse_json_lenient(text: str) -> Any:
    """
    Tier 2: relaxed parsing tolerant of minor syntax deviations.

    Tries each fix on its own first, then all of them combined, so a fix that
    damages otherwise valid content cannot mask one that works.

    Raises:
        json.JSONDecodeError: If no strategy produces valid JSON
    """
    strategies = [_remove_trailing_commas, _insert_missing_commas, _relax_json]

    last_error: Optional[json.JSONDecodeError] = None
    for strategy in strategies:
        try:
            return json.loads(strategy(text))
        except json.JSONDecodeError as e:
            last_error = e
            logger.debug(f"Lenient JSON strategy failed: {e}")

    raise last_error


def parse_json_repaired(text: str) -> Any:
    """
    Tier 3: repair malformed JSON (trailing commas, unquoted keys,
    truncated output) with json-repair, then parse strictly.
    """
    repaired = repair_json(text)
    return json.loads(repaired)


def parse_structured_response(text: str) -> Tuple[Dict[str, Any], ParseTier]:
    """
    Parse a JSON object using the three-tier fallback.

    The first tier that yields a JSON object wins.

    Args:
        text: Candidate JSON text (see extract_json_payload)

    Returns:
        Tuple of (parsed object, tier that accepted it)

    Raises:
        ResponseParsingError: If every tier fails
    """
    tiers = [
        (ParseTier.STRICT, parse_json_strict),
        (ParseTier.LENIENT, parse_json_lenient),
        (ParseTier.REPAIRED, parse_json_repaired),
    ]

    errors = []
    for tier, parser in tiers:
        try:
            parsed = parser(text)
        except (json.JSONDecodeError, ValueError, TypeError) as e:
            logger.debug(f"{tier.value} JSON parsing failed: {e}")
            errors.append(f"{tier.value}: {e}")
            continue

        if isinstance(parsed, dict):
            if tier is not ParseTier.STRICT:
                logger.info(f"JSON payload accepted by {tier.value} parser")
            return parsed, tier

        errors.append(f"{tier.value}: expected JSON object, got {type(parsed).__name__}")

    raise ResponseParsingError(
        f"Failed to parse JSON after trying all recovery strategies ({'; '.join(errors)})",
        response_sample=StringUtils.truncate_for_logging(text),
    )


def parse_translation_response(response: str) -> Dict[str, Any]:
    """
    Turn a raw batch translation response into an id -> text mapping.

    Args:
        response: Raw translator output

    Returns:
        Parsed JSON object

    Raises:
        ResponseParsingError: If no JSON object can be recovered
    """
    payload = extract_json_payload(strip_reasoning(response))
    parsed, _tier = parse_structured_response(payload)
    return parsed
