"""Decoding and encoding of the JSON text columns of vocabularies.

Rows written by older clients hold plain strings, JSON that was encoded twice,
or dicts instead of lists. Every read goes through `decode_definitions` and
`decode_pronunciation`, so callers only ever see the normalised shapes:

    definitions:   [{"pos": "n.", "meaning": "..."}, ...]
    pronunciation: {"American": "...", "British": "..."}
"""
import json
import logging
import re
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

DEFAULT_POS = "n."
# Legacy plain-text definitions such as "adj. quick to learn"
_POS_PREFIX = re.compile(r"^(\w+\.)\s*(.+)$", re.DOTALL)
# Guards against pathological nesting of encoded strings
_MAX_DECODE_DEPTH = 5


def _unwrap_json(raw: Any) -> Any:
    """JSON-decode a string until it is no longer a JSON encoded string."""
    value = raw
    for _ in range(_MAX_DECODE_DEPTH):
        if not isinstance(value, str):
            return value
        try:
            value = json.loads(value)
        except ValueError:
            return value
    return value


def _definition_from_text(text: str) -> Dict[str, str]:
    match = _POS_PREFIX.match(text.strip())
    if match:
        return {"pos": match.group(1), "meaning": match.group(2).strip()}
    return {"pos": DEFAULT_POS, "meaning": text.strip()}


def _normalize_definition(item: Any) -> Dict[str, str]:
    if isinstance(item, dict):
        pos = item.get("pos") or item.get("partOfSpeech") or item.get("part_of_speech") or ""
        meaning = item.get("meaning") or item.get("definition") or ""
        return {"pos": str(pos), "meaning": str(meaning)}
    return _definition_from_text(str(item))


def decode_definitions(raw: Any) -> List[Dict[str, str]]:
    """Return the definitions of a stored row as a list of {pos, meaning}."""
    if raw is None or raw == "":
        return []

    value = _unwrap_json(raw)
    if isinstance(value, list):
        return [_normalize_definition(item) for item in value]
    if isinstance(value, dict):
        logger.warning("Definitions stored as a single object, wrapping in a list")
        return [_normalize_definition(value)]
    if isinstance(value, str):
        logger.warning("Definitions stored as plain text: %r", value[:50])
        return [_definition_from_text(value)]
    logger.warning("Definitions stored as a bare %s value", type(value).__name__)
    return [{"pos": DEFAULT_POS, "meaning": str(value)}]


def decode_pronunciation(raw: Any) -> Dict[str, str]:
    """Return the pronunciation of a stored row as an accent -> phonetic mapping."""
    if raw is None or raw == "":
        return {}

    value = _unwrap_json(raw)
    if isinstance(value, dict):
        return {str(key): "" if phonetic is None else str(phonetic) for key, phonetic in value.items()}
    if isinstance(value, str):
        logger.warning("Pronunciation stored as plain text: %r", value[:50])
        return {"American": value, "British": ""}
    logger.warning("Pronunciation stored as a bare %s value, ignoring it", type(value).__name__)
    return {}


def encode_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def first_definition(definitions: List[Dict[str, str]]) -> Dict[str, str]:
    """The definition used for quizzes; empty strings when there is none."""
    if not definitions:
        return {"pos": "", "meaning": ""}
    return definitions[0]
