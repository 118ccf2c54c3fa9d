"""
Follow-up suggestion extraction.

Models are asked to answer with a bare list like ["Q1?", "Q2?", "Q3?"] but
routinely wrap it in prose or code fences. Extraction is best effort: any
anomaly yields an empty list, never an exception.
"""

import json
import logging
from typing import List, Optional

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 3

_decoder = json.JSONDecoder()


def _first_json_list(raw_text: str) -> Optional[list]:
    """Decode the first JSON array starting at any '[' in the text."""
    start = raw_text.find("[")
    while start != -1:
        try:
            parsed, _ = _decoder.raw_decode(raw_text, start)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            return parsed
        start = raw_text.find("[", start + 1)
    return None


def extract_suggestions(raw_text: Optional[str], limit: int = MAX_SUGGESTIONS) -> List[str]:
    """
    Parse follow-up questions out of a model response.

    Args:
        raw_text: Model output expected to contain a list of quoted strings
        limit: Maximum number of suggestions to return

    Returns:
        Up to `limit` unique, non-blank strings in first-seen order
    """
    if not raw_text:
        return []

    parsed = _first_json_list(raw_text)
    if parsed is None:
        logger.warning(f"Could not parse suggestions from model output: {raw_text[:200]!r}")
        return []

    suggestions: List[str] = []
    for item in parsed:
        if not isinstance(item, str) or not item.strip():
            continue
        # Exact equality: "A?" and " A?" are distinct suggestions
        if item not in suggestions:
            suggestions.append(item)
        if len(suggestions) >= limit:
            break

    return suggestions
