"""JSON codec for the text columns that hold structured enrichment.

``relevance_scores_json`` holds ``{dimension: score}`` and the
``matched_*`` columns hold JSON string arrays.  Decoding never raises:
malformed or wrongly-shaped text decodes to an empty value and is logged.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)


def _loads(text: str | None, column: str, url: str | None) -> Any:
    if text is None or text == "":
        return None
    try:
        return json.loads(text)
    except (TypeError, ValueError) as exc:
        logger.warning("Malformed JSON in %s for %s: %s", column, url or "?", exc)
        return None


def decode_scores(text: str | None, *, url: str | None = None) -> dict[str, float]:
    """Parse a relevance-score mapping; non-numeric entries are dropped."""
    data = _loads(text, "relevance_scores_json", url)
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("relevance_scores_json for %s is %s, not an object", url or "?", type(data).__name__)
        return {}
    scores: dict[str, float] = {}
    for key, value in data.items():
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)) and math.isfinite(value):
            scores[str(key)] = value
    return scores


def decode_string_set(text: str | None, *, column: str = "matched", url: str | None = None) -> list[str]:
    """Parse a JSON string array, de-duplicated in first-seen order."""
    data = _loads(text, column, url)
    if data is None:
        return []
    if not isinstance(data, list):
        logger.warning("%s for %s is %s, not an array", column, url or "?", type(data).__name__)
        return []
    return list(dict.fromkeys(str(x) for x in data if x is not None and str(x)))


def encode_scores(scores: Mapping[str, float] | None) -> str | None:
    if not scores:
        return None
    return json.dumps(dict(scores), allow_nan=False)


def encode_string_set(values: Iterable[str] | None) -> str | None:
    if values is None:
        return None
    return json.dumps(list(dict.fromkeys(values)))
