"""
Pull a JSON value out of free-form model output.

Models wrap JSON in markdown fences, prefix it with prose, or append a
closing remark. Strategies are tried in order and the first one that
decodes wins:

    1. fenced block  (```json ... ``` or ``` ... ```)
    2. the whole reply as-is
    3. the outermost {...}
    4. the outermost [...]
"""

import json
import re
from typing import Any, Callable, Optional, Tuple

from directory.enrichment.errors import EnrichmentParseError

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)


class JSONExtractionError(EnrichmentParseError):
    pass


def _fenced(text: str) -> Optional[str]:
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else None


def _raw(text: str) -> Optional[str]:
    return text.strip() or None


def _between(text: str, opening: str, closing: str) -> Optional[str]:
    start = text.find(opening)
    end = text.rfind(closing)
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def _outer_object(text: str) -> Optional[str]:
    return _between(text, '{', '}')


def _outer_array(text: str) -> Optional[str]:
    return _between(text, '[', ']')


STRATEGIES: Tuple[Callable[[str], Optional[str]], ...] = (
    _fenced,
    _raw,
    _outer_object,
    _outer_array,
)


def extract_structured_json(text: Optional[str]) -> Any:
    """Decode the first JSON value found by the strategies above.

    Raises JSONExtractionError (reason ``invalid_json``) when none decodes.
    """
    if not text or not text.strip():
        raise JSONExtractionError('empty_response', 'Model returned an empty reply')

    for strategy in STRATEGIES:
        candidate = strategy(text)
        if candidate is None:
            continue
        try:
            return json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue

    raise JSONExtractionError(
        'invalid_json',
        f"No JSON value found in reply: {text[:200]!r}",
    )
