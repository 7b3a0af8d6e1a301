"""Small helpers shared by the converters."""

import json
import logging
from typing import Any, Iterable, MutableMapping

logger = logging.getLogger("lmbridge")

# A 1-token output budget is unusable for most backends.
MIN_SAMPLING_BUDGET = 16


def compact_json(value: Any) -> str:
    """Serialize ``value`` without whitespace, keeping non-ASCII text as is."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def widen_sampling_budget(
    options: MutableMapping[str, Any],
    keys: Iterable[str] = ("max_tokens", "max_completion_tokens"),
) -> None:
    """Raise an explicit output budget of 1 token to ``MIN_SAMPLING_BUDGET`` in place."""
    for key in keys:
        if options.get(key) == 1:
            logger.debug("Widening %s from 1 to %d", key, MIN_SAMPLING_BUDGET)
            options[key] = MIN_SAMPLING_BUDGET
