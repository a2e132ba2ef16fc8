from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from ..models.field_meta import ColumnMetadata
from ..models.rule import RuleSpecification

"""Rule config extractor.

Finds the JSON rule fragment embedded in a column description, e.g.::

    {"validator": "string|exists:true"}

Absence of a rule is silent (None). A fragment that mentions ``validator``
but is not valid JSON also yields None, but is reported through ``on_error``
so the caller can show it; it never stops other columns from validating.
"""

__all__ = [
    "RuleConfigError",
    "extract_rule_config",
    "find_rule_text",
]

logger = logging.getLogger(__name__)

MARKER = "validator"


class RuleConfigError(Exception):
    """Raised (or reported) when an embedded rule fragment is not valid JSON."""

    def __init__(self, column_name: str, text: str, reason: str) -> None:
        super().__init__(f"invalid rule JSON for column '{column_name}': {reason}")
        self.column_name = column_name
        self.text = text
        self.reason = reason


def _segment_text(item: Any, require_text_type: bool) -> str | None:
    if not isinstance(item, dict):
        return None
    text = item.get("text")
    if not isinstance(text, str):
        return None
    if require_text_type and item.get("type") != "text":
        return None
    return text


def find_rule_text(description: Any) -> str | None:
    """Return the description segment text that carries the rule, if any."""
    if not description:
        return None
    if isinstance(description, str):
        return description if MARKER in description else None
    if isinstance(description, list):
        for item in description:
            text = _segment_text(item, require_text_type=False)
            if text is not None and MARKER in text:
                return text
        return None
    if isinstance(description, dict):
        content = description.get("content")
        if isinstance(content, list):
            for item in content:
                text = _segment_text(item, require_text_type=True)
                if text is not None and MARKER in text:
                    return text
            return None
        text = description.get("text")
        if isinstance(text, str) and MARKER in text:
            return text
    return None


def extract_rule_config(
    column: ColumnMetadata,
    on_error: Callable[[RuleConfigError], None] | None = None,
) -> RuleSpecification | None:
    """Extract the rule specification of a column.

    Parameters
    ----------
    column: column metadata with the raw description
    on_error: receives a RuleConfigError when the fragment is malformed JSON;
        when omitted the problem is only logged

    Returns
    -------
    RuleSpecification, or None when the column carries no usable rule
    """
    text = find_rule_text(column.description)
    if text is None:
        return None

    try:
        parsed = json.loads(text.strip())
    except json.JSONDecodeError as e:
        err = RuleConfigError(column.name, text, str(e))
        logger.warning(str(err))
        if on_error is not None:
            on_error(err)
        return None

    if not isinstance(parsed, dict):
        return None
    validator = parsed.get(MARKER)
    if not isinstance(validator, str) or not validator.strip():
        return None
    extra = {k: v for k, v in parsed.items() if k != MARKER}
    return RuleSpecification(validator=validator, extra=extra)
