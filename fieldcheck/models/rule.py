from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Rule specification and check outcome models.

A RuleSpecification is the JSON fragment embedded in a column description,
e.g. ``{"validator": "string|exists:true"}``. The ``validator`` string is
handed to the compiler; any other keys are kept in ``extra`` untouched.
"""

__all__ = [
    "RuleSpecification",
    "CheckError",
]


@dataclass(frozen=True)
class RuleSpecification:
    validator: str
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CheckError:
    """One failed predicate for one candidate value.

    Attributes:
        type: Problem-type code (``stringExists``, ``dateExpire``, ``required``, ...)
        message: Rendered, user-facing message
        field: Column name the check was compiled for
        expected: Rule parameter that was violated, when there is one
        actual: The candidate value as seen by the check
    """
    type: str
    message: str
    field: str
    expected: Any = None
    actual: Any = None
