from __future__ import annotations

import json
import re
from collections import Counter
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Any, Literal, Union

import pandas as pd
from jsonschema import Draft7Validator, validators
from jsonschema.exceptions import ValidationError

from ..models.rule import CheckError
from .duration import DurationError, parse_duration

"""Validator compiler.

A rule string (``"string|exists:true"``, ``"date|expire:1d"`` or a JSON
object such as ``{"type": "number", "min": 0}``) is parsed into a typed rule
variant, translated into a JSON Schema document and compiled with a
jsonschema validator class extended for this column:

- a ``date`` type accepting timezone-aware datetimes
- ``exists``: closes over the column's non-empty value counts (uniqueness)
- ``expire``: closes over the clock; fails once value + duration is in the past
- ``integer`` / ``exactLength``: small numeric and length helpers

The returned CompiledCheck is reusable for every row of the column within a
pass. Because ``exists`` captures the column values, one check is compiled per
column per pass.
"""

__all__ = [
    "DEFAULT_MESSAGES",
    "RuleCompileError",
    "StringRule",
    "NumberRule",
    "DateRule",
    "BooleanRule",
    "EmailRule",
    "EnumRule",
    "Rule",
    "CompiledCheck",
    "parse_rule",
    "compile_rule",
    "rule_default",
]

DEFAULT_MESSAGES: dict[str, str] = {
    "required": "The '{field}' field is required.",
    "string": "The '{field}' field must be a string.",
    "stringEmpty": "The '{field}' field must not be empty.",
    "stringMin": "The '{field}' field length must be greater than or equal to {expected} characters long.",
    "stringMax": "The '{field}' field length must be less than or equal to {expected} characters long.",
    "stringLength": "The '{field}' field length must be {expected} characters long.",
    "stringPattern": "The '{field}' field fails to match the required pattern.",
    "stringEnum": "The '{field}' field does not match any of the allowed values.",
    "number": "The '{field}' field must be a number.",
    "numberMin": "The '{field}' field must be greater than or equal to {expected}.",
    "numberMax": "The '{field}' field must be less than or equal to {expected}.",
    "numberInteger": "The '{field}' field must be an integer.",
    "numberPositive": "The '{field}' field must be a positive number.",
    "numberNegative": "The '{field}' field must be a negative number.",
    "date": "The '{field}' field must be a Date.",
    "boolean": "The '{field}' field must be a boolean.",
    "email": "The '{field}' field must be a valid e-mail.",
    "enumValue": "The '{field}' field value '{actual}' does not match any of the allowed values.",
    "stringExists": "Duplicate value in column",
    "dateExpire": "Expired, needs follow-up",
}

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"

_NUMERIC = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_INT_TEXT = re.compile(r"^[+-]?\d+$")

_TRUE_TEXT = {"true"}
_FALSE_TEXT = {"false"}
_TRUE_CONVERT = {"true", "1", "yes", "on"}
_FALSE_CONVERT = {"false", "0", "no", "off"}


class RuleCompileError(Exception):
    """Raised when a rule string cannot be parsed or compiled."""


# ---------------------------------------------------------------------------
# Typed rule variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _Common:
    optional: bool = False
    required: bool = False
    default: Any = None


@dataclass(frozen=True)
class StringRule(_Common):
    min: int | None = None
    max: int | None = None
    length: int | None = None
    pattern: str | None = None
    empty: bool = True
    exists: bool = False
    enum: tuple[str, ...] | None = None


@dataclass(frozen=True)
class NumberRule(_Common):
    min: float | None = None
    max: float | None = None
    integer: bool = False
    positive: bool = False
    negative: bool = False
    convert: bool = False


@dataclass(frozen=True)
class DateRule(_Common):
    convert: bool = False
    expire: str | None = None
    expire_ms: int | None = None


@dataclass(frozen=True)
class BooleanRule(_Common):
    convert: bool = False


@dataclass(frozen=True)
class EmailRule(_Common):
    pass


@dataclass(frozen=True)
class EnumRule(_Common):
    values: tuple[str, ...] = ()


Rule = Union[StringRule, NumberRule, DateRule, BooleanRule, EmailRule, EnumRule]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _scalar(text: str) -> Any:
    low = text.strip().lower()
    if low == "true":
        return True
    if low == "false":
        return False
    if _INT_TEXT.match(text.strip()):
        return int(text)
    if _NUMERIC.match(text.strip()):
        return float(text)
    return text


def _parse_props(rule_string: str) -> dict[str, Any]:
    s = rule_string.strip()
    if not s:
        raise RuleCompileError("empty rule")

    if s.startswith("{"):
        try:
            props = json.loads(s)
        except json.JSONDecodeError as e:
            raise RuleCompileError(f"invalid rule object: {e}") from e
        if not isinstance(props, dict) or not isinstance(props.get("type"), str):
            raise RuleCompileError("rule object must declare a string 'type'")
        return dict(props)

    parts = s.split("|")
    props: dict[str, Any] = {"type": parts[0].strip()}
    for part in parts[1:]:
        part = part.strip()
        if not part:
            continue
        key, sep, raw = part.partition(":")
        props[key.strip()] = _scalar(raw) if sep else True
    return props


def _number(props: Mapping[str, Any], key: str) -> float | None:
    value = props.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RuleCompileError(f"'{key}' must be a number, got {value!r}")
    return value


def _flag(props: Mapping[str, Any], key: str, default: bool = False) -> bool:
    value = props.get(key, default)
    if not isinstance(value, bool):
        raise RuleCompileError(f"'{key}' must be true or false, got {value!r}")
    return value


def _values(raw: Any, key: str) -> tuple[str, ...]:
    if isinstance(raw, str):
        items = [v.strip() for v in raw.split(",")]
    elif isinstance(raw, list):
        items = [str(v) for v in raw]
    else:
        raise RuleCompileError(f"'{key}' must be a list of values")
    if not items:
        raise RuleCompileError(f"'{key}' must not be empty")
    return tuple(items)


def _common(props: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "optional": _flag(props, "optional"),
        "required": _flag(props, "required"),
        "default": props.get("default"),
    }


def _string_rule(props: Mapping[str, Any]) -> StringRule:
    pattern = props.get("pattern")
    if pattern is not None:
        if not isinstance(pattern, str):
            raise RuleCompileError("'pattern' must be a string")
        try:
            re.compile(pattern)
        except re.error as e:
            raise RuleCompileError(f"invalid pattern {pattern!r}: {e}") from e
    length = {k: _number(props, k) for k in ("min", "max", "length")}
    for k, v in length.items():
        if v is not None and (v < 0 or int(v) != v):
            raise RuleCompileError(f"'{k}' must be a non-negative integer")
    return StringRule(
        **_common(props),
        min=None if length["min"] is None else int(length["min"]),
        max=None if length["max"] is None else int(length["max"]),
        length=None if length["length"] is None else int(length["length"]),
        pattern=pattern,
        empty=_flag(props, "empty", True),
        exists=_flag(props, "exists"),
        enum=_values(props["enum"], "enum") if "enum" in props else None,
    )


def _number_rule(props: Mapping[str, Any]) -> NumberRule:
    return NumberRule(
        **_common(props),
        min=_number(props, "min"),
        max=_number(props, "max"),
        integer=_flag(props, "integer"),
        positive=_flag(props, "positive"),
        negative=_flag(props, "negative"),
        convert=_flag(props, "convert"),
    )


def _date_rule(props: Mapping[str, Any]) -> DateRule:
    expire = props.get("expire")
    expire_ms = None
    if expire is not None and expire is not False:
        try:
            expire_ms = parse_duration(expire)
        except DurationError as e:
            raise RuleCompileError(f"invalid expire duration: {e}") from e
    return DateRule(
        **_common(props),
        convert=_flag(props, "convert"),
        expire=None if expire_ms is None else str(expire),
        expire_ms=expire_ms,
    )


def _boolean_rule(props: Mapping[str, Any]) -> BooleanRule:
    return BooleanRule(**_common(props), convert=_flag(props, "convert"))


def _email_rule(props: Mapping[str, Any]) -> EmailRule:
    return EmailRule(**_common(props))


def _enum_rule(props: Mapping[str, Any]) -> EnumRule:
    if "values" not in props:
        raise RuleCompileError("enum rule requires 'values'")
    return EnumRule(**_common(props), values=_values(props["values"], "values"))


_BUILDERS: dict[str, Callable[[Mapping[str, Any]], Rule]] = {
    "string": _string_rule,
    "number": _number_rule,
    "date": _date_rule,
    "boolean": _boolean_rule,
    "email": _email_rule,
    "enum": _enum_rule,
}


def parse_rule(rule_string: str) -> Rule:
    """Parse a rule string into its typed variant.

    Raises:
        RuleCompileError: unknown type, malformed object, bad modifier values
    """
    props = _parse_props(rule_string)
    rule_type = str(props["type"]).strip()
    builder = _BUILDERS.get(rule_type)
    if builder is None:
        raise RuleCompileError(f"unknown rule type '{rule_type}'")
    return builder(props)


def rule_default(rule_string: str) -> Any:
    """Declared default of a rule, without compiling or running it."""
    return parse_rule(rule_string).default


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------

def _aware(dt: datetime) -> datetime:
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt


def _from_epoch(number: float) -> datetime | None:
    # epoch seconds below 1e11, milliseconds above
    seconds = number if abs(number) < 1e11 else number / 1000
    try:
        return datetime.fromtimestamp(seconds, UTC)
    except (OverflowError, OSError, ValueError):
        return None


def _coerce_date(value: Any, convert: bool) -> Any:
    if isinstance(value, pd.Timestamp):
        return value if pd.isna(value) else _aware(value.to_pydatetime())
    if isinstance(value, datetime):
        return _aware(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if convert and isinstance(value, (int, float)) and not isinstance(value, bool):
        return _from_epoch(value) or value
    if not isinstance(value, str):
        return value

    text = value.strip()
    if not text:
        return value
    if _NUMERIC.match(text):
        if not convert:
            return value
        return _from_epoch(float(text)) or value
    try:
        return _aware(datetime.fromisoformat(text))
    except ValueError:
        pass
    if not convert:
        return value
    ts = pd.to_datetime(text, errors="coerce", utc=True)
    if pd.isna(ts):
        return value
    return ts.to_pydatetime()


def _coerce_number(value: Any) -> Any:
    if isinstance(value, str) and _NUMERIC.match(value.strip()):
        text = value.strip()
        return int(text) if _INT_TEXT.match(text) else float(text)
    return value


def _coerce_boolean(value: Any, convert: bool) -> Any:
    if isinstance(value, str):
        low = value.strip().lower()
        if low in (_TRUE_CONVERT if convert else _TRUE_TEXT):
            return True
        if low in (_FALSE_CONVERT if convert else _FALSE_TEXT):
            return False
    return value


# ---------------------------------------------------------------------------
# Schema translation and validator class
# ---------------------------------------------------------------------------

def _to_schema(rule: Rule) -> dict[str, Any]:
    if isinstance(rule, StringRule):
        schema: dict[str, Any] = {"type": "string"}
        if rule.min is not None:
            schema["minLength"] = rule.min
        if rule.max is not None:
            schema["maxLength"] = rule.max
        if rule.length is not None:
            schema["exactLength"] = rule.length
        if rule.pattern is not None:
            schema["pattern"] = rule.pattern
        if rule.enum is not None:
            schema["enum"] = list(rule.enum)
        if rule.exists:
            schema["exists"] = True
        return schema
    if isinstance(rule, NumberRule):
        schema = {"type": "number"}
        if rule.min is not None:
            schema["minimum"] = rule.min
        if rule.max is not None:
            schema["maximum"] = rule.max
        if rule.integer:
            schema["integer"] = True
        if rule.positive:
            schema["exclusiveMinimum"] = 0
        if rule.negative:
            schema["exclusiveMaximum"] = 0
        return schema
    if isinstance(rule, DateRule):
        schema = {"type": "date"}
        if rule.expire_ms is not None:
            schema["expire"] = rule.expire_ms
        return schema
    if isinstance(rule, BooleanRule):
        return {"type": "boolean"}
    if isinstance(rule, EmailRule):
        return {"type": "string", "pattern": EMAIL_PATTERN}
    return {"enum": list(rule.values)}


def _is_date(checker: Any, instance: Any) -> bool:
    return isinstance(instance, datetime)


def _validator_class(counts: Mapping[str, int], clock: Callable[[], datetime]) -> type:
    def exists(validator: Any, value: Any, instance: Any, schema: Any):
        if not value or not isinstance(instance, str):
            return
        key = instance.strip()
        if key and counts.get(key, 0) > 1:
            yield ValidationError(f"{key!r} occurs {counts[key]} times in column")

    def expire(validator: Any, expire_ms: Any, instance: Any, schema: Any):
        if not isinstance(instance, datetime):
            return
        deadline = instance + timedelta(milliseconds=expire_ms)
        if clock() > deadline:
            yield ValidationError(f"{instance.isoformat()} expired at {deadline.isoformat()}")

    def integer(validator: Any, value: Any, instance: Any, schema: Any):
        if value and validator.is_type(instance, "number") and not float(instance).is_integer():
            yield ValidationError(f"{instance!r} is not an integer")

    def exact_length(validator: Any, length: Any, instance: Any, schema: Any):
        if validator.is_type(instance, "string") and len(instance) != length:
            yield ValidationError(f"{instance!r} is not {length} characters long")

    type_checker = Draft7Validator.TYPE_CHECKER.redefine("date", _is_date)
    return validators.extend(
        Draft7Validator,
        validators={
            "exists": exists,
            "expire": expire,
            "integer": integer,
            "exactLength": exact_length,
        },
        type_checker=type_checker,
    )


def _type_code(rule: Rule) -> str:
    if isinstance(rule, EmailRule):
        return "email"
    if isinstance(rule, StringRule):
        return "string"
    if isinstance(rule, NumberRule):
        return "number"
    if isinstance(rule, DateRule):
        return "date"
    if isinstance(rule, BooleanRule):
        return "boolean"
    return "enumValue"


_KEYWORD_CODES = {
    "minLength": "stringMin",
    "maxLength": "stringMax",
    "exactLength": "stringLength",
    "pattern": "stringPattern",
    "minimum": "numberMin",
    "maximum": "numberMax",
    "integer": "numberInteger",
    "exclusiveMinimum": "numberPositive",
    "exclusiveMaximum": "numberNegative",
    "exists": "stringExists",
    "expire": "dateExpire",
}


def _error_code(rule: Rule, keyword: str) -> str:
    if keyword == "type":
        return _type_code(rule)
    if keyword == "pattern" and isinstance(rule, EmailRule):
        return "email"
    if keyword == "enum":
        return "stringEnum" if isinstance(rule, StringRule) else "enumValue"
    return _KEYWORD_CODES.get(keyword, keyword)


class _SafeFormat(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class CompiledCheck:
    """Reusable predicate for one column.

    Calling it returns ``True`` when the candidate passes, otherwise a list of
    CheckError in the order the predicates reported them.
    """

    def __init__(
        self,
        rule: Rule,
        field: str,
        validator: Any,
        messages: Mapping[str, str],
    ) -> None:
        self.rule = rule
        self.field = field
        self._validator = validator
        self._messages = messages

    @property
    def default(self) -> Any:
        return self.rule.default

    def _error(self, code: str, expected: Any = None, actual: Any = None) -> CheckError:
        template = self._messages.get(code, code)
        message = template.format_map(
            _SafeFormat(field=self.field, expected="" if expected is None else expected, actual=actual)
        )
        return CheckError(type=code, message=message, field=self.field, expected=expected, actual=actual)

    def _coerce(self, value: Any) -> Any:
        rule = self.rule
        if isinstance(rule, NumberRule):
            return _coerce_number(value)
        if isinstance(rule, DateRule):
            return _coerce_date(value, rule.convert)
        if isinstance(rule, BooleanRule):
            return _coerce_boolean(value, rule.convert)
        if isinstance(rule, EnumRule) and not isinstance(value, str):
            return str(value)
        return value

    def __call__(self, value: Any) -> Literal[True] | list[CheckError]:
        if value is None:
            value = ""
        if isinstance(value, str) and not value.strip():
            if self.rule.optional:
                return True
            if self.rule.required:
                return [self._error("required", actual=value)]
            if isinstance(self.rule, StringRule) and not self.rule.empty:
                return [self._error("stringEmpty", actual=value)]

        instance = self._coerce(value)
        errors = [
            self._error(_error_code(self.rule, err.validator), err.validator_value, value)
            for err in self._validator.iter_errors(instance)
        ]
        return errors or True


def compile_rule(
    rule_string: str,
    column_values: Iterable[Any] = (),
    *,
    field: str = "value",
    messages: Mapping[str, str] | None = None,
    clock: Callable[[], datetime] | None = None,
) -> CompiledCheck:
    """Compile a rule string into a CompiledCheck for one column.

    Parameters
    ----------
    rule_string: shorthand or JSON rule
    column_values: normalized values of the column across all rows; only used
        by ``exists`` rules (empty and whitespace-only values are ignored)
    field: column name used in messages
    messages: message overrides keyed by problem-type code
    clock: returns "now" for ``expire`` rules (UTC)

    Raises
    ------
    RuleCompileError: the rule cannot be parsed or translated
    """
    rule = parse_rule(rule_string)

    counts: Counter[str] = Counter()
    if isinstance(rule, StringRule) and rule.exists:
        for v in column_values:
            key = "" if v is None else str(v).strip()
            if key:
                counts[key] += 1

    schema = _to_schema(rule)
    cls = _validator_class(counts, clock or (lambda: datetime.now(UTC)))
    try:
        validator = cls(schema)
    except Exception as e:  # pragma: no cover - schema is generated, not user supplied
        raise RuleCompileError(f"cannot build validator: {e}") from e

    merged = dict(DEFAULT_MESSAGES)
    if messages:
        merged.update(messages)
    return CompiledCheck(rule, field, validator, merged)
