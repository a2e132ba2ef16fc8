from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from fieldcheck.services.compiler import (
    DateRule,
    EnumRule,
    NumberRule,
    RuleCompileError,
    StringRule,
    compile_rule,
    parse_rule,
    rule_default,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


def _types(result) -> set[str]:
    assert result is not True
    return {e.type for e in result}


class TestParseRule:
    def test_shorthand_string(self):
        rule = parse_rule("string|exists:true|min:2")
        assert isinstance(rule, StringRule)
        assert rule.exists is True
        assert rule.min == 2

    def test_bare_modifier_means_true(self):
        rule = parse_rule("number|integer|positive")
        assert isinstance(rule, NumberRule)
        assert rule.integer and rule.positive

    def test_json_object(self):
        rule = parse_rule('{"type": "date", "expire": "1d", "convert": true}')
        assert isinstance(rule, DateRule)
        assert rule.expire_ms == 86_400_000
        assert rule.convert is True

    def test_enum_values_from_shorthand_and_json(self):
        assert parse_rule("enum|values:a,b").values == ("a", "b")
        assert parse_rule('{"type": "enum", "values": ["x", 1]}') == EnumRule(values=("x", "1"))

    @pytest.mark.parametrize(
        "rule",
        [
            "",
            "unknown",
            "string|min:abc",
            "string|min:-1",
            '{"type": 5}',
            "{bad",
            "date|expire:soon",
            '{"type": "string", "pattern": "("}',
            "enum",
            "number|integer:maybe",
        ],
    )
    def test_compile_failures(self, rule):
        with pytest.raises(RuleCompileError):
            compile_rule(rule)


class TestUniqueness:
    def test_duplicates_flagged(self):
        check = compile_rule("string|exists:true", ["a", "b", "a", "c"])
        assert _types(check("a")) == {"stringExists"}
        assert check("b") is True
        assert check("c") is True

    def test_duplicate_message(self):
        check = compile_rule("string|exists:true", ["a", "a"])
        assert check("a")[0].message == "Duplicate value in column"

    def test_empty_values_never_conflict(self):
        check = compile_rule("string|exists:true", ["", "a", "", "   "])
        assert check("") is True
        assert check("   ") is True
        assert check("a") is True

    def test_values_compared_trimmed(self):
        check = compile_rule("string|exists:true", ["a ", " a"])
        assert _types(check("a")) == {"stringExists"}

    def test_without_exists_duplicates_pass(self):
        check = compile_rule("string", ["a", "a"])
        assert check("a") is True


class TestExpiry:
    def _check(self, rule="date|expire:1d"):
        return compile_rule(rule, clock=lambda: NOW)

    def test_older_than_duration_fails(self):
        value = (NOW - timedelta(hours=25)).isoformat()
        assert _types(self._check()(value)) == {"dateExpire"}
        assert self._check()(value)[0].message == "Expired, needs follow-up"

    def test_within_duration_passes(self):
        value = (NOW - timedelta(hours=23)).isoformat()
        assert self._check()(value) is True

    def test_z_suffix_iso_text(self):
        assert self._check()("2024-06-01T00:00:00.000Z") is True

    def test_unparsable_date_is_base_date_error_only(self):
        assert _types(self._check()("not a date")) == {"date"}

    def test_naive_dates_are_utc(self):
        assert self._check()("2024-05-31T13:00:00") is True
        assert _types(self._check()("2024-05-31T11:00:00")) == {"dateExpire"}

    def test_datetime_instances_accepted(self):
        assert self._check()(NOW - timedelta(hours=1)) is True


class TestConvert:
    def test_epoch_text_needs_convert(self):
        assert _types(compile_rule("date")("1700000000")) == {"date"}
        assert compile_rule("date|convert:true")("1700000000") is True
        assert compile_rule("date|convert:true")("1700000000000") is True

    def test_free_form_text_with_convert(self):
        assert compile_rule("date|convert:true")("Nov 14 2023") is True
        assert _types(compile_rule("date|convert:true")("tomorrow-ish")) == {"date"}

    def test_convert_and_expire_together(self):
        check = compile_rule('{"type": "date", "convert": true, "expire": "1h"}', clock=lambda: NOW)
        old = str(int((NOW - timedelta(hours=2)).timestamp()))
        assert _types(check(old)) == {"dateExpire"}


class TestTypes:
    def test_number_bounds(self):
        check = compile_rule("number|min:0|max:10")
        assert check("5") is True
        assert check("10") is True
        assert _types(check("11")) == {"numberMax"}
        assert _types(check("-1")) == {"numberMin"}
        assert _types(check("abc")) == {"number"}

    def test_number_integer_positive_negative(self):
        assert _types(compile_rule("number|integer")("2.5")) == {"numberInteger"}
        assert compile_rule("number|integer")("3") is True
        assert _types(compile_rule("number|positive")("0")) == {"numberPositive"}
        assert _types(compile_rule("number|negative")("1")) == {"numberNegative"}

    def test_string_lengths_and_pattern(self):
        assert _types(compile_rule("string|min:3")("ab")) == {"stringMin"}
        assert _types(compile_rule("string|max:2")("abc")) == {"stringMax"}
        assert _types(compile_rule("string|length:3")("ab")) == {"stringLength"}
        assert _types(compile_rule('{"type": "string", "pattern": "^[A-Z]"}')("abc")) == {"stringPattern"}
        assert _types(compile_rule('{"type": "string", "enum": ["x", "y"]}')("z")) == {"stringEnum"}

    def test_min_message_mentions_bound(self):
        err = compile_rule("string|min:3", field="Code")("ab")[0]
        assert "Code" in err.message and "3" in err.message
        assert err.expected == 3
        assert err.actual == "ab"

    def test_email(self):
        assert compile_rule("email")("a@b.co") is True
        assert _types(compile_rule("email")("nope")) == {"email"}

    def test_enum(self):
        check = compile_rule('{"type": "enum", "values": ["a", "b"]}')
        assert check("a") is True
        err = check("c")[0]
        assert err.type == "enumValue"
        assert "'c'" in err.message

    def test_boolean(self):
        assert compile_rule("boolean")("true") is True
        assert _types(compile_rule("boolean")("yes")) == {"boolean"}
        assert compile_rule("boolean|convert:true")("yes") is True

    def test_several_failures_on_one_value(self):
        check = compile_rule("string|min:5|exists:true", ["abc", "abc"])
        assert _types(check("abc")) == {"stringMin", "stringExists"}


class TestEmptyValues:
    def test_required(self):
        assert _types(compile_rule("string|required")("")) == {"required"}
        assert _types(compile_rule("number|required")("  ")) == {"required"}

    def test_optional(self):
        assert compile_rule("number|optional")("") is True

    def test_empty_false(self):
        assert _types(compile_rule("string|empty:false")("")) == {"stringEmpty"}

    def test_empty_string_passes_plain_string_rule(self):
        assert compile_rule("string")("") is True

    def test_empty_value_fails_typed_rules(self):
        assert _types(compile_rule("number")("")) == {"number"}
        assert _types(compile_rule("date")("")) == {"date"}

    def test_none_is_empty(self):
        assert _types(compile_rule("string|required")(None)) == {"required"}


def test_defaults_readable_without_running():
    assert rule_default('{"type": "string", "default": "N/A"}') == "N/A"
    assert rule_default("number|default:5") == 5
    assert rule_default("string") is None
    assert compile_rule("string|default:x").default == "x"


def test_message_overrides():
    check = compile_rule("string|exists:true", ["a", "a"], field="Name", messages={"stringExists": "dup in {field}"})
    assert check("a")[0].message == "dup in Name"
