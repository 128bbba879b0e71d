import pytest

from api_validator.parser.base import Param, Schema
from api_validator.rules import (
    MAX_SAFE_INTEGER,
    MIN_SAFE_INTEGER,
    OMIT,
    RULES,
    RuleId,
    generate,
    remediation_for,
    rule_name,
    severity_for,
    suggest,
)


def _param(name: str = "field", required: bool = False, **schema) -> Param:
    return Param(name=name, location="body", required=required, schema=Schema(**schema))


class TestSuggest:
    def test_required_email_string(self):
        param = _param("email", required=True, type="string", format="email")
        assert set(suggest(param)) == {RuleId.REQUIRED_CHECK, RuleId.WHITESPACE, RuleId.EMAIL_CHECK}

    def test_required_email_string_with_max_length(self):
        param = _param("email", required=True, type="string", format="email", max_length=100)
        assert set(suggest(param)) == {
            RuleId.REQUIRED_CHECK,
            RuleId.WHITESPACE,
            RuleId.EMAIL_CHECK,
            RuleId.MAX_STRING,
        }

    def test_phone_by_name_is_case_insensitive(self):
        assert RuleId.PHONE_CHECK in suggest(_param("mobilePhoneNumber", type="string"))

    def test_phone_by_format(self):
        assert RuleId.PHONE_CHECK in suggest(_param("contact", type="string", format="phone"))

    def test_phone_name_on_number_is_not_a_phone_check(self):
        assert RuleId.PHONE_CHECK not in suggest(_param("phone", type="integer"))

    @pytest.mark.parametrize("fmt", ["date", "date-time"])
    def test_dates(self, fmt):
        assert suggest(_param("when", type="string", format=fmt)) == [
            RuleId.WHITESPACE,
            RuleId.MIN_DATE,
            RuleId.MAX_DATE,
        ]

    def test_plain_optional_string(self):
        assert suggest(_param(type="string")) == [RuleId.WHITESPACE]

    def test_integer_without_bounds(self):
        assert suggest(_param(type="integer")) == [RuleId.NO_STRING]

    def test_number_with_both_bounds(self):
        assert suggest(_param(type="number", minimum=0, maximum=10)) == [
            RuleId.NO_STRING,
            RuleId.MIN_NUMBER,
            RuleId.MAX_NUMBER,
        ]

    def test_zero_bound_is_declared(self):
        assert RuleId.MAX_NUMBER in suggest(_param(type="integer", maximum=0))

    def test_required_object_only_checks_presence(self):
        assert suggest(_param(required=True, type="object")) == [RuleId.REQUIRED_CHECK]

    def test_is_pure(self):
        param = _param("email", required=True, type="string", format="email")
        assert suggest(param) == suggest(param)


class TestGenerate:
    def test_max_number(self):
        assert generate(RuleId.MAX_NUMBER, Schema(type="integer", maximum=100)) == [101, 1000, MAX_SAFE_INTEGER]

    def test_max_number_default_bound(self):
        assert generate(RuleId.MAX_NUMBER, Schema(type="integer")) == [101, 1000, 9007199254740991]

    def test_min_number(self):
        assert generate(RuleId.MIN_NUMBER, Schema(type="integer", minimum=5)) == [4, -95, MIN_SAFE_INTEGER]

    def test_min_number_default_bound(self):
        assert generate(RuleId.MIN_NUMBER, Schema(type="integer")) == [-1, -100, -9007199254740991]

    def test_max_string(self):
        values = generate(RuleId.MAX_STRING, Schema(type="string", max_length=10))
        assert [len(v) for v in values] == [11, 20, 10000]

    def test_max_string_default_bound(self):
        values = generate(RuleId.MAX_STRING, Schema(type="string"))
        assert [len(v) for v in values] == [256, 510, 10000]

    def test_required_check_includes_omission(self):
        assert generate(RuleId.REQUIRED_CHECK) == [None, OMIT, "", "   "]

    @pytest.mark.parametrize(
        "rule, size",
        [
            (RuleId.WHITESPACE, 6),
            (RuleId.NO_STRING, 6),
            (RuleId.MAX_STRING, 3),
            (RuleId.MAX_NUMBER, 3),
            (RuleId.MIN_NUMBER, 3),
            (RuleId.MAX_DATE, 4),
            (RuleId.MIN_DATE, 4),
            (RuleId.EMAIL_CHECK, 11),
            (RuleId.PHONE_CHECK, 8),
            (RuleId.REQUIRED_CHECK, 4),
        ],
    )
    def test_catalog_sizes(self, rule, size):
        assert len(generate(rule, Schema())) == size

    def test_fixed_catalogs_ignore_bounds(self):
        assert generate(RuleId.WHITESPACE, Schema(max_length=3)) == generate(RuleId.WHITESPACE, Schema())

    def test_deterministic(self):
        for rule in RuleId:
            assert generate(rule, Schema(maximum=7, minimum=2, max_length=4)) == generate(
                rule, Schema(maximum=7, minimum=2, max_length=4)
            )

    def test_string_identifier_accepted(self):
        assert generate("NO_STRING") == ["abc", "test123", "!@#$", "null", "undefined", "true"]

    def test_unknown_rule_yields_empty(self):
        assert generate("SQL_INJECTION", Schema()) == []

    def test_returned_list_is_a_copy(self):
        values = generate(RuleId.WHITESPACE)
        values.append("x")
        assert len(generate(RuleId.WHITESPACE)) == 6


class TestRuleInfo:
    def test_every_rule_has_info(self):
        assert set(RULES) == set(RuleId)

    @pytest.mark.parametrize(
        "rule, severity",
        [
            ("REQUIRED_CHECK", "high"),
            ("EMAIL_CHECK", "high"),
            ("NO_STRING", "high"),
            ("PHONE_CHECK", "medium"),
            ("MAX_STRING", "medium"),
            ("MAX_NUMBER", "medium"),
            ("MIN_NUMBER", "medium"),
            ("MAX_DATE", "low"),
            ("MIN_DATE", "low"),
            ("WHITESPACE", "low"),
        ],
    )
    def test_severity_table(self, rule, severity):
        assert severity_for(rule) == severity

    def test_remediation_names_the_parameter(self):
        text = remediation_for(RuleId.EMAIL_CHECK, "email")
        assert "RFC 5322" in text
        assert '"email"' in text

    def test_unknown_rule_fallbacks(self):
        assert severity_for("NOPE") == "medium"
        assert remediation_for("NOPE", "x") == "Add appropriate validation"
        assert rule_name("NOPE") == "NOPE"

    def test_rule_name(self):
        assert rule_name(RuleId.NO_STRING) == "Type Safety (No String)"
