"""Validation rules: which rules apply to a parameter, and their probe values.

Rule suggestion looks only at the parameter's resolved schema (and its
name for phone numbers). Value generation is deterministic: every rule
yields a fixed-size, ordered list so a value's index can be part of a
test case's identity.
"""

from enum import Enum

from pydantic import BaseModel

from api_validator.parser.base import Param, Schema

DEFAULT_MAX_LENGTH = 255
DEFAULT_MAXIMUM = 100
DEFAULT_MINIMUM = 0
MAX_SAFE_INTEGER = 2**53 - 1
MIN_SAFE_INTEGER = -(2**53 - 1)


class RuleId(str, Enum):
    REQUIRED_CHECK = "REQUIRED_CHECK"
    WHITESPACE = "WHITESPACE"
    NO_STRING = "NO_STRING"
    MAX_STRING = "MAX_STRING"
    MAX_NUMBER = "MAX_NUMBER"
    MIN_NUMBER = "MIN_NUMBER"
    MAX_DATE = "MAX_DATE"
    MIN_DATE = "MIN_DATE"
    EMAIL_CHECK = "EMAIL_CHECK"
    PHONE_CHECK = "PHONE_CHECK"


class RuleInfo(BaseModel):
    name: str
    severity: str  # high / medium / low
    remediation: str  # formatted with the parameter name


RULES: dict[RuleId, RuleInfo] = {
    RuleId.WHITESPACE: RuleInfo(
        name="Whitespace Validation",
        severity="low",
        remediation='Add trim() and check for empty string on "{name}"',
    ),
    RuleId.NO_STRING: RuleInfo(
        name="Type Safety (No String)",
        severity="high",
        remediation='Add type validation to ensure "{name}" is numeric',
    ),
    RuleId.MAX_STRING: RuleInfo(
        name="Maximum String Length",
        severity="medium",
        remediation='Add maxLength constraint (e.g., 100-255 chars) on "{name}"',
    ),
    RuleId.MAX_NUMBER: RuleInfo(
        name="Maximum Number Value",
        severity="medium",
        remediation='Add maximum value constraint on "{name}"',
    ),
    RuleId.MIN_NUMBER: RuleInfo(
        name="Minimum Number Value",
        severity="medium",
        remediation='Add minimum value constraint on "{name}"',
    ),
    RuleId.MAX_DATE: RuleInfo(
        name="Maximum Date",
        severity="low",
        remediation='Add maximum date constraint on "{name}"',
    ),
    RuleId.MIN_DATE: RuleInfo(
        name="Minimum Date",
        severity="low",
        remediation='Add minimum date constraint on "{name}"',
    ),
    RuleId.EMAIL_CHECK: RuleInfo(
        name="Email Format",
        severity="high",
        remediation='Use RFC 5322 compliant email validation on "{name}"',
    ),
    RuleId.PHONE_CHECK: RuleInfo(
        name="Phone Format",
        severity="medium",
        remediation='Add phone number format validation on "{name}"',
    ),
    RuleId.REQUIRED_CHECK: RuleInfo(
        name="Required Field",
        severity="high",
        remediation='Mark "{name}" as required and validate presence',
    ),
}


class _Omit:
    """Probe value meaning "leave the parameter out of the request"."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<omitted>"


OMIT = _Omit()

WHITESPACE_VALUES = [" ", "   ", "\t", "\n", "\r\n", "  \t \n  "]

NO_STRING_VALUES = ["abc", "test123", "!@#$", "null", "undefined", "true"]

EMAIL_VALUES = [
    "plaintext",
    "@domain.com",
    "user@",
    "user @domain.com",
    "user..name@domain.com",
    "user@domain..com",
    ".user@domain.com",
    "user@domain",
    "<script>@domain.com",
    "user@<script>.com",
    "a" * 255 + "@domain.com",
]

PHONE_VALUES = [
    "123",
    "12345",
    "abc-def-ghij",
    "123 456 789",
    "123-456-789!",
    "123@456#789",
    "<script>alert()</script>",
    "a" * 50,
]

REQUIRED_VALUES = [None, OMIT, "", "   "]

# Fixed literals keep generation independent of the wall clock
MAX_DATE_VALUES = [
    "2099-12-31T23:59:59Z",
    "2999-01-01T00:00:00Z",
    "9999-12-31T23:59:59Z",
    "10000-01-01T00:00:00Z",
]

MIN_DATE_VALUES = [
    "1900-01-01T00:00:00Z",
    "1800-01-01T00:00:00Z",
    "1000-01-01T00:00:00Z",
    "0000-01-01T00:00:00Z",
]

DATE_FORMATS = ("date", "date-time")


def suggest(param: Param) -> list[RuleId]:
    """Return the rules applicable to a parameter, in a stable order."""
    schema = param.schema_
    rules: list[RuleId] = []

    if param.required:
        rules.append(RuleId.REQUIRED_CHECK)

    if schema.type == "string":
        rules.append(RuleId.WHITESPACE)
        if schema.format == "email":
            rules.append(RuleId.EMAIL_CHECK)
        if schema.format == "phone" or "phone" in param.name.lower():
            rules.append(RuleId.PHONE_CHECK)
        if schema.max_length is not None:
            rules.append(RuleId.MAX_STRING)
        if schema.format in DATE_FORMATS:
            rules.extend([RuleId.MIN_DATE, RuleId.MAX_DATE])

    if schema.is_numeric:
        rules.append(RuleId.NO_STRING)
        if schema.minimum is not None:
            rules.append(RuleId.MIN_NUMBER)
        if schema.maximum is not None:
            rules.append(RuleId.MAX_NUMBER)

    return rules


def generate(rule: RuleId | str, schema: Schema | None = None) -> list:
    """Return the ordered probe values of a rule for a schema.

    Unknown rule identifiers yield an empty list.
    """
    schema = schema or Schema()
    try:
        rule = RuleId(rule)
    except ValueError:
        return []

    if rule is RuleId.MAX_STRING:
        max_length = schema.max_length if schema.max_length is not None else DEFAULT_MAX_LENGTH
        return ["a" * (max_length + 1), "a" * (max_length * 2), "a" * 10000]

    if rule is RuleId.MAX_NUMBER:
        maximum = schema.maximum if schema.maximum is not None else DEFAULT_MAXIMUM
        return [maximum + 1, maximum * 10, MAX_SAFE_INTEGER]

    if rule is RuleId.MIN_NUMBER:
        minimum = schema.minimum if schema.minimum is not None else DEFAULT_MINIMUM
        return [minimum - 1, minimum - 100, MIN_SAFE_INTEGER]

    catalog = {
        RuleId.WHITESPACE: WHITESPACE_VALUES,
        RuleId.NO_STRING: NO_STRING_VALUES,
        RuleId.MAX_DATE: MAX_DATE_VALUES,
        RuleId.MIN_DATE: MIN_DATE_VALUES,
        RuleId.EMAIL_CHECK: EMAIL_VALUES,
        RuleId.PHONE_CHECK: PHONE_VALUES,
        RuleId.REQUIRED_CHECK: REQUIRED_VALUES,
    }
    return list(catalog[rule])


def rule_name(rule: RuleId | str) -> str:
    info = _info(rule)
    return info.name if info else str(rule)


def severity_for(rule: RuleId | str) -> str:
    info = _info(rule)
    return info.severity if info else "medium"


def remediation_for(rule: RuleId | str, param_name: str) -> str:
    info = _info(rule)
    if info is None:
        return "Add appropriate validation"
    return info.remediation.format(name=param_name)


def _info(rule: RuleId | str) -> RuleInfo | None:
    try:
        return RULES[RuleId(rule)]
    except ValueError:
        return None
