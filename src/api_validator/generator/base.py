"""Models for generated test cases and their results."""

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from api_validator.parser.base import Param
from api_validator.rules import OMIT

CLASSIFICATIONS = ("pass", "fail", "inconclusive")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_test_id(endpoint_id: str, rule: str, param_name: str, index: int) -> str:
    """Identity of a test case; the unit of false-positive suppression."""
    return f"{endpoint_id}_{rule}_{param_name}_{index}"


class TestCase(BaseModel):
    """One probe: a rule's value at ``index`` sent in one parameter."""

    __test__ = False  # not a pytest class
    model_config = ConfigDict(frozen=True)

    id: str
    endpoint_id: str
    rule: str
    param: Param
    value: Any = None
    index: int


class TestResult(BaseModel):
    """Outcome of one executed test case."""

    __test__ = False

    id: str
    endpoint_id: str
    rule: str
    rule_name: str
    param_name: str
    test_value: Any = None
    expected_behavior: str = "400/422 Bad Request"
    classification: str  # pass / fail / inconclusive
    status_code: int | None = None
    error: str | None = None
    severity: str | None = None
    message: str
    remediation: str | None = None
    timestamp: str = Field(default_factory=utc_now)

    @field_serializer("test_value")
    def _serialize_value(self, value: Any) -> Any:
        return repr(OMIT) if value is OMIT else value

    @property
    def passed(self) -> bool | None:
        """True for pass, False for fail, None when inconclusive."""
        if self.classification == "inconclusive":
            return None
        return self.classification == "pass"


class RunStats(BaseModel):
    total: int = 0
    passed: int = 0
    failed: int = 0
    inconclusive: int = 0


def summarize(results: list[TestResult], false_positive_ids: Iterable[str] = ()) -> RunStats:
    """Count results by classification.

    A failure whose test id is an accepted false positive counts as passed.
    """
    accepted = set(false_positive_ids)
    stats = RunStats(total=len(results))
    for result in results:
        if result.classification == "pass" or (result.classification == "fail" and result.id in accepted):
            stats.passed += 1
        elif result.classification == "fail":
            stats.failed += 1
        else:
            stats.inconclusive += 1
    return stats


class FalsePositiveMark(BaseModel):
    """An accepted failure, excluded from later runs."""

    endpoint_id: str
    test_id: str
    reason: str = ""
    timestamp: str = Field(default_factory=utc_now)
