import pytest
from pydantic import ValidationError

from api_validator.generator.base import TestResult, make_test_id, summarize
from api_validator.parser.base import ApiEndpoint, Param, Schema
from api_validator.rules import OMIT
from api_validator.runner.state import Phase, RunState


def _result(test_id: str, classification: str) -> TestResult:
    return TestResult(
        id=test_id,
        endpoint_id="GET__users",
        rule="WHITESPACE",
        rule_name="Whitespace Validation",
        param_name="q",
        classification=classification,
        message="",
    )


class TestParam:
    def test_create_required_param(self):
        p = Param(name="id", location="path", required=True, schema=Schema(type="integer"))
        assert p.name == "id"
        assert p.required is True
        assert p.description == ""
        assert p.schema_.type == "integer"

    def test_default_schema_is_unknown(self):
        p = Param(name="q", location="query")
        assert p.schema_.type == "unknown"

    def test_dump_uses_schema_alias(self):
        p = Param(name="q", location="query", schema=Schema(type="string"))
        data = p.model_dump(by_alias=True)
        assert data["schema"]["type"] == "string"
        assert Param.model_validate(data) == p

    def test_params_are_frozen(self):
        p = Param(name="q", location="query")
        with pytest.raises(ValidationError):
            p.name = "other"


class TestApiEndpoint:
    def test_create_minimal_endpoint(self):
        ep = ApiEndpoint(id="GET__api_users", method="GET", path="/api/users")
        assert ep.parameters == []
        assert ep.request_body is None
        assert ep.param("missing") is None

    def test_param_lookup(self):
        ep = ApiEndpoint(
            id="DELETE__api_users_id",
            method="DELETE",
            path="/api/users/{id}",
            parameters=[Param(name="id", location="path", required=True, schema=Schema(type="integer"))],
        )
        assert ep.param("id").location == "path"

    def test_nested_schema(self):
        schema = Schema(type="object", required=["a"], properties={"a": Schema(type="array", items=Schema(type="string"))})
        assert schema.properties["a"].items.type == "string"
        assert not schema.is_numeric
        assert Schema(type="number").is_numeric


class TestTestResult:
    def test_passed_property(self):
        assert _result("a", "pass").passed is True
        assert _result("a", "fail").passed is False
        assert _result("a", "inconclusive").passed is None

    def test_omitted_value_serializes_as_marker(self):
        result = _result("a", "fail").model_copy(update={"test_value": OMIT})
        assert result.model_dump()["test_value"] == "<omitted>"

    def test_identity_format(self):
        assert make_test_id("GET__users_id", "NO_STRING", "id", 0) == "GET__users_id_NO_STRING_id_0"


class TestSummarize:
    def test_counts_by_classification(self):
        results = [_result("a", "pass"), _result("b", "fail"), _result("c", "inconclusive"), _result("d", "fail")]
        stats = summarize(results)
        assert (stats.total, stats.passed, stats.failed, stats.inconclusive) == (4, 1, 2, 1)

    def test_false_positive_counts_as_passed(self):
        stats = summarize([_result("a", "fail"), _result("b", "fail")], ["b"])
        assert stats.passed == 1
        assert stats.failed == 1


class TestRunState:
    def test_initial_state(self):
        state = RunState()
        assert state.phase is Phase.IDLE
        assert state.percentage == 0
        assert state.current_test is None
        assert not state.is_active

    def test_percentage_rounds(self):
        assert RunState(phase=Phase.RUNNING, completed=1, total=3).percentage == 33
