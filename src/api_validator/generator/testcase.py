"""Test case builder: expands rules x parameters x probe values."""

import logging
from collections.abc import Iterable

from pydantic import BaseModel

from api_validator.generator.base import FalsePositiveMark, TestCase, make_test_id
from api_validator.parser.base import ApiEndpoint, Param
from api_validator.rules import RULES, RuleId, generate, suggest

logger = logging.getLogger(__name__)


class RuleConfig(BaseModel):
    """Selection of one rule for an endpoint.

    An empty ``params`` list targets every parameter of the endpoint.
    """

    enabled: bool = True
    params: list[str] = []


RuleSelection = dict[str, RuleConfig]


def suggested_selection(endpoint: ApiEndpoint) -> RuleSelection:
    """Enable every suggested rule, limited to the parameters it was suggested for."""
    selection: RuleSelection = {}
    for param in endpoint.parameters:
        for rule in suggest(param):
            config = selection.setdefault(rule.value, RuleConfig(params=[]))
            if param.name not in config.params:
                config.params.append(param.name)
    return selection


def all_rules_selection() -> RuleSelection:
    """Enable every known rule for every parameter."""
    return {rule.value: RuleConfig() for rule in RULES}


class TestCaseBuilder:
    """Builds the ordered, false-positive-filtered test cases of an endpoint."""

    __test__ = False

    def build(
        self,
        endpoint: ApiEndpoint,
        selection: RuleSelection,
        false_positives: Iterable[str | FalsePositiveMark] = (),
    ) -> list[TestCase]:
        """Return test cases in rule, parameter, value order.

        Cases whose identity was marked as a false positive are left out.
        """
        suppressed = {fp.test_id if isinstance(fp, FalsePositiveMark) else fp for fp in false_positives}
        params = self._unique_params(endpoint)
        cases: list[TestCase] = []

        for rule_key, config in selection.items():
            if isinstance(config, dict):
                config = RuleConfig(**config)
            if not config.enabled:
                continue
            rule = rule_key.value if isinstance(rule_key, RuleId) else rule_key

            for param in self._target_params(params, config):
                for index, value in enumerate(generate(rule, param.schema_)):
                    test_id = make_test_id(endpoint.id, rule, param.name, index)
                    if test_id in suppressed:
                        logger.debug("Skipping test %s (marked as false positive)", test_id)
                        continue
                    cases.append(
                        TestCase(
                            id=test_id,
                            endpoint_id=endpoint.id,
                            rule=rule,
                            param=param,
                            value=value,
                            index=index,
                        )
                    )

        return cases

    def _target_params(self, params: list[Param], config: RuleConfig) -> list[Param]:
        if config.params:
            return [p for p in params if p.name in config.params]
        return params

    def _unique_params(self, endpoint: ApiEndpoint) -> list[Param]:
        """Parameters in declared order, one per name, so identities stay unique."""
        seen: set[str] = set()
        result = []
        for param in endpoint.parameters:
            if param.name in seen:
                logger.warning(
                    "%s has more than one parameter named %r; testing the first only",
                    endpoint.id,
                    param.name,
                )
                continue
            seen.add(param.name)
            result.append(param)
        return result
