"""Executor: sends one probe request and classifies the response."""

import logging
from typing import Any
from urllib.parse import quote

import requests
from pydantic import BaseModel

from api_validator.errors import TransportError, UnexpectedStatusError
from api_validator.generator.base import TestCase, TestResult
from api_validator.parser.base import ApiEndpoint
from api_validator.rules import OMIT, remediation_for, rule_name, severity_for

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10
REJECTED_STATUSES = (400, 413, 422)
AUTH_STATUSES = (401, 403)


class ProbeRequest(BaseModel):
    method: str
    url: str
    headers: dict[str, str] = {}
    params: dict[str, Any] = {}
    json_body: dict[str, Any] | None = None


class HttpResponse(BaseModel):
    status_code: int
    reason: str = ""
    text: str = ""


class HttpClient:
    """Thin requests wrapper that reports every status code without raising.

    Only network-level failures are raised, as TransportError.
    """

    def __init__(self, timeout: float = REQUEST_TIMEOUT, session: requests.Session | None = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, request: ProbeRequest) -> HttpResponse:
        try:
            response = self.session.request(
                request.method,
                request.url,
                headers=request.headers,
                params=request.params,
                json=request.json_body,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise TransportError(f"Request timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise TransportError(str(e) or e.__class__.__name__) from e

        return HttpResponse(status_code=response.status_code, reason=response.reason or "", text=response.text)

    def close(self) -> None:
        self.session.close()


def build_request(test_case: TestCase, endpoint: ApiEndpoint, base_url: str) -> ProbeRequest:
    """Place the probe value where its parameter lives: path, query, header or body."""
    param = test_case.param
    value = test_case.value
    path = endpoint.path
    headers: dict[str, str] = {}
    params: dict[str, Any] = {}
    json_body = None

    if param.location == "path":
        text = "" if value is OMIT else _as_text(value)
        path = path.replace(f"{{{param.name}}}", quote(text, safe=""))
    elif param.location == "query":
        if value is not OMIT and value is not None:
            params[param.name] = value
    elif param.location == "header":
        if value is not OMIT and value is not None:
            headers[param.name] = _as_text(value)
    elif param.location == "body":
        json_body = {} if value is OMIT else {param.name: value}

    return ProbeRequest(
        method=endpoint.method,
        url=base_url.rstrip("/") + path,
        headers=headers,
        params=params,
        json_body=json_body,
    )


def classify(status_code: int, rule: str, param_name: str) -> dict:
    """Map a status code to a classification, message, severity and remediation."""
    if status_code in REJECTED_STATUSES:
        return {
            "classification": "pass",
            "message": f"API correctly rejected invalid input ({status_code})",
        }
    if 200 <= status_code < 300:
        return {
            "classification": "fail",
            "message": f"API accepted invalid input ({status_code})",
            "severity": severity_for(rule),
            "remediation": remediation_for(rule, param_name),
        }
    if status_code in AUTH_STATUSES:
        return {
            "classification": "inconclusive",
            "message": "Authentication required - cannot test",
        }
    return {
        "classification": "inconclusive",
        "message": UnexpectedStatusError(status_code).message,
    }


class Executor:
    """Runs single test cases against a live API."""

    def __init__(self, client: HttpClient | None = None):
        self.client = client or HttpClient()

    def execute(self, test_case: TestCase, endpoint: ApiEndpoint, base_url: str) -> TestResult:
        request = build_request(test_case, endpoint, base_url)
        logger.debug("%s %s (%s)", request.method, request.url, test_case.id)

        fields = {
            "id": test_case.id,
            "endpoint_id": test_case.endpoint_id,
            "rule": test_case.rule,
            "rule_name": rule_name(test_case.rule),
            "param_name": test_case.param.name,
            "test_value": test_case.value,
        }
        try:
            response = self.client.send(request)
        except TransportError as e:
            logger.info("Probe %s failed: %s", test_case.id, e.message)
            return TestResult(**fields, classification="inconclusive", error=e.message, message=e.message)

        verdict = classify(response.status_code, test_case.rule, test_case.param.name)
        return TestResult(**fields, status_code=response.status_code, **verdict)


def _as_text(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
