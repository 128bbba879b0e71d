"""Fetch and load OpenAPI / Swagger documents (JSON or YAML)."""

import json
import logging
from pathlib import Path

import requests
import yaml

from api_validator.errors import FetchError

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 10
ACCEPT = "application/json, application/yaml"


def fetch_document(url: str, timeout: float = FETCH_TIMEOUT) -> dict:
    """Download an API document and deserialize it.

    JSON bodies are parsed directly, anything else is treated as YAML.
    Raises FetchError on network failure, a non-2xx
    answer, or a body that is not a mapping.
    """
    logger.info("Fetching API document from %s", url)
    try:
        response = requests.get(url, timeout=timeout, headers={"Accept": ACCEPT})
        response.raise_for_status()
    except requests.Timeout as e:
        raise FetchError("Request timeout - Swagger endpoint took too long to respond") from e
    except requests.HTTPError as e:
        raise FetchError(f"HTTP {e.response.status_code}: {e.response.reason}") from e
    except requests.ConnectionError as e:
        raise FetchError("Network error - Unable to reach Swagger endpoint") from e
    except requests.RequestException as e:
        raise FetchError(str(e) or "Unknown error occurred") from e

    return _parse(response.text, source=url)


def load_document(file_path: Path) -> dict:
    """Load an API document from a local JSON or YAML file."""
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise FetchError(f"Cannot read {file_path}: {e.strerror}") from e
    return _parse(text, source=str(file_path))


def detect_version(document: dict) -> str:
    """Return a display string such as 'OpenAPI 3.0.1' or 'Swagger 2.0'."""
    if document.get("openapi"):
        return f"OpenAPI {document['openapi']}"
    if document.get("swagger"):
        return f"Swagger {document['swagger']}"
    return "Unknown"


def _parse(text: str, source: str) -> dict:
    try:
        data = json.loads(text)
    except ValueError:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise FetchError(f"Malformed document at {source}: {e}") from e

    if not isinstance(data, dict):
        raise FetchError(f"Document at {source} is not an OpenAPI object")
    return data
