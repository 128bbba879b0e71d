"""Project import: fetch a document, resolve it, and record it in the store."""

import logging
import uuid
from pathlib import Path

from api_validator.generator.base import utc_now
from api_validator.parser.base import ApiEndpoint
from api_validator.parser.fetch import detect_version, fetch_document, load_document
from api_validator.parser.swagger import extract_base_url, resolve
from api_validator.storage import JsonStore, Project, ProjectInfo

logger = logging.getLogger(__name__)


def import_project(url: str, store: JsonStore, timeout: float = 10) -> tuple[Project, list[ApiEndpoint]]:
    """Import (or refresh) the project whose document lives at ``url``.

    ``url`` may also be the path of a local JSON or YAML file.

    A project already imported from the same URL keeps its id and creation
    time. Fetch and resolution errors propagate; nothing is saved then.
    """
    document = _load(url, timeout)
    endpoints = resolve(document)
    base_url = extract_base_url(document)
    info = document.get("info") or {}
    project_info = ProjectInfo(
        title=info.get("title") or "",
        description=info.get("description") or "",
        version=str(info.get("version") or ""),
    )
    endpoint_ids = [e.id for e in endpoints]

    existing = next((p for p in store.load_projects() if p.url == url), None)
    if existing:
        project = existing.model_copy(
            update={
                "name": project_info.title or existing.name,
                "version": detect_version(document),
                "base_url": base_url or existing.base_url,
                "updated_at": utc_now(),
                "info": project_info,
                "endpoint_ids": endpoint_ids,
            }
        )
        logger.info("Refreshed project %s (%d endpoints)", project.id, len(endpoints))
    else:
        project = Project(
            id=f"project_{uuid.uuid4().hex[:12]}",
            name=project_info.title or "Unnamed API",
            url=url,
            base_url=base_url,
            version=detect_version(document),
            info=project_info,
            endpoint_ids=endpoint_ids,
        )
        logger.info("Imported project %s (%d endpoints)", project.id, len(endpoints))

    store.save_project(project)
    store.set_current_project(project.id)
    return project, endpoints


def load_endpoints(project: Project, timeout: float = 10) -> list[ApiEndpoint]:
    """Reload a project's document and resolve its current endpoints."""
    return resolve(_load(project.url, timeout))


def group_by_tag(endpoints: list[ApiEndpoint]) -> dict[str, list[ApiEndpoint]]:
    """Group endpoints by their first tag; untagged ones go to 'Untagged'."""
    groups: dict[str, list[ApiEndpoint]] = {}
    for ep in endpoints:
        groups.setdefault(ep.tags[0] if ep.tags else "Untagged", []).append(ep)
    return groups


def _load(source: str, timeout: float) -> dict:
    """Read a local document file, or fetch ``source`` as a URL."""
    path = Path(source)
    if path.is_file():
        return load_document(path)
    return fetch_document(source, timeout=timeout)
