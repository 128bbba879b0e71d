"""JSON-file key-value store for projects, results, false positives and settings.

Each key lives in its own file under the data directory. A re-entrant lock
guards every read-modify-write, so runs on several threads can share one
store instance.
"""

import json
import logging
import os
import threading
from pathlib import Path

from pydantic import BaseModel, Field

from api_validator.config import Settings
from api_validator.errors import StorageError
from api_validator.generator.base import FalsePositiveMark, RunStats, TestResult, utc_now

logger = logging.getLogger(__name__)

KEYS = {
    "projects": "projects.json",
    "current_project": "current_project.json",
    "test_results": "test_results.json",
    "false_positives": "false_positives.json",
    "settings": "settings.json",
    "history": "history.json",
}

HISTORY_LIMIT = 100


class ProjectInfo(BaseModel):
    title: str = ""
    description: str = ""
    version: str = ""


class Project(BaseModel):
    id: str
    name: str
    url: str
    base_url: str = ""
    version: str = ""
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)
    last_tested_at: str | None = None
    info: ProjectInfo = ProjectInfo()
    endpoint_ids: list[str] = []


class StoredResults(BaseModel):
    results: list[TestResult]
    timestamp: str = Field(default_factory=utc_now)


class HistoryEntry(BaseModel):
    endpoint_id: str
    method: str
    path: str
    phase: str
    stats: RunStats
    timestamp: str = Field(default_factory=utc_now)


class JsonStore:
    """Persistence collaborator backed by JSON files."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    # -- projects -------------------------------------------------------------

    def save_project(self, project: Project) -> Project:
        with self._lock:
            projects = self.load_projects()
            for i, existing in enumerate(projects):
                if existing.id == project.id:
                    projects[i] = project
                    break
            else:
                projects.append(project)
            self._write("projects", [p.model_dump() for p in projects])
        return project

    def load_projects(self) -> list[Project]:
        return [Project.model_validate(p) for p in self._read("projects", [])]

    def get_project(self, project_id: str) -> Project | None:
        return next((p for p in self.load_projects() if p.id == project_id), None)

    def delete_project(self, project_id: str) -> None:
        """Delete a project and the stored results of its endpoints."""
        with self._lock:
            project = self.get_project(project_id)
            if project is None:
                return
            self._write("projects", [p.model_dump() for p in self.load_projects() if p.id != project_id])
            self._delete_test_results(project.endpoint_ids)
            if self.get_current_project_id() == project_id:
                self._delete("current_project")
        logger.info("Deleted project %s", project_id)

    def mark_tested(self, project_id: str) -> None:
        with self._lock:
            project = self.get_project(project_id)
            if project is not None:
                self.save_project(project.model_copy(update={"last_tested_at": utc_now()}))

    def set_current_project(self, project_id: str) -> None:
        self._write("current_project", project_id)

    def get_current_project_id(self) -> str | None:
        return self._read("current_project", None)

    # -- results --------------------------------------------------------------

    def save_test_results(self, endpoint_id: str, results: list[TestResult]) -> None:
        with self._lock:
            all_results = self._read("test_results", {})
            all_results[endpoint_id] = StoredResults(results=results).model_dump()
            self._write("test_results", all_results)

    def load_test_results(self, endpoint_id: str) -> StoredResults | None:
        stored = self._read("test_results", {}).get(endpoint_id)
        return StoredResults.model_validate(stored) if stored else None

    def load_all_test_results(self) -> dict[str, StoredResults]:
        return {k: StoredResults.model_validate(v) for k, v in self._read("test_results", {}).items()}

    def _delete_test_results(self, endpoint_ids: list[str]) -> None:
        with self._lock:
            all_results = self._read("test_results", {})
            for endpoint_id in endpoint_ids:
                all_results.pop(endpoint_id, None)
            self._write("test_results", all_results)

    def save_history_entry(self, entry: HistoryEntry) -> None:
        with self._lock:
            history = self._read("history", [])
            history.insert(0, entry.model_dump())
            self._write("history", history[:HISTORY_LIMIT])

    def load_history(self) -> list[HistoryEntry]:
        return [HistoryEntry.model_validate(h) for h in self._read("history", [])]

    # -- false positives ------------------------------------------------------

    def save_false_positive(self, endpoint_id: str, test_id: str, reason: str = "") -> FalsePositiveMark:
        mark = FalsePositiveMark(endpoint_id=endpoint_id, test_id=test_id, reason=reason)
        with self._lock:
            marks = self._read("false_positives", {})
            entries = [e for e in marks.get(endpoint_id, []) if e["test_id"] != test_id]
            entries.append(mark.model_dump())
            marks[endpoint_id] = entries
            self._write("false_positives", marks)
        return mark

    def load_false_positives(self) -> dict[str, list[FalsePositiveMark]]:
        return {
            endpoint_id: [FalsePositiveMark.model_validate(e) for e in entries]
            for endpoint_id, entries in self._read("false_positives", {}).items()
        }

    def is_false_positive(self, endpoint_id: str, test_id: str) -> bool:
        return any(m.test_id == test_id for m in self.load_false_positives().get(endpoint_id, []))

    def remove_false_positive(self, endpoint_id: str, test_id: str) -> bool:
        with self._lock:
            marks = self._read("false_positives", {})
            entries = marks.get(endpoint_id, [])
            kept = [e for e in entries if e["test_id"] != test_id]
            marks[endpoint_id] = kept
            self._write("false_positives", marks)
        return len(kept) != len(entries)

    # -- settings -------------------------------------------------------------

    def save_settings(self, settings: Settings) -> None:
        self._write("settings", settings.model_dump())

    def load_settings(self) -> Settings:
        return Settings.model_validate(self._read("settings", {}))

    # -- bulk -----------------------------------------------------------------

    def export_data(self) -> dict:
        with self._lock:
            return {
                "projects": self._read("projects", []),
                "testResults": self._read("test_results", {}),
                "falsePositives": self._read("false_positives", {}),
                "settings": self.load_settings().model_dump(),
                "exportedAt": utc_now(),
            }

    def import_data(self, data: dict) -> None:
        """Replace every section present in an export document."""
        with self._lock:
            if "projects" in data:
                self._write("projects", [Project.model_validate(p).model_dump() for p in data["projects"]])
            if "testResults" in data:
                self._write(
                    "test_results",
                    {k: StoredResults.model_validate(v).model_dump() for k, v in data["testResults"].items()},
                )
            if "falsePositives" in data:
                self._write(
                    "false_positives",
                    {
                        k: [FalsePositiveMark.model_validate(e).model_dump() for e in entries]
                        for k, entries in data["falsePositives"].items()
                    },
                )
            if "settings" in data:
                self.save_settings(Settings.model_validate(data["settings"]))

    def clear_all(self) -> None:
        with self._lock:
            for key in KEYS:
                self._delete(key)

    # -- files ----------------------------------------------------------------

    def _path(self, key: str) -> Path:
        return self.data_dir / KEYS[key]

    def _read(self, key: str, default):
        path = self._path(key)
        with self._lock:
            if not path.exists():
                return default
            try:
                return json.loads(path.read_text(encoding="utf-8"))
            except ValueError as e:
                raise StorageError(f"Corrupt data file {path}: {e}") from e

    def _write(self, key: str, data) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        with self._lock:
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp, path)

    def _delete(self, key: str) -> None:
        with self._lock:
            self._path(key).unlink(missing_ok=True)
