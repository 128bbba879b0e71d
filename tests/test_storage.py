import json

import pytest
from pydantic import ValidationError

from api_validator.config import Settings
from api_validator.errors import StorageError
from api_validator.generator.base import RunStats, TestResult
from api_validator.rules import OMIT
from api_validator.storage import HISTORY_LIMIT, HistoryEntry, JsonStore, Project


@pytest.fixture
def store(tmp_path):
    return JsonStore(tmp_path / "data")


def _result(test_id: str, classification: str = "fail", value="abc") -> TestResult:
    return TestResult(
        id=test_id,
        endpoint_id="GET__users_id",
        rule="NO_STRING",
        rule_name="Type Safety (No String)",
        param_name="id",
        test_value=value,
        classification=classification,
        message="",
    )


def _project(project_id: str = "p1", **kwargs) -> Project:
    return Project(id=project_id, name="Users", url=f"https://api.test/{project_id}.json", **kwargs)


class TestProjects:
    def test_creates_data_dir(self, tmp_path):
        JsonStore(tmp_path / "a" / "b")
        assert (tmp_path / "a" / "b").is_dir()

    def test_save_and_load(self, store):
        store.save_project(_project())
        assert [p.id for p in store.load_projects()] == ["p1"]
        assert store.get_project("p1").name == "Users"
        assert store.get_project("nope") is None

    def test_save_replaces_existing(self, store):
        store.save_project(_project())
        store.save_project(_project(base_url="https://api.test/v2"))
        projects = store.load_projects()
        assert len(projects) == 1
        assert projects[0].base_url == "https://api.test/v2"

    def test_current_project(self, store):
        assert store.get_current_project_id() is None
        store.set_current_project("p1")
        assert store.get_current_project_id() == "p1"

    def test_delete_cascades_to_results(self, store):
        store.save_project(_project(endpoint_ids=["GET__users_id"]))
        store.save_project(_project("p2", endpoint_ids=["GET__users_id_2"]))
        store.save_test_results("GET__users_id", [_result("a")])
        store.save_test_results("GET__users_id_2", [_result("b")])
        store.set_current_project("p1")

        store.delete_project("p1")

        assert [p.id for p in store.load_projects()] == ["p2"]
        assert store.load_test_results("GET__users_id") is None
        assert store.load_test_results("GET__users_id_2") is not None
        assert store.get_current_project_id() is None

    def test_delete_unknown_project(self, store):
        store.save_project(_project())
        store.delete_project("ghost")
        assert len(store.load_projects()) == 1

    def test_mark_tested(self, store):
        store.save_project(_project())
        store.mark_tested("p1")
        store.mark_tested("ghost")
        assert store.get_project("p1").last_tested_at is not None


class TestResults:
    def test_save_overwrites_previous_run(self, store):
        store.save_test_results("GET__users_id", [_result("a"), _result("b")])
        store.save_test_results("GET__users_id", [_result("c")])
        assert [r.id for r in store.load_test_results("GET__users_id").results] == ["c"]

    def test_omitted_value_stored_as_marker(self, store):
        store.save_test_results("GET__users_id", [_result("a", value=OMIT)])
        assert store.load_test_results("GET__users_id").results[0].test_value == "<omitted>"

    def test_files_are_plain_json(self, store):
        store.save_test_results("GET__users_id", [_result("a")])
        data = json.loads((store.data_dir / "test_results.json").read_text())
        assert data["GET__users_id"]["results"][0]["id"] == "a"
        assert not list(store.data_dir.glob("*.tmp"))

    def test_history_newest_first_and_capped(self, store):
        for n in range(HISTORY_LIMIT + 5):
            store.save_history_entry(
                HistoryEntry(endpoint_id=f"e{n}", method="GET", path="/", phase="completed", stats=RunStats())
            )
        history = store.load_history()
        assert len(history) == HISTORY_LIMIT
        assert history[0].endpoint_id == f"e{HISTORY_LIMIT + 4}"


class TestFalsePositives:
    def test_mark_and_query(self, store):
        mark = store.save_false_positive("GET__users_id", "t1", "slug ids are allowed")
        assert mark.reason == "slug ids are allowed"
        assert store.is_false_positive("GET__users_id", "t1")
        assert not store.is_false_positive("GET__users_id", "t2")
        assert not store.is_false_positive("POST__users", "t1")

    def test_marking_twice_keeps_one_entry(self, store):
        store.save_false_positive("GET__users_id", "t1", "first")
        store.save_false_positive("GET__users_id", "t1", "second")
        marks = store.load_false_positives()["GET__users_id"]
        assert [m.reason for m in marks] == ["second"]

    def test_remove(self, store):
        store.save_false_positive("GET__users_id", "t1")
        assert store.remove_false_positive("GET__users_id", "t1") is True
        assert store.remove_false_positive("GET__users_id", "t1") is False
        assert not store.is_false_positive("GET__users_id", "t1")


class TestSettingsAndBulk:
    def test_settings_default_when_missing(self, store):
        assert store.load_settings() == Settings()

    def test_settings_round_trip(self, store):
        store.save_settings(Settings(test_delay_ms=250))
        assert store.load_settings().test_delay_ms == 250

    def test_export_then_import_into_new_store(self, store, tmp_path):
        store.save_project(_project(endpoint_ids=["GET__users_id"]))
        store.save_test_results("GET__users_id", [_result("a")])
        store.save_false_positive("GET__users_id", "a", "expected")
        store.save_settings(Settings(max_concurrent_tests=2))
        exported = store.export_data()
        assert set(exported) == {"projects", "testResults", "falsePositives", "settings", "exportedAt"}

        other = JsonStore(tmp_path / "other")
        other.import_data(json.loads(json.dumps(exported)))

        assert other.get_project("p1").endpoint_ids == ["GET__users_id"]
        assert other.load_test_results("GET__users_id").results[0].id == "a"
        assert other.is_false_positive("GET__users_id", "a")
        assert other.load_settings().max_concurrent_tests == 2

    def test_import_only_touches_present_sections(self, store):
        store.save_project(_project())
        store.import_data({"settings": {"test_delay_ms": 0}})
        assert store.get_project("p1") is not None
        assert store.load_settings().test_delay_ms == 0

    def test_import_rejects_invalid_section(self, store):
        with pytest.raises(ValidationError):
            store.import_data({"projects": [{"name": "missing id and url"}]})

    def test_clear_all(self, store):
        store.save_project(_project())
        store.set_current_project("p1")
        store.save_false_positive("GET__users_id", "t1")
        store.clear_all()
        assert store.load_projects() == []
        assert store.get_current_project_id() is None
        assert store.load_false_positives() == {}


class TestCorruptFiles:
    def test_corrupt_file_raises_storage_error(self, store):
        (store.data_dir / "false_positives.json").write_text("{oops")
        with pytest.raises(StorageError, match="Corrupt data file"):
            store.load_false_positives()

    def test_other_keys_still_readable(self, store):
        store.save_project(_project())
        (store.data_dir / "history.json").write_text("")
        assert store.get_project("p1") is not None
        with pytest.raises(StorageError):
            store.load_history()
