"""
Tests for the JSON state document store.
"""

import pytest

from modelflow.core.state import DEFAULT_STATE_PATH, StateStore
from modelflow.exceptions import StateStoreError


class TestStateStore:
    """Reading and writing the state document."""

    def test_disabled_by_default(self, tmp_path):
        store = StateStore({}, project_dir=tmp_path)
        assert not store.enabled
        assert store.path == tmp_path / DEFAULT_STATE_PATH

    def test_relative_path_is_under_project_dir(self, tmp_path):
        store = StateStore({"state": {"enabled": True, "path": "runs/state.json"}}, project_dir=tmp_path)
        assert store.enabled
        assert store.path == tmp_path / "runs" / "state.json"

    def test_save_and_load(self, tmp_path):
        store = StateStore({"state": {"path": str(tmp_path / "nested" / "state.json")}})
        document = {"run_id": "abc", "phase": "MAIN_COMPLETE", "groups": []}
        store.save(document)
        assert store.load() == document
        # no temp files left behind
        assert [p.name for p in (tmp_path / "nested").iterdir()] == ["state.json"]

    def test_load_missing(self, tmp_path):
        assert StateStore({}, project_dir=tmp_path).load() is None

    def test_load_corrupt(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        with pytest.raises(StateStoreError, match="Failed to read state"):
            StateStore({"state": {"path": str(path)}}).load()

    def test_load_non_object(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("[1, 2]")
        with pytest.raises(StateStoreError, match="JSON object"):
            StateStore({"state": {"path": str(path)}}).load()

    def test_save_unserializable(self, tmp_path):
        store = StateStore({"state": {"path": str(tmp_path / "state.json")}})
        with pytest.raises(StateStoreError, match="not serializable"):
            store.save({"value": object()})

    def test_clear(self, tmp_path):
        store = StateStore({"state": {"path": str(tmp_path / "state.json")}})
        store.save({"run_id": None})
        store.clear()
        assert store.load() is None
        store.clear()
