"""
Tests for configuration loading and resolution.
"""

import pytest

from modelflow.config.loader import Config, _merge_dict, load_config, resolve_env
from modelflow.config.resolver import resolve_config
from modelflow.core.execution.config import EngineConfig, determine_thread_pool_size
from modelflow.exceptions import ConfigurationError

BASE_CONFIG = """
name: planning
engine:
  mode: sequential
  tick_interval: 0.01
groups:
  - id: econ
    outputs:
      - name: gdp_growth
        value: 2.5
        unit: "%"
  - id: fin
    dependencies: [econ]
"""


class TestConfig:
    """Tests for Config class."""

    def test_dot_notation(self):
        cfg = Config({"engine": {"mode": "parallel"}})
        assert cfg.get("engine.mode") == "parallel"
        assert cfg.get("engine.max_parallel", 4) == 4

    def test_contains(self):
        cfg = Config({"a": {"b": 1}})
        assert "a" in cfg
        assert "a.b" in cfg
        assert "a.c" not in cfg

    def test_getitem(self):
        cfg = Config({"name": "test", "nested": {"key": "val"}})
        assert cfg["name"] == "test"
        assert isinstance(cfg["nested"], Config)
        with pytest.raises(KeyError):
            _ = cfg["missing"]

    def test_sections(self):
        cfg = Config({"groups": [{"id": "econ"}]})
        assert cfg.groups == [{"id": "econ"}]
        assert cfg.rules == []
        assert cfg.engine == {}

    def test_validate_valid(self):
        Config({"groups": [{"id": "econ"}], "rules": []}).validate()

    def test_validate_collects_every_error(self):
        cfg = Config(
            {
                "groups": [{"name": "no id"}],
                "rules": [{"target": "fin", "operator": "~", "action": "later"}],
                "execution_order": "econ",
            }
        )
        with pytest.raises(ConfigurationError) as exc_info:
            cfg.validate()
        errors = exc_info.value.details["errors"]
        assert len(errors) == 5
        assert "groups[0] must be a mapping with an 'id'" in errors

    def test_validate_requires_groups(self):
        with pytest.raises(ConfigurationError, match="non-empty list"):
            Config({}).validate()


class TestMergeDict:
    def test_nested_merge(self):
        base = {"engine": {"mode": "sequential", "tick_interval": 0.05}, "name": "a"}
        _merge_dict(base, {"engine": {"mode": "parallel"}, "name": "b"})
        assert base == {"engine": {"mode": "parallel", "tick_interval": 0.05}, "name": "b"}


class TestResolver:
    """Environment variable substitution."""

    def test_env_var(self, monkeypatch):
        monkeypatch.setenv("MODELFLOW_TEST_PATH", "/tmp/state")
        assert resolve_config({"state": {"path": "${MODELFLOW_TEST_PATH}/run.json"}}) == {
            "state": {"path": "/tmp/state/run.json"}
        }

    def test_default_value(self, monkeypatch):
        monkeypatch.delenv("MODELFLOW_TEST_UNSET", raising=False)
        assert resolve_config({"level": "${MODELFLOW_TEST_UNSET:-INFO}"}) == {"level": "INFO"}

    def test_unset_without_default_is_kept(self, monkeypatch):
        monkeypatch.delenv("MODELFLOW_TEST_UNSET", raising=False)
        assert resolve_config({"x": "${MODELFLOW_TEST_UNSET}"}) == {"x": "${MODELFLOW_TEST_UNSET}"}

    def test_env_placeholder_in_lists(self):
        assert resolve_config({"files": ["logs/{env}.log", 3]}, env="prod") == {"files": ["logs/prod.log", 3]}


class TestLoadConfig:
    """Loading config.yaml and environment overrides."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path)

    def test_loads_base_config(self, tmp_path):
        (tmp_path / "config.yaml").write_text(BASE_CONFIG)
        cfg = load_config(tmp_path, env="dev")
        assert cfg.get("name") == "planning"
        assert cfg.get("_env") == "dev"
        assert [g["id"] for g in cfg.groups] == ["econ", "fin"]

    def test_env_file_overrides_base(self, tmp_path):
        (tmp_path / "config.yaml").write_text(BASE_CONFIG)
        (tmp_path / "config.prod.yaml").write_text("engine:\n  mode: parallel\n")
        cfg = load_config(tmp_path, env="prod")
        assert cfg.get("engine.mode") == "parallel"
        assert cfg.get("engine.tick_interval") == 0.01

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "config.yaml").write_text("groups: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Error parsing config.yaml"):
            load_config(tmp_path)

    def test_non_mapping_yaml(self, tmp_path):
        (tmp_path / "config.yaml").write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError, match="must contain a mapping"):
            load_config(tmp_path)

    def test_resolve_env(self, monkeypatch):
        monkeypatch.delenv("MODELFLOW_ENV", raising=False)
        assert resolve_env() == "dev"
        monkeypatch.setenv("MODELFLOW_ENV", "staging")
        assert resolve_env() == "staging"
        assert resolve_env("prod") == "prod"


class TestEngineConfig:
    """The engine section."""

    def test_from_config(self):
        config = EngineConfig.from_config({"engine": {"mode": "parallel", "max_parallel": 3, "max_workers": 2}})
        assert config.parallel
        assert config.max_parallel == 3
        assert config.thread_pool_size == 2

    def test_defaults(self):
        config = EngineConfig.from_config({})
        assert not config.parallel
        assert config.max_parallel is None

    @pytest.mark.parametrize(
        "section",
        [{"mode": "random"}, {"max_parallel": 0}, {"tick_interval": 0}, {"default_duration": -1}],
    )
    def test_invalid_values(self, section):
        with pytest.raises(ConfigurationError):
            EngineConfig.from_config({"engine": section})

    def test_thread_pool_size(self):
        assert 1 <= determine_thread_pool_size("auto") <= 32
        assert determine_thread_pool_size(5) == 5
        with pytest.raises(ConfigurationError):
            determine_thread_pool_size(0)
        with pytest.raises(ConfigurationError):
            determine_thread_pool_size("many")
