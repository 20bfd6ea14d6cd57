"""
Configuration file loading.

Loads config.yaml from the project directory, merges config.{env}.yaml on top
of it, and resolves ``${VAR}`` / ``{env}`` placeholders.
"""

import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

from modelflow.config.resolver import resolve_config
from modelflow.core.types import VALID_ACTIONS, VALID_OPERATORS
from modelflow.exceptions import ConfigurationError

DEFAULT_ENV = "dev"
ENV_VAR = "MODELFLOW_ENV"


class Config:
    """Modelflow configuration container with dict-like access."""

    def __init__(self, data: dict[str, Any]):
        self.data = data
        # Convenience properties for common config sections
        self.engine = data.get("engine") or {}
        self.groups = data.get("groups") or []
        self.rules = data.get("rules") or []

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation."""
        value = self.data
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default
        return value

    def __getitem__(self, key: str) -> Any:
        """Dict-like access: config['key'] or config['nested.key']."""
        if "." in key:
            return self.get(key)
        if key in self.data:
            value = self.data[key]
            if isinstance(value, dict):
                return Config(value)
            return value
        raise KeyError(f"Config key '{key}' not found")

    def __contains__(self, key: str) -> bool:
        if "." in key:
            value = self.data
            for k in key.split("."):
                if not isinstance(value, dict) or k not in value:
                    return False
                value = value[k]
            return True
        return key in self.data

    def __iter__(self) -> Iterator[str]:
        return iter(self.data)

    def keys(self):
        return self.data.keys()

    def items(self):
        return self.data.items()

    def validate(self) -> None:
        """
        Validate configuration structure.

        Checks shapes only; ids, cycles, and compute references are validated
        when the engine is built.

        Raises:
            ConfigurationError: listing every problem found
        """
        errors = []

        groups = self.data.get("groups")
        if not isinstance(groups, list) or not groups:
            errors.append("'groups' must be a non-empty list")
        else:
            for i, group in enumerate(groups):
                if not isinstance(group, dict) or not group.get("id"):
                    errors.append(f"groups[{i}] must be a mapping with an 'id'")
                    continue
                modules = group.get("modules")
                if modules is not None and not isinstance(modules, list):
                    errors.append(f"groups[{i}].modules must be a list")

        rules = self.data.get("rules")
        if rules is not None:
            if not isinstance(rules, list):
                errors.append("'rules' must be a list")
            else:
                for i, rule in enumerate(rules):
                    if not isinstance(rule, dict):
                        errors.append(f"rules[{i}] must be a mapping")
                        continue
                    missing = [k for k in ("target", "source", "output", "value") if k not in rule]
                    if missing:
                        errors.append(f"rules[{i}] is missing {', '.join(missing)}")
                    if rule.get("operator", "==") not in VALID_OPERATORS:
                        errors.append(f"rules[{i}].operator must be one of {sorted(VALID_OPERATORS)}")
                    if rule.get("action", "run") not in VALID_ACTIONS:
                        errors.append(f"rules[{i}].action must be one of {sorted(VALID_ACTIONS)}")

        engine = self.data.get("engine")
        if engine is not None and not isinstance(engine, dict):
            errors.append("'engine' must be a mapping")

        order = self.data.get("execution_order")
        if order is not None and not isinstance(order, list):
            errors.append("'execution_order' must be a list of group ids")

        if errors:
            raise ConfigurationError("Invalid configuration:\n  " + "\n  ".join(errors), details={"errors": errors})


def resolve_env(env: str | None = None) -> str:
    """Environment name from the argument, else MODELFLOW_ENV, else 'dev'."""
    return env or os.getenv(ENV_VAR) or DEFAULT_ENV


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        where = f" at line {mark.line + 1}, column {mark.column + 1}" if mark else ""
        raise ConfigurationError(
            f"Error parsing {path.name}{where}:\n"
            f"  {e}\n"
            f"  Suggestion: Check YAML syntax, ensure proper indentation and quotes",
            details={"file": str(path)},
        ) from None
    except PermissionError as e:
        raise ConfigurationError(f"Permission denied reading {path}: {e}") from None
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path.name} must contain a mapping, got {type(data).__name__}")
    return data


def load_config(project_path: Path | None = None, env: str | None = None) -> Config:
    """
    Load Modelflow configuration.

    Args:
        project_path: Path to project root (default: current directory)
        env: Environment name (default: MODELFLOW_ENV or 'dev')

    Returns:
        Config instance with merged configuration

    Raises:
        FileNotFoundError: config.yaml does not exist
        ConfigurationError: a config file cannot be parsed
    """
    project_path = Path(project_path) if project_path is not None else Path.cwd()

    base_config_path = project_path / "config.yaml"
    if not base_config_path.is_file():
        raise FileNotFoundError(
            f"Configuration file not found: {base_config_path}\n"
            f"  Suggestion: Create a config.yaml file in your project root"
        )
    config_data = _read_yaml(base_config_path)

    env_name = resolve_env(env)
    env_config_path = project_path / f"config.{env_name}.yaml"
    if env_config_path.is_file():
        # env overrides base
        _merge_dict(config_data, _read_yaml(env_config_path))

    config_data = resolve_config(config_data, env_name)
    config_data["_env"] = env_name
    config_data["_project_dir"] = str(project_path)
    return Config(config_data)


def _merge_dict(base: dict, override: dict):
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dict(base[key], value)
        else:
            base[key] = value
