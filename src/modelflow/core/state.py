"""
State document for runs, groups, and modules.

One JSON document per project, rewritten after every phase transition when
``state.enabled`` is set in config.yaml.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from modelflow.exceptions import StateStoreError
from modelflow.utils.logging import get_logger

logger = get_logger("modelflow.state")

DEFAULT_STATE_PATH = ".modelflow/state.json"


class StateStore:
    """Reads and writes the JSON state document."""

    def __init__(self, config: dict[str, Any], project_dir: Path | None = None):
        """
        Initialize state store.

        Args:
            config: Configuration dictionary; reads the ``state`` section
            project_dir: Base directory for a relative ``state.path``
        """
        state_config = config.get("state") or {}
        self.enabled = bool(state_config.get("enabled", False))
        path = Path(state_config.get("path") or DEFAULT_STATE_PATH)
        if project_dir is not None and not path.is_absolute():
            path = Path(project_dir) / path
        self.path = path

    def save(self, document: dict[str, Any]) -> None:
        """
        Write the document atomically (temp file + rename).

        Raises:
            StateStoreError: the document cannot be serialized or written
        """
        try:
            payload = json.dumps(document, indent=2, sort_keys=True)
        except (TypeError, ValueError) as e:
            raise StateStoreError(f"State document is not serializable: {e}") from None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".state-", suffix=".json", dir=self.path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, self.path)
        except OSError as e:
            raise StateStoreError(f"Failed to write state to {self.path}: {e}") from None
        logger.debug(f"State saved to {self.path}")

    def load(self) -> dict[str, Any] | None:
        """
        Read the document, or None if there is none yet.

        Raises:
            StateStoreError: the file exists but cannot be read or parsed
        """
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as fh:
                document = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            raise StateStoreError(f"Failed to read state from {self.path}: {e}") from None
        if not isinstance(document, dict):
            raise StateStoreError(f"State file {self.path} does not hold a JSON object")
        return document

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
