"""
Modelflow startup initialization.

Orchestrates initialization of all components in the correct order:
1. Config (with validation)
2. Logging
3. State store
4. Engine (groups, dependency graphs, cycle detection, rules, compute)
5. Persisted state (if enabled and present)
"""

import sys
from pathlib import Path

import yaml

from modelflow.config.loader import Config, load_config, resolve_env
from modelflow.core.compute import ComputeRegistry
from modelflow.core.engine import WorkflowEngine
from modelflow.core.state import StateStore
from modelflow.exceptions import InitializationError, ModelflowError, StateStoreError
from modelflow.utils.logging import get_logger, setup_logging_from_config

logger = get_logger("modelflow.initialization")


class ModelflowInitializer:
    """Handles complete initialization of a Modelflow project."""

    def __init__(
        self,
        project_dir: Path,
        env: str | None = None,
        verbose: bool = False,
        registry: ComputeRegistry | None = None,
        restore_state: bool = True,
    ):
        self.project_dir = Path(project_dir)
        self.env = resolve_env(env)
        self.verbose = verbose
        self.registry = registry
        self.restore_state = restore_state

        # Initialized components
        self.config: Config | None = None
        self.state_store: StateStore | None = None
        self.engine: WorkflowEngine | None = None

    def initialize_all(self) -> tuple[Config, WorkflowEngine]:
        """
        Initialize all components in the correct order.

        Returns:
            Tuple of (config, engine)

        Raises:
            InitializationError: If a startup step fails
            ConfigurationError: If the workflow definition is invalid
        """
        self.config = self._initialize_config()
        self._initialize_logging()
        self._initialize_state_store()
        self.engine = self._initialize_engine()
        self._restore_state()
        return self.config, self.engine

    def _initialize_config(self) -> Config:
        """Initialize and validate configuration."""
        try:
            config = load_config(self.project_dir, env=self.env)
            config.validate()
            return config
        except (FileNotFoundError, PermissionError, yaml.YAMLError) as e:
            raise InitializationError(str(e)) from None
        except ModelflowError:
            raise
        except Exception as e:
            raise InitializationError(f"Unexpected error loading config: {e}") from None

    def _initialize_logging(self) -> None:
        """Initialize logging from config."""
        try:
            data = dict(self.config.data)
            if self.verbose:
                data["logging"] = {**(data.get("logging") or {}), "level": "DEBUG"}
            setup_logging_from_config(data, project_dir=self.project_dir)
        except (OSError, TypeError, ValueError) as e:
            raise InitializationError(f"Failed to initialize logging: {e}") from None

    def _initialize_state_store(self) -> None:
        state_config = self.config.get("state") or {}
        if not state_config.get("enabled", False):
            self.state_store = None
            return
        self.state_store = StateStore(self.config.data, project_dir=self.project_dir)

    def _initialize_engine(self) -> WorkflowEngine:
        """Build groups, graphs, and rules; resolve compute references."""
        # Compute references ("package.module:function") resolve relative to the project
        project_root = str(self.project_dir.resolve())
        if project_root not in sys.path:
            sys.path.insert(0, project_root)
        try:
            engine = WorkflowEngine.from_config(self.config.data, registry=self.registry, state_store=self.state_store)
        except ModelflowError:
            raise
        except (TypeError, ValueError) as e:
            raise InitializationError(f"Failed to build workflow: {e}") from None
        logger.debug(
            f"Loaded {len(engine.groups)} groups and {len(engine.modules)} modules "
            f"(env={self.env}, mode={engine.config.mode})"
        )
        return engine

    def _restore_state(self) -> None:
        if not self.restore_state or self.state_store is None:
            return
        try:
            document = self.state_store.load()
        except StateStoreError as e:
            logger.warning(f"Ignoring unreadable state: {e.message}")
            return
        if document is not None:
            self.engine.restore_document(document)


def initialize(
    project_dir: Path,
    env: str | None = None,
    verbose: bool = False,
    registry: ComputeRegistry | None = None,
    restore_state: bool = True,
) -> tuple[Config, WorkflowEngine]:
    """
    Initialize a Modelflow project.

    Args:
        project_dir: Project directory path
        env: Environment name (default: from MODELFLOW_ENV env var or "dev")
        verbose: Enable debug logging
        registry: Compute functions registered in code
        restore_state: Load the persisted state document when state is enabled

    Returns:
        Tuple of (config, engine)

    Raises:
        InitializationError: If initialization fails
    """
    initializer = ModelflowInitializer(project_dir, env, verbose, registry, restore_state)
    return initializer.initialize_all()
