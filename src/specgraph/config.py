"""SpecGraph Store Configuration

Configuration loading with environment variable support and sensible defaults.

Environment Variables:
    SPECGRAPH_CONFIG_PATH: Path to config file (default: specgraph-config.yaml in base dir)
    SPECGRAPH_ROOTS: Override content roots (os.pathsep separated)
    SPECGRAPH_PLAN_PATH: Override plan document path

Configuration Schema:
    store:
        roots: list[str] - Directories holding capability/enabler documents
        plan_document: str - Plan document carrying the document templates
    defaults:
        owner: str - Owner written into new documents
        analysis_review / design_review / code_review: str - Review defaults
        version: str - Version written into new documents
    watcher:
        debounce_seconds: float - Quiet period before external edits are published
    server:
        log_level: str - Logging level (default: "INFO")
"""

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "specgraph-config.yaml"

# Default configuration values
DEFAULT_CONFIG: dict[str, Any] = {
    "store": {
        "roots": ["specifications"],
        "plan_document": "SOFTWARE_DEVELOPMENT_PLAN.md",
    },
    "defaults": {
        "owner": "Product Team",
        "analysis_review": "Required",
        "design_review": "Required",
        "code_review": "Not Required",
        "version": "1.0",
    },
    "watcher": {
        "debounce_seconds": 1.0,
    },
    "server": {
        "log_level": "INFO",
    },
}


@dataclass(frozen=True)
class StoreContext:
    """Explicit store configuration threaded through every store operation.

    Replaces ambient module state so independent stores can coexist
    (one per test, one per workspace).
    """

    roots: tuple[Path, ...]
    plan_path: Path | None = None
    defaults: dict[str, str] = field(default_factory=dict)

    @property
    def primary_root(self) -> Path:
        """First configured root; new documents without a better home go here."""
        if not self.roots:
            raise ConfigurationError("No content roots configured")
        return self.roots[0]

    def default(self, key: str) -> str:
        return self.defaults.get(key, DEFAULT_CONFIG["defaults"].get(key, ""))


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge override dict into base dict.

    Args:
        base: Base dictionary (defaults)
        override: Override dictionary (user config)

    Returns:
        Merged dictionary with override values taking precedence
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _resolve_path(path: str | None, base_dir: Path) -> Path | None:
    """
    Resolve a path, making relative paths absolute from base_dir.

    Args:
        path: Path string (absolute or relative) or None
        base_dir: Base directory for relative path resolution

    Returns:
        Resolved absolute Path or None if path was None
    """
    if path is None:
        return None

    path_obj = Path(path)
    if path_obj.is_absolute():
        return path_obj
    return (base_dir / path_obj).resolve()


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_config(
    config_path: str | None = None, base_dir: Path | None = None
) -> dict[str, Any]:
    """
    Load configuration from YAML file with environment variable overrides.

    Configuration Loading Order (later overrides earlier):
    1. Default values (DEFAULT_CONFIG)
    2. Config file (from config_path parameter or SPECGRAPH_CONFIG_PATH)
    3. Environment variable overrides (SPECGRAPH_ROOTS, SPECGRAPH_PLAN_PATH)

    Args:
        config_path: Explicit config file path (overrides SPECGRAPH_CONFIG_PATH)
        base_dir: Directory for relative path resolution (default: cwd)

    Returns:
        Merged configuration dictionary

    Raises:
        ConfigurationError: If an explicit config file exists but is invalid YAML
    """
    if base_dir is None:
        base_dir = Path.cwd()

    config = copy.deepcopy(DEFAULT_CONFIG)

    file_path = config_path or os.environ.get("SPECGRAPH_CONFIG_PATH")

    if file_path:
        # Explicit config path - must be valid if it exists
        resolved_path = _resolve_path(file_path, base_dir)
        if resolved_path and resolved_path.exists():
            try:
                config = _deep_merge(config, _read_yaml(resolved_path))
                logger.info(f"Loaded configuration from: {resolved_path}")
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
            except OSError as e:
                raise ConfigurationError(f"Cannot read config file: {e}") from e
        else:
            logger.warning(f"Config file not found (using defaults): {file_path}")
    else:
        default_config_path = base_dir / CONFIG_FILENAME
        if default_config_path.exists():
            try:
                config = _deep_merge(config, _read_yaml(default_config_path))
                logger.info(f"Loaded configuration from: {default_config_path}")
            except yaml.YAMLError as e:
                logger.warning(f"Invalid YAML in default config (ignoring): {e}")
            except OSError as e:
                logger.warning(f"Cannot read default config (ignoring): {e}")
        else:
            logger.debug("No config file found, using defaults")

    roots_override = os.environ.get("SPECGRAPH_ROOTS")
    if roots_override:
        config["store"]["roots"] = [p for p in roots_override.split(os.pathsep) if p]
        logger.info(f"Content roots override from env: {roots_override}")

    plan_override = os.environ.get("SPECGRAPH_PLAN_PATH")
    if plan_override:
        config["store"]["plan_document"] = plan_override
        logger.info(f"Plan document override from env: {plan_override}")

    roots = config["store"].get("roots") or []
    if isinstance(roots, str):
        roots = [roots]
    config["store"]["roots"] = [str(_resolve_path(r, base_dir)) for r in roots]

    plan = config["store"].get("plan_document")
    config["store"]["plan_document"] = (
        str(_resolve_path(plan, base_dir)) if plan else None
    )

    return config


def build_context(config: dict[str, Any]) -> StoreContext:
    """
    Build the StoreContext for a loaded configuration.

    Args:
        config: Configuration dictionary from load_config()

    Returns:
        Frozen StoreContext
    """
    store = config.get("store", {})
    plan = store.get("plan_document")
    defaults = {
        key: str(value) for key, value in (config.get("defaults") or {}).items()
    }
    return StoreContext(
        roots=tuple(Path(r) for r in store.get("roots", [])),
        plan_path=Path(plan) if plan else None,
        defaults=defaults,
    )


def get_debounce_seconds(config: dict[str, Any]) -> float:
    """Watcher debounce interval from config."""
    return float(config.get("watcher", {}).get("debounce_seconds", 1.0))


def get_log_level(config: dict[str, Any]) -> int:
    """Resolve server.log_level to a logging level constant."""
    name = str(config.get("server", {}).get("log_level", "INFO")).upper()
    return getattr(logging, name, logging.INFO)
