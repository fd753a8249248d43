"""Configuration loading utilities."""

import json
import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

from .client_config import ClientConfig
from .defaults import (
    GLOBAL_CONFIG_DIR,
    GLOBAL_CONFIG_FILE,
    PROJECT_CONFIG_FILES,
    SERVER_PATH_ENV,
)

logger = logging.getLogger(__name__)


def strip_jsonc_comments(content: str) -> str:
    """
    Strip comments from JSONC content to convert to valid JSON.

    Handles:
    - Single-line comments: // comment
    - Multi-line comments: /* comment */

    Args:
        content: JSONC content string

    Returns:
        JSON string with comments removed
    """
    content = re.sub(r"/\*.*?\*/", "", content, flags=re.DOTALL)
    # Leave "//" inside strings alone (e.g. URLs)
    content = re.sub(r'("(?:\\.|[^"\\])*")|//[^\n]*', lambda m: m.group(1) or "", content)
    return content


def load_config_file(path: Path) -> dict[str, Any] | None:
    """
    Load a config file from the given path.

    Supports both .json and .jsonc files with comment stripping.

    Args:
        path: Path to the config file

    Returns:
        Parsed config dictionary or None if the file is missing or invalid
    """
    if not path.exists():
        return None

    try:
        content = path.read_text(encoding="utf-8")
        if path.suffix == ".jsonc":
            content = strip_jsonc_comments(content)
        data = json.loads(content)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to load config from %s: %s", path, e)
        return None

    if not isinstance(data, dict):
        logger.warning("Ignoring config %s: top-level value must be an object", path)
        return None
    return data


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two configuration dictionaries.

    Args:
        base: Base configuration
        override: Override configuration (takes precedence)

    Returns:
        Merged configuration dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def global_config_path() -> Path:
    """Location of the user-level config file."""
    return Path.home() / GLOBAL_CONFIG_DIR / GLOBAL_CONFIG_FILE


def load_config(project_root: Path | None = None, global_path: Path | None = None) -> ClientConfig:
    """
    Load client configuration from multiple sources with precedence.

    Sources, lowest precedence first:
    1. Global: ~/.lunalint/lunalint.jsonc
    2. Project: first of lunalint.jsonc, lunalint.json, .lunalint/lunalint.jsonc
    3. The LUNALINT_SERVER_PATH environment variable (server_path only)

    Args:
        project_root: Workspace directory (defaults to current working directory)
        global_path: Override for the global config location

    Returns:
        Loaded and validated ClientConfig
    """
    if project_root is None:
        project_root = Path.cwd()

    config_data = load_config_file(global_path or global_config_path()) or {}

    for name in PROJECT_CONFIG_FILES:
        path = project_root / name
        project_config = load_config_file(path)
        if project_config:
            logger.debug("Loaded project config from %s", path)
            config_data = merge_configs(config_data, project_config)
            break

    env_server = os.environ.get(SERVER_PATH_ENV, "").strip()
    if env_server:
        config_data["server_path"] = env_server

    return ClientConfig(**config_data)


@lru_cache(maxsize=1)
def get_config(project_root: Path | None = None) -> ClientConfig:
    """
    Get cached configuration.

    To reload the config, clear the cache with get_config.cache_clear().
    """
    return load_config(project_root or Path.cwd())
