"""
Configuration module for the lunalint client.

Exports the configuration model, defaults and loader functions.
"""

from .client_config import ClientConfig
from .defaults import (
    CLIENT_ID,
    CLIENT_NAME,
    DEFAULT_SERVER_RELATIVE_PATH,
    SERVER_BINARY,
    SERVER_PATH_ENV,
)
from .loader import (
    get_config,
    global_config_path,
    load_config,
    load_config_file,
    merge_configs,
    strip_jsonc_comments,
)

__all__ = [
    # Constants
    "CLIENT_ID",
    "CLIENT_NAME",
    "DEFAULT_SERVER_RELATIVE_PATH",
    "SERVER_BINARY",
    "SERVER_PATH_ENV",
    # Config models
    "ClientConfig",
    # Loader functions
    "load_config",
    "get_config",
    "global_config_path",
    "load_config_file",
    "merge_configs",
    "strip_jsonc_comments",
]
