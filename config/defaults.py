"""Default configuration values."""

import sys

# Client identity
CLIENT_ID = "lunalint"
CLIENT_NAME = "Lunalint"
CLIENT_VERSION = "0.1.0"

# Server executable, relative to the extension's installation root
SERVER_BINARY = "lunalintd.exe" if sys.platform == "win32" else "lunalintd"
DEFAULT_SERVER_RELATIVE_PATH = f"../target/debug/{SERVER_BINARY}"
SERVER_PATH_ENV = "LUNALINT_SERVER_PATH"

# Document scope
DEFAULT_FILE_EXTENSION = "lua"
DEFAULT_LANGUAGE_ID = "lua"
DEFAULT_SCHEME = "file"

# Reload marker watched when watch_trigger is "marker"
DEFAULT_MARKER_FILE = ".clientrc"

# Channel timeouts (seconds)
DEFAULT_INITIALIZE_TIMEOUT = 5.0
DEFAULT_REQUEST_TIMEOUT = 2.0
DEFAULT_SHUTDOWN_TIMEOUT = 2.0

# Config file locations
PROJECT_CONFIG_FILES = ("lunalint.jsonc", "lunalint.json", ".lunalint/lunalint.jsonc")
GLOBAL_CONFIG_DIR = ".lunalint"
GLOBAL_CONFIG_FILE = "lunalint.jsonc"
