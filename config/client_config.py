"""ClientConfig model."""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from .defaults import (
    DEFAULT_FILE_EXTENSION,
    DEFAULT_INITIALIZE_TIMEOUT,
    DEFAULT_LANGUAGE_ID,
    DEFAULT_MARKER_FILE,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SERVER_RELATIVE_PATH,
    DEFAULT_SHUTDOWN_TIMEOUT,
)


class ClientConfig(BaseModel):
    """Settings for the lunalint client session."""

    server_path: str | None = Field(
        default=None,
        description="Explicit server executable; overrides the extension-relative path",
    )
    server_args: list[str] = Field(
        default_factory=list,
        description="Arguments passed to the server executable",
    )
    server_relative_path: str = Field(
        default=DEFAULT_SERVER_RELATIVE_PATH,
        description="Server executable path relative to the extension root",
    )
    file_extension: str = Field(
        default=DEFAULT_FILE_EXTENSION,
        description="Source file extension in scope, without the leading dot",
    )
    language_id: str | None = Field(
        default=DEFAULT_LANGUAGE_ID,
        description="Content-language tag declared in the document selector",
    )
    watch_trigger: Literal["source", "marker"] = Field(
        default="source",
        description="'source' watches source files; 'marker' also watches the reload marker",
    )
    marker_file: str = Field(
        default=DEFAULT_MARKER_FILE,
        description="Reload marker file name watched when watch_trigger is 'marker'",
    )
    initialize_timeout: float = Field(
        default=DEFAULT_INITIALIZE_TIMEOUT,
        gt=0,
        description="Seconds to wait for the initialize handshake",
    )
    request_timeout: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT,
        gt=0,
        description="Seconds to wait for any other request",
    )
    shutdown_timeout: float = Field(
        default=DEFAULT_SHUTDOWN_TIMEOUT,
        gt=0,
        description="Seconds to wait for the shutdown request",
    )
    save_include_text: bool = Field(
        default=True,
        description="Always send the document text with didSave",
    )
    trace: bool = Field(
        default=False,
        description="Log every JSON-RPC message at DEBUG level",
    )

    @field_validator("file_extension")
    @classmethod
    def _strip_dot(cls, value: str) -> str:
        value = value.strip().lstrip(".")
        if not value:
            raise ValueError("file_extension must not be empty")
        return value
