"""Pydantic models for API request/response validation.

Model id and output format are normalized permissively: unknown values fall
back to the defaults instead of failing validation.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ModelId(str, Enum):
    """Document Intelligence prebuilt models accepted by the API."""

    READ = "prebuilt-read"
    LAYOUT = "prebuilt-layout"


class OutputFormat(str, Enum):
    """Content format requested from Document Intelligence."""

    TEXT = "text"
    MARKDOWN = "markdown"


DEFAULT_MODEL_ID = ModelId.LAYOUT
DEFAULT_OUTPUT_FORMAT = OutputFormat.MARKDOWN

_MODEL_ALIASES = {
    "read": ModelId.READ,
    "prebuilt-read": ModelId.READ,
    "layout": ModelId.LAYOUT,
    "prebuilt-layout": ModelId.LAYOUT,
}


def normalize_model_id(value: Any) -> ModelId:
    """Map a requested model to a supported one, defaulting to layout."""
    if isinstance(value, ModelId):
        return value
    if isinstance(value, str):
        return _MODEL_ALIASES.get(value.strip().lower(), DEFAULT_MODEL_ID)
    return DEFAULT_MODEL_ID


def normalize_output_format(value: Any) -> OutputFormat:
    """Map a requested format to a supported one, defaulting to markdown."""
    if isinstance(value, OutputFormat):
        return value
    if isinstance(value, str) and value.strip().lower() == OutputFormat.TEXT.value:
        return OutputFormat.TEXT
    return DEFAULT_OUTPUT_FORMAT


# ============================================================================
# Request Models
# ============================================================================


class AnalyzeDocumentRequest(BaseModel):
    """Request body for POST /api/extract and POST /api/analyze."""

    file_url: str | None = Field(
        default=None,
        alias="fileUrl",
        description="URL Document Intelligence can read (e.g. a read SAS URL)",
    )
    base64: str | None = Field(
        default=None,
        description="Inline document bytes, base64 encoded, optionally as a data: URI",
    )
    model: ModelId = Field(
        default=DEFAULT_MODEL_ID,
        description="read or layout (prebuilt- prefix optional); defaults to layout",
    )
    format: OutputFormat = Field(
        default=DEFAULT_OUTPUT_FORMAT,
        description="text or markdown; defaults to markdown",
    )
    pages: str | None = Field(
        default=None,
        description="Page selector passed through to the service (e.g. '1-3,5')",
    )

    model_config = {"populate_by_name": True}

    @field_validator("model", mode="before")
    @classmethod
    def default_model(cls, v: Any) -> ModelId:
        """Fall back to the layout model for unknown values."""
        return normalize_model_id(v)

    @field_validator("format", mode="before")
    @classmethod
    def default_format(cls, v: Any) -> OutputFormat:
        """Fall back to markdown for unknown values."""
        return normalize_output_format(v)

    @field_validator("file_url", "base64", mode="before")
    @classmethod
    def empty_as_missing(cls, v: Any) -> str | None:
        """Treat empty values as absent; stringify anything else."""
        if v is None or v == "":
            return None
        return str(v)

    @field_validator("pages", mode="before")
    @classmethod
    def pages_as_string(cls, v: Any) -> str | None:
        """Accept numeric page selectors."""
        if v is None or v == "":
            return None
        return str(v)


class UploadIntentRequest(BaseModel):
    """Request body for POST /api/upload-sas."""

    original_name: str | None = Field(
        default=None,
        alias="originalName",
        description="Client file name, used only to infer the extension",
    )
    content_type: str | None = Field(
        default=None,
        alias="contentType",
        description="Content-Type the client should send with the upload",
    )
    prefix: str | None = Field(
        default=None,
        description="Logical folder for the blob; sanitized before use",
    )

    model_config = {"populate_by_name": True}


# ============================================================================
# Response Models
# ============================================================================


class UploadCredential(BaseModel):
    """Response for POST /api/upload-sas."""

    ok: bool = True
    blob_name: str = Field(..., alias="blobName")
    blob_url: str = Field(..., alias="blobUrl")
    upload_url: str = Field(..., alias="uploadUrl")
    read_url: str = Field(..., alias="readUrl")
    upload_headers: dict[str, str] = Field(default_factory=dict, alias="uploadHeaders")
    starts_on: datetime = Field(..., alias="startsOn")
    expires_on: datetime = Field(..., alias="expiresOn")

    model_config = {"populate_by_name": True}


class HealthResponse(BaseModel):
    """Response for GET /api/health endpoint."""

    status: str
    timestamp: datetime
    version: str = Field(default="1.0.0")
    services: dict[str, str] = Field(default_factory=dict)

