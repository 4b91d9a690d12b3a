"""Configuration module for Azure Functions.

Loads configuration from environment variables once per process.
"""

import os
from dataclasses import dataclass, field
from typing import Any


class ConfigurationError(Exception):
    """Raised when required configuration is missing or malformed."""

    def __init__(self, missing_vars: list[str], invalid_vars: list[str] | None = None) -> None:
        self.missing_vars = missing_vars
        self.invalid_vars = invalid_vars or []
        problems = []
        if missing_vars:
            problems.append(f"Missing required environment variables: {', '.join(missing_vars)}")
        if self.invalid_vars:
            problems.append(f"Invalid environment variables: {', '.join(self.invalid_vars)}")
        super().__init__("; ".join(problems))


DEFAULT_API_VERSION = "2024-11-30"
DEFAULT_UPLOAD_EXTENSIONS = "pdf,doc,docx"

_DOC_INTEL_NUMERIC_VARS = (
    "POLL_INTERVAL_SECONDS",
    "POLL_MAX_ATTEMPTS",
    "NOT_FOUND_RETRIES",
    "HTTP_TIMEOUT",
)
_STORAGE_NUMERIC_VARS = ("SAS_TTL_MINUTES",)


def _env_csv(name: str, default: str, lower: bool = False) -> list[str]:
    raw = os.getenv(name) or default
    items = [item.strip() for item in raw.split(",") if item.strip()]
    return [item.lower() for item in items] if lower else items


def _env_number(name: str, default: float, cast: type, invalid: list[str]) -> Any:
    """Parse a numeric variable, recording its name in ``invalid`` on failure."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return cast(default)
    try:
        return cast(raw)
    except ValueError:
        invalid.append(name)
        return cast(default)


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    # Document Intelligence settings
    doc_intel_endpoint: str
    doc_intel_api_key: str
    doc_intel_api_version: str = DEFAULT_API_VERSION

    # Storage settings (for upload SAS issuance)
    storage_account_name: str | None = None
    storage_account_key: str | None = None
    storage_container: str | None = None
    allowed_upload_extensions: list[str] = field(
        default_factory=lambda: DEFAULT_UPLOAD_EXTENSIONS.split(",")
    )
    sas_ttl_minutes: int = 15

    # CORS
    cors_allowed_origins: list[str] = field(default_factory=lambda: ["*"])

    # Polling settings
    poll_interval_seconds: float = 2.0
    poll_max_attempts: int = 30
    not_found_retries: int = 2  # Polls tolerated as 404 while the operation propagates
    http_timeout: float = 30.0

    log_level: str = "INFO"
    log_format: str | None = None  # "json" forces JSON logs outside Azure

    # Variables present but unparseable; reported by the owning subsystem
    invalid_vars: list[str] = field(default_factory=list)

    @classmethod
    def from_environment(cls) -> "Config":
        """Load configuration from environment variables.

        Nothing is required here; each subsystem checks its own settings
        when its service is first requested (see ``require_doc_intel`` and
        ``require_storage``).

        Returns:
            Config: Configuration instance.
        """
        endpoint = os.getenv("AZURE_DI_ENDPOINT") or os.getenv("DOC_INTEL_ENDPOINT") or ""
        api_key = os.getenv("AZURE_DI_KEY") or os.getenv("DOC_INTEL_API_KEY") or ""
        invalid: list[str] = []

        return cls(
            doc_intel_endpoint=endpoint.rstrip("/"),
            doc_intel_api_key=api_key,
            doc_intel_api_version=os.getenv("DOC_INTEL_API_VERSION", DEFAULT_API_VERSION),
            storage_account_name=os.getenv("AZURE_STORAGE_ACCOUNT_NAME"),
            storage_account_key=os.getenv("AZURE_STORAGE_ACCOUNT_KEY"),
            storage_container=os.getenv("AZURE_STORAGE_CONTAINER"),
            allowed_upload_extensions=_env_csv(
                "ALLOWED_UPLOAD_EXTS", DEFAULT_UPLOAD_EXTENSIONS, lower=True
            ),
            sas_ttl_minutes=_env_number("SAS_TTL_MINUTES", 15, int, invalid),
            cors_allowed_origins=_env_csv("CORS_ALLOW_ORIGIN", "*"),
            poll_interval_seconds=_env_number("POLL_INTERVAL_SECONDS", 2.0, float, invalid),
            poll_max_attempts=_env_number("POLL_MAX_ATTEMPTS", 30, int, invalid),
            not_found_retries=_env_number("NOT_FOUND_RETRIES", 2, int, invalid),
            http_timeout=_env_number("HTTP_TIMEOUT", 30.0, float, invalid),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT"),
            invalid_vars=invalid,
        )

    def require_doc_intel(self) -> None:
        """Raise ConfigurationError unless Document Intelligence is configured."""
        missing = []
        if not self.doc_intel_endpoint:
            missing.append("AZURE_DI_ENDPOINT")
        if not self.doc_intel_api_key:
            missing.append("AZURE_DI_KEY")
        invalid = [var for var in self.invalid_vars if var in _DOC_INTEL_NUMERIC_VARS]
        if missing or invalid:
            raise ConfigurationError(missing, invalid)

    def require_storage(self) -> None:
        """Raise ConfigurationError unless upload SAS issuance is configured."""
        missing = [
            var
            for var, value in (
                ("AZURE_STORAGE_ACCOUNT_NAME", self.storage_account_name),
                ("AZURE_STORAGE_ACCOUNT_KEY", self.storage_account_key),
                ("AZURE_STORAGE_CONTAINER", self.storage_container),
            )
            if not value
        ]
        invalid = [var for var in self.invalid_vars if var in _STORAGE_NUMERIC_VARS]
        if missing or invalid:
            raise ConfigurationError(missing, invalid)


# Global config instance (initialized on first access)
_config: Config | None = None


def get_config() -> Config:
    """Get the application configuration (singleton).

    Returns:
        Config: Application configuration instance.
    """
    global _config
    if _config is None:
        _config = Config.from_environment()
    return _config


def reset_config() -> None:
    """Drop the cached configuration (for testing)."""
    global _config
    _config = None
