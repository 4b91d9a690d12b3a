"""Service factory module.

Implements pseudo-dependency injection with singleton pattern.
Services are built once from the process configuration and reused for the
function lifetime; they hold no per-request state.
"""

from .analysis_service import (
    TERMINAL_STATES,
    AnalysisJob,
    AnalysisService,
    JobState,
    ResultPolicy,
    extract_operation_id,
)
from .errors import ClientError, InvalidRequestError, UnsupportedTypeError, UpstreamError
from .logging_service import (
    JsonFormatter,
    StructuredLogger,
    configure_json_logging,
    get_structured_logger,
)
from .upload_service import UploadCredentialService, UploadServiceError, sanitize_prefix

# Global service instances
_analysis_service: AnalysisService | None = None
_upload_service: UploadCredentialService | None = None


def get_analysis_service() -> AnalysisService:
    """Get or create AnalysisService singleton.

    Returns:
        AnalysisService: Document Intelligence orchestrator.

    Raises:
        ConfigurationError: If the endpoint or key is not configured.
    """
    global _analysis_service
    if _analysis_service is None:
        from config import get_config

        config = get_config()
        config.require_doc_intel()
        _analysis_service = AnalysisService(
            endpoint=config.doc_intel_endpoint,
            api_key=config.doc_intel_api_key,
            api_version=config.doc_intel_api_version,
            poll_interval=config.poll_interval_seconds,
            max_attempts=config.poll_max_attempts,
            not_found_retries=config.not_found_retries,
            timeout=config.http_timeout,
        )
    return _analysis_service


def get_upload_service() -> UploadCredentialService:
    """Get or create UploadCredentialService singleton.

    Returns:
        UploadCredentialService: SAS issuer for direct uploads.

    Raises:
        ConfigurationError: If storage account settings are missing.
    """
    global _upload_service
    if _upload_service is None:
        from config import get_config

        config = get_config()
        config.require_storage()
        _upload_service = UploadCredentialService(
            account_name=config.storage_account_name,
            account_key=config.storage_account_key,
            container_name=config.storage_container,
            allowed_extensions=config.allowed_upload_extensions,
            ttl_minutes=config.sas_ttl_minutes,
        )
    return _upload_service


def reset_services() -> None:
    """Reset service instances (for testing).

    This allows tests to re-initialize services with different configurations.
    """
    global _analysis_service, _upload_service
    _analysis_service = None
    _upload_service = None


__all__ = [
    "AnalysisService",
    "AnalysisJob",
    "JobState",
    "ResultPolicy",
    "TERMINAL_STATES",
    "UploadCredentialService",
    "UploadServiceError",
    "ClientError",
    "InvalidRequestError",
    "UnsupportedTypeError",
    "UpstreamError",
    "JsonFormatter",
    "StructuredLogger",
    "extract_operation_id",
    "sanitize_prefix",
    "get_analysis_service",
    "get_upload_service",
    "get_structured_logger",
    "configure_json_logging",
    "reset_services",
]
