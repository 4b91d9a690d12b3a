"""Azure Functions main entry point.

HTTP triggers for document extraction with Document Intelligence and for
issuing upload SAS credentials.

Endpoints:
- POST /api/extract - Analyze a document and wait for the result
- POST /api/analyze - Start an analysis and return its operation id (202)
- GET /api/analyze/{operation_id} - Resume polling a previously started analysis
- GET /api/content?id=... - Raw status/result passthrough for an operation id
- POST /api/upload-sas - Issue upload and read SAS URLs for a new blob
- GET /api/health - Health check endpoint

Every endpoint answers CORS preflights and rejects other methods with 405.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any

import azure.functions as func

from config import ConfigurationError, get_config
from middleware import cors, error_response, validate_request
from models import AnalyzeDocumentRequest, HealthResponse, UploadIntentRequest
from services import (
    AnalysisJob,
    ClientError,
    JobState,
    ResultPolicy,
    UpstreamError,
    configure_json_logging,
    get_analysis_service,
    get_upload_service,
)
from services.upload_service import UploadServiceError

# Callers are not authenticated; the deployment's network perimeter is the boundary
app = func.FunctionApp(http_auth_level=func.AuthLevel.ANONYMOUS)

logger = logging.getLogger(__name__)

# Only the logging variables are read at import
if os.getenv("LOG_FORMAT"):
    configure_json_logging(os.getenv("LOG_LEVEL", "INFO"))

TIMEOUT_MESSAGE = "Document analysis is taking longer than expected. Try polling again."
NOT_FOUND_MESSAGE = "The analysis operation was not found or has expired"


def create_response(
    data: dict[str, Any],
    status_code: int = 200,
) -> func.HttpResponse:
    """Create JSON HTTP response."""
    return func.HttpResponse(
        body=json.dumps(data, default=str),
        status_code=status_code,
        mimetype="application/json",
    )


def build_job_response(job: AnalysisJob) -> tuple[dict[str, Any], int]:
    """Shape an analysis job into a response body and status code.

    Args:
        job: Job in any state.

    Returns:
        tuple: (body, status_code)
    """
    # model and format are needed to resume via GET /api/analyze/{operation_id}
    reference = {
        "operationId": job.operation_id,
        "operationLocation": job.handle,
        "model": job.model_id.value,
        "format": job.output_format.value,
    }

    if job.state is JobState.SUCCEEDED:
        return {
            "success": True,
            **reference,
            "status": job.remote_status,
            "result": job.payload,
            "content": job.content,
            "pages": job.pages,
        }, 200

    if job.state in (JobState.FAILED, JobState.CANCELED):
        return {
            "success": False,
            "status": job.state.value,
            "error": "analysis_failed",
            **reference,
            "details": job.payload,
        }, 400

    if job.state is JobState.NOT_FOUND:
        return {
            "error": "operation_not_found",
            **reference,
            "message": NOT_FOUND_MESSAGE,
        }, 404

    if job.state is JobState.TIMED_OUT:
        return {
            "error": "analysis_timeout",
            **reference,
            "attempts": job.attempts,
            "message": TIMEOUT_MESSAGE,
        }, 408

    # Submitted or still running: hand back the id so the caller can resume
    return {
        "success": False,
        "status": job.remote_status or job.state.value,
        **reference,
    }, 202


def handle_service_error(e: Exception) -> func.HttpResponse:
    """Map service exceptions to error responses.

    Anything unrecognized becomes a 500 carrying the exception message.
    """
    if isinstance(e, ClientError):
        logger.info(f"Client error ({e.code}): {e.message}")
        return error_response(e.code, e.message, status_code=e.status_code)

    if isinstance(e, UpstreamError):
        logger.warning(f"Upstream error ({e.code}): HTTP {e.status_code}")
        return error_response(e.code, e.message, status_code=e.status_code, details=e.details)

    if isinstance(e, ConfigurationError):
        logger.error(f"Configuration error: {e}")
        return error_response("configuration_error", str(e), status_code=500)

    if isinstance(e, UploadServiceError):
        return error_response("sas_generation_failed", e.reason, status_code=500)

    logger.exception(f"Unexpected error: {e}")
    return error_response("internal_error", str(e), status_code=500)


@app.function_name(name="ExtractDocument")
@app.route(route="extract", methods=["POST", "OPTIONS"])
@cors(["POST"])
@validate_request(AnalyzeDocumentRequest)
async def extract_document(
    req: func.HttpRequest, validated: AnalyzeDocumentRequest
) -> func.HttpResponse:
    """Analyze a document and block until the operation finishes.

    Request body:
        {
            "fileUrl": "https://account.blob.core.windows.net/uploads/x.pdf?sv=...",
            "base64": "JVBERi0xLjQK...",  // alternative to fileUrl
            "model": "layout",  // optional: read | layout
            "format": "markdown",  // optional: text | markdown
            "pages": "1-3"  // optional
        }

    Responds 200 with content and pages on success, 400 when the analysis
    failed or was canceled, 404 if the operation vanished and 408 when it is
    still running after the polling budget (poll again via /api/analyze/{id}).
    """
    logger.info("ExtractDocument HTTP trigger invoked")

    try:
        service = get_analysis_service()
        job = await service.analyze(validated, policy=ResultPolicy.WAIT)
    except Exception as e:
        return handle_service_error(e)

    body, status_code = build_job_response(job)
    return create_response(body, status_code=status_code)


@app.function_name(name="StartAnalysis")
@app.route(route="analyze", methods=["POST", "OPTIONS"])
@cors(["POST"])
@validate_request(AnalyzeDocumentRequest)
async def start_analysis(
    req: func.HttpRequest, validated: AnalyzeDocumentRequest
) -> func.HttpResponse:
    """Start an analysis and return immediately with its operation id.

    Same request body as /api/extract. Responds 202 with operationId,
    operationLocation, model and format.
    """
    logger.info("StartAnalysis HTTP trigger invoked")

    try:
        service = get_analysis_service()
        job = await service.analyze(validated, policy=ResultPolicy.HANDLE)
    except Exception as e:
        return handle_service_error(e)

    body, status_code = build_job_response(job)
    return create_response(body, status_code=status_code)


@app.function_name(name="GetAnalysis")
@app.route(route="analyze/{operation_id}", methods=["GET", "OPTIONS"])
@cors(["GET"])
async def get_analysis(req: func.HttpRequest) -> func.HttpResponse:
    """Resume tracking an analysis started earlier.

    Path parameters:
        operation_id: Id returned by POST /api/analyze

    Query parameters:
        model: Model the analysis was started with (default: layout)
        format: Output format it was started with (default: markdown)
        wait: "false" to check once instead of polling to completion
    """
    logger.info("GetAnalysis HTTP trigger invoked")

    operation_id = req.route_params.get("operation_id")
    if not operation_id:
        return error_response("invalid_request", "Missing operation_id in path", status_code=400)

    wait = req.params.get("wait", "true").lower() != "false"

    try:
        service = get_analysis_service()
        job = service.resume(
            operation_id,
            model_id=req.params.get("model"),
            output_format=req.params.get("format"),
        )
        job = await (service.poll(job) if wait else service.check(job))
    except Exception as e:
        return handle_service_error(e)

    body, status_code = build_job_response(job)
    return create_response(body, status_code=status_code)


@app.function_name(name="GetContent")
@app.route(route="content", methods=["GET", "OPTIONS"])
@cors(["GET"])
async def get_content(req: func.HttpRequest) -> func.HttpResponse:
    """Return the service's raw status payload for an operation id.

    Query parameters:
        id: Operation id (required)
        model: Model the analysis was started with (default: layout)

    The upstream status code and body are passed through unchanged.
    """
    logger.info("GetContent HTTP trigger invoked")

    operation_id = req.params.get("id")
    if not operation_id:
        return error_response(
            "invalid_request", "Missing 'id' query parameter", status_code=400
        )

    try:
        service = get_analysis_service()
        job = service.resume(operation_id, model_id=req.params.get("model"))
        status_code, payload = await service.fetch_result(job)
    except Exception as e:
        return handle_service_error(e)

    return create_response(payload, status_code=status_code)


@app.function_name(name="IssueUploadSas")
@app.route(route="upload-sas", methods=["POST", "OPTIONS"])
@cors(["POST"])
@validate_request(UploadIntentRequest)
async def issue_upload_sas(
    req: func.HttpRequest, validated: UploadIntentRequest
) -> func.HttpResponse:
    """Issue SAS URLs for uploading a document straight to Blob Storage.

    Request body (all optional):
        {
            "originalName": "report.pdf",  // extension must be allowed
            "contentType": "application/pdf",
            "prefix": "customer-a/2024"
        }

    The client PUTs the file to uploadUrl with uploadHeaders, then passes
    readUrl as fileUrl to /api/extract.
    """
    logger.info("IssueUploadSas HTTP trigger invoked")

    try:
        service = get_upload_service()
        credential = service.issue(
            original_name=validated.original_name,
            content_type=validated.content_type,
            prefix=validated.prefix,
        )
    except Exception as e:
        return handle_service_error(e)

    return create_response(credential.model_dump(by_alias=True, mode="json"))


@app.function_name(name="Health")
@app.route(route="health", methods=["GET", "OPTIONS"])
@cors(["GET"])
async def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """Health check endpoint reporting which subsystems are configured."""
    config = get_config()
    services: dict[str, str] = {}

    for name, check in (
        ("doc_intel", config.require_doc_intel),
        ("storage", config.require_storage),
    ):
        try:
            check()
            services[name] = "configured"
        except ConfigurationError:
            services[name] = "not_configured"

    overall_status = (
        "healthy" if all(s == "configured" for s in services.values()) else "degraded"
    )

    health = HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        services=services,
    )
    return create_response(health.model_dump(mode="json"))
