"""Document Intelligence analysis service.

Submits documents to the analyze endpoint and tracks the resulting
long-running operation through its Operation-Location handle. One
submit/poll state machine serves every HTTP variant; callers choose how
much of it to run through a ``ResultPolicy``.
"""

import asyncio
import base64
import binascii
import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import quote

import httpx

from config import DEFAULT_API_VERSION
from models import (
    AnalyzeDocumentRequest,
    ModelId,
    OutputFormat,
    normalize_model_id,
    normalize_output_format,
)

from .errors import InvalidRequestError, UpstreamError
from .logging_service import get_structured_logger

logger = get_structured_logger(__name__)

SUBSCRIPTION_KEY_HEADER = "Ocp-Apim-Subscription-Key"
OPERATION_LOCATION_HEADER = "operation-location"

_DATA_URI_PREFIX = re.compile(r"^data:.*;base64,")
_WHITESPACE = re.compile(r"\s+")
_OPERATION_ID = re.compile(r"/analyzeResults/([^/?]+)")


class JobState(str, Enum):
    """Lifecycle of one analysis operation."""

    SUBMITTED = "submitted"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    NOT_FOUND = "notFound"
    TIMED_OUT = "timedOut"


TERMINAL_STATES = frozenset(
    {
        JobState.SUCCEEDED,
        JobState.FAILED,
        JobState.CANCELED,
        JobState.NOT_FOUND,
        JobState.TIMED_OUT,
    }
)


class ResultPolicy(str, Enum):
    """How far a request drives the operation before responding."""

    WAIT = "wait"  # Poll until terminal
    HANDLE = "handle"  # Return the handle right after submission


@dataclass
class AnalysisJob:
    """One submitted analysis operation. Request-local, never persisted."""

    handle: str
    operation_id: str
    model_id: ModelId
    output_format: OutputFormat
    state: JobState = JobState.SUBMITTED
    attempts: int = 0
    remote_status: str | None = None
    payload: dict[str, Any] | None = None
    content: str | None = None
    pages: list[Any] | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


def extract_operation_id(locator: str) -> str:
    """Pull the result id out of an Operation-Location URL.

    Falls back to the whole locator when the analyzeResults segment is absent.
    """
    match = _OPERATION_ID.search(locator)
    return match.group(1) if match else locator


def clean_base64(value: str) -> str:
    """Strip a data: URI prefix and whitespace from an inline payload.

    Raises:
        InvalidRequestError: If what remains is not valid base64.
    """
    cleaned = _WHITESPACE.sub("", _DATA_URI_PREFIX.sub("", value))
    if not cleaned:
        raise InvalidRequestError("Provide either 'fileUrl' or 'base64'")
    try:
        base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidRequestError(f"'base64' is not valid base64 data: {e}") from e
    return cleaned


def parse_body(response: httpx.Response, fallback_key: str = "raw") -> dict[str, Any]:
    """Parse a JSON body, wrapping non-JSON text under ``fallback_key``."""
    try:
        data = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {fallback_key: response.text}
    return data if isinstance(data, dict) else {fallback_key: data}


class AnalysisService:
    """Submits analysis requests and polls their operations to completion."""

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        api_version: str = DEFAULT_API_VERSION,
        poll_interval: float = 2.0,
        max_attempts: int = 30,
        not_found_retries: int = 2,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Analysis Service.

        Args:
            endpoint: Document Intelligence endpoint URL.
            api_key: Subscription key sent on every request.
            api_version: REST API version for analyze and status calls.
            poll_interval: Seconds between status polls.
            max_attempts: Maximum polls before the job is reported as timed out.
            not_found_retries: Leading polls on which a 404 is retried.
            timeout: HTTP timeout per request in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.api_version = api_version
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.not_found_retries = not_found_retries
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={SUBSCRIPTION_KEY_HEADER: self.api_key},
        )

    def analyze_url(self, model_id: ModelId) -> str:
        return f"{self.endpoint}/documentintelligence/documentModels/{model_id.value}:analyze"

    def result_url(self, model_id: ModelId, operation_id: str) -> str:
        return (
            f"{self.endpoint}/documentintelligence/documentModels/{model_id.value}"
            f"/analyzeResults/{quote(operation_id, safe='')}?api-version={self.api_version}"
        )

    def build_submission(
        self, request: AnalyzeDocumentRequest
    ) -> tuple[dict[str, str], dict[str, str]]:
        """Build query parameters and JSON body for an analyze call.

        Raises:
            InvalidRequestError: If neither source is present.
        """
        if request.file_url:
            body = {"urlSource": request.file_url}
        elif request.base64:
            body = {"base64Source": clean_base64(request.base64)}
        else:
            raise InvalidRequestError("Provide either 'fileUrl' or 'base64'")

        params = {
            "api-version": self.api_version,
            "outputContentFormat": request.format.value,
        }
        if request.pages:
            params["pages"] = request.pages
        return params, body

    async def submit(self, request: AnalyzeDocumentRequest) -> AnalysisJob:
        """Start an analysis operation.

        Args:
            request: Validated analysis request.

        Returns:
            AnalysisJob: Job in the submitted state.

        Raises:
            InvalidRequestError: If the request has no usable source.
            UpstreamError: If the service rejects the submission or omits
                the Operation-Location header.
        """
        params, body = self.build_submission(request)
        source = "url" if "urlSource" in body else "base64"
        logger.info(
            f"Submitting {source} document to {request.model.value}",
            model=request.model.value,
            format=request.format.value,
        )

        try:
            async with self._client() as client:
                response = await client.post(
                    self.analyze_url(request.model), params=params, json=body
                )
        except httpx.HTTPError as e:
            logger.error(f"Analyze request failed: {e}")
            raise UpstreamError(
                502, "analyze_request_failed", message=f"Analyze request failed: {e}"
            ) from e

        if response.status_code != 202:
            logger.warning(f"Analyze rejected with HTTP {response.status_code}")
            raise UpstreamError(
                response.status_code,
                "analyze_failed",
                details=parse_body(response, fallback_key="message"),
            )

        locator = response.headers.get(OPERATION_LOCATION_HEADER)
        if not locator:
            raise UpstreamError(
                502,
                "missing_operation_location",
                message="Analyze accepted but no Operation-Location header was returned",
            )

        job = AnalysisJob(
            handle=locator,
            operation_id=extract_operation_id(locator),
            model_id=request.model,
            output_format=request.format,
        )
        logger.info("Analysis submitted", operationId=job.operation_id)
        return job

    def resume(
        self,
        operation_id: str,
        model_id: Any = None,
        output_format: Any = None,
    ) -> AnalysisJob:
        """Rebuild a job handle from an operation id issued earlier.

        Raises:
            InvalidRequestError: If the id is empty or a dot segment.
        """
        if operation_id in ("", ".", ".."):
            raise InvalidRequestError(f"Invalid operation id: '{operation_id}'")
        model = normalize_model_id(model_id)
        return AnalysisJob(
            handle=self.result_url(model, operation_id),
            operation_id=operation_id,
            model_id=model,
            output_format=normalize_output_format(output_format),
            state=JobState.RUNNING,
        )

    async def poll(self, job: AnalysisJob) -> AnalysisJob:
        """Poll a job until it reaches a terminal state.

        Sleeps ``poll_interval`` between attempts (never before the first).
        A 404 within the first ``not_found_retries`` attempts is treated as
        propagation lag. Running out of attempts yields ``TIMED_OUT``.

        Raises:
            UpstreamError: If a status request fails with anything but 404.
        """
        if job.is_terminal:
            return job

        log = logger.with_context(operationId=job.operation_id)
        async with self._client() as client:
            for attempt in range(self.max_attempts):
                if attempt > 0:
                    await asyncio.sleep(self.poll_interval)

                tolerate_not_found = attempt < self.not_found_retries
                await self._poll_once(client, job, tolerate_not_found)
                log.debug(
                    f"Poll {job.attempts}/{self.max_attempts}: {job.state.value}",
                    remoteStatus=job.remote_status,
                )
                if job.is_terminal:
                    log.info(f"Analysis finished: {job.state.value}", attempts=job.attempts)
                    return job

        job.state = JobState.TIMED_OUT
        log.warning(f"Analysis still pending after {job.attempts} polls")
        return job

    async def check(self, job: AnalysisJob) -> AnalysisJob:
        """Issue a single status request without waiting."""
        if job.is_terminal:
            return job
        async with self._client() as client:
            await self._poll_once(client, job, tolerate_not_found=False)
        return job

    async def analyze(
        self,
        request: AnalyzeDocumentRequest,
        policy: ResultPolicy = ResultPolicy.WAIT,
    ) -> AnalysisJob:
        """Submit a request and drive it as far as ``policy`` asks."""
        job = await self.submit(request)
        if policy is ResultPolicy.HANDLE:
            return job
        return await self.poll(job)

    async def fetch_result(self, job: AnalysisJob) -> tuple[int, dict[str, Any]]:
        """Fetch the raw operation status without interpreting it.

        Raises:
            UpstreamError: On transport failure.
        """
        try:
            async with self._client() as client:
                response = await client.get(job.handle)
        except httpx.HTTPError as e:
            raise UpstreamError(
                502, "result_request_failed", message=f"Status request failed: {e}"
            ) from e
        return response.status_code, parse_body(response)

    async def _poll_once(
        self,
        client: httpx.AsyncClient,
        job: AnalysisJob,
        tolerate_not_found: bool,
    ) -> None:
        job.attempts += 1
        try:
            response = await client.get(job.handle)
        except httpx.HTTPError as e:
            raise UpstreamError(
                502, "result_request_failed", message=f"Status request failed: {e}"
            ) from e

        data = parse_body(response)

        if response.status_code == 404:
            if tolerate_not_found:
                logger.info(
                    "Operation not visible yet, retrying",
                    operationId=job.operation_id,
                    attempt=job.attempts,
                )
                job.state = JobState.RUNNING
                return
            job.state = JobState.NOT_FOUND
            return

        if response.status_code != 200:
            raise UpstreamError(response.status_code, "result_fetch_failed", details=data)

        self._apply_status(job, data)

    def _apply_status(self, job: AnalysisJob, data: dict[str, Any]) -> None:
        status = data.get("status")
        job.remote_status = status
        job.payload = data

        if status == "succeeded":
            analyze_result = data.get("analyzeResult")
            if not isinstance(analyze_result, dict):
                analyze_result = {}
            job.state = JobState.SUCCEEDED
            job.content = analyze_result.get("content")
            job.pages = analyze_result.get("pages")
        elif status == "failed":
            job.state = JobState.FAILED
        elif status == "canceled":
            job.state = JobState.CANCELED
        else:
            # notStarted / running
            job.state = JobState.RUNNING
