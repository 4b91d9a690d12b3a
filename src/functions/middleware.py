"""Middleware for request validation and CORS.

Provides decorators for Azure Functions HTTP triggers.
"""

import functools
import inspect
import json
import logging
from collections.abc import Callable
from typing import Any, TypeVar

import azure.functions as func
from pydantic import BaseModel, ValidationError

from config import get_config

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

PREFLIGHT_MAX_AGE = "86400"
PREFLIGHT_ALLOW_HEADERS = "content-type,authorization"

_REQUEST_SIGNATURE = inspect.Signature(
    [
        inspect.Parameter(
            "req", inspect.Parameter.POSITIONAL_OR_KEYWORD, annotation=func.HttpRequest
        )
    ],
    return_annotation=func.HttpResponse,
)


def validate_request(
    model: type[T],
    source: str = "body",
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator to validate request data against a Pydantic model.

    An empty body validates as ``{}`` so models with all-optional fields
    accept bodiless POSTs.

    Args:
        model: Pydantic model class for validation.
        source: Where to get data from ("body", "query", "route").

    Returns:
        Decorated function.

    Example:
        @validate_request(UploadIntentRequest)
        async def issue_upload_sas(req: func.HttpRequest, validated: UploadIntentRequest):
            ...
    """

    def decorator(func_handler: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func_handler)
        async def wrapper(req: func.HttpRequest, *args: Any, **kwargs: Any) -> Any:
            if source == "body":
                if not req.get_body():
                    data = {}
                else:
                    try:
                        data = req.get_json()
                    except ValueError:
                        return error_response(
                            "invalid_json",
                            "Invalid JSON in request body",
                            status_code=400,
                        )
                if not isinstance(data, dict):
                    return error_response(
                        "invalid_json",
                        "Request body must be a JSON object",
                        status_code=400,
                    )
            elif source == "query":
                data = dict(req.params)
            elif source == "route":
                data = dict(req.route_params)
            else:
                data = {}

            try:
                validated = model.model_validate(data)
            except ValidationError as e:
                errors = [
                    {
                        "field": ".".join(str(loc) for loc in error["loc"]),
                        "message": error["msg"],
                        "type": error["type"],
                    }
                    for error in e.errors()
                ]
                return error_response(
                    "validation_failed",
                    "Validation failed",
                    status_code=400,
                    details={"validation_errors": errors},
                )

            return await func_handler(req, validated, *args, **kwargs)

        # The Functions host binds parameters by name; hide the injected model
        wrapper.__signature__ = _REQUEST_SIGNATURE  # type: ignore[attr-defined]
        return wrapper

    return decorator


def resolve_origin(request_origin: str | None, allowed_origins: list[str]) -> str:
    """Pick the Access-Control-Allow-Origin value for a request.

    Returns ``*`` when any origin is allowed, the request's origin when it is
    listed, and an empty string (no CORS headers) otherwise.
    """
    if "*" in allowed_origins:
        return "*"
    if request_origin and request_origin in allowed_origins:
        return request_origin
    return ""


def cors(methods: list[str]) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator that answers preflights and rejects unsupported methods.

    Args:
        methods: HTTP methods the endpoint serves (OPTIONS is implied).

    Returns:
        Decorated function.

    Example:
        @cors(["POST"])
        async def extract_document(req: func.HttpRequest):
            ...
    """
    allowed = [m.upper() for m in methods]
    allow_methods = ", ".join([*allowed, "OPTIONS"])

    def decorator(func_handler: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func_handler)
        async def wrapper(req: func.HttpRequest, *args: Any, **kwargs: Any) -> Any:
            origin = resolve_origin(req.headers.get("Origin"), get_config().cors_allowed_origins)
            method = (req.method or "").upper()

            if method == "OPTIONS":
                response = func.HttpResponse(status_code=204)
                response.headers["Access-Control-Allow-Methods"] = allow_methods
                response.headers["Access-Control-Allow-Headers"] = PREFLIGHT_ALLOW_HEADERS
                response.headers["Access-Control-Max-Age"] = PREFLIGHT_MAX_AGE
            elif method not in allowed:
                logger.info(f"Rejected {method} request to {req.url}")
                response = error_response(
                    "method_not_allowed",
                    "Method Not Allowed",
                    status_code=405,
                )
                response.headers["Allow"] = allow_methods
            else:
                response = await func_handler(req, *args, **kwargs)

            if origin and isinstance(response, func.HttpResponse):
                response.headers["Access-Control-Allow-Origin"] = origin
                response.headers["Vary"] = "Origin"
            return response

        return wrapper

    return decorator


def error_response(
    error: str,
    message: str | None = None,
    status_code: int = 500,
    details: dict[str, Any] | None = None,
) -> func.HttpResponse:
    """Create error JSON response.

    Args:
        error: Machine-readable error code.
        message: Human-readable detail.
        status_code: HTTP status code.
        details: Additional error details (e.g. upstream payload).

    Returns:
        HTTP response with JSON error.
    """
    body: dict[str, Any] = {
        "status": "error",
        "error": error,
    }
    if message:
        body["message"] = message
    if details:
        body["details"] = details

    return func.HttpResponse(
        body=json.dumps(body, default=str),
        status_code=status_code,
        mimetype="application/json",
    )
