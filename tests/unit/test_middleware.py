"""Unit tests for middleware decorators."""

import inspect
import json
import os
from unittest.mock import AsyncMock, patch

import azure.functions as func
import pytest
from pydantic import BaseModel, Field


class SampleRequest(BaseModel):
    """Sample request model for testing."""

    name: str = Field(min_length=1)
    value: int = Field(default=0, ge=0)


class OptionalRequest(BaseModel):
    """Model whose fields are all optional."""

    prefix: str | None = None


def create_mock_request(body=None, params=None, route_params=None, headers=None, method="POST"):
    """Create a mock HTTP request."""
    if body is None:
        raw = b""
    elif isinstance(body, (dict, list)):
        raw = json.dumps(body).encode("utf-8")
    else:
        raw = body

    return func.HttpRequest(
        method=method,
        body=raw,
        url="/api/test",
        headers=headers or {"Content-Type": "application/json"},
        params=params or {},
        route_params=route_params or {},
    )


def read_body(response) -> dict:
    return json.loads(response.get_body().decode())


class TestValidateRequest:
    """Tests for validate_request decorator."""

    @pytest.mark.asyncio
    async def test_valid_body(self):
        """Test validation passes with valid body."""
        from middleware import validate_request

        @validate_request(SampleRequest)
        async def handler(req, validated):
            return func.HttpResponse(
                body=json.dumps({"name": validated.name, "value": validated.value}),
                status_code=200,
            )

        response = await handler(create_mock_request(body={"name": "test", "value": 42}))

        assert response.status_code == 200
        assert read_body(response) == {"name": "test", "value": 42}

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        """Test error on invalid JSON."""
        from middleware import validate_request

        handler_mock = AsyncMock()
        handler = validate_request(SampleRequest)(handler_mock)

        response = await handler(create_mock_request(body=b"not json"))

        assert response.status_code == 400
        assert read_body(response)["error"] == "invalid_json"
        handler_mock.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_object_body(self):
        """Test a JSON array is rejected."""
        from middleware import validate_request

        handler = validate_request(SampleRequest)(AsyncMock())

        response = await handler(create_mock_request(body=[1, 2]))

        assert response.status_code == 400
        assert read_body(response)["error"] == "invalid_json"

    @pytest.mark.asyncio
    async def test_empty_body_validates_as_empty_object(self):
        """Test bodiless requests reach models with optional fields."""
        from middleware import validate_request

        handler_mock = AsyncMock(return_value=func.HttpResponse(status_code=200))
        handler = validate_request(OptionalRequest)(handler_mock)

        response = await handler(create_mock_request())

        assert response.status_code == 200
        _, validated = handler_mock.call_args.args
        assert validated.prefix is None

    @pytest.mark.asyncio
    async def test_validation_errors(self):
        """Test field errors are listed in details."""
        from middleware import validate_request

        handler = validate_request(SampleRequest)(AsyncMock())

        response = await handler(create_mock_request(body={"name": "", "value": -1}))

        assert response.status_code == 400
        body = read_body(response)
        assert body["error"] == "validation_failed"
        fields = {e["field"] for e in body["details"]["validation_errors"]}
        assert fields == {"name", "value"}

    @pytest.mark.asyncio
    async def test_query_source(self):
        """Test validation from query parameters."""
        from middleware import validate_request

        handler_mock = AsyncMock(return_value=func.HttpResponse(status_code=200))
        handler = validate_request(SampleRequest, source="query")(handler_mock)

        await handler(create_mock_request(method="GET", params={"name": "q", "value": "3"}))

        _, validated = handler_mock.call_args.args
        assert validated.name == "q"
        assert validated.value == 3

    def test_signature_hides_injected_model(self):
        """Test the host only sees the request parameter."""
        from middleware import validate_request

        @validate_request(SampleRequest)
        async def handler(req: func.HttpRequest, validated: SampleRequest) -> func.HttpResponse:
            return func.HttpResponse(status_code=200)

        assert list(inspect.signature(handler).parameters) == ["req"]


class TestResolveOrigin:
    """Tests for resolve_origin helper."""

    def test_wildcard(self):
        from middleware import resolve_origin

        assert resolve_origin("https://a.example.com", ["*"]) == "*"
        assert resolve_origin(None, ["*"]) == "*"

    def test_listed_origin_is_echoed(self):
        from middleware import resolve_origin

        allowed = ["https://a.example.com", "https://b.example.com"]

        assert resolve_origin("https://b.example.com", allowed) == "https://b.example.com"

    def test_unlisted_origin(self):
        from middleware import resolve_origin

        assert resolve_origin("https://evil.example.com", ["https://a.example.com"]) == ""
        assert resolve_origin(None, ["https://a.example.com"]) == ""


class TestCors:
    """Tests for cors decorator."""

    @pytest.mark.asyncio
    async def test_preflight(self):
        """Test OPTIONS is answered without calling the handler."""
        from middleware import cors

        handler_mock = AsyncMock()
        handler = cors(["POST"])(handler_mock)

        response = await handler(create_mock_request(method="OPTIONS"))

        assert response.status_code == 204
        assert response.headers["Access-Control-Allow-Methods"] == "POST, OPTIONS"
        assert "content-type" in response.headers["Access-Control-Allow-Headers"]
        assert response.headers["Access-Control-Max-Age"] == "86400"
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        handler_mock.assert_not_called()

    @pytest.mark.asyncio
    async def test_method_not_allowed(self):
        """Test unsupported methods get 405 with an Allow header."""
        from middleware import cors

        handler_mock = AsyncMock()
        handler = cors(["GET"])(handler_mock)

        response = await handler(create_mock_request(method="DELETE"))

        assert response.status_code == 405
        assert response.headers["Allow"] == "GET, OPTIONS"
        assert read_body(response)["error"] == "method_not_allowed"
        handler_mock.assert_not_called()

    @pytest.mark.asyncio
    async def test_allowed_method_gets_origin_header(self):
        """Test handler responses carry the allowed origin."""
        from middleware import cors

        handler = cors(["POST"])(AsyncMock(return_value=func.HttpResponse(status_code=200)))

        response = await handler(create_mock_request())

        assert response.status_code == 200
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert response.headers["Vary"] == "Origin"

    @pytest.mark.asyncio
    async def test_configured_origins(self):
        """Test only listed origins are echoed back."""
        from middleware import cors

        handler = cors(["POST"])(AsyncMock(return_value=func.HttpResponse(status_code=200)))

        with patch.dict(os.environ, {"CORS_ALLOW_ORIGIN": "https://app.example.com"}, clear=True):
            allowed = await handler(
                create_mock_request(headers={"Origin": "https://app.example.com"})
            )
            denied = await handler(
                create_mock_request(headers={"Origin": "https://other.example.com"})
            )

        assert allowed.headers["Access-Control-Allow-Origin"] == "https://app.example.com"
        assert "Access-Control-Allow-Origin" not in denied.headers


class TestErrorResponse:
    """Tests for error_response helper."""

    def test_error_response(self):
        """Test error body shape."""
        from middleware import error_response

        response = error_response(
            "analyze_failed", "Upstream rejected", status_code=401, details={"code": "401"}
        )

        assert response.status_code == 401
        assert response.mimetype == "application/json"
        assert read_body(response) == {
            "status": "error",
            "error": "analyze_failed",
            "message": "Upstream rejected",
            "details": {"code": "401"},
        }

    def test_error_response_minimal(self):
        """Test optional fields are omitted."""
        from middleware import error_response

        body = read_body(error_response("internal_error"))

        assert body == {"status": "error", "error": "internal_error"}
