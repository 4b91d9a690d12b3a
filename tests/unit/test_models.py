"""Unit tests for Pydantic request/response models."""

from datetime import datetime, timezone

import pytest


class TestNormalization:
    """Tests for permissive model/format defaulting."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("read", "prebuilt-read"),
            ("prebuilt-read", "prebuilt-read"),
            ("Layout", "prebuilt-layout"),
            ("prebuilt-layout", "prebuilt-layout"),
            ("bogus", "prebuilt-layout"),
            ("prebuilt-invoice", "prebuilt-layout"),
            (None, "prebuilt-layout"),
            (42, "prebuilt-layout"),
        ],
    )
    def test_normalize_model_id(self, raw, expected):
        """Test unknown models fall back to layout."""
        from models import normalize_model_id

        assert normalize_model_id(raw).value == expected

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("text", "text"),
            ("TEXT", "text"),
            ("markdown", "markdown"),
            ("html", "markdown"),
            (None, "markdown"),
        ],
    )
    def test_normalize_output_format(self, raw, expected):
        """Test unknown formats fall back to markdown."""
        from models import normalize_output_format

        assert normalize_output_format(raw).value == expected


class TestAnalyzeDocumentRequest:
    """Tests for AnalyzeDocumentRequest model."""

    def test_defaults(self):
        """Test empty body validates with default model and format."""
        from models import AnalyzeDocumentRequest, ModelId, OutputFormat

        request = AnalyzeDocumentRequest.model_validate({})

        assert request.file_url is None
        assert request.base64 is None
        assert request.model is ModelId.LAYOUT
        assert request.format is OutputFormat.MARKDOWN
        assert request.pages is None

    def test_bogus_model_and_format_are_not_rejected(self):
        """Test invalid enumerations are replaced silently."""
        from models import AnalyzeDocumentRequest

        request = AnalyzeDocumentRequest.model_validate(
            {"fileUrl": "https://x/a.pdf", "model": "bogus", "format": "docx"}
        )

        assert request.model.value == "prebuilt-layout"
        assert request.format.value == "markdown"

    def test_aliases(self):
        """Test camelCase fileUrl populates file_url."""
        from models import AnalyzeDocumentRequest

        request = AnalyzeDocumentRequest.model_validate(
            {"fileUrl": "https://x/a.pdf", "model": "read", "format": "text"}
        )

        assert request.file_url == "https://x/a.pdf"
        assert request.model.value == "prebuilt-read"
        assert request.format.value == "text"

    def test_empty_sources_are_missing(self):
        """Test empty strings count as absent sources."""
        from models import AnalyzeDocumentRequest

        request = AnalyzeDocumentRequest.model_validate({"fileUrl": "", "base64": ""})

        assert request.file_url is None
        assert request.base64 is None

    def test_numeric_pages(self):
        """Test numeric page selector is stringified."""
        from models import AnalyzeDocumentRequest

        request = AnalyzeDocumentRequest.model_validate({"base64": "AAAA", "pages": 3})

        assert request.pages == "3"


class TestUploadModels:
    """Tests for upload request/response models."""

    def test_upload_intent_aliases(self):
        """Test camelCase request fields."""
        from models import UploadIntentRequest

        intent = UploadIntentRequest.model_validate(
            {"originalName": "a.pdf", "contentType": "application/pdf", "prefix": "x"}
        )

        assert intent.original_name == "a.pdf"
        assert intent.content_type == "application/pdf"
        assert intent.prefix == "x"

    def test_upload_credential_dump(self):
        """Test datetimes serialize to ISO strings."""
        from models import UploadCredential

        expires = datetime(2024, 5, 1, 12, 15, tzinfo=timezone.utc)
        credential = UploadCredential(
            blob_name="a.pdf",
            blob_url="https://acct.blob.core.windows.net/c/a.pdf",
            upload_url="https://acct.blob.core.windows.net/c/a.pdf?sp=cw",
            read_url="https://acct.blob.core.windows.net/c/a.pdf?sp=r",
            starts_on=datetime(2024, 5, 1, 11, 55, tzinfo=timezone.utc),
            expires_on=expires,
        )

        data = credential.model_dump(by_alias=True, mode="json")

        assert data["ok"] is True
        assert data["blobName"] == "a.pdf"
        assert data["expiresOn"].startswith("2024-05-01T12:15:00")
        assert data["uploadHeaders"] == {}
