"""Upload credential service.

Issues a pair of short-lived SAS URLs for a fresh blob: one that can only
create/write it (for the client's direct upload) and one that can only read
it (for Document Intelligence to fetch it later).
"""

import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from urllib.parse import quote

from azure.storage.blob import BlobSasPermissions, generate_blob_sas

from models import UploadCredential

from .errors import UnsupportedTypeError

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "bin"

# Start time is backdated to tolerate clock drift between us and storage
CLOCK_SKEW_MINUTES = 5

_UNSAFE_PREFIX_CHARS = re.compile(r"[^a-zA-Z0-9/_-]")


class UploadServiceError(Exception):
    """Raised when SAS generation fails."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


def sanitize_prefix(prefix: str | None) -> str:
    """Reduce a caller-supplied folder to safe characters.

    Keeps only alphanumerics, ``/``, ``_`` and ``-``, trims slashes from both
    ends and appends exactly one trailing slash when anything is left.
    """
    cleaned = _UNSAFE_PREFIX_CHARS.sub("", prefix or "").strip("/")
    return f"{cleaned}/" if cleaned else ""


def infer_extension(original_name: str | None) -> str:
    """Lowercased text after the last dot, or ``bin`` if there is none."""
    if original_name and "." in original_name:
        return original_name.rsplit(".", 1)[1].lower()
    return DEFAULT_EXTENSION


class UploadCredentialService:
    """Service for issuing scoped upload/read SAS URLs."""

    def __init__(
        self,
        account_name: str,
        account_key: str,
        container_name: str,
        allowed_extensions: list[str],
        ttl_minutes: int = 15,
        clock_skew_minutes: int = CLOCK_SKEW_MINUTES,
    ) -> None:
        """Initialize Upload Credential Service.

        Args:
            account_name: Storage account name.
            account_key: Storage account key used to sign SAS tokens.
            container_name: Container uploads are placed in.
            allowed_extensions: Lowercase file extensions accepted for upload.
            ttl_minutes: Minutes from issuance until both SAS tokens expire.
            clock_skew_minutes: Minutes the start time is backdated.
        """
        self.account_name = account_name
        self.account_key = account_key
        self.container_name = container_name
        self.allowed_extensions = [ext.lower() for ext in allowed_extensions]
        self.ttl_minutes = ttl_minutes
        self.clock_skew_minutes = clock_skew_minutes

    def blob_url(self, blob_name: str) -> str:
        return (
            f"https://{self.account_name}.blob.core.windows.net/"
            f"{self.container_name}/{quote(blob_name)}"
        )

    def issue(
        self,
        original_name: str | None = None,
        content_type: str | None = None,
        prefix: str | None = None,
        now: datetime | None = None,
    ) -> UploadCredential:
        """Issue upload and read SAS URLs for a new, uniquely named blob.

        Args:
            original_name: Client file name, used to infer the extension.
            content_type: Content-Type the client should send when uploading.
            prefix: Optional logical folder for the blob.
            now: Issuance time (defaults to the current UTC time).

        Returns:
            UploadCredential: Blob name, URLs, upload headers and validity window.

        Raises:
            UnsupportedTypeError: If the extension is not allowed.
            UploadServiceError: If SAS generation fails.
        """
        extension = infer_extension(original_name)
        if extension not in self.allowed_extensions:
            raise UnsupportedTypeError(extension, self.allowed_extensions)

        blob_name = f"{sanitize_prefix(prefix)}{uuid.uuid4().hex}.{extension}"

        issued_at = now or datetime.now(timezone.utc)
        starts_on = issued_at - timedelta(minutes=self.clock_skew_minutes)
        expires_on = issued_at + timedelta(minutes=self.ttl_minutes)

        try:
            write_sas = self._generate_sas(
                blob_name, BlobSasPermissions(create=True, write=True), starts_on, expires_on
            )
            read_sas = self._generate_sas(
                blob_name, BlobSasPermissions(read=True), starts_on, expires_on
            )
        except Exception as e:
            logger.exception(f"Failed to generate SAS token: {e}")
            raise UploadServiceError(f"SAS token generation failed: {e}") from e

        base_url = self.blob_url(blob_name)
        upload_headers = {"x-ms-blob-type": "BlockBlob"}
        if content_type:
            upload_headers["Content-Type"] = content_type

        logger.info(f"Issued upload SAS for blob: {blob_name}")

        return UploadCredential(
            blob_name=blob_name,
            blob_url=base_url,
            upload_url=f"{base_url}?{write_sas}",
            read_url=f"{base_url}?{read_sas}",
            upload_headers=upload_headers,
            starts_on=starts_on,
            expires_on=expires_on,
        )

    def _generate_sas(
        self,
        blob_name: str,
        permission: BlobSasPermissions,
        starts_on: datetime,
        expires_on: datetime,
    ) -> str:
        return generate_blob_sas(
            account_name=self.account_name,
            container_name=self.container_name,
            blob_name=blob_name,
            account_key=self.account_key,
            permission=permission,
            start=starts_on,
            expiry=expires_on,
            protocol="https",
        )
