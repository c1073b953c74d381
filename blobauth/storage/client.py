"""
Blob Storage client.

Sends SharedKey-signed requests to the Blob service with httpx and builds
blob SAS URLs. Rejected requests surface as ``RequestRejectedError``;
delivery failures as ``TransportError``. There is no retry here.
"""

import asyncio
import logging
import mimetypes
import posixpath
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import BinaryIO, Optional, Union
from urllib.parse import quote_plus

import httpx

from blobauth.auth.sas import BlobSasPermissions, generate_blob_sas
from blobauth.auth.sharedkey import SharedKeyCredential, SharedKeySigner
from blobauth.core.logging_config import correlation_id
from blobauth.exceptions import (
    InvalidExpiryError,
    LocalResourceError,
    RequestRejectedError,
    TransportError,
)
from blobauth.storage.errors import (
    DEFAULT_MAX_ERROR_BODY_BYTES,
    fault_from_response,
    is_error_status,
)

API_VERSION = "2017-04-17"
DEFAULT_ENDPOINT_SUFFIX = "core.windows.net"
DEFAULT_TIMEOUT = 30.0


def format_ms_date(value: datetime) -> str:
    """RFC 1123 date in GMT, as sent in ``x-ms-date``."""
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def escape_blob_name(name: str) -> str:
    """
    Escape a blob name for use in a URL path.

    Spaces become ``%20`` and ``/`` is kept as a path separator; everything
    else is form-encoded, so a literal ``+`` becomes ``%2B``.

    Example:
        >>> escape_blob_name("my file+name.png")
        'my%20file%2Bname.png'
    """
    escaped = quote_plus(name, safe="")
    escaped = escaped.replace("+", "%20")
    return escaped.replace("%2F", "/")


def content_type_for(blob_name: str) -> str:
    """MIME type guessed from the blob name's extension, or ``""``."""
    extension = posixpath.splitext(blob_name)[1].lower()
    content_type, _ = mimetypes.guess_type(f"blob{extension}", strict=False)
    return content_type or ""


class BlobStorageClient:
    """
    Client for a single storage account.

    Example:
        credential = SharedKeyCredential("myaccount", account_key)
        async with BlobStorageClient(credential) as client:
            await client.put_blob("images", "chart.png", data)
            url = client.get_blob_sas_url("images", "chart.png", expiration_days=7)
    """

    def __init__(
        self,
        credential: SharedKeyCredential,
        *,
        endpoint_suffix: str = DEFAULT_ENDPOINT_SUFFIX,
        api_version: str = API_VERSION,
        timeout: float = DEFAULT_TIMEOUT,
        max_error_body_bytes: int = DEFAULT_MAX_ERROR_BODY_BYTES,
        http_client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the client.

        Args:
            credential: Shared key credential for the account
            endpoint_suffix: DNS suffix of the Blob endpoint
            api_version: Value sent as ``x-ms-version``
            timeout: Default timeout in seconds for one request
            max_error_body_bytes: Cap on the error body read from a rejected request
            http_client: httpx client to send with (not closed by this client)
            logger: Logger for request outcomes
        """
        self.credential = credential
        self.endpoint_suffix = endpoint_suffix
        self.api_version = api_version
        self.timeout = timeout
        self.max_error_body_bytes = max_error_body_bytes
        self.logger = logger or logging.getLogger(__name__)
        self.signer = SharedKeySigner(credential, logger=self.logger)

        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "BlobStorageClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    @property
    def account_url(self) -> str:
        return f"https://{self.credential.account_name}.blob.{self.endpoint_suffix}"

    def blob_url(self, container: str, blob_name: str) -> str:
        """Unscoped URL of a blob. ``blob_name`` must already be escaped."""
        return f"{self.account_url}/{container}/{blob_name}"

    def build_put_blob_request(self, container: str, blob_name: str, data: bytes) -> httpx.Request:
        """
        Build and sign a Put Blob (BlockBlob) request.

        Raises:
            InvalidAccountKeyError: If the account key cannot be decoded
        """
        escaped = escape_blob_name(blob_name)
        headers = {
            "x-ms-blob-type": "BlockBlob",
            "x-ms-date": format_ms_date(datetime.now(timezone.utc)),
            "x-ms-version": self.api_version,
            "Accept-Charset": "UTF-8",
            # Error bodies are capped by byte count; keep them uncompressed.
            "Accept-Encoding": "identity",
            "Content-Type": content_type_for(escaped),
            "Content-Length": str(len(data)),
        }
        if corr_id := correlation_id.get():
            headers["x-ms-client-request-id"] = corr_id
        request = self._http.build_request(
            "PUT", self.blob_url(container, escaped), headers=headers, content=data
        )
        self.signer.sign(request)
        return request

    async def put_blob(
        self,
        container: str,
        blob_name: str,
        body: Union[bytes, BinaryIO],
        *,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """
        Upload a block blob.

        Args:
            container: Container name
            blob_name: Blob name, unescaped
            body: Blob content, as bytes or a binary file object
            timeout: Deadline in seconds for the whole exchange

        Returns:
            The (closed) response for a successful upload

        Raises:
            LocalResourceError: If ``body`` cannot be read
            InvalidAccountKeyError: If the account key cannot be decoded
            TransportError: If the request could not be delivered or timed out
            RequestRejectedError: If the service answered with a 4xx/5xx status
        """
        data = self._read_body(body)
        request = self.build_put_blob_request(container, blob_name, data)
        self.logger.debug(
            f"Uploading blob container={container} blob={blob_name} size={len(data)}"
        )

        try:
            if timeout is None:
                return await self._send(request)
            return await asyncio.wait_for(self._send(request), timeout)
        except asyncio.TimeoutError as exc:
            raise TransportError(
                f"PUT {request.url.path} timed out after {timeout}s"
            ) from exc

    async def _send(self, request: httpx.Request) -> httpx.Response:
        try:
            response = await self._http.send(request, stream=True)
        except httpx.TransportError as exc:
            raise TransportError(f"{request.method} {request.url.path} failed: {exc}") from exc

        try:
            if is_error_status(response.status_code):
                try:
                    fault = await fault_from_response(response, self.max_error_body_bytes)
                except httpx.TransportError as exc:
                    raise TransportError(
                        f"Reading error body for {request.method} {request.url.path} failed: {exc}"
                    ) from exc
                self.logger.warning(
                    f"{request.method} {request.url.path} rejected: "
                    f"status={fault.status_code} code={fault.error_code or '-'}"
                )
                raise RequestRejectedError(fault)
            self.logger.debug(f"{request.method} {request.url.path} -> {response.status_code}")
            return response
        finally:
            await response.aclose()

    @staticmethod
    def _read_body(body: Union[bytes, BinaryIO]) -> bytes:
        if isinstance(body, (bytes, bytearray)):
            return bytes(body)
        try:
            return body.read()
        except OSError as exc:
            raise LocalResourceError("read", getattr(body, "name", None), str(exc)) from exc

    def get_blob_sas_url(self, container: str, blob_name: str, expiration_days: int) -> str:
        """
        Build a read-only SAS URL for a blob.

        Args:
            container: Container name
            blob_name: Blob name, unescaped
            expiration_days: Validity in days from now; must be positive

        Returns:
            Blob URL with SAS query string

        Raises:
            InvalidExpiryError: If ``expiration_days`` is zero or negative
            MissingCredentialError: If the client has no shared key credential
        """
        if expiration_days <= 0:
            raise InvalidExpiryError(expiration_days)

        expiry = datetime.now(timezone.utc) + timedelta(days=expiration_days)
        query = generate_blob_sas(
            self.credential,
            container,
            blob_name,
            BlobSasPermissions.read_only(),
            expiry,
        )
        return f"{self.blob_url(container, escape_blob_name(blob_name))}?{query}"
