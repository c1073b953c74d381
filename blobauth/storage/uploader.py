"""
File upload to Blob Storage.

Uploads a local file under a random blob name and returns a URL for it:
a read-only SAS URL when ``sas_token_expiration_days`` is positive,
otherwise the plain blob URL.
"""

import logging
import secrets
import string
from pathlib import Path
from typing import Optional, Union

from blobauth.auth.sharedkey import SharedKeyCredential
from blobauth.core.config import StorageConfig
from blobauth.core.logging_config import correlation_scope, log_with_context
from blobauth.exceptions import LocalResourceError
from blobauth.storage.client import BlobStorageClient, escape_blob_name

BLOB_NAME_ALPHABET = string.ascii_letters + string.digits
BLOB_NAME_LENGTH = 30


def generate_blob_name(extension: str = "", length: int = BLOB_NAME_LENGTH) -> str:
    """
    Generate a random blob name.

    Args:
        extension: Suffix to append, including the dot (e.g. ``".png"``)
        length: Number of random characters

    Returns:
        Random alphanumeric name followed by ``extension``
    """
    name = "".join(secrets.choice(BLOB_NAME_ALPHABET) for _ in range(length))
    return name + extension.lower()


def client_from_config(config: StorageConfig, logger: Optional[logging.Logger] = None) -> BlobStorageClient:
    """Create a ``BlobStorageClient`` from storage configuration."""
    credential = SharedKeyCredential(
        account_name=config.account_name,
        account_key=config.account_key.get_secret_value(),
    )
    return BlobStorageClient(
        credential,
        endpoint_suffix=config.endpoint_suffix,
        api_version=config.api_version,
        timeout=config.request_timeout,
        max_error_body_bytes=config.max_error_body_bytes,
        logger=logger,
    )


class BlobUploader:
    """
    Uploads local files to a container.

    Example:
        async with BlobUploader(config.storage) as uploader:
            url = await uploader.upload("/tmp/render.png")
    """

    def __init__(
        self,
        config: StorageConfig,
        client: Optional[BlobStorageClient] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.client = client or client_from_config(config, logger=self.logger)

    async def __aenter__(self) -> "BlobUploader":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.client.close()

    async def upload(self, path: Union[str, Path], *, timeout: Optional[float] = None) -> str:
        """
        Upload a file under a random name.

        The file is closed on every exit path. A failure to close it is
        logged and does not fail the upload.

        Args:
            path: Local file to upload
            timeout: Deadline in seconds for the upload request

        Returns:
            SAS URL or plain blob URL of the uploaded blob

        Raises:
            LocalResourceError: If the file cannot be opened or read
            InvalidAccountKeyError: If the account key cannot be decoded
            TransportError: If the request could not be delivered
            RequestRejectedError: If the service rejected the upload
        """
        path = Path(path)
        container = self.config.container_name

        try:
            file = open(path, "rb")
        except OSError as exc:
            raise LocalResourceError("open", str(path), str(exc)) from exc

        with correlation_scope():
            try:
                blob_name = generate_blob_name(path.suffix)
                self.logger.debug(
                    f"Uploading file to blob storage container={container} blob={blob_name}"
                )
                await self.client.put_blob(container, blob_name, file, timeout=timeout)
            finally:
                try:
                    file.close()
                except OSError as exc:
                    self.logger.warning(f"Failed to close file path={path} err={exc}")

            days = self.config.sas_token_expiration_days
            if days > 0:
                url = self.client.get_blob_sas_url(container, blob_name, days)
            else:
                url = self.client.blob_url(container, escape_blob_name(blob_name))

            log_with_context(
                self.logger,
                logging.INFO,
                f"Uploaded {path.name}",
                container=container,
                blob=blob_name,
                sas=days > 0,
            )
            return url
