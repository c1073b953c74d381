"""Blob Storage transport: signed requests, fault mapping and file upload."""

from blobauth.storage.client import (
    API_VERSION,
    BlobStorageClient,
    content_type_for,
    escape_blob_name,
    format_ms_date,
)
from blobauth.storage.errors import (
    Fault,
    build_fault,
    is_error_status,
    parse_error_body,
)
from blobauth.storage.uploader import BlobUploader, client_from_config, generate_blob_name

__all__ = [
    "API_VERSION",
    "BlobStorageClient",
    "content_type_for",
    "escape_blob_name",
    "format_ms_date",
    "Fault",
    "build_fault",
    "is_error_status",
    "parse_error_body",
    "BlobUploader",
    "client_from_config",
    "generate_blob_name",
]
