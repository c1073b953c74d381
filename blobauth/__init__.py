"""
blobauth: SharedKey request signing and SAS URLs for Azure Blob Storage.

Signs outbound Blob service requests, derives read-only SAS URLs and maps
rejected responses to structured faults.
"""

__version__ = "0.1.0"

from .auth import SharedKeyCredential, SharedKeySigner, generate_blob_sas
from .storage import BlobStorageClient, BlobUploader, Fault

__all__ = [
    "SharedKeyCredential",
    "SharedKeySigner",
    "generate_blob_sas",
    "BlobStorageClient",
    "BlobUploader",
    "Fault",
    "__version__",
]
