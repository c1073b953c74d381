"""
blobauth authentication module.

SharedKey request signing and blob SAS generation.
"""

from blobauth.auth.canonicalizer import (
    CanonicalRequestView,
    canonicalize_headers,
    canonicalize_resource,
)
from blobauth.auth.sas import (
    SAS_VERSION,
    BlobSasPermissions,
    BlobSasSignatureValues,
    SASPermission,
    SASProtocol,
    generate_blob_sas,
)
from blobauth.auth.sharedkey import (
    SharedKeyCredential,
    SharedKeySigner,
    build_string_to_sign,
    compute_signature,
    parse_authorization_header,
)

__all__ = [
    # Canonicalization
    "CanonicalRequestView",
    "canonicalize_headers",
    "canonicalize_resource",
    # SharedKey
    "SharedKeyCredential",
    "SharedKeySigner",
    "build_string_to_sign",
    "compute_signature",
    "parse_authorization_header",
    # SAS
    "SAS_VERSION",
    "BlobSasPermissions",
    "BlobSasSignatureValues",
    "SASPermission",
    "SASProtocol",
    "generate_blob_sas",
]
