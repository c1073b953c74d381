"""
SharedKey request signing for Azure Blob Storage.

Signature = Base64(HMAC-SHA256(UTF8(StringToSign), Base64Decode(AccountKey)))

Reference: https://learn.microsoft.com/rest/api/storageservices/authorize-with-shared-key
"""

import base64
import binascii
import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

import httpx

from blobauth.auth.canonicalizer import (
    CanonicalRequestView,
    canonicalize_headers,
    canonicalize_resource,
)
from blobauth.exceptions import InvalidAccountKeyError

AUTH_SCHEME = "SharedKey"

# Order is part of the signing protocol.
STANDARD_HEADERS = (
    "Content-Encoding",
    "Content-Language",
    "Content-Length",
    "Content-MD5",
    "Content-Type",
    "Date",
    "If-Modified-Since",
    "If-Match",
    "If-None-Match",
    "If-Unmodified-Since",
    "Range",
)


@dataclass(frozen=True)
class SharedKeyCredential:
    """Storage account name and base64-encoded account key."""

    account_name: str
    account_key: str = field(repr=False)

    def decoded_key(self) -> bytes:
        """
        Decode the account key.

        Raises:
            InvalidAccountKeyError: If the key is not valid base64
        """
        try:
            return base64.b64decode(self.account_key, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidAccountKeyError(
                f"Account key for '{self.account_name}' is not valid base64"
            ) from exc


def build_string_to_sign(view: CanonicalRequestView, account_name: str) -> str:
    """
    Build the SharedKey string-to-sign.

    Format:
        VERB\\n
        Content-Encoding\\n
        Content-Language\\n
        Content-Length\\n
        Content-MD5\\n
        Content-Type\\n
        Date\\n
        If-Modified-Since\\n
        If-Match\\n
        If-None-Match\\n
        If-Unmodified-Since\\n
        Range\\n
        CanonicalizedHeaders\\n
        CanonicalizedResource

    Absent headers contribute an empty line.
    """
    parts = [view.method.upper()]
    parts.extend(view.header(name) for name in STANDARD_HEADERS)
    parts.append(canonicalize_headers(view))
    parts.append(canonicalize_resource(view, account_name))
    return "\n".join(parts)


def compute_signature(string_to_sign: str, account_key: bytes) -> str:
    """
    Compute the base64 HMAC-SHA256 of a string-to-sign.

    Args:
        string_to_sign: Canonical string to sign
        account_key: Decoded account key bytes

    Returns:
        Base64-encoded signature
    """
    digest = hmac.new(account_key, string_to_sign.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def parse_authorization_header(auth_header: str) -> Tuple[str, str]:
    """
    Split ``SharedKey account:signature`` into (account, signature).

    Raises:
        ValueError: If the header is not a SharedKey header
    """
    parts = auth_header.strip().split(maxsplit=1)
    if len(parts) != 2 or parts[0] != AUTH_SCHEME or ":" not in parts[1]:
        raise ValueError(f"Not a SharedKey authorization header: {auth_header!r}")
    account_name, signature = parts[1].split(":", 1)
    return account_name, signature


class SharedKeySigner:
    """
    Signs outbound requests with the SharedKey scheme.

    The signer holds no mutable state; one instance can sign requests from
    any number of tasks or threads.

    Example:
        signer = SharedKeySigner(SharedKeyCredential("myaccount", key))
        request = httpx.Request("PUT", url, headers={...}, content=data)
        signer.sign(request)
        # request.headers["Authorization"] == "SharedKey myaccount:..."
    """

    def __init__(self, credential: SharedKeyCredential, logger: Optional[logging.Logger] = None):
        self.credential = credential
        self.logger = logger or logging.getLogger(__name__)

    def signature_for(self, view: CanonicalRequestView) -> str:
        """Compute the signature for a request view without touching any request."""
        key = self.credential.decoded_key()
        string_to_sign = build_string_to_sign(view, self.credential.account_name)
        return compute_signature(string_to_sign, key)

    def sign(self, request: httpx.Request) -> None:
        """
        Set the Authorization header on ``request``.

        Standard headers that should be covered must already be set; a
        missing header signs as an empty line.

        Raises:
            InvalidAccountKeyError: If the account key cannot be decoded.
                The request is left unchanged.
        """
        view = CanonicalRequestView.from_request(request)
        signature = self.signature_for(view)
        request.headers["Authorization"] = (
            f"{AUTH_SCHEME} {self.credential.account_name}:{signature}"
        )
        self.logger.debug(
            f"Signed {view.method} {view.path} for account {self.credential.account_name}"
        )
