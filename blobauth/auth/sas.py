"""Blob service SAS (Shared Access Signature) generation.

Builds a signed, time-limited query string that grants scoped access to a
single blob without handing out the account key.

Reference: https://learn.microsoft.com/rest/api/storageservices/create-service-sas
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional
from urllib.parse import urlencode

from blobauth.auth.sharedkey import SharedKeyCredential, compute_signature
from blobauth.exceptions import MissingCredentialError

SAS_VERSION = "2020-10-02"
SAS_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class SASProtocol(str, Enum):
    """Allowed protocols for a SAS."""

    HTTPS = "https"
    HTTPS_AND_HTTP = "https,http"


class SASPermission(str, Enum):
    """Blob SAS permission flags, declared in signing order."""

    READ = "r"
    ADD = "a"
    CREATE = "c"
    WRITE = "w"
    DELETE = "d"
    DELETE_PREVIOUS_VERSION = "x"
    PERMANENT_DELETE = "y"
    TAG = "t"
    EXECUTE = "e"
    SET_IMMUTABILITY_POLICY = "i"
    MOVE = "m"


class BlobSasPermissions:
    """A set of blob SAS permissions.

    ``str()`` always renders the flags in the canonical order the service
    expects, whatever order they were given in.
    """

    def __init__(self, *permissions: SASPermission):
        self._permissions = frozenset(permissions)

    @classmethod
    def from_string(cls, value: str) -> "BlobSasPermissions":
        """Parse a permission string such as ``"wr"``.

        Raises:
            ValueError: On an unknown permission character
        """
        try:
            return cls(*(SASPermission(char) for char in value))
        except ValueError as exc:
            raise ValueError(f"Invalid SAS permission string: {value!r}") from exc

    @classmethod
    def read_only(cls) -> "BlobSasPermissions":
        return cls(SASPermission.READ)

    def __contains__(self, permission: SASPermission) -> bool:
        return permission in self._permissions

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BlobSasPermissions):
            return NotImplemented
        return self._permissions == other._permissions

    def __hash__(self) -> int:
        return hash(self._permissions)

    def __str__(self) -> str:
        return "".join(p.value for p in SASPermission if p in self._permissions)

    def __repr__(self) -> str:
        return f"BlobSasPermissions({str(self)!r})"


def format_sas_time(value: Optional[datetime]) -> str:
    """Render a datetime as UTC ``YYYY-MM-DDTHH:MM:SSZ``; ``None`` becomes ``""``."""
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(SAS_TIME_FORMAT)


@dataclass
class BlobSasSignatureValues:
    """Values signed into a blob service SAS."""

    container_name: str
    blob_name: str
    permissions: BlobSasPermissions
    expiry_time: datetime
    start_time: Optional[datetime] = None
    protocol: SASProtocol = SASProtocol.HTTPS
    version: str = SAS_VERSION

    # Signed resource: "b" is a single blob.
    resource: str = "b"

    def canonical_name(self, account_name: str) -> str:
        blob_name = self.blob_name.replace("\\", "/")
        return f"/blob/{account_name}/{self.container_name}/{blob_name}"

    def string_to_sign(self, account_name: str) -> str:
        """
        Build the service SAS string-to-sign.

        Format (2018-11-09 through 2020-10-02):
            signedPermissions\\n
            signedStart\\n
            signedExpiry\\n
            canonicalizedResource\\n
            signedIdentifier\\n
            signedIP\\n
            signedProtocol\\n
            signedVersion\\n
            signedResource\\n
            signedSnapshotTime\\n
            rscc\\n
            rscd\\n
            rsce\\n
            rscl\\n
            rsct
        """
        parts = [
            str(self.permissions),
            format_sas_time(self.start_time),
            format_sas_time(self.expiry_time),
            self.canonical_name(account_name),
            "",  # signed identifier
            "",  # signed IP
            self.protocol.value,
            self.version,
            self.resource,
            "",  # snapshot time
            "",  # rscc
            "",  # rscd
            "",  # rsce
            "",  # rscl
            "",  # rsct
        ]
        return "\n".join(parts)

    def sign(self, credential: SharedKeyCredential) -> Dict[str, str]:
        """
        Sign the values and return the SAS query parameters.

        Raises:
            MissingCredentialError: If ``credential`` is not a shared key credential
            InvalidAccountKeyError: If the account key cannot be decoded
        """
        if not isinstance(credential, SharedKeyCredential):
            raise MissingCredentialError()

        signature = compute_signature(
            self.string_to_sign(credential.account_name),
            credential.decoded_key(),
        )

        params = {
            "sv": self.version,
            "spr": self.protocol.value,
            "se": format_sas_time(self.expiry_time),
            "sr": self.resource,
            "sp": str(self.permissions),
            "sig": signature,
        }
        if self.start_time is not None:
            params["st"] = format_sas_time(self.start_time)
        return params


def encode_sas_query(params: Dict[str, str]) -> str:
    """Form-encode SAS parameters sorted by key."""
    return urlencode(sorted(params.items()))


def generate_blob_sas(
    credential: Optional[SharedKeyCredential],
    container_name: str,
    blob_name: str,
    permissions: BlobSasPermissions,
    expiry: datetime,
    *,
    start: Optional[datetime] = None,
    protocol: SASProtocol = SASProtocol.HTTPS,
    version: str = SAS_VERSION,
) -> str:
    """
    Generate a blob SAS query string.

    Args:
        credential: Shared key credential of the account owning the blob
        container_name: Container name
        blob_name: Blob name, unescaped
        permissions: Granted permissions
        expiry: Expiry time (naive datetimes are taken as UTC)
        start: Optional start time
        protocol: Allowed protocol(s)
        version: Signed storage version

    Returns:
        Query string without a leading ``?``

    Raises:
        MissingCredentialError: If no shared key credential is given
        InvalidAccountKeyError: If the account key cannot be decoded
    """
    values = BlobSasSignatureValues(
        container_name=container_name,
        blob_name=blob_name,
        permissions=permissions,
        expiry_time=expiry,
        start_time=start,
        protocol=protocol,
        version=version,
    )
    return encode_sas_query(values.sign(credential))
