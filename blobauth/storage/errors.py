"""Storage error responses.

Maps rejected responses from the Blob service into ``Fault`` values. The
service reports errors as a small XML document:

    <?xml version="1.0" encoding="utf-8"?>
    <Error>
        <Code>BlobNotFound</Code>
        <Message>The specified blob does not exist.</Message>
    </Error>
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple
from xml.etree import ElementTree as ET

import httpx

logger = logging.getLogger(__name__)

# Cap on the error body kept in memory.
DEFAULT_MAX_ERROR_BODY_BYTES = 1 << 20

# Statuses in [400, 600) are failures; everything else counts as success.
ERROR_STATUS_MIN = 400
ERROR_STATUS_MAX = 600


@dataclass(frozen=True)
class Fault:
    """A request the service received and rejected."""

    status_code: int
    status: str
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)
    error_code: str = ""
    error_message: str = ""

    def __post_init__(self):
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def __str__(self) -> str:
        return f"status {self.status_code}: {self.body.decode('utf-8', errors='replace')}"


def is_error_status(status_code: int) -> bool:
    """True for statuses the service uses to reject a request."""
    return ERROR_STATUS_MIN <= status_code < ERROR_STATUS_MAX


def parse_error_body(body: bytes) -> Tuple[str, str]:
    """Parse an XML error document.

    Args:
        body: Raw response body

    Returns:
        (code, message); both empty when the body is not an ``Error`` document
    """
    if not body:
        return "", ""
    try:
        root = ET.fromstring(body)
    except ET.ParseError as exc:
        logger.debug(f"Error body is not well-formed XML: {exc}")
        return "", ""
    if root.tag != "Error":
        return "", ""
    return root.findtext("Code", default=""), root.findtext("Message", default="")


async def read_limited(response: httpx.Response, limit: int) -> bytes:
    """
    Read at most ``limit`` bytes from a streamed response.

    The cap applies to decoded bytes; storage requests ask for
    ``Accept-Encoding: identity`` so decoded and wire sizes match.
    """
    chunks = []
    remaining = limit
    async for chunk in response.aiter_bytes():
        if len(chunk) >= remaining:
            chunks.append(chunk[:remaining])
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def build_fault(
    status_code: int,
    body: bytes,
    *,
    reason_phrase: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> Fault:
    """Build a ``Fault`` from a status code and a (capped) body."""
    code, message = parse_error_body(body)
    status = f"{status_code} {reason_phrase}" if reason_phrase else str(status_code)
    return Fault(
        status_code=status_code,
        status=status,
        body=body,
        headers=dict(headers or {}),
        error_code=code,
        error_message=message,
    )


async def fault_from_response(
    response: httpx.Response, max_body_bytes: int = DEFAULT_MAX_ERROR_BODY_BYTES
) -> Fault:
    """Read the capped body of a streamed error response and build a ``Fault``."""
    body = await read_limited(response, max_body_bytes)
    return build_fault(
        response.status_code,
        body,
        reason_phrase=response.reason_phrase,
        headers=dict(response.headers),
    )
