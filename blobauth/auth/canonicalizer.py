"""Request canonicalization for Azure Blob SharedKey signing.

Builds the two canonical strings that go into a SharedKey string-to-sign:
the canonicalized headers (all ``x-ms-*`` headers) and the canonicalized
resource (account, path and query parameters).

Reference: https://learn.microsoft.com/rest/api/storageservices/authorize-with-shared-key
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import httpx

MS_HEADER_PREFIX = "x-ms-"


@dataclass(frozen=True)
class CanonicalRequestView:
    """Read-only projection of an outbound request used for signing.

    ``headers`` holds every request header as (lower-cased name, value)
    pairs in insertion order, so repeated headers keep all their values.
    ``query`` holds the query parameters as (name, value) pairs.
    """

    method: str
    path: str
    headers: Tuple[Tuple[str, str], ...] = ()
    query: Tuple[Tuple[str, str], ...] = ()
    _index: Dict[str, List[str]] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        for name, value in self.headers:
            self._index.setdefault(name.lower(), []).append(value)

    @classmethod
    def from_request(cls, request: httpx.Request) -> "CanonicalRequestView":
        """Project an ``httpx.Request``. The path is the decoded URL path."""
        return cls(
            method=request.method,
            path=request.url.path,
            headers=tuple((k.lower(), v) for k, v in request.headers.multi_items()),
            query=tuple(request.url.params.multi_items()),
        )

    @classmethod
    def from_parts(
        cls,
        method: str,
        path: str,
        headers: Optional[Mapping[str, str]] = None,
        query: Optional[Iterable[Tuple[str, str]]] = None,
    ) -> "CanonicalRequestView":
        return cls(
            method=method,
            path=path,
            headers=tuple((k.lower(), str(v)) for k, v in (headers or {}).items()),
            query=tuple(query or ()),
        )

    def header(self, name: str) -> str:
        """First value of a header, or an empty string when absent."""
        values = self._index.get(name.lower())
        return values[0] if values else ""

    def ms_headers(self) -> Dict[str, str]:
        """``x-ms-*`` headers keyed by lower-cased name, first value wins."""
        return {
            name: values[0]
            for name, values in self._index.items()
            if name.startswith(MS_HEADER_PREFIX) and values
        }


def canonicalize_headers(view: CanonicalRequestView) -> str:
    """Build the CanonicalizedHeaders string.

    Every ``x-ms-*`` header becomes a ``name:value`` line with a lower-cased
    name. Lines are sorted as whole strings and joined with ``\\n``. With no
    ``x-ms-*`` headers the result is the empty string.

    Example:
        >>> view = CanonicalRequestView.from_parts(
        ...     "PUT", "/c/b",
        ...     {"x-ms-version": "2017-04-17", "X-MS-Date": "Mon, 02 Jan 2006 15:04:05 GMT"},
        ... )
        >>> print(canonicalize_headers(view))
        x-ms-date:Mon, 02 Jan 2006 15:04:05 GMT
        x-ms-version:2017-04-17
    """
    lines = [f"{name}:{value}" for name, value in view.ms_headers().items()]
    lines.sort()
    return "\n".join(lines)


def canonicalize_resource(view: CanonicalRequestView, account_name: str) -> str:
    """Build the CanonicalizedResource string.

    Starts with ``/<account><path>``, then adds one ``name:v1,v2`` line per
    query parameter (lower-cased name, values sorted). All lines, the
    account line included, are then sorted as whole strings.

    Example:
        >>> view = CanonicalRequestView.from_parts(
        ...     "GET", "/container", query=[("restype", "container"), ("comp", "list")]
        ... )
        >>> print(canonicalize_resource(view, "myaccount"))
        /myaccount/container
        comp:list
        restype:container
    """
    params: Dict[str, List[str]] = {}
    for name, value in view.query:
        params.setdefault(name.lower(), []).append(value)

    lines = [f"/{account_name}{view.path}"]
    for name, values in params.items():
        lines.append(f"{name}:{','.join(sorted(values))}")

    # Sorting the account line together with the parameters is what the
    # service does; it must not be simplified to per-section ordering.
    lines.sort()
    return "\n".join(lines)
