"""Tests for storage error mapping."""

import httpx
import pytest

from blobauth.exceptions import RequestRejectedError
from blobauth.storage.errors import (
    Fault,
    build_fault,
    fault_from_response,
    is_error_status,
    parse_error_body,
    read_limited,
)

BLOB_NOT_FOUND = (
    b'<?xml version="1.0" encoding="utf-8"?>'
    b"<Error><Code>BlobNotFound</Code><Message>x</Message></Error>"
)


class TestIsErrorStatus:
    """Test the [400, 600) failure window."""

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 409, 412, 500, 503, 599])
    def test_failures(self, status):
        assert is_error_status(status)

    @pytest.mark.parametrize("status", [100, 200, 201, 204, 301, 304, 399, 600, 601])
    def test_successes(self, status):
        assert not is_error_status(status)


class TestParseErrorBody:
    """Test XML error body parsing."""

    def test_storage_error(self):
        assert parse_error_body(BLOB_NOT_FOUND) == ("BlobNotFound", "x")

    def test_without_declaration(self):
        body = b"<Error><Code>AuthenticationFailed</Code><Message>Bad sig</Message></Error>"

        assert parse_error_body(body) == ("AuthenticationFailed", "Bad sig")

    def test_extra_elements_ignored(self):
        body = (
            b"<Error><Code>AuthenticationFailed</Code><Message>m</Message>"
            b"<AuthenticationErrorDetail>The MAC signature found in the HTTP request "
            b"is not the same as any computed signature.</AuthenticationErrorDetail></Error>"
        )

        assert parse_error_body(body) == ("AuthenticationFailed", "m")

    def test_missing_message(self):
        assert parse_error_body(b"<Error><Code>ServerBusy</Code></Error>") == ("ServerBusy", "")

    @pytest.mark.parametrize(
        "body",
        [
            b"",
            b"not xml at all",
            b"<Error><Code>Truncated",
            b'{"error": {"code": "BlobNotFound"}}',
            b"<Other><Code>BlobNotFound</Code></Other>",
        ],
    )
    def test_unparseable_bodies(self, body):
        assert parse_error_body(body) == ("", "")


class TestFault:
    """Test Fault construction and rendering."""

    def test_build_fault_parses_code(self):
        fault = build_fault(404, BLOB_NOT_FOUND, reason_phrase="Not Found")

        assert fault.status_code == 404
        assert fault.status == "404 Not Found"
        assert fault.error_code == "BlobNotFound"
        assert fault.error_message == "x"
        assert fault.body == BLOB_NOT_FOUND

    def test_malformed_body_kept(self):
        fault = build_fault(500, b"<html>oops")

        assert fault.error_code == ""
        assert fault.body == b"<html>oops"
        assert str(fault) == "status 500: <html>oops"

    def test_message_is_raw_body(self):
        fault = build_fault(404, BLOB_NOT_FOUND)

        assert str(fault) == f"status 404: {BLOB_NOT_FOUND.decode()}"

    def test_non_utf8_body_renders(self):
        fault = build_fault(400, b"\xff\xfe bad")

        assert str(fault).startswith("status 400: ")

    def test_fault_is_immutable(self):
        fault = build_fault(404, BLOB_NOT_FOUND)

        with pytest.raises(AttributeError):
            fault.status_code = 200

    def test_fault_headers_are_read_only(self):
        source = {"x-ms-request-id": "abc"}
        fault = build_fault(404, BLOB_NOT_FOUND, headers=source)

        with pytest.raises(TypeError):
            fault.headers["x-ms-request-id"] = "other"
        source["x-ms-request-id"] = "changed"

        assert fault.headers["x-ms-request-id"] == "abc"

    def test_direct_construction_copies_headers(self):
        source = {"etag": "1"}
        fault = Fault(status_code=409, status="409", headers=source)
        source.clear()

        assert dict(fault.headers) == {"etag": "1"}

    def test_rejected_error_carries_fault(self):
        fault = build_fault(404, BLOB_NOT_FOUND, reason_phrase="Not Found")

        error = RequestRejectedError(fault)

        assert error.fault is fault
        assert error.status_code == 404
        assert error.error_code == "BlobNotFound"
        assert str(error) == str(fault)

    def test_rejected_error_without_code(self):
        error = RequestRejectedError(Fault(status_code=502, status="502"))

        assert error.error_code == "RequestRejected"


class TestReadLimited:
    """Test bounded reads of error bodies."""

    @pytest.mark.asyncio
    async def test_caps_body(self):
        response = httpx.Response(500, content=b"a" * 100)

        assert await read_limited(response, 10) == b"a" * 10

    @pytest.mark.asyncio
    async def test_short_body_read_fully(self):
        response = httpx.Response(500, content=b"short")

        assert await read_limited(response, 10) == b"short"

    @pytest.mark.asyncio
    async def test_fault_from_response(self):
        response = httpx.Response(
            404,
            content=BLOB_NOT_FOUND,
            headers={"x-ms-error-code": "BlobNotFound", "x-ms-request-id": "abc"},
        )

        fault = await fault_from_response(response, max_body_bytes=1 << 20)

        assert fault.status_code == 404
        assert fault.status == "404 Not Found"
        assert fault.error_code == "BlobNotFound"
        assert fault.headers["x-ms-request-id"] == "abc"

    @pytest.mark.asyncio
    async def test_truncated_body_leaves_code_empty(self):
        response = httpx.Response(404, content=BLOB_NOT_FOUND)

        fault = await fault_from_response(response, max_body_bytes=20)

        assert fault.body == BLOB_NOT_FOUND[:20]
        assert fault.error_code == ""
