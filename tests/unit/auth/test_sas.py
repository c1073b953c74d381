"""Tests for blob SAS generation."""

import base64
import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import pytest

from blobauth.auth.sas import (
    SAS_VERSION,
    BlobSasPermissions,
    BlobSasSignatureValues,
    SASPermission,
    SASProtocol,
    encode_sas_query,
    format_sas_time,
    generate_blob_sas,
)
from blobauth.auth.sharedkey import SharedKeyCredential
from blobauth.exceptions import InvalidAccountKeyError, MissingCredentialError

ACCOUNT_KEY_BYTES = b"test-account-key-12345678901234567890"
EXPIRY = datetime(2026, 10, 25, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def credential():
    return SharedKeyCredential("myaccount", base64.b64encode(ACCOUNT_KEY_BYTES).decode())


class TestBlobSasPermissions:
    """Test permission rendering."""

    def test_read_only(self):
        assert str(BlobSasPermissions.read_only()) == "r"

    def test_canonical_order(self):
        permissions = BlobSasPermissions(
            SASPermission.DELETE, SASPermission.WRITE, SASPermission.READ
        )

        assert str(permissions) == "rwd"

    def test_from_string_reorders(self):
        assert str(BlobSasPermissions.from_string("dwar")) == "rawd"

    def test_full_set_order(self):
        assert str(BlobSasPermissions.from_string("mityxdwcar")) == "racwdxytim"

    def test_duplicates_collapse(self):
        assert str(BlobSasPermissions.from_string("rrr")) == "r"

    def test_invalid_character(self):
        with pytest.raises(ValueError):
            BlobSasPermissions.from_string("rz")

    def test_equality(self):
        assert BlobSasPermissions.from_string("wr") == BlobSasPermissions.from_string("rw")

    def test_membership(self):
        permissions = BlobSasPermissions.from_string("rw")

        assert SASPermission.READ in permissions
        assert SASPermission.DELETE not in permissions


class TestFormatSasTime:
    """Test SAS timestamp formatting."""

    def test_utc(self):
        assert format_sas_time(EXPIRY) == "2026-10-25T12:00:00Z"

    def test_converts_to_utc(self):
        value = datetime(2026, 10, 25, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))

        assert format_sas_time(value) == "2026-10-25T12:00:00Z"

    def test_naive_is_utc(self):
        assert format_sas_time(datetime(2026, 10, 25, 12, 0, 0)) == "2026-10-25T12:00:00Z"

    def test_drops_microseconds(self):
        assert format_sas_time(EXPIRY.replace(microsecond=999999)) == "2026-10-25T12:00:00Z"

    def test_none_is_empty(self):
        assert format_sas_time(None) == ""


class TestStringToSign:
    """Test the service SAS string-to-sign."""

    def test_layout(self):
        values = BlobSasSignatureValues(
            container_name="images",
            blob_name="chart.png",
            permissions=BlobSasPermissions.read_only(),
            expiry_time=EXPIRY,
        )

        expected = (
            "r\n"
            "\n"
            "2026-10-25T12:00:00Z\n"
            "/blob/myaccount/images/chart.png\n"
            "\n"
            "\n"
            "https\n"
            "2020-10-02\n"
            "b\n"
            "\n\n\n\n\n"
        )
        assert values.string_to_sign("myaccount") == expected
        assert len(values.string_to_sign("myaccount").split("\n")) == 15

    def test_start_time_included(self):
        values = BlobSasSignatureValues(
            container_name="images",
            blob_name="chart.png",
            permissions=BlobSasPermissions.read_only(),
            expiry_time=EXPIRY,
            start_time=EXPIRY - timedelta(days=1),
        )

        lines = values.string_to_sign("myaccount").split("\n")

        assert lines[1] == "2026-10-24T12:00:00Z"

    def test_backslashes_become_slashes(self):
        values = BlobSasSignatureValues(
            container_name="images",
            blob_name="dir\\chart.png",
            permissions=BlobSasPermissions.read_only(),
            expiry_time=EXPIRY,
        )

        assert values.canonical_name("acct") == "/blob/acct/images/dir/chart.png"


class TestGenerateBlobSas:
    """Test SAS query generation."""

    def test_known_query(self, credential):
        query = generate_blob_sas(
            credential, "images", "chart.png", BlobSasPermissions.read_only(), EXPIRY
        )

        assert query == (
            "se=2026-10-25T12%3A00%3A00Z"
            "&sig=GLnvh9W%2F%2B%2Fp1s%2BrwfvhStIhHdw5uBLnczwE%2BNwbW%2F5o%3D"
            "&sp=r&spr=https&sr=b&sv=2020-10-02"
        )

    def test_signature_matches_hmac(self, credential):
        values = BlobSasSignatureValues(
            container_name="images",
            blob_name="chart.png",
            permissions=BlobSasPermissions.from_string("rw"),
            expiry_time=EXPIRY,
        )
        expected = base64.b64encode(
            hmac.new(
                ACCOUNT_KEY_BYTES,
                values.string_to_sign("myaccount").encode("utf-8"),
                hashlib.sha256,
            ).digest()
        ).decode()

        assert values.sign(credential)["sig"] == expected

    def test_parameters(self, credential):
        query = generate_blob_sas(
            credential,
            "images",
            "chart.png",
            BlobSasPermissions.from_string("wr"),
            EXPIRY,
            start=EXPIRY - timedelta(hours=1),
        )

        params = {k: v[0] for k, v in parse_qs(query).items()}

        assert params["sv"] == SAS_VERSION
        assert params["sp"] == "rw"
        assert params["sr"] == "b"
        assert params["spr"] == "https"
        assert params["se"] == "2026-10-25T12:00:00Z"
        assert params["st"] == "2026-10-25T11:00:00Z"

    def test_parameters_sorted_by_key(self, credential):
        query = generate_blob_sas(
            credential,
            "images",
            "chart.png",
            BlobSasPermissions.read_only(),
            EXPIRY,
            start=EXPIRY - timedelta(hours=1),
        )

        keys = [pair.split("=", 1)[0] for pair in query.split("&")]

        assert keys == sorted(keys)

    def test_deterministic(self, credential):
        args = (credential, "images", "chart.png", BlobSasPermissions.read_only(), EXPIRY)

        assert generate_blob_sas(*args) == generate_blob_sas(*args)

    def test_scope_changes_signature(self, credential):
        first = generate_blob_sas(credential, "images", "a.png", BlobSasPermissions.read_only(), EXPIRY)
        second = generate_blob_sas(credential, "images", "b.png", BlobSasPermissions.read_only(), EXPIRY)

        assert parse_qs(first)["sig"] != parse_qs(second)["sig"]

    def test_protocol(self, credential):
        query = generate_blob_sas(
            credential,
            "images",
            "chart.png",
            BlobSasPermissions.read_only(),
            EXPIRY,
            protocol=SASProtocol.HTTPS_AND_HTTP,
        )

        assert parse_qs(query)["spr"] == ["https,http"]

    @pytest.mark.parametrize("credential_value", [None, "AccountKey=abc", object()])
    def test_missing_credential(self, credential_value):
        with pytest.raises(MissingCredentialError, match="Shared Key Credential"):
            generate_blob_sas(
                credential_value, "images", "chart.png", BlobSasPermissions.read_only(), EXPIRY
            )

    def test_invalid_key(self):
        credential = SharedKeyCredential("myaccount", "not base64!!")

        with pytest.raises(InvalidAccountKeyError):
            generate_blob_sas(
                credential, "images", "chart.png", BlobSasPermissions.read_only(), EXPIRY
            )


def test_encode_sas_query_escapes_reserved_characters():
    assert encode_sas_query({"sig": "a+b/c=", "se": "x:y"}) == "se=x%3Ay&sig=a%2Bb%2Fc%3D"
