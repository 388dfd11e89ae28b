"""Tests for upload, acknowledgement and download message framing."""

import json

import pytest

from common.protocol import (
    Acknowledgement,
    DownloadData,
    DownloadStart,
    MalformedMessageError,
    UploadAbort,
    UploadData,
    UploadFinish,
    UploadStart,
    decode_upload_message,
)
from common.types import ArchiveKey


def value(**fields) -> bytes:
    return json.dumps(fields).encode()


class TestDecodeUploadMessage:

    def test_start(self):
        message = decode_upload_message(b"start", value(owner="u1", archiveName="a"))

        assert message == UploadStart(owner="u1", archive_name="a")
        assert message.archive_key == ArchiveKey("u1", "a")

    def test_start_with_iv(self):
        message = decode_upload_message("start", value(owner="u1", archiveName="a", iv="v"))

        assert message.iv == "v"

    def test_data_payload_is_base64_decoded(self):
        message = decode_upload_message(b"data", value(owner="u1", archiveName="a", orderNumber=3, data="QUFC"))

        assert isinstance(message, UploadData)
        assert message.order_number == 3
        assert message.data == b"AAB"

    def test_finish(self):
        message = decode_upload_message(
            b"finish",
            value(owner="u1", archiveName="a", chunkAmount=2, checksum="c1", iv="i1")
        )

        assert message == UploadFinish(owner="u1", archive_name="a", chunk_amount=2, checksum="c1", iv="i1")

    def test_abort(self):
        assert decode_upload_message(b"abort", value(owner="u1", archiveName="a")) == UploadAbort("u1", "a")

    def test_user_id_is_accepted_as_owner(self):
        message = decode_upload_message(b"abort", value(userId="u1", archiveName="a"))

        assert message.owner == "u1"

    def test_unknown_key_keeps_archive_key(self):
        with pytest.raises(MalformedMessageError) as exc_info:
            decode_upload_message(b"pause", value(owner="u1", archiveName="a"))

        assert exc_info.value.key == ArchiveKey("u1", "a")

    def test_invalid_json(self):
        with pytest.raises(MalformedMessageError) as exc_info:
            decode_upload_message(b"start", b"{")

        assert exc_info.value.key is None

    def test_missing_key(self):
        with pytest.raises(MalformedMessageError):
            decode_upload_message(None, value(owner="u1", archiveName="a"))

    def test_order_number_must_be_integer(self):
        with pytest.raises(MalformedMessageError):
            decode_upload_message(b"data", value(owner="u1", archiveName="a", orderNumber="1", data=""))

    def test_boolean_is_not_a_chunk_amount(self):
        with pytest.raises(MalformedMessageError):
            decode_upload_message(
                b"finish",
                value(owner="u1", archiveName="a", chunkAmount=True, checksum="c", iv="i")
            )

    def test_invalid_base64(self):
        with pytest.raises(MalformedMessageError) as exc_info:
            decode_upload_message(b"data", value(owner="u1", archiveName="a", orderNumber=0, data="%%%"))

        assert exc_info.value.key == ArchiveKey("u1", "a")

    def test_value_must_be_object(self):
        with pytest.raises(MalformedMessageError):
            decode_upload_message(b"start", b"[1, 2]")


class TestOutboundMessages:

    def test_error_acknowledgement(self):
        ack = Acknowledgement("error", "u1", "a", "error", "boom")

        assert ack.to_value() == {"owner": "u1", "archiveName": "a", "status": "error", "errorMessage": "boom"}

    def test_acknowledgement_without_error_message(self):
        assert "errorMessage" not in Acknowledgement("start", "u1", "a", "success").to_value()

    def test_download_messages(self):
        assert DownloadStart("u1", "a", "c1", "i1").to_value() == {
            "owner": "u1", "archiveName": "a", "checksum": "c1", "iv": "i1"
        }
        assert DownloadData("u1", "a", b"AAB").to_value()["data"] == "QUFC"
        assert DownloadData.KEY == "data"
