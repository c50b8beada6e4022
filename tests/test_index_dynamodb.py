"""Tests for the DynamoDB duplicate index against a mocked table."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from dupguard.index.base import StoreUnavailableError, UploadRecord, Uploader, WriteConflictError
from dupguard.index.dynamodb import DynamoDuplicateIndex

HASH = "ab" * 32


def client_error(code, operation="PutItem"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def stored_item(count=1):
    return {
        "perceptualHash": HASH,
        "averageHash": "1" * 1024,
        "dctHash": "0" * 63,
        "colorHash": "f" * 24,
        "fileHash": None,
        "uploadCount": Decimal(count),
        "firstUpload": "2024-01-01T00:00:00+00:00",
        "lastUpload": "2024-01-01T00:00:00+00:00",
        "uploads": [
            {"userId": "alice", "fileName": "cat.jpg", "timestamp": "2024-01-01T00:00:00+00:00"},
        ],
    }


@pytest.fixture
def table():
    return MagicMock()


@pytest.fixture
def index(table):
    return DynamoDuplicateIndex("ImageSignatures", table=table)


class TestDynamoRead:
    def test_get_converts_item(self, index, table):
        table.get_item.return_value = {"Item": stored_item(count=2)}

        record = index.get(HASH)

        assert isinstance(record, UploadRecord)
        assert record.upload_count == 2
        assert isinstance(record.upload_count, int)
        assert record.frequency_hash == "0" * 63
        assert record.uploaders == (
            Uploader(user_id="alice", file_name="cat.jpg", timestamp="2024-01-01T00:00:00+00:00"),
        )
        assert record.file_hash is None
        table.get_item.assert_called_once_with(Key={"perceptualHash": HASH}, ConsistentRead=True)

    def test_get_missing(self, index, table):
        table.get_item.return_value = {}

        assert index.get(HASH) is None

    def test_scan_follows_pagination(self, index, table):
        second = dict(stored_item(), perceptualHash="cd" * 32)
        table.scan.side_effect = [
            {"Items": [stored_item()], "LastEvaluatedKey": {"perceptualHash": HASH}},
            {"Items": [second]},
        ]

        records = index.scan_all()

        assert [r.perceptual_hash for r in records] == [HASH, "cd" * 32]
        assert table.scan.call_count == 2
        assert table.scan.call_args_list[1].kwargs == {"ExclusiveStartKey": {"perceptualHash": HASH}}


class TestDynamoWrite:
    def test_put_is_conditional(self, index, table):
        record = UploadRecord(
            perceptual_hash=HASH,
            average_hash="1" * 1024,
            frequency_hash="0" * 63,
            color_hash=None,
            upload_count=1,
            first_uploaded_at="t",
            last_uploaded_at="t",
            uploaders=(Uploader(user_id="alice", file_name="cat.jpg", timestamp="t"),),
        )

        index.put(record)

        kwargs = table.put_item.call_args.kwargs
        assert kwargs["ConditionExpression"] == "attribute_not_exists(perceptualHash)"
        assert kwargs["Item"]["perceptualHash"] == HASH
        assert kwargs["Item"]["dctHash"] == "0" * 63
        assert kwargs["Item"]["uploads"] == [{"userId": "alice", "fileName": "cat.jpg", "timestamp": "t"}]

    def test_put_conflict(self, index, table):
        table.put_item.side_effect = client_error("ConditionalCheckFailedException")

        with pytest.raises(WriteConflictError):
            index.put(MagicMock(perceptual_hash=HASH, uploaders=()))

    def test_increment_uses_expected_count(self, index, table):
        table.update_item.return_value = {"Attributes": stored_item(count=3)}
        uploader = Uploader(user_id="bob", file_name="dog.jpg", timestamp="2024-01-02T00:00:00+00:00")

        record = index.increment_exact(HASH, 2, uploader)

        kwargs = table.update_item.call_args.kwargs
        assert kwargs["ConditionExpression"] == "uploadCount = :expected"
        assert kwargs["ExpressionAttributeValues"][":expected"] == 2
        assert kwargs["ExpressionAttributeValues"][":upload"] == [
            {"userId": "bob", "fileName": "dog.jpg", "timestamp": "2024-01-02T00:00:00+00:00"}
        ]
        assert record.upload_count == 3

    def test_increment_conflict(self, index, table):
        table.update_item.side_effect = client_error("ConditionalCheckFailedException", "UpdateItem")

        with pytest.raises(WriteConflictError):
            index.increment_exact(HASH, 1, Uploader(user_id="bob", file_name="x", timestamp="t"))


class TestDynamoErrors:
    @pytest.mark.parametrize("code", [
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "ResourceNotFoundException",
    ])
    def test_unavailable_codes(self, index, table, code):
        table.get_item.side_effect = client_error(code, "GetItem")

        with pytest.raises(StoreUnavailableError):
            index.get(HASH)

    def test_connection_error(self, index, table):
        table.scan.side_effect = EndpointConnectionError(endpoint_url="https://dynamodb.local")

        with pytest.raises(StoreUnavailableError):
            index.scan_all()

    def test_other_client_errors_propagate(self, index, table):
        table.get_item.side_effect = client_error("ValidationException", "GetItem")

        with pytest.raises(ClientError):
            index.get(HASH)
