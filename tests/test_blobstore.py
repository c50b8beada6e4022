"""Tests for the blob store adapters."""

import io
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from dupguard.blobstore import BlobStoreError, InMemoryBlobStore, S3BlobStore


class TestInMemoryBlobStore:
    def test_put_get_delete(self):
        store = InMemoryBlobStore()

        url = store.put("images/a.jpg", b"data", "image/jpeg", metadata={"userId": "alice"})

        assert url == "memory://images/a.jpg"
        assert store.get("images/a.jpg") == b"data"
        assert store.metadata["images/a.jpg"] == {"userId": "alice", "ContentType": "image/jpeg"}

        store.delete("images/a.jpg")
        with pytest.raises(BlobStoreError):
            store.get("images/a.jpg")

    def test_presign(self):
        url = InMemoryBlobStore().presign_put("images/a.jpg", "image/jpeg", 300)

        assert url.startswith("memory://images/a.jpg")
        assert "expires=300" in url


class TestS3BlobStore:
    def test_put_returns_object_url(self):
        client = MagicMock()
        store = S3BlobStore("uploads", region="eu-west-1", client=client)

        url = store.put("images/a.jpg", b"data", "image/jpeg", metadata={"userId": "alice"})

        assert url == "https://uploads.s3.eu-west-1.amazonaws.com/images/a.jpg"
        client.put_object.assert_called_once_with(
            Bucket="uploads",
            Key="images/a.jpg",
            Body=b"data",
            ContentType="image/jpeg",
            Metadata={"userId": "alice"},
        )

    def test_get_reads_body(self):
        client = MagicMock()
        client.get_object.return_value = {"Body": io.BytesIO(b"payload")}
        store = S3BlobStore("uploads", client=client)

        assert store.get("images/a.jpg") == b"payload"

    def test_delete(self):
        client = MagicMock()
        S3BlobStore("uploads", client=client).delete("images/a.jpg")

        client.delete_object.assert_called_once_with(Bucket="uploads", Key="images/a.jpg")

    def test_presign(self):
        client = MagicMock()
        client.generate_presigned_url.return_value = "https://signed"
        store = S3BlobStore("uploads", client=client)

        assert store.presign_put("images/a.jpg", "image/jpeg", 300) == "https://signed"
        client.generate_presigned_url.assert_called_once_with(
            "put_object",
            Params={"Bucket": "uploads", "Key": "images/a.jpg", "ContentType": "image/jpeg"},
            ExpiresIn=300,
        )

    def test_errors_are_wrapped(self):
        client = MagicMock()
        client.put_object.side_effect = ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "PutObject")
        store = S3BlobStore("uploads", client=client)

        with pytest.raises(BlobStoreError):
            store.put("images/a.jpg", b"data", "image/jpeg")
