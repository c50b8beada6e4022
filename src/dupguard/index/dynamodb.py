"""DynamoDB-backed duplicate index using conditional writes."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .base import (
    DuplicateIndex,
    StoreUnavailableError,
    UploadRecord,
    Uploader,
    WriteConflictError,
)
from ..logging import get_logger

logger = get_logger(__name__)

KEY_ATTRIBUTE = "perceptualHash"

_UNAVAILABLE_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
    "ResourceNotFoundException",
    "InternalServerError",
    "ServiceUnavailable",
}


class DynamoDuplicateIndex(DuplicateIndex):
    """
    Duplicate index stored in a DynamoDB table keyed by `perceptualHash`.

    Retries are left to the caller: the client is built with botocore's own
    retries disabled and with the given connect/read timeouts.
    """

    def __init__(
        self,
        table_name: str,
        region: Optional[str] = None,
        connect_timeout: float = 5.0,
        read_timeout: float = 10.0,
        table: Any = None,
    ) -> None:
        self.table_name = table_name
        if table is None:
            config = Config(
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                retries={"max_attempts": 0},
            )
            resource = boto3.resource("dynamodb", region_name=region, config=config)
            table = resource.Table(table_name)
        self._table = table

    def get(self, perceptual_hash: str) -> Optional[UploadRecord]:
        response = self._call(
            "get_item",
            self._table.get_item,
            Key={KEY_ATTRIBUTE: perceptual_hash},
            ConsistentRead=True,
        )
        item = response.get("Item")
        return _from_item(item) if item else None

    def put(self, record: UploadRecord) -> None:
        self._call(
            "put_item",
            self._table.put_item,
            Item=_to_item(record),
            ConditionExpression=f"attribute_not_exists({KEY_ATTRIBUTE})",
        )
        logger.info(f"Stored new record {record.perceptual_hash[:16]}...")

    def increment_exact(
        self,
        perceptual_hash: str,
        expected_count: int,
        uploader: Uploader,
    ) -> UploadRecord:
        response = self._call(
            "update_item",
            self._table.update_item,
            Key={KEY_ATTRIBUTE: perceptual_hash},
            UpdateExpression=(
                "SET uploadCount = uploadCount + :inc, lastUpload = :time, "
                "uploads = list_append(if_not_exists(uploads, :empty), :upload)"
            ),
            ConditionExpression="uploadCount = :expected",
            ExpressionAttributeValues={
                ":inc": 1,
                ":time": uploader.timestamp,
                ":upload": [_uploader_to_item(uploader)],
                ":empty": [],
                ":expected": expected_count,
            },
            ReturnValues="ALL_NEW",
        )
        return _from_item(response["Attributes"])

    def scan_all(self) -> List[UploadRecord]:
        records: List[UploadRecord] = []
        kwargs: Dict[str, Any] = {}
        while True:
            response = self._call("scan", self._table.scan, **kwargs)
            records.extend(_from_item(item) for item in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key

        logger.debug(f"Scanned {len(records)} records from {self.table_name}")
        return records

    def _call(self, operation: str, method: Callable[..., Dict[str, Any]], **kwargs: Any) -> Dict[str, Any]:
        try:
            return method(**kwargs)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code == "ConditionalCheckFailedException":
                raise WriteConflictError(f"{operation} on {self.table_name} rejected: condition failed") from exc
            if code in _UNAVAILABLE_CODES:
                raise StoreUnavailableError(f"{operation} on {self.table_name} failed: {code}") from exc
            raise
        except BotoCoreError as exc:
            raise StoreUnavailableError(f"{operation} on {self.table_name} failed: {exc}") from exc


def _to_item(record: UploadRecord) -> Dict[str, Any]:
    return {
        KEY_ATTRIBUTE: record.perceptual_hash,
        "averageHash": record.average_hash,
        "dctHash": record.frequency_hash,
        "colorHash": record.color_hash,
        "fileHash": record.file_hash,
        "uploadCount": record.upload_count,
        "firstUpload": record.first_uploaded_at,
        "lastUpload": record.last_uploaded_at,
        "uploads": [_uploader_to_item(uploader) for uploader in record.uploaders],
    }


def _from_item(item: Dict[str, Any]) -> UploadRecord:
    return UploadRecord(
        perceptual_hash=item[KEY_ATTRIBUTE],
        average_hash=item.get("averageHash") or "",
        frequency_hash=item.get("dctHash") or "",
        color_hash=item.get("colorHash") or None,
        upload_count=int(item.get("uploadCount") or 0),  # Decimal from the resource layer
        first_uploaded_at=item.get("firstUpload") or "",
        last_uploaded_at=item.get("lastUpload") or "",
        uploaders=tuple(
            Uploader(
                user_id=entry.get("userId", "anonymous"),
                file_name=entry.get("fileName", ""),
                timestamp=entry.get("timestamp", ""),
            )
            for entry in item.get("uploads") or []
        ),
        file_hash=item.get("fileHash") or None,
    )


def _uploader_to_item(uploader: Uploader) -> Dict[str, str]:
    return {
        "userId": uploader.user_id,
        "fileName": uploader.file_name,
        "timestamp": uploader.timestamp,
    }

