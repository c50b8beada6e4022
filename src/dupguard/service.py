"""
Request/response front for upload checks.

Translates transport payloads into quota evaluations and always answers with
a complete response: every field is present with a defined default, and any
failure becomes a failure response rather than a partial success.
"""

import base64
import binascii
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from .blobstore import BlobStore, S3BlobStore
from .config import Settings
from .index.dynamodb import DynamoDuplicateIndex
from .logging import get_logger
from .quota.engine import QuotaDecision, QuotaEngine

logger = get_logger(__name__)

UPLOAD_CONTENT_TYPE = "image/jpeg"


class InvalidRequestError(Exception):
    """Raised when an upload payload is missing or carries unusable image data."""


@dataclass(frozen=True)
class UploadRequest:
    image_bytes: bytes
    user_id: str = "anonymous"
    file_name: str = "unnamed.jpg"
    file_hash: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "UploadRequest":
        """
        Parse a decoded JSON body.

        Accepts base64 image data under `imageData` or `imageBytesBase64`, or
        raw bytes (or a list of byte values) under `imageBytes`.

        Raises:
            InvalidRequestError: If no image data is present or it cannot be read as bytes
        """
        raw = payload.get("imageBytes")
        encoded = payload.get("imageData") or payload.get("imageBytesBase64")

        if raw:
            image_bytes = _raw_bytes(raw)
        elif encoded:
            try:
                image_bytes = base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError, TypeError) as exc:
                raise InvalidRequestError("Invalid image data encoding") from exc
        else:
            raise InvalidRequestError("No image data provided")

        if not image_bytes:
            raise InvalidRequestError("No image data provided")

        return cls(
            image_bytes=image_bytes,
            user_id=payload.get("userId") or "anonymous",
            file_name=payload.get("fileName") or payload.get("filename") or "unnamed.jpg",
            file_hash=payload.get("fileHash") or payload.get("imageHash") or None,
        )


def _raw_bytes(raw: Any) -> bytes:
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)
    if isinstance(raw, list):
        try:
            return bytes(raw)
        except (TypeError, ValueError) as exc:
            raise InvalidRequestError("Invalid image data encoding") from exc
    raise InvalidRequestError("Invalid image data encoding")


@dataclass(frozen=True)
class UploadResponse:
    success: bool = False
    blocked: bool = False
    total_count: int = 0
    upload_count: int = 0
    perceptual_hash: str = ""
    similar_images: int = 0
    image_url: Optional[str] = None
    message: str = ""

    @classmethod
    def from_decision(cls, decision: QuotaDecision, success: bool, image_url: Optional[str] = None) -> "UploadResponse":
        return cls(
            success=success,
            blocked=decision.blocked,
            total_count=decision.total_count,
            upload_count=decision.exact_upload_count,
            perceptual_hash=decision.combined_hash,
            similar_images=len(decision.similar_matches),
            image_url=image_url,
            message=decision.message,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the wire field names."""
        return {
            "success": self.success,
            "blocked": self.blocked,
            "totalCount": self.total_count,
            "uploadCount": self.upload_count,
            "perceptualHash": self.perceptual_hash,
            "similarImages": self.similar_images,
            "imageUrl": self.image_url,
            "message": self.message,
        }


@dataclass(frozen=True)
class PresignedUpload:
    key: str
    url: str
    expires_in: int


def _epoch_millis() -> int:
    return int(time.time() * 1000)


class UploadService:
    """Runs upload checks against the quota engine and stages allowed images in the blob store."""

    def __init__(
        self,
        engine: QuotaEngine,
        blob_store: BlobStore,
        settings: Optional[Settings] = None,
        millis: Callable[[], int] = _epoch_millis,
    ) -> None:
        self.engine = engine
        self.blob_store = blob_store
        self.settings = settings or Settings()
        self._millis = millis

    def object_key(self, perceptual_hash: str) -> str:
        return f"images/{perceptual_hash}_{self._millis()}.jpg"

    def handle_payload(self, payload: Mapping[str, Any]) -> UploadResponse:
        """Parse a transport payload and run the pre-upload check."""
        try:
            request = UploadRequest.from_payload(payload)
        except InvalidRequestError as exc:
            logger.warning(f"Rejected upload payload: {exc}")
            return UploadResponse(message=str(exc))
        return self.handle(request)

    def handle(self, request: UploadRequest) -> UploadResponse:
        """
        Pre-upload check: evaluate the image and store it when allowed.

        Blocked images are never written to the blob store.
        """
        try:
            decision = self._evaluate(request.image_bytes, request.user_id, request.file_name, request.file_hash)
            if decision.blocked:
                return UploadResponse.from_decision(decision, success=False)

            key = self.object_key(decision.combined_hash)
            image_url = self.blob_store.put(
                key,
                request.image_bytes,
                UPLOAD_CONTENT_TYPE,
                metadata={
                    "fileHash": request.file_hash or "",
                    "userId": request.user_id,
                    "originalFilename": request.file_name,
                    "perceptualHash": decision.combined_hash,
                },
            )
            return UploadResponse.from_decision(decision, success=True, image_url=image_url)
        except Exception as exc:
            logger.exception(f"Upload check failed for {request.file_name}: {exc}")
            return UploadResponse(message=str(exc) or "Unknown error occurred")

    def handle_stored_object(
        self,
        key: str,
        user_id: str = "anonymous",
        file_hash: Optional[str] = None,
    ) -> UploadResponse:
        """
        Post-upload check of an object already staged in the blob store.

        The object is deleted when the upload is blocked.
        """
        try:
            image_bytes = self.blob_store.get(key)
            decision = self._evaluate(image_bytes, user_id, key, file_hash)
            if decision.blocked:
                self.blob_store.delete(key)
                logger.info(f"Deleted blocked object {key}")
            return UploadResponse.from_decision(decision, success=True)
        except Exception as exc:
            logger.exception(f"Stored object check failed for {key}: {exc}")
            return UploadResponse(message=str(exc) or "Unknown error occurred")

    def presign_upload(self, perceptual_hash: str, content_type: str = UPLOAD_CONTENT_TYPE) -> PresignedUpload:
        """Presigned PUT URL for a client-side upload of an allowed image."""
        key = self.object_key(perceptual_hash)
        ttl = self.settings.presign_ttl
        url = self.blob_store.presign_put(key, content_type, ttl)
        return PresignedUpload(key=key, url=url, expires_in=ttl)

    def _evaluate(
        self,
        image_bytes: bytes,
        user_id: str,
        file_name: str,
        file_hash: Optional[str],
    ) -> QuotaDecision:
        return self.engine.evaluate(
            image_bytes,
            user_id=user_id,
            file_name=file_name,
            max_uploads=self.settings.max_uploads,
            similarity_threshold=self.settings.similarity_threshold,
            file_hash=file_hash,
        )


def build_service(settings: Settings) -> UploadService:
    """
    Wire the DynamoDB index and S3 blob store for the given settings.

    Raises:
        ConfigurationError: If the settings are incomplete
    """
    settings.validate()
    index = DynamoDuplicateIndex(
        settings.table_name,
        region=settings.region,
        connect_timeout=settings.connect_timeout,
        read_timeout=settings.read_timeout,
    )
    blob_store = S3BlobStore(
        settings.bucket_name,
        region=settings.region,
        connect_timeout=settings.connect_timeout,
        read_timeout=settings.read_timeout,
    )
    return UploadService(QuotaEngine(index), blob_store, settings)
