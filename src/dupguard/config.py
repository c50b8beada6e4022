import os
from dataclasses import dataclass


class ConfigurationError(Exception):
    """Raised at startup when required store identifiers or limits are invalid."""


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass
class Settings:
    max_uploads: int = 3
    similarity_threshold: int = 25          # 0-100, mapped onto the 256-bit distance scale
    table_name: str = "ImageSignatures"
    bucket_name: str = ""
    region: str = "us-east-1"
    presign_ttl: int = 300                  # seconds
    connect_timeout: float = 5.0
    read_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the deployment environment variables."""
        defaults = cls()
        return cls(
            max_uploads=_env_int("MAX_UPLOADS", defaults.max_uploads),
            similarity_threshold=_env_int("SIMILARITY_THRESHOLD", defaults.similarity_threshold),
            table_name=os.getenv("IMAGES_TABLE", defaults.table_name),
            bucket_name=os.getenv("S3_BUCKET", defaults.bucket_name),
            region=os.getenv("AWS_REGION", defaults.region),
            presign_ttl=_env_int("PRESIGN_TTL", defaults.presign_ttl),
        )

    def validate(self) -> "Settings":
        """
        Check that the settings can back a running service.

        Raises:
            ConfigurationError: If a store identifier is missing or a limit is out of range
        """
        if not self.table_name:
            raise ConfigurationError("A data store table name is required (IMAGES_TABLE)")
        if not self.bucket_name:
            raise ConfigurationError("A blob bucket name is required (S3_BUCKET)")
        if self.max_uploads < 1:
            raise ConfigurationError(f"max_uploads must be at least 1, got {self.max_uploads}")
        if not 0 <= self.similarity_threshold <= 100:
            raise ConfigurationError(
                f"similarity_threshold must be between 0 and 100, got {self.similarity_threshold}"
            )
        if self.presign_ttl < 1:
            raise ConfigurationError(f"presign_ttl must be positive, got {self.presign_ttl}")
        return self
