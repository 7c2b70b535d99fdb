"""
Local filesystem storage provider for development and tests.
Each bucket is a directory under the base dir.
"""
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import quote

import structlog

from ..config import settings
from .provider import StorageProvider

logger = structlog.get_logger(__name__)


def clean_key(key: str) -> str:
    parts = [p for p in key.replace("\\", "/").split("/") if p and p not in (".", "..")]
    return "/".join(parts)


class LocalStorageProvider(StorageProvider):
    def __init__(self, base_dir: Optional[str] = None, public_base_url: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.local_storage_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")

    def path_for(self, bucket: str, key: str) -> Path:
        return self.base_dir / clean_key(bucket) / clean_key(key)

    def upload(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        path = self.path_for(bucket, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def get_public_url(self, bucket: str, key: str) -> str:
        return f"{self.public_base_url}/files/{quote(clean_key(bucket))}/{quote(clean_key(key))}"

    def read(self, bucket: str, key: str) -> Optional[bytes]:
        path = self.path_for(bucket, key)
        if not path.is_file():
            return None
        return path.read_bytes()

    def exists(self, bucket: str, key: str) -> bool:
        return self.path_for(bucket, key).is_file()

    def remove(self, bucket: str, keys: Iterable[str]) -> None:
        for key in keys:
            path = self.path_for(bucket, key)
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("storage_remove_failed", bucket=bucket, key=key, error=str(exc))
