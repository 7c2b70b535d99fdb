from typing import Iterable, Optional


class StorageProvider:
    """Bucket-scoped object store. Keys never start with a slash."""

    def upload(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        raise NotImplementedError

    def get_public_url(self, bucket: str, key: str) -> str:
        raise NotImplementedError

    def read(self, bucket: str, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def exists(self, bucket: str, key: str) -> bool:
        raise NotImplementedError

    def remove(self, bucket: str, keys: Iterable[str]) -> None:
        raise NotImplementedError
