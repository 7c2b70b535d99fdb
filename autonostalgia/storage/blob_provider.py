from typing import Iterable, Optional

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContentSettings

from ..config import settings
from .provider import StorageProvider


class BlobStorageProvider(StorageProvider):
    """One Azure container per bucket; containers are created on first upload."""

    def __init__(self) -> None:
        if not settings.azure_blob_connection:
            raise RuntimeError("AZURE_BLOB_CONNECTION must be set")
        self._service = BlobServiceClient.from_connection_string(settings.azure_blob_connection)

    def _blob(self, bucket: str, key: str):
        return self._service.get_blob_client(bucket, key.lstrip("/"))

    def upload(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        try:
            self._service.create_container(bucket, public_access="blob")
        except ResourceExistsError:
            pass
        self._blob(bucket, key).upload_blob(
            data, overwrite=True, content_settings=ContentSettings(content_type=content_type)
        )

    def get_public_url(self, bucket: str, key: str) -> str:
        return self._blob(bucket, key).url

    def read(self, bucket: str, key: str) -> Optional[bytes]:
        try:
            return self._blob(bucket, key).download_blob().readall()
        except ResourceNotFoundError:
            return None

    def exists(self, bucket: str, key: str) -> bool:
        return self._blob(bucket, key).exists()

    def remove(self, bucket: str, keys: Iterable[str]) -> None:
        for key in keys:
            try:
                self._blob(bucket, key).delete_blob()
            except ResourceNotFoundError:
                pass
