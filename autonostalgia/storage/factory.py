from ..config import settings
from .provider import StorageProvider


def get_storage() -> StorageProvider:
    """
    Blob storage when STORAGE_PROVIDER=blob, local filesystem otherwise.
    Overridden in tests.
    """
    if settings.storage_provider == "blob":
        from .blob_provider import BlobStorageProvider

        return BlobStorageProvider()
    from .local_provider import LocalStorageProvider

    return LocalStorageProvider()
