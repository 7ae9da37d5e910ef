"""Storage backend factory: S3 when credentials and bucket are complete, else local disk. boto3 is only imported for S3."""
from tm_backend.services.storage.base import StorageBackend, StorageConfig
from tm_backend.services.storage.keys import NAMESPACES
from tm_backend.services.storage.local import LocalStorage


def get_storage(config: StorageConfig) -> StorageBackend:
    """Return the backend for config. Local mode creates avatars/ and attachments/ up front."""
    if config.remote_enabled:
        from tm_backend.services.storage.s3 import S3Storage
        return S3Storage(config)
    return LocalStorage(config.uploads_dir, chunk_size=config.chunk_size, namespaces=NAMESPACES)
