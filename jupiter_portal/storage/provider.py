from typing import BinaryIO


class StorageError(Exception):
    """Blob storage operation failed."""


class StorageProvider:
    def save(self, key: str, stream: BinaryIO, content_type: str = None) -> None:
        raise NotImplementedError

    def public_url(self, key: str) -> str:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError
