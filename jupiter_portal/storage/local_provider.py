"""
Local filesystem storage provider.
Saves project files under a base directory and serves them from a
configured public URL prefix.
"""
import logging
import shutil
from pathlib import Path
from typing import BinaryIO
from urllib.parse import quote

from .provider import StorageError, StorageProvider

logger = logging.getLogger(__name__)


class LocalStorageProvider(StorageProvider):
    """Local filesystem storage provider."""

    def __init__(self, base_dir: str, public_base_url: str):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip('/')

    def _get_path(self, key: str) -> Path:
        """Get the local filesystem path for a given key."""
        clean_key = key.lstrip('/').replace('..', '').replace('\\', '/')
        return self.base_dir / clean_key

    def save(self, key: str, stream: BinaryIO, content_type: str = None) -> None:
        """Write a new object; an existing key is never overwritten."""
        path = self._get_path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'xb') as f:
                shutil.copyfileobj(stream, f)
        except FileExistsError as e:
            raise StorageError(f'Storage object {key} already exists') from e
        except OSError as e:
            raise StorageError(f'Could not store {key}: {e}') from e

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{quote(key.lstrip('/'))}"

    def exists(self, key: str) -> bool:
        return self._get_path(key).exists()

    def delete(self, key: str) -> None:
        path = self._get_path(key)
        if not path.exists():
            logger.warning('Delete of missing storage object %s', key)
            return
        try:
            path.unlink()
        except OSError as e:
            raise StorageError(f'Could not delete {key}: {e}') from e
