"""Blob storage for project files.

The provider is created lazily per app from STORAGE_DIR and
STORAGE_PUBLIC_URL and cached in ``app.extensions['storage']``; tests
may place their own provider there.
"""
from flask import current_app

from .local_provider import LocalStorageProvider
from .provider import StorageError, StorageProvider


def get_storage() -> StorageProvider:
    provider = current_app.extensions.get('storage')
    if provider is None:
        provider = LocalStorageProvider(
            current_app.config['STORAGE_DIR'],
            current_app.config['STORAGE_PUBLIC_URL'],
        )
        current_app.extensions['storage'] = provider
    return provider


__all__ = ['StorageError', 'StorageProvider', 'LocalStorageProvider', 'get_storage']
