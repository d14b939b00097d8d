"""
Object storage for audio recordings.

Production stores objects in a Supabase storage bucket; development and
tests write them under a local directory.
"""
import os
import logging
from typing import Optional

from flask import current_app

from .supabase_client import supabase

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when an object cannot be stored or fetched."""


class LocalStorage:
    """Filesystem-backed storage rooted at a directory."""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def _full_path(self, path: str) -> str:
        full_path = os.path.abspath(os.path.join(self.root, path))
        if not full_path.startswith(self.root + os.sep):
            raise StorageError(f"Invalid storage path: {path}")
        return full_path

    def upload(self, path: str, data: bytes, content_type: str = 'application/octet-stream',
               upsert: bool = False) -> str:
        full_path = self._full_path(path)
        if os.path.exists(full_path) and not upsert:
            raise StorageError(f"Object already exists: {path}")
        try:
            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            with open(full_path, 'wb') as f:
                f.write(data)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e
        logger.debug(f"Stored {len(data)} bytes at {full_path}")
        return path

    def download(self, path: str) -> bytes:
        try:
            with open(self._full_path(path), 'rb') as f:
                return f.read()
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    def exists(self, path: str) -> bool:
        return os.path.exists(self._full_path(path))

    def public_url(self, path: str) -> str:
        return f"file://{self._full_path(path)}"


class SupabaseStorage:
    """Storage bucket on Supabase."""

    def __init__(self, bucket: str):
        self.bucket = bucket

    def upload(self, path: str, data: bytes, content_type: str = 'application/octet-stream',
               upsert: bool = False) -> str:
        try:
            supabase.storage_bucket(self.bucket).upload(
                path,
                data,
                {"content-type": content_type, "upsert": "true" if upsert else "false"}
            )
        except Exception as e:
            raise StorageError(f"Supabase upload failed for {path}: {e}") from e
        return path

    def download(self, path: str) -> bytes:
        try:
            return supabase.storage_bucket(self.bucket).download(path)
        except Exception as e:
            raise StorageError(f"Supabase download failed for {path}: {e}") from e

    def exists(self, path: str) -> bool:
        folder, _, name = path.rpartition('/')
        try:
            entries = supabase.storage_bucket(self.bucket).list(folder, {"search": name})
        except Exception as e:
            raise StorageError(f"Supabase list failed for {path}: {e}") from e
        return any(entry.get('name') == name for entry in entries or [])

    def public_url(self, path: str) -> str:
        return supabase.storage_bucket(self.bucket).get_public_url(path)


def get_storage(backend: Optional[str] = None):
    """Storage backend selected by the STORAGE_BACKEND setting."""
    backend = backend or current_app.config.get('STORAGE_BACKEND', 'local')
    if backend == 'supabase':
        return SupabaseStorage(current_app.config.get('AUDIO_BUCKET', 'audio-recordings'))
    root = current_app.config.get('LOCAL_STORAGE_DIR', 'instance/storage')
    if not os.path.isabs(root):
        root = os.path.join(current_app.root_path, root)
    return LocalStorage(root)
