import logging
import os
from pathlib import Path
from typing import List

from azure.core.exceptions import AzureError, ResourceExistsError
from azure.storage.blob import BlobServiceClient, ContentSettings

log = logging.getLogger(__name__)


class StorageError(Exception):
    pass


class StorageBucket:
    """
    Object storage bucket keyed by ``<owner_id>/<filename>`` paths.

    Implementations must refuse to overwrite an existing object and must treat
    removal of a missing object as a no-op.
    """

    name = "products"

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        raise NotImplementedError

    def get_public_url(self, path: str) -> str:
        raise NotImplementedError

    def remove(self, paths: List[str]) -> List[str]:
        raise NotImplementedError

    def health_check(self) -> bool:
        return True


class LocalStorageBucket(StorageBucket):
    """Filesystem bucket; the app serves ``root`` under ``/storage`` in dev."""

    def __init__(self, root: str, public_base_url: str, name: str = "products"):
        self.name = name
        self.root = Path(root) / name
        self.public_base_url = public_base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        parts = [p for p in path.split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise StorageError(f"Invalid object path: {path!r}")
        return self.root.joinpath(*parts)

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            # "xb" fails when the object already exists
            with open(target, "xb") as fh:
                fh.write(content)
        except FileExistsError:
            raise StorageError(f"Object already exists: {path}")
        except OSError as e:
            raise StorageError(f"Could not write {path}: {e}")
        log.debug("stored %s (%d bytes, %s)", path, len(content), content_type)
        return path

    def get_public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{self.name}/{path.lstrip('/')}"

    def remove(self, paths: List[str]) -> List[str]:
        removed = []
        for path in paths:
            target = self._resolve(path)
            try:
                os.remove(target)
                removed.append(path)
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(f"Could not remove {path}: {e}")
        return removed

    def health_check(self) -> bool:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            return os.access(self.root, os.W_OK)
        except OSError:
            return False


class AzureBlobStorageBucket(StorageBucket):
    """Bucket backed by an Azure blob container with public read access."""

    def __init__(self, connection_string: str, name: str = "products"):
        self.name = name
        self.service = BlobServiceClient.from_connection_string(connection_string)
        self.container = self.service.get_container_client(name)
        try:
            self.container.create_container()
            log.info("Azure container '%s' created", name)
        except ResourceExistsError:
            pass
        except AzureError as e:
            log.warning("Could not create or verify Azure container '%s': %s", name, e)

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        try:
            self.container.upload_blob(
                name=path,
                data=content,
                overwrite=False,
                content_settings=ContentSettings(content_type=content_type),
            )
        except AzureError as e:
            raise StorageError(f"Could not upload {path}: {e}")
        return path

    def get_public_url(self, path: str) -> str:
        return self.container.get_blob_client(path).url

    def remove(self, paths: List[str]) -> List[str]:
        if not paths:
            return []
        try:
            responses = self.container.delete_blobs(*paths, raise_on_any_failure=False)
        except AzureError as e:
            raise StorageError(f"Could not remove {paths}: {e}")
        return [p for p, r in zip(paths, responses) if 200 <= r.status_code < 300]

    def health_check(self) -> bool:
        try:
            return self.container.exists()
        except AzureError:
            return False


def build_bucket(cfg) -> StorageBucket:
    backend = cfg.STORAGE_BACKEND.lower()
    if backend == "local":
        return LocalStorageBucket(cfg.STORAGE_ROOT, cfg.STORAGE_PUBLIC_URL, name=cfg.STORAGE_BUCKET)
    if backend == "azure":
        if not cfg.AZURE_STORAGE_CONNECTION_STRING:
            raise StorageError("AZURE_STORAGE_CONNECTION_STRING is required for the azure storage backend")
        return AzureBlobStorageBucket(cfg.AZURE_STORAGE_CONNECTION_STRING, name=cfg.STORAGE_BUCKET)
    raise StorageError(f"Unknown storage backend: {cfg.STORAGE_BACKEND}")
