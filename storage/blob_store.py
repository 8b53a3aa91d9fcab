"""
Blob Store - content-addressed storage for uploaded CV bytes.

Backends:
- local_path: files on a local or mounted volume, with a JSON sidecar
- s3_like: any S3-compatible object store through the MinIO client

Keys look like ``cv/ab/ab12...ef.pdf``: the SHA-256 of the content plus the
original extension, so re-uploading identical bytes reuses the same object.
"""
import hashlib
import io
import json
import logging
import os
import tempfile
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from minio import Minio
from minio.error import S3Error

from core.config_loader import StorageConfig
from core.exceptions import NotFoundError, StorageUnavailableError

logger = logging.getLogger(__name__)

_KEY_PREFIX = "cv"


@dataclass
class Blob:
    data: bytes
    content_type: str
    size: int
    filename: Optional[str] = None


def make_storage_key(data: bytes, filename: str) -> str:
    digest = hashlib.sha256(data).hexdigest()
    ext = Path(filename or "").suffix.lower()
    return f"{_KEY_PREFIX}/{digest[:2]}/{digest}{ext}"


class BlobStore(ABC):
    """Abstract interface of the blob store."""

    @abstractmethod
    def put(self, data: bytes, filename: str, content_type: str) -> str:
        """Durably store the bytes and return their storage key."""
        pass

    @abstractmethod
    def get(self, storage_key: str) -> Blob:
        pass

    @abstractmethod
    def delete(self, storage_key: str) -> None:
        """Remove the blob. Deleting a missing key is not an error."""
        pass

    @abstractmethod
    def health_check(self) -> bool:
        pass


class LocalPathBlobStore(BlobStore):
    def __init__(self, base_path: str, temp_path: Optional[str] = None):
        self.base_path = Path(base_path)
        self.temp_path = Path(temp_path) if temp_path else self.base_path / ".tmp"

    def _path_for(self, storage_key: str) -> Path:
        path = (self.base_path / storage_key).resolve()
        if self.base_path.resolve() not in path.parents:
            raise NotFoundError(f"Invalid storage key: {storage_key}")
        return path

    @staticmethod
    def _sidecar_for(path: Path) -> Path:
        return path.with_name(path.name + ".meta.json")

    def _write_atomically(self, target: Path, payload: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        self.temp_path.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.temp_path)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def put(self, data: bytes, filename: str, content_type: str) -> str:
        storage_key = make_storage_key(data, filename)
        path = self._path_for(storage_key)
        try:
            if not path.exists():
                self._write_atomically(path, data)
            meta = {"content_type": content_type, "size": len(data), "filename": filename}
            self._write_atomically(self._sidecar_for(path), json.dumps(meta).encode("utf-8"))
        except OSError as e:
            logger.error(f"Failed to store blob {storage_key}: {e}")
            raise StorageUnavailableError(f"Blob storage unavailable: {e}") from e

        logger.info(f"Stored blob {storage_key} ({len(data)} bytes)")
        return storage_key

    def get(self, storage_key: str) -> Blob:
        path = self._path_for(storage_key)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            raise NotFoundError(f"Blob not found: {storage_key}")
        except OSError as e:
            raise StorageUnavailableError(f"Blob storage unavailable: {e}") from e

        content_type = "application/octet-stream"
        filename = None
        sidecar = self._sidecar_for(path)
        if sidecar.exists():
            meta = json.loads(sidecar.read_text(encoding="utf-8"))
            content_type = meta.get("content_type", content_type)
            filename = meta.get("filename")

        return Blob(data=data, content_type=content_type, size=len(data), filename=filename)

    def delete(self, storage_key: str) -> None:
        path = self._path_for(storage_key)
        for target in (path, self._sidecar_for(path)):
            try:
                target.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise StorageUnavailableError(f"Could not delete blob {storage_key}: {e}") from e
        logger.info(f"Deleted blob {storage_key}")

    def health_check(self) -> bool:
        probe = self.base_path / f".health_{uuid.uuid4().hex}"
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
            probe.write_bytes(b"ok")
            probe.unlink()
            return True
        except OSError as e:
            logger.error(f"Blob storage health check failed: {e}")
            return False


class S3LikeBlobStore(BlobStore):
    def __init__(
        self,
        endpoint: str,
        bucket: str,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        secure: bool = False,
        client: Optional[Minio] = None,
    ):
        self.bucket = bucket
        self.client = client or Minio(
            endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
        )
        self._bucket_checked = False

    def _ensure_bucket(self) -> None:
        if self._bucket_checked:
            return
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)
            logger.info(f"Bucket '{self.bucket}' created.")
        self._bucket_checked = True

    def put(self, data: bytes, filename: str, content_type: str) -> str:
        storage_key = make_storage_key(data, filename)
        try:
            self._ensure_bucket()
            self.client.put_object(
                self.bucket,
                storage_key,
                io.BytesIO(data),
                length=len(data),
                content_type=content_type,
                metadata={"original-filename": filename or ""},
            )
        except (S3Error, OSError) as e:
            logger.error(f"MinIO error storing {storage_key}: {e}")
            raise StorageUnavailableError(f"Blob storage unavailable: {e}") from e

        logger.info(f"Stored blob {storage_key} in bucket '{self.bucket}' ({len(data)} bytes)")
        return storage_key

    def get(self, storage_key: str) -> Blob:
        response = None
        try:
            response = self.client.get_object(self.bucket, storage_key)
            data = response.read()
            content_type = response.headers.get("Content-Type", "application/octet-stream")
            filename = response.headers.get("x-amz-meta-original-filename")
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchBucket"):
                raise NotFoundError(f"Blob not found: {storage_key}")
            raise StorageUnavailableError(f"Blob storage unavailable: {e}") from e
        except OSError as e:
            raise StorageUnavailableError(f"Blob storage unavailable: {e}") from e
        finally:
            if response is not None:
                response.close()
                response.release_conn()

        return Blob(data=data, content_type=content_type, size=len(data), filename=filename)

    def delete(self, storage_key: str) -> None:
        try:
            self.client.remove_object(self.bucket, storage_key)
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchBucket"):
                return
            raise StorageUnavailableError(f"Could not delete blob {storage_key}: {e}") from e
        logger.info(f"Deleted blob {storage_key} from bucket '{self.bucket}'")

    def health_check(self) -> bool:
        try:
            return self.client.bucket_exists(self.bucket)
        except (S3Error, OSError) as e:
            logger.error(f"MinIO health check failed: {e}")
            return False


def build_blob_store(config: StorageConfig) -> BlobStore:
    if config.backend == "s3_like":
        s3 = config.s3
        return S3LikeBlobStore(
            endpoint=s3.endpoint,
            bucket=s3.bucket,
            access_key=s3.access_key,
            secret_key=s3.secret_key,
            secure=s3.secure,
        )
    return LocalPathBlobStore(base_path=config.base_path, temp_path=config.temp_path)
