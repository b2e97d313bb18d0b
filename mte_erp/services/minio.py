"""
Blob store for rendered communication documents.

MinIO backs production; tests substitute an in-memory BlobStore.
"""

from abc import ABC, abstractmethod
from io import BytesIO

from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import HTTPError

from mte_erp.config import settings
from mte_erp.core.errors import NotFound, StorageUnavailable
from mte_erp.core.logging import get_logger

log = get_logger(__name__)


class BlobStore(ABC):
    """Named byte blobs addressable by URL."""

    @abstractmethod
    def add_file(self, filename: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Store a file and return its URL."""
        pass

    @abstractmethod
    def get_file(self, filename: str) -> bytes:
        pass

    @abstractmethod
    def delete_file(self, filename: str) -> None:
        pass


class MinIOClient(BlobStore):
    """Client for MinIO object storage."""

    def __init__(
        self,
        endpoint: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        bucket: str | None = None,
        secure: bool | None = None,
    ):
        self.endpoint = endpoint or settings.minio_endpoint
        self.access_key = access_key or settings.minio_access_key
        self.secret_key = secret_key or settings.minio_secret_key
        self.bucket = bucket or settings.minio_bucket
        self.secure = secure if secure is not None else settings.minio_secure
        self._client: Minio | None = None
        self._bucket_ready = False

    @property
    def enabled(self) -> bool:
        """Check if MinIO is configured."""
        return bool(self.endpoint and self.access_key and self.secret_key)

    def _get_client(self) -> Minio:
        """Get or create MinIO client."""
        if not self._client:
            if not self.enabled:
                raise StorageUnavailable("MinIO not configured")
            self._client = Minio(
                self.endpoint,
                access_key=self.access_key,
                secret_key=self.secret_key,
                secure=self.secure,
            )
        return self._client

    def ensure_bucket(self) -> None:
        """Create bucket if it doesn't exist."""
        if self._bucket_ready:
            return
        client = self._get_client()
        if not client.bucket_exists(self.bucket):
            client.make_bucket(self.bucket)
            log.info("minio_bucket_created", bucket=self.bucket)
        self._bucket_ready = True

    def url_for(self, filename: str) -> str:
        protocol = "https" if self.secure else "http"
        return f"{protocol}://{self.endpoint}/{self.bucket}/{filename}"

    def add_file(self, filename: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """
        Upload a file to MinIO.

        Args:
            filename: Object name
            data: File content bytes
            content_type: MIME type

        Returns:
            Full URL to the uploaded object.

        Raises:
            StorageUnavailable: MinIO is not configured or unreachable.
        """
        try:
            self.ensure_bucket()
            self._get_client().put_object(
                self.bucket,
                filename,
                BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except (S3Error, HTTPError) as e:
            log.error("file_upload_error", filename=filename, error=str(e))
            raise StorageUnavailable(f"Upload of {filename} failed: {e}", filename=filename) from e

        log.info("file_uploaded", filename=filename, size=len(data))
        return self.url_for(filename)

    def get_file(self, filename: str) -> bytes:
        """Download a file from MinIO."""
        response = None
        try:
            response = self._get_client().get_object(self.bucket, filename)
            return response.read()
        except S3Error as e:
            if e.code == "NoSuchKey":
                raise NotFound(f"File {filename} not found", filename=filename) from e
            log.error("file_download_error", filename=filename, error=str(e))
            raise StorageUnavailable(f"Download of {filename} failed: {e}", filename=filename) from e
        except HTTPError as e:
            log.error("file_download_error", filename=filename, error=str(e))
            raise StorageUnavailable(f"Download of {filename} failed: {e}", filename=filename) from e
        finally:
            if response is not None:
                response.close()
                response.release_conn()

    def delete_file(self, filename: str) -> None:
        """Delete a file from MinIO."""
        try:
            self._get_client().remove_object(self.bucket, filename)
        except (S3Error, HTTPError) as e:
            log.error("file_delete_error", filename=filename, error=str(e))
            raise StorageUnavailable(f"Delete of {filename} failed: {e}", filename=filename) from e
        log.info("file_deleted", filename=filename)
