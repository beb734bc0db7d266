"""
Google Cloud Storage Artifact Source.

Implements the ArtifactSource interface over a GCS bucket.
Credentials come from a service-account file when one is configured,
otherwise from Application Default Credentials.
"""

from typing import Any, Dict, List, Optional
import logging
import threading

from google.cloud import storage
from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError

from services.artifact_source import ArtifactSource, StorageError

logger = logging.getLogger(__name__)

# requests' connection errors derive from OSError
_BACKEND_ERRORS = (GoogleAPIError, GoogleAuthError, OSError)


class GCSArtifactSource(ArtifactSource):
    """
    GCS-backed artifact source.

    The storage client is built lazily on first use and reused for every
    request afterwards; it is only ever used for reads.
    """

    name = "gcs"

    def __init__(
        self,
        bucket_name: str,
        project: Optional[str] = None,
        credentials_file: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[storage.Client] = None,
    ):
        """
        Initialize GCS artifact source.

        Args:
            bucket_name: Bucket holding the artifacts
            project: GCP project id (optional, inferred from credentials otherwise)
            credentials_file: Path to a service-account JSON key (optional)
            timeout: Per-call timeout in seconds for list and download requests
            client: Pre-built storage client (optional)
        """
        if not bucket_name or not bucket_name.strip():
            raise ValueError("bucket_name is required for the GCS artifact source")
        self.bucket_name = bucket_name.strip()
        self.project = project
        self.credentials_file = credentials_file
        self.timeout = timeout
        self._client: Optional[storage.Client] = client
        self._client_lock = threading.Lock()

    def _get_client(self) -> storage.Client:
        with self._client_lock:
            if self._client is None:
                try:
                    if self.credentials_file:
                        self._client = storage.Client.from_service_account_json(
                            self.credentials_file,
                            project=self.project,
                        )
                    else:
                        self._client = storage.Client(project=self.project)
                except _BACKEND_ERRORS as e:
                    raise StorageError(f"Failed to create GCS client: {e}") from e
                logger.info("GCS client initialized for bucket=%s", self.bucket_name)
            return self._client

    def list_keys(self, prefix: str) -> List[str]:
        client = self._get_client()
        try:
            blobs = client.list_blobs(self.bucket_name, prefix=prefix, timeout=self.timeout)
            keys = [blob.name for blob in blobs]
        except _BACKEND_ERRORS as e:
            raise StorageError(f"Failed to list gs://{self.bucket_name}/{prefix}: {e}") from e
        logger.debug("Listed %d objects under gs://%s/%s", len(keys), self.bucket_name, prefix)
        return keys

    def fetch(self, key: str) -> bytes:
        client = self._get_client()
        try:
            blob = client.bucket(self.bucket_name).blob(key)
            return blob.download_as_bytes(timeout=self.timeout)
        except _BACKEND_ERRORS as e:
            raise StorageError(f"Failed to download gs://{self.bucket_name}/{key}: {e}") from e

    def health_check(self) -> Dict[str, Any]:
        error = None
        try:
            self._get_client()
        except StorageError as e:
            error = str(e)[:200]
        return {
            "status": "up" if error is None else "down",
            "source": self.name,
            "bucket": self.bucket_name,
            "error": error,
        }
