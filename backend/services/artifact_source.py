"""
Artifact Source Interface.
Abstract interface over the stores that hold daily analysis artifacts.

Implementations:
- LocalArtifactSource (this module): a directory tree on local disk
- GCSArtifactSource (integrations.gcs_source): a Google Cloud Storage bucket
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List
import logging

logger = logging.getLogger(__name__)


class ArtifactError(Exception):
    """Base exception for artifact retrieval errors."""
    pass


class StorageError(ArtifactError):
    """Exception raised when the backing store cannot list or fetch objects."""
    pass


class SourceConfigurationError(ArtifactError):
    """Exception raised when the configured source cannot be built."""
    pass


class ArtifactSource(ABC):
    """
    Abstract artifact source.

    Keys are opaque strings; a source only needs prefix listing and
    whole-object reads. Implementations must be safe for concurrent
    read-only use once constructed.
    """

    name: str = "abstract"

    @abstractmethod
    def list_keys(self, prefix: str) -> List[str]:
        """
        List every object key that starts with prefix.

        Args:
            prefix: Key prefix to scope the listing

        Returns:
            Keys in no guaranteed order

        Raises:
            StorageError: If the listing fails
        """
        pass

    @abstractmethod
    def fetch(self, key: str) -> bytes:
        """
        Fetch the full contents of an object.

        Args:
            key: Object key, as returned by list_keys

        Returns:
            Raw object bytes

        Raises:
            StorageError: If the object cannot be read
        """
        pass

    @abstractmethod
    def health_check(self) -> Dict[str, Any]:
        """
        Report source status without fetching artifacts.

        Returns:
            Dict with at least "status" ("up" / "degraded" / "down") and "source"
        """
        pass


class LocalArtifactSource(ArtifactSource):
    """
    Artifact source backed by a local directory.

    Keys are POSIX paths relative to root_dir, so a tree laid out as
    <root>/daily/<date>/<symbol>/... mirrors the bucket layout exactly.
    """

    name = "local"

    def __init__(self, root_dir: str):
        self.root_dir = Path(root_dir).expanduser().resolve()

    def list_keys(self, prefix: str) -> List[str]:
        if not self.root_dir.is_dir():
            raise StorageError(f"Artifact directory does not exist: {self.root_dir}")
        # Only the directory holding the prefix is walked; the final segment is
        # matched as a plain string prefix, same as object storage.
        base = (self.root_dir / prefix.rpartition("/")[0]).resolve()
        if not base.is_relative_to(self.root_dir):
            raise StorageError(f"Artifact prefix escapes the artifact directory: {prefix}")
        if not base.is_dir():
            return []
        try:
            keys = []
            for path in base.rglob("*"):
                if not path.is_file():
                    continue
                key = path.relative_to(self.root_dir).as_posix()
                if key.startswith(prefix):
                    keys.append(key)
        except OSError as e:
            raise StorageError(f"Failed to list {prefix!r} under {self.root_dir}: {e}") from e
        logger.debug("Listed %d local artifacts under prefix=%s", len(keys), prefix)
        return keys

    def fetch(self, key: str) -> bytes:
        path = (self.root_dir / key).resolve()
        if not path.is_relative_to(self.root_dir):
            raise StorageError(f"Artifact key escapes the artifact directory: {key}")
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read artifact {key}: {e}") from e

    def health_check(self) -> Dict[str, Any]:
        exists = self.root_dir.is_dir()
        return {
            "status": "up" if exists else "down",
            "source": self.name,
            "root_dir": str(self.root_dir),
            "error": None if exists else "artifact directory does not exist",
        }
