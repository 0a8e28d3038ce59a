"""
Storage gateway for uploaded CV files.

Objects live under {job_id}/{timestamp}_{suffix}_{sanitized_filename}; the
random suffix keeps same-named uploads of one batch apart. Download links
are signed, short-lived tokens resolved by GET /storage/cvs.
"""
import logging
import re
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from screener.core import config
from screener.core.exceptions import StorageFailure, StorageNotFound
from screener.core.security import create_signed_token, decode_signed_token

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(filename: str) -> str:
    """Keep letters, digits, dot, dash and underscore; collapse the rest to '_'."""
    name = Path(filename or "").name
    cleaned = _UNSAFE_CHARS.sub("_", name).strip("._")
    return cleaned or "cv.pdf"


def build_cv_path(
    job_id: int,
    filename: str,
    timestamp_ms: Optional[int] = None,
    suffix: Optional[str] = None,
) -> str:
    """Build a unique, namespaced object path for a CV upload."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    if suffix is None:
        suffix = uuid.uuid4().hex[:8]
    return f"{job_id}/{timestamp_ms}_{suffix}_{sanitize_filename(filename)}"


class StorageGateway(ABC):
    """Abstract blob store for CV files."""

    @abstractmethod
    def put(self, path: str, data: bytes) -> str:
        """Store bytes under path. Returns the path. Raises StorageFailure."""

    @abstractmethod
    def open(self, path: str) -> bytes:
        """Read the bytes stored under path. Raises StorageNotFound."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check whether an object exists."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Remove an object. Missing objects are ignored."""

    def get(self, path: str, ttl: Optional[int] = None) -> str:
        """
        Get a signed download URL for an object.

        Args:
            path: Object path
            ttl: Link lifetime in seconds (defaults to SIGNED_URL_TTL_SECONDS)

        Raises:
            StorageNotFound: Object does not exist
        """
        if not self.exists(path):
            raise StorageNotFound(f"CV not found: {path}")
        token = create_signed_token({"path": path}, ttl or config.SIGNED_URL_TTL_SECONDS)
        return f"{config.PUBLIC_BASE_URL.rstrip('/')}/storage/cvs?{urlencode({'token': token})}"

    def resolve_signed_token(self, token: str) -> str:
        """
        Return the object path carried by a signed download token.

        Raises:
            StorageNotFound: Token invalid, expired, or object missing
        """
        claims = decode_signed_token(token)
        if not claims or not claims.get("path"):
            raise StorageNotFound("Download link is invalid or has expired")
        path = claims["path"]
        if not self.exists(path):
            raise StorageNotFound(f"CV not found: {path}")
        return path


class LocalStorageGateway(StorageGateway):
    """Filesystem-backed storage rooted at STORAGE_ROOT."""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or config.STORAGE_ROOT).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if target != self.root and self.root not in target.parents:
            raise StorageFailure(f"Path escapes storage root: {path}")
        return target

    def put(self, path: str, data: bytes) -> str:
        if not data:
            raise StorageFailure(f"Refusing to store empty file: {path}")

        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # "xb" fails if the object already exists; objects are never overwritten
            with open(target, "xb") as f:
                f.write(data)
        except FileExistsError as e:
            raise StorageFailure(f"Object already exists: {path}") from e
        except OSError as e:
            logger.error(f"Storage write failed: path={path}: {e}", exc_info=True)
            raise StorageFailure(f"Storage write failed: {path}") from e

        logger.info(f"CV stored: path={path}, bytes={len(data)}")
        return path

    def open(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as e:
            raise StorageNotFound(f"CV not found: {path}") from e
        except OSError as e:
            raise StorageFailure(f"Storage read failed: {path}") from e

    def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).is_file()
        except StorageFailure:
            return False

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink()
            logger.info(f"CV deleted: path={path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageFailure(f"Storage delete failed: {path}") from e


_default_storage: Optional[StorageGateway] = None


def get_storage() -> StorageGateway:
    """Storage dependency (overridden in tests)."""
    global _default_storage
    if _default_storage is None:
        _default_storage = LocalStorageGateway()
    return _default_storage
