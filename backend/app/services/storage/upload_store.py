"""
Local filesystem upload store.

Uploaded variant files are kept under opaque UUID handles; the analysis core
only ever sees a line stream opened from a handle.
"""

import gzip
import logging
import re
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, TextIO

from app.services.pharmacogenomics.config import get_config
from app.services.pipeline.errors import UploadNotFoundError

logger = logging.getLogger(__name__)

ALLOWED_SUFFIXES = (".vcf.gz", ".vcf")
_HANDLE_RE = re.compile(r"^[0-9a-f]{32}$")
_GZIP_MAGIC = b"\x1f\x8b"


class UnsupportedUploadError(ValueError):
    """The uploaded file is not a .vcf or .vcf.gz."""


def upload_suffix(filename: Optional[str]) -> str:
    name = (filename or "").lower()
    for suffix in ALLOWED_SUFFIXES:
        if name.endswith(suffix):
            return suffix
    raise UnsupportedUploadError(
        f"Invalid file format '{filename}'. Please upload a .vcf or .vcf.gz file."
    )


class LocalUploadStore:
    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or get_config().upload_dir)
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, filename: str, content: bytes) -> str:
        """Store the upload and return its handle."""
        suffix = upload_suffix(filename)
        if suffix == ".vcf.gz" and not content.startswith(_GZIP_MAGIC):
            raise UnsupportedUploadError(f"'{filename}' is not gzip-compressed")

        handle = uuid.uuid4().hex
        path = self.root / f"{handle}{suffix}"
        path.write_bytes(content)
        logger.info("Stored upload %s (%d bytes) as %s", filename, len(content), handle)
        return handle

    def _path(self, handle: str) -> Path:
        if not _HANDLE_RE.match(handle or ""):
            raise UploadNotFoundError(f"Unknown upload handle '{handle}'")
        for suffix in ALLOWED_SUFFIXES:
            path = self.root / f"{handle}{suffix}"
            if path.exists():
                return path
        raise UploadNotFoundError(f"Unknown upload handle '{handle}'")

    def exists(self, handle: str) -> bool:
        try:
            self._path(handle)
            return True
        except UploadNotFoundError:
            return False

    @contextmanager
    def open_stream(self, handle: str) -> Iterator[TextIO]:
        """Yield a text line stream for the upload; .gz uploads are decompressed."""
        path = self._path(handle)
        if path.name.endswith(".gz"):
            f = gzip.open(path, "rt", encoding="utf-8", errors="replace")
        else:
            f = path.open("r", encoding="utf-8", errors="replace", newline="")
        try:
            yield f
        finally:
            f.close()

    def delete(self, handle: str) -> bool:
        try:
            path = self._path(handle)
        except UploadNotFoundError:
            return False
        path.unlink()
        logger.info("Deleted upload %s", handle)
        return True


_store: Optional[LocalUploadStore] = None


def get_upload_store() -> LocalUploadStore:
    global _store
    if _store is None:
        _store = LocalUploadStore()
    return _store
