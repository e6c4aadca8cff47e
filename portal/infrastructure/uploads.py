"""Disk storage for uploaded files.

Files land in one shared directory, named ``<epoch-ms>-<sanitized name>``,
and are served statically under the configured URL prefix.
"""
import os
import re
import time
from pathlib import Path
from typing import BinaryIO, Optional, Tuple

from portal.core.config import Settings, settings as default_settings
from portal.core.errors import ValidationError
from portal.core.logging import get_logger
from portal.domain.school import MediaKind

logger = get_logger(__name__)

CHUNK_SIZE = 1024 * 1024
_UNSAFE_CHARS = re.compile(r"[^\w.\-]", re.UNICODE)


def clean_filename(filename: Optional[str]) -> str:
    """Replace anything but letters, digits, dots, dashes and underscores.

    Examples:
        >>> clean_filename("my essay (final).pdf")
        'my_essay__final_.pdf'
        >>> clean_filename("../../etc/passwd")
        'passwd'
    """
    name = os.path.basename(filename or "") or "upload"
    return _UNSAFE_CHARS.sub("_", name)


def kind_for(filename: str, content_type: Optional[str] = None) -> MediaKind:
    """Guess the media kind from the content type, falling back to the extension."""
    if content_type:
        if content_type.startswith("image/"):
            return MediaKind.IMAGE
        if content_type.startswith("video/"):
            return MediaKind.VIDEO
    ext = Path(filename).suffix.lower()
    if ext in {".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp", ".svg"}:
        return MediaKind.IMAGE
    if ext in {".mp4", ".webm", ".mov", ".avi", ".mkv"}:
        return MediaKind.VIDEO
    return MediaKind.FILE


class UploadStorage:
    """Writes uploads to a directory and returns their public URL."""

    def __init__(self, directory: str, url_prefix: str = "/uploads", max_bytes: int = 100 * 1024 * 1024):
        self.directory = Path(directory)
        self.url_prefix = url_prefix.rstrip("/")
        self.max_bytes = max_bytes

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "UploadStorage":
        config = config or default_settings
        return cls(config.upload_dir, config.upload_url_prefix, config.max_upload_bytes)

    def save(self, filename: Optional[str], stream: BinaryIO) -> Tuple[str, str]:
        """Copy ``stream`` to disk.

        Args:
            filename: Original client-side file name
            stream: Readable binary file object

        Returns:
            Tuple of (public url, stored file name)

        Raises:
            ValidationError: If the file exceeds the size limit
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        stored_name = f"{int(time.time() * 1000)}-{clean_filename(filename)}"
        target = self.directory / stored_name
        written = 0

        with open(target, "wb") as out:
            while True:
                chunk = stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > self.max_bytes:
                    break
                out.write(chunk)

        if written > self.max_bytes:
            target.unlink(missing_ok=True)
            limit_mb = self.max_bytes // (1024 * 1024)
            raise ValidationError(f"File is larger than the {limit_mb}MB limit")

        logger.info(f"Stored upload {stored_name} ({written} bytes)")
        return f"{self.url_prefix}/{stored_name}", stored_name

