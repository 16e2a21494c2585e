"""
Archive sandbox for 3MF containers.

Only a fixed allow-list of entries is ever read out of an uploaded archive.
Everything else, including any path that tries to escape the archive root,
is skipped without being decompressed.
"""

import io
import logging
import zipfile
import zlib
from concurrent.futures import ThreadPoolExecutor

logger = logging.getLogger(__name__)

# Archive-relative path -> raw bytes.  Only ever holds allow-listed paths.
ZipContents = dict[str, bytes]

ALLOWED_PATHS: tuple[str, ...] = (
    # Bambu Studio / OrcaSlicer
    "Metadata/model_settings.config",
    "Metadata/project_settings.config",
    "Metadata/plate_1.json",
    "Metadata/plate_1.png",
    "Metadata/thumbnail.png",
    "Metadata/slice_info.config",
    # PrusaSlicer
    "slic3r_pe.config",
    "Metadata/Slic3r_PE.config",
    "Thumbnails/thumbnail.png",
    # Core 3MF
    "3D/3dmodel.model",
    "[Content_Types].xml",
)

# Preferred first: plate_1.png is the rendered plate preview.
THUMBNAIL_PATHS: tuple[str, ...] = (
    "Metadata/plate_1.png",
    "Metadata/thumbnail.png",
    "Thumbnails/thumbnail.png",
)

# Raised by ZipFile.read for corrupt, truncated or encrypted members.
# RuntimeError covers encrypted entries and NotImplementedError (unknown codecs).
_READ_ERRORS = (zipfile.BadZipFile, zlib.error, OSError, EOFError, ValueError, RuntimeError)


class ArchiveUnreadable(Exception):
    """Raised when a buffer is not a readable ZIP container."""


def is_allowed_path(path: str) -> bool:
    """Return True if *path* may be extracted from an archive."""
    if ".." in path or path.startswith("/") or path.startswith("\\"):
        return False
    return any(path == allowed or path.startswith(allowed) for allowed in ALLOWED_PATHS)


def _open(buffer: bytes) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(io.BytesIO(buffer))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError) as e:
        raise ArchiveUnreadable(f"Failed to read 3MF archive: {e}") from e


def extract_allowed(buffer: bytes, max_workers: int = 4) -> ZipContents:
    """
    Extract the allow-listed entries of a ZIP buffer into memory.

    Entries are decompressed in parallel; the returned mapping is only built
    once every entry has been read, so callers never see a partial result.

    Raises:
        ArchiveUnreadable: If the buffer is not a ZIP archive or an allowed
            entry is corrupt.
    """
    with _open(buffer) as zf:
        wanted: list[str] = []
        for info in zf.infolist():
            if info.is_dir():
                continue
            if is_allowed_path(info.filename):
                wanted.append(info.filename)
            elif ".." in info.filename or info.filename.startswith(("/", "\\")):
                logger.debug("Rejected unsafe archive path: %r", info.filename)

        if not wanted:
            return {}

        def read(name: str) -> tuple[str, bytes]:
            return name, zf.read(name)

        try:
            with ThreadPoolExecutor(max_workers=min(max_workers, len(wanted))) as pool:
                results = list(pool.map(read, wanted))
        except _READ_ERRORS as e:
            raise ArchiveUnreadable(f"Failed to read 3MF archive: {e}") from e

    return dict(results)


def extract_thumbnail(buffer: bytes) -> bytes | None:
    """Return the preferred thumbnail of a 3MF buffer, or None if there is none."""
    try:
        with _open(buffer) as zf:
            names = set(zf.namelist())
            for path in THUMBNAIL_PATHS:
                if path in names:
                    return zf.read(path)
    except (ArchiveUnreadable, *_READ_ERRORS):
        return None
    return None
