import io
import logging
import zipfile
import zlib
from typing import Iterable, NamedTuple

from .exceptions import ArchiveReadError

logger = logging.getLogger(__name__)


class ArchiveEntry(NamedTuple):
    name: str
    content: bytes


def pack(entries: Iterable[tuple[str, bytes]]) -> bytes | None:
    """Zip (name, content) pairs in the given order. Returns None when there is nothing to pack."""
    entries = list(entries)
    if not entries:
        return None

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, content in entries:
            archive.writestr(name, content)

    logger.debug("Packed %d entries into %d bytes", len(entries), buffer.tell())
    return buffer.getvalue()


def unpack_entries(archive_bytes: bytes | None) -> list[ArchiveEntry]:
    """Read every file entry of a zip archive, in archive order.

    Either the whole archive is read or ArchiveReadError is raised.
    """
    if not archive_bytes:
        return []

    entries = []
    try:
        with zipfile.ZipFile(io.BytesIO(archive_bytes)) as archive:
            for info in archive.infolist():
                if info.is_dir():
                    continue
                entries.append(ArchiveEntry(info.filename, archive.read(info)))
    # RuntimeError: encrypted entries, which need a password we never have
    except (zipfile.BadZipFile, zlib.error, EOFError, OSError, NotImplementedError, RuntimeError, ValueError) as exc:
        raise ArchiveReadError(f"Unable to read archive: {exc}") from exc

    return entries


def unpack(archive_bytes: bytes | None) -> list[bytes]:
    return [entry.content for entry in unpack_entries(archive_bytes)]
