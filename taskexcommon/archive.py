#!/usr/bin/env python3

# Task Exchange - programming exercise interchange
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.

"""Reading and writing the zip containers exchanged between platforms.

Entries are always handled as raw bytes: decoding to text is left to
whoever knows the entry holds text, so attachments round-trip exactly.

"""

import io
import logging
import os
import posixpath
import tempfile
import zipfile
from contextlib import contextmanager
from typing import Iterable, Iterator

from taskex import config
from taskex.exceptions import CorruptArchive


logger = logging.getLogger(__name__)


__all__ = [
    "open_for_read", "list_entries", "read_entry", "write_archive",
    "extracted_entry",
]


def _validate_entries(zip_ref: zipfile.ZipFile):
    """Reject entries that could escape an extraction directory.

    Symbolic links, absolute paths and paths climbing out with ".." are
    refused, as are entries larger than the configured maximum.

    zip_ref: an open zipfile.ZipFile object.

    raise (CorruptArchive): if an entry is unsafe.

    """
    for member_info in zip_ref.infolist():
        member = member_info.filename

        # Unix symlinks have mode 0o120000 (S_IFLNK) in the high bits.
        unix_mode = (member_info.external_attr >> 16) & 0o170000
        if unix_mode == 0o120000:
            raise CorruptArchive(
                f"Symbolic link not allowed in archive: {member}")

        normalized = posixpath.normpath(member.replace("\\", "/"))
        if normalized.startswith("/") or os.path.isabs(member):
            raise CorruptArchive(f"Unsafe absolute path in archive: {member}")
        if normalized == ".." or normalized.startswith("../"):
            raise CorruptArchive(f"Unsafe path in archive: {member}")

        if member_info.file_size > config.archive.max_entry_size:
            raise CorruptArchive(
                f"Entry {member} is too large ({member_info.file_size} bytes)")


def open_for_read(data: bytes) -> zipfile.ZipFile:
    """Open an archive held in memory.

    data: the bytes of the archive.

    return: an open zipfile.ZipFile; the caller closes it.

    raise (CorruptArchive): if the container cannot be read or holds
        unsafe entries.

    """
    try:
        zip_ref = zipfile.ZipFile(io.BytesIO(data), "r")
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as error:
        raise CorruptArchive(f"Unreadable archive: {error}") from error

    try:
        _validate_entries(zip_ref)
    except CorruptArchive:
        zip_ref.close()
        raise
    return zip_ref


def list_entries(zip_ref: zipfile.ZipFile) -> list[str]:
    """Return the names of the file entries, in archive order."""
    return [info.filename for info in zip_ref.infolist()
            if not info.is_dir()]


def read_entry(zip_ref: zipfile.ZipFile, name: str) -> bytes:
    """Return the raw bytes of an entry.

    raise (CorruptArchive): if the entry does not exist or cannot be
        decompressed.

    """
    try:
        return zip_ref.read(name)
    except KeyError as error:
        raise CorruptArchive(f"Missing archive entry {name}") from error
    except (zipfile.BadZipFile, EOFError, OSError) as error:
        raise CorruptArchive(
            f"Cannot read archive entry {name}: {error}") from error


def write_archive(entries: Iterable[tuple[str, bytes]]) -> bytes:
    """Create an archive from (name, content) pairs.

    The entries are written in the given order.

    return: the bytes of the new archive.

    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zip_ref:
        for name, content in entries:
            zip_ref.writestr(name, content)
    return buffer.getvalue()


@contextmanager
def extracted_entry(zip_ref: zipfile.ZipFile, name: str) -> Iterator[str]:
    """Write one entry to a temporary file and yield its path.

    The file is removed when the context exits, whatever the outcome.

    """
    suffix = posixpath.splitext(name)[1]
    fd, path = tempfile.mkstemp(prefix="taskex_entry_", suffix=suffix)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(read_entry(zip_ref, name))
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        logger.debug("Removed temporary file %s for entry %s.", path, name)
