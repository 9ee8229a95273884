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

"""Tests for the zip archive helpers.

"""

import io
import os
import unittest
import zipfile

from taskex.exceptions import CorruptArchive
from taskexcommon.archive import extracted_entry, list_entries, \
    open_for_read, read_entry, write_archive


def _zip_with_info(info: zipfile.ZipInfo, content: bytes) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zip_ref:
        zip_ref.writestr(info, content)
    return buffer.getvalue()


class TestArchive(unittest.TestCase):

    def test_entries_keep_their_order(self):
        data = write_archive([("b.txt", b"b"), ("a.txt", b"a"),
                              ("c/d.bin", b"\x00\x01")])
        with open_for_read(data) as zip_ref:
            self.assertEqual(list_entries(zip_ref),
                             ["b.txt", "a.txt", "c/d.bin"])

    def test_binary_content_is_untouched(self):
        content = bytes(range(256)) * 3 + "é\r\n".encode("utf-8")
        data = write_archive([("blob.bin", content)])
        with open_for_read(data) as zip_ref:
            self.assertEqual(read_entry(zip_ref, "blob.bin"), content)

    def test_garbage_is_corrupt(self):
        with self.assertRaises(CorruptArchive):
            open_for_read(b"this is not a zip file")

    def test_missing_entry_is_corrupt(self):
        data = write_archive([("a.txt", b"a")])
        with open_for_read(data) as zip_ref:
            with self.assertRaises(CorruptArchive):
                read_entry(zip_ref, "b.txt")

    def test_directories_are_not_listed(self):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zip_ref:
            zip_ref.writestr("dir/", b"")
            zip_ref.writestr("dir/file.txt", b"x")
        with open_for_read(buffer.getvalue()) as zip_ref:
            self.assertEqual(list_entries(zip_ref), ["dir/file.txt"])

    def test_path_escaping_entry_is_rejected(self):
        data = write_archive([("../evil.txt", b"x")])
        with self.assertRaises(CorruptArchive):
            open_for_read(data)

    def test_absolute_entry_is_rejected(self):
        data = _zip_with_info(zipfile.ZipInfo("/etc/passwd"), b"x")
        with self.assertRaises(CorruptArchive):
            open_for_read(data)

    def test_symlink_entry_is_rejected(self):
        info = zipfile.ZipInfo("link")
        info.external_attr = 0o120777 << 16
        data = _zip_with_info(info, b"/etc/passwd")
        with self.assertRaises(CorruptArchive):
            open_for_read(data)

    def test_extracted_entry_is_removed_on_success(self):
        data = write_archive([("inner.zip", b"payload")])
        with open_for_read(data) as zip_ref:
            with extracted_entry(zip_ref, "inner.zip") as path:
                with open(path, "rb") as f:
                    self.assertEqual(f.read(), b"payload")
                self.assertTrue(path.endswith(".zip"))
        self.assertFalse(os.path.exists(path))

    def test_extracted_entry_is_removed_on_error(self):
        data = write_archive([("inner.zip", b"payload")])
        with open_for_read(data) as zip_ref:
            with self.assertRaises(RuntimeError):
                with extracted_entry(zip_ref, "inner.zip") as path:
                    raise RuntimeError("boom")
        self.assertFalse(os.path.exists(path))


if __name__ == "__main__":
    unittest.main()
