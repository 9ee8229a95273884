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

"""Tests for the command line export and import scripts.

"""

import os
import tempfile
import unittest

from taskex.db import Exercise
from taskexcommon import archive
from taskexcontrib.ExportExercises import ExerciseArchiveExporter
from taskexcontrib.ImportExercises import ExerciseArchiveImporter
from taskextestsuite.unit_tests.databasemixin import DatabaseMixin


class ScriptTestCase(DatabaseMixin, unittest.TestCase):

    def setUp(self):
        super().setUp()
        self.tmpdir = tempfile.TemporaryDirectory()
        self.owner = self.add_user(username="owner")
        self.exercises = [self.add_exercise(user=self.owner)
                          for _ in range(2)]
        for exercise in self.exercises:
            self.add_file(exercise)
        self.session.commit()

    def tearDown(self):
        self.tmpdir.cleanup()
        super().tearDown()

    def target(self, name="export.zip"):
        return os.path.join(self.tmpdir.name, name)

    def entries(self, path):
        with open(path, "rb") as f:
            data = f.read()
        with archive.open_for_read(data) as zip_ref:
            return archive.list_entries(zip_ref)


class TestExportExercises(ScriptTestCase):

    def test_single(self):
        exporter = ExerciseArchiveExporter([self.exercises[0].id],
                                           self.target())
        self.assertTrue(exporter.do_export())
        self.assertEqual(self.entries(self.target())[0], "task.xml")

    def test_batch(self):
        ids = [exercise.id for exercise in self.exercises]
        self.assertTrue(
            ExerciseArchiveExporter(ids, self.target()).do_export())
        self.assertEqual(self.entries(self.target()), ["1.zip", "2.zip"])

    def test_forced_batch(self):
        exporter = ExerciseArchiveExporter([self.exercises[0].id],
                                           self.target(), force_batch=True)
        self.assertTrue(exporter.do_export())
        self.assertEqual(self.entries(self.target()), ["1.zip"])

    def test_unknown_exercise(self):
        exporter = ExerciseArchiveExporter([12345], self.target())
        self.assertFalse(exporter.do_export())
        self.assertFalse(os.path.exists(self.target()))

    def test_existing_target_is_kept(self):
        with open(self.target(), "wb") as f:
            f.write(b"precious")
        exporter = ExerciseArchiveExporter([self.exercises[0].id],
                                           self.target())
        self.assertFalse(exporter.do_export())
        with open(self.target(), "rb") as f:
            self.assertEqual(f.read(), b"precious")


class TestImportExercises(ScriptTestCase):

    def export(self, exercise_ids, name="export.zip"):
        path = self.target(name)
        self.assertTrue(
            ExerciseArchiveExporter(exercise_ids, path).do_export())
        return path

    def test_import_as_owner(self):
        path = self.export([e.id for e in self.exercises])

        self.assertTrue(ExerciseArchiveImporter(path, "owner").do_import())

        self.session.expire_all()
        self.assertEqual(self.session.query(Exercise).count(), 2)

    def test_import_anonymously_forks(self):
        path = self.export([self.exercises[0].id])

        self.assertTrue(ExerciseArchiveImporter(path, None).do_import())

        self.session.expire_all()
        self.assertEqual(self.session.query(Exercise).count(), 3)

    def test_unknown_user(self):
        path = self.export([self.exercises[0].id])
        self.assertFalse(ExerciseArchiveImporter(path, "nobody").do_import())

    def test_missing_file(self):
        self.assertFalse(ExerciseArchiveImporter(
            self.target("missing.zip"), "owner").do_import())

    def test_corrupt_file(self):
        with open(self.target(), "wb") as f:
            f.write(b"not a zip")
        self.assertFalse(
            ExerciseArchiveImporter(self.target(), "owner").do_import())

    def test_failing_entry_is_reported(self):
        good = self.export([self.exercises[0].id], "good.zip")
        with open(good, "rb") as f:
            good_data = f.read()
        with open(self.target("batch.zip"), "wb") as f:
            f.write(archive.write_archive([("1.zip", good_data),
                                           ("2.zip", b"broken")]))

        self.assertFalse(ExerciseArchiveImporter(
            self.target("batch.zip"), "owner").do_import())


if __name__ == "__main__":
    unittest.main()
