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

"""Tests for the exercise exporter.

"""

import unittest

from taskex import config
from taskex.db import CloneRelation, Description, \
    ROLE_REFERENCE_IMPLEMENTATION, ROLE_TEACHER_DEFINED_TEST
from taskex.exceptions import MissingRequiredData
from taskexcommon import archive, manifest
from taskexcontrib.ExerciseExporter import BatchExporter, \
    ExerciseExporter, pack_task
from taskextestsuite.unit_tests.databasemixin import DatabaseMixin


class TestExerciseExporter(DatabaseMixin, unittest.TestCase):

    def setUp(self):
        super().setUp()
        self.exporter = ExerciseExporter()
        self.exercise = self.add_exercise(title="Loop Exercise")

    def test_loop_exercise(self):
        loop = self.add_file(self.exercise, name="loop.py",
                             read_only=True, hidden=True)
        solution = self.add_file(self.exercise, name="solution.py",
                                 role=ROLE_REFERENCE_IMPLEMENTATION)
        self.session.flush()

        task = self.exporter.export(self.exercise)

        self.assertEqual(task.title, "Loop Exercise")
        self.assertEqual(len(task.files), 1)
        task_file = task.files[0]
        self.assertEqual(task_file.id, str(loop.id))
        self.assertEqual(task_file.filename, "loop.py")
        self.assertEqual(task_file.visible, "no")
        self.assertEqual(task_file.usage_by_lms, "display")
        self.assertTrue(task_file.used_by_grader)
        self.assertIsNone(task_file.internal_description)

        self.assertEqual(len(task.model_solutions), 1)
        model_solution = task.model_solutions[0]
        self.assertEqual(model_solution.id, f"ms-{solution.id}")
        self.assertEqual(len(model_solution.files), 1)
        solution_file = model_solution.files[0]
        self.assertEqual(solution_file.filename, "solution.py")
        self.assertEqual(solution_file.visible, "delayed")
        self.assertEqual(solution_file.usage_by_lms, "display")
        self.assertFalse(solution_file.used_by_grader)
        self.assertEqual(solution_file.internal_description,
                         ROLE_REFERENCE_IMPLEMENTATION)

    def test_task_fields(self):
        parent = self.add_exercise()
        self.exercise.descriptions = [
            Description(text="Secondary", language="de", primary=False),
            Description(text="Primary", language="en", primary=True),
        ]
        self.exercise.instruction = "For teachers"
        self.exercise.execution_environment = \
            self.add_execution_environment(language="java", version="17")
        self.session.flush()
        self.session.add(CloneRelation(origin=parent, clone=self.exercise))
        self.session.flush()

        task = self.exporter.export(self.exercise)

        self.assertEqual(task.uuid, self.exercise.uuid)
        self.assertEqual(task.parent_uuid, parent.uuid)
        self.assertEqual(task.description, "Primary")
        self.assertEqual(task.language, "en")
        self.assertEqual(task.internal_description, "For teachers")
        self.assertEqual(task.proglang, {"name": "java", "version": "17"})

    def test_files_are_partitioned(self):
        regular = [self.add_file(self.exercise) for _ in range(3)]
        solutions = [
            self.add_file(self.exercise, role=ROLE_REFERENCE_IMPLEMENTATION)
            for _ in range(2)]
        tests = [self.add_test(self.exercise) for _ in range(2)]
        # A reference implementation backing a test only appears in the test.
        both = self.add_file(self.exercise, role=ROLE_REFERENCE_IMPLEMENTATION)
        self.add_test(self.exercise, exercise_file=both)
        self.session.flush()

        task = self.exporter.export(self.exercise)

        exported_ids = [f.id for f in task.all_files()]
        self.assertEqual(len(exported_ids), len(set(exported_ids)))
        self.assertEqual(set(exported_ids),
                         {str(f.id) for f in self.exercise.files})
        self.assertEqual({f.id for f in task.files},
                         {str(f.id) for f in regular})
        self.assertEqual(
            {ms.files[0].id for ms in task.model_solutions},
            {str(f.id) for f in solutions})
        self.assertEqual(
            [t.files[0].id for t in task.tests],
            [str(t.exercise_file.id) for t in tests] + [str(both.id)])
        self.assertEqual(task.tests[-1].files[0].internal_description,
                         ROLE_REFERENCE_IMPLEMENTATION)

    def test_test_metadata(self):
        framework = self.add_testing_framework(name="junit", version="5")
        test = self.add_test(self.exercise, testing_framework=framework,
                             feedback_message="Check the loop bounds")
        test.exercise_file.name = "tests/LoopTest.java"
        self.session.flush()

        task_test = self.exporter.export(self.exercise).tests[0]

        self.assertEqual(task_test.id, str(test.id))
        self.assertEqual(task_test.title, "LoopTest")
        self.assertEqual(task_test.meta_data, {
            "feedback-message": "Check the loop bounds",
            "testing-framework": "junit",
            "testing-framework-version": "5",
        })
        self.assertEqual(task_test.configuration, {
            "entry-point": "tests/LoopTest.java",
            "framework": "junit",
            "version": "5",
        })
        test_file = task_test.files[0]
        self.assertTrue(test_file.used_by_grader)
        self.assertEqual(test_file.internal_description,
                         ROLE_TEACHER_DEFINED_TEST)

    def test_absent_test_metadata_is_omitted(self):
        self.add_test(self.exercise, testing_framework=None,
                      feedback_message=None)
        self.session.flush()

        task_test = self.exporter.export(self.exercise).tests[0]

        self.assertEqual(task_test.meta_data, {})
        self.assertNotIn("framework", task_test.configuration)

    def test_framework_without_version(self):
        framework = self.add_testing_framework(name="unittest", version=None)
        self.add_test(self.exercise, testing_framework=framework)
        self.session.flush()

        meta_data = self.exporter.export(self.exercise).tests[0].meta_data

        self.assertEqual(meta_data["testing-framework"], "unittest")
        self.assertNotIn("testing-framework-version", meta_data)

    def test_binary_file(self):
        self.add_file(self.exercise, name="logo.png", content=None,
                      attachment=b"\x89PNG\x00",
                      attachment_filename="logo.png",
                      attachment_content_type="image/png")
        self.session.flush()

        task_file = self.exporter.export(self.exercise).files[0]

        self.assertTrue(task_file.binary)
        self.assertEqual(task_file.content, b"\x89PNG\x00")
        self.assertEqual(task_file.mimetype, "image/png")
        self.assertFalse(task_file.used_by_grader)

    def test_unsaved_files_get_positional_ids(self):
        self.add_file(self.exercise)
        self.add_file(self.exercise)

        task = self.exporter.export(self.exercise)

        self.assertEqual([f.id for f in task.files], ["file-1", "file-2"])

    def test_missing_description(self):
        exercise = self.add_exercise(descriptions=[])
        with self.assertRaises(MissingRequiredData):
            self.exporter.export(exercise)

    def test_missing_execution_environment(self):
        exercise = self.add_exercise(execution_environment=None)
        with self.assertRaises(MissingRequiredData):
            self.exporter.export(exercise)

    def test_export_archive(self):
        self.add_file(self.exercise, name="data.bin", content=None,
                      attachment=b"\x00\x01\x02",
                      attachment_content_type="application/octet-stream")
        self.session.flush()

        data = self.exporter.export_archive(self.exercise)

        with archive.open_for_read(data) as zip_ref:
            names = archive.list_entries(zip_ref)
            self.assertEqual(names[0], "task.xml")
            self.assertEqual(len(names), 2)
            self.assertTrue(names[1].startswith("attachments/"))
            task = manifest.decode(archive.read_entry(zip_ref, "task.xml"))
        self.assertEqual(task, self.exporter.export(self.exercise))

    def test_pack_task_without_binary_files(self):
        self.add_file(self.exercise)
        self.session.flush()

        data = pack_task(self.exporter.export(self.exercise))

        with archive.open_for_read(data) as zip_ref:
            self.assertEqual(archive.list_entries(zip_ref), ["task.xml"])


class TestBatchExporter(DatabaseMixin, unittest.TestCase):

    def test_one_entry_per_exercise(self):
        exercises = [self.add_exercise() for _ in range(5)]
        for exercise in exercises:
            self.add_file(exercise)
        self.session.flush()

        data = BatchExporter(concurrency=2).export_batch(exercises)

        with archive.open_for_read(data) as zip_ref:
            names = archive.list_entries(zip_ref)
            self.assertEqual(names, [f"{i}.zip" for i in range(1, 6)])
            for name, exercise in zip(names, exercises):
                with archive.open_for_read(
                        archive.read_entry(zip_ref, name)) as inner:
                    task = manifest.decode(
                        archive.read_entry(inner, "task.xml"))
                self.assertEqual(task.uuid, exercise.uuid)

    def test_pool_size_does_not_change_the_result(self):
        exercises = [self.add_exercise() for _ in range(4)]
        self.session.flush()

        manifests = []
        for concurrency in (1, 3):
            data = BatchExporter(concurrency=concurrency) \
                .export_batch(exercises)
            with archive.open_for_read(data) as zip_ref:
                names = archive.list_entries(zip_ref)
                tasks = []
                for name in names:
                    with archive.open_for_read(
                            archive.read_entry(zip_ref, name)) as inner:
                        tasks.append(manifest.decode(
                            archive.read_entry(inner, "task.xml")))
            manifests.append((names, tasks))

        self.assertEqual(manifests[0], manifests[1])
        self.assertEqual([task.uuid for task in manifests[0][1]],
                         [exercise.uuid for exercise in exercises])

    def test_pool_size_defaults_to_configuration(self):
        self.assertEqual(BatchExporter().concurrency,
                         config.exchange.export_concurrency)
        self.assertEqual(BatchExporter(concurrency=1).concurrency, 1)

    def test_failing_exercise_fails_the_batch(self):
        exercises = [self.add_exercise(), self.add_exercise(descriptions=[])]
        with self.assertRaises(MissingRequiredData):
            BatchExporter().export_batch(exercises)


if __name__ == "__main__":
    unittest.main()
