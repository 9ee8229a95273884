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

"""Exporter of exercises to the interchange format.

An exercise becomes a Task (a pure mapping, see ExerciseExporter.export),
the Task becomes a manifest, and the manifest plus the exercise's binary
files become a zip archive. Several exercises become one archive whose
entries are the single-exercise archives.

"""

import logging
import posixpath

from gevent.pool import Pool

from taskex import config
from taskex.db import Exercise, ExerciseFile, ExerciseTest, FileRole, \
    ROLE_TEACHER_DEFINED_TEST
from taskex.exceptions import MissingRequiredData
from taskexcommon import archive, manifest
from taskexcommon.task import ModelSolution, Task, TaskFile, Test


logger = logging.getLogger(__name__)


__all__ = ["ExerciseExporter", "BatchExporter", "pack_task"]


def pack_task(task: Task) -> bytes:
    """Build the single-task archive of a task.

    The manifest comes first; every binary file is also stored as its own
    entry for whoever unpacks the archive by hand, but the base64 copy in
    the manifest is the one importers read.

    """
    entries = [(config.archive.manifest_name, manifest.encode(task))]
    for task_file in task.all_files():
        if task_file.binary:
            basename = posixpath.basename(task_file.filename) or "file"
            entries.append((f"attachments/{task_file.id}/{basename}",
                            task_file.content))
    return archive.write_archive(entries)


class ExerciseExporter:
    """Convert exercises to tasks and to single-task archives.

    The conversion reads the exercise only, so one instance can be used
    for any number of exercises.

    """

    def export(self, exercise: Exercise) -> Task:
        """Map an exercise to a Task.

        exercise: the exercise to convert.

        return: the task describing the exercise.

        raise (MissingRequiredData): if the exercise has no description
            or no execution environment.

        """
        description = exercise.primary_description()
        if description is None:
            raise MissingRequiredData(
                f"Exercise {exercise.uuid} has no description")
        environment = exercise.execution_environment
        if environment is None:
            raise MissingRequiredData(
                f"Exercise {exercise.uuid} has no execution environment")

        file_ids = self._assign_file_ids(exercise)

        files = []
        model_solutions = []
        for exercise_file in exercise.files:
            role = exercise.classify_file(exercise_file)
            file_id = file_ids[id(exercise_file)]
            if role is FileRole.REFERENCE_IMPLEMENTATION:
                model_solutions.append(
                    self._model_solution(exercise_file, file_id))
            elif role is FileRole.REGULAR:
                files.append(self._regular_file(exercise_file, file_id))
            # Files backing a test only appear inside their test.

        tests = [self._test(test, file_ids) for test in exercise.tests]

        origin = exercise.origin
        return Task(
            title=exercise.title,
            description=description.text,
            internal_description=exercise.instruction or "",
            language=description.language,
            proglang={"name": environment.language,
                      "version": environment.version},
            uuid=exercise.uuid,
            parent_uuid=origin.uuid if origin is not None else None,
            files=files,
            tests=tests,
            model_solutions=model_solutions,
        )

    def export_archive(self, exercise: Exercise) -> bytes:
        """Export an exercise to the bytes of a single-task archive."""
        task = self.export(exercise)
        data = pack_task(task)
        logger.info("Exported exercise %s (%s), %d bytes.",
                    exercise.uuid, exercise.title, len(data))
        return data

    @staticmethod
    def _assign_file_ids(exercise: Exercise) -> dict[int, str]:
        """Map every file (by object identity) to its id in the task.

        Files not stored yet get a positional id.

        """
        file_ids = {}
        candidates = list(exercise.files) + [
            test_file for test_file in exercise.test_files()
            if all(test_file is not f for f in exercise.files)]
        for position, exercise_file in enumerate(candidates, start=1):
            if exercise_file.id is not None:
                file_ids[id(exercise_file)] = str(exercise_file.id)
            else:
                file_ids[id(exercise_file)] = f"file-{position}"
        return file_ids

    @staticmethod
    def _content_params(exercise_file: ExerciseFile) -> dict:
        if exercise_file.has_attachment:
            return {
                "content": bytes(exercise_file.attachment),
                "binary": True,
                "mimetype": exercise_file.attachment_content_type,
            }
        return {
            "content": exercise_file.content or "",
            "binary": False,
        }

    def _regular_file(self, exercise_file: ExerciseFile,
                      file_id: str) -> TaskFile:
        params = self._content_params(exercise_file)
        return TaskFile(
            id=file_id,
            filename=exercise_file.name,
            used_by_grader=not params["binary"],
            usage_by_lms="display" if exercise_file.read_only else "edit",
            visible="no" if exercise_file.hidden else "yes",
            internal_description=exercise_file.role,
            **params)

    def _model_solution(self, exercise_file: ExerciseFile,
                        file_id: str) -> ModelSolution:
        return ModelSolution(
            id=f"ms-{file_id}",
            files=[TaskFile(
                id=file_id,
                filename=exercise_file.name,
                used_by_grader=False,
                usage_by_lms="display",
                visible="delayed",
                internal_description=exercise_file.role,
                **self._content_params(exercise_file))])

    def _test(self, test: ExerciseTest, file_ids: dict[int, str]) -> Test:
        exercise_file = test.exercise_file
        if exercise_file is None:
            raise MissingRequiredData(f"Test {test.id} has no file")

        meta_data = {}
        configuration = {"entry-point": exercise_file.name}
        if test.feedback_message is not None:
            meta_data["feedback-message"] = test.feedback_message
        framework = test.testing_framework
        if framework is not None:
            meta_data["testing-framework"] = framework.name
            configuration["framework"] = framework.name
            if framework.version is not None:
                meta_data["testing-framework-version"] = framework.version
                configuration["version"] = framework.version

        test_file = TaskFile(
            id=file_ids[id(exercise_file)],
            filename=exercise_file.name,
            used_by_grader=True,
            usage_by_lms="display" if exercise_file.read_only else "edit",
            visible="no" if exercise_file.hidden else "yes",
            internal_description=(exercise_file.role
                                  or ROLE_TEACHER_DEFINED_TEST),
            **self._content_params(exercise_file))

        return Test(
            id=str(test.id) if test.id is not None
            else f"test-{file_ids[id(exercise_file)]}",
            title=exercise_file.stem,
            files=[test_file],
            meta_data=meta_data,
            configuration=configuration,
        )


class BatchExporter:
    """Export several exercises to one archive of archives."""

    def __init__(self, exporter: ExerciseExporter | None = None,
                 concurrency: int | None = None):
        """Initialize the BatchExporter.

        exporter: the single-exercise exporter to use.
        concurrency: how many archives to build at the same time; the
            configured value if None.

        """
        self.exporter = exporter if exporter is not None \
            else ExerciseExporter()
        self.concurrency = concurrency if concurrency is not None \
            else config.exchange.export_concurrency

    def export_batch(self, exercises: list[Exercise]) -> bytes:
        """Export the exercises, in order, to the bytes of a batch archive.

        The outer archive holds one entry per exercise, named 1.zip,
        2.zip and so on, and nothing else.

        Packing runs on a greenlet pool, so it is cooperative: encoding
        and compressing never yield, and the greenlets take turns. The
        pool size only bounds how many greenlets exist at once; it does
        not spread the work over several cores.

        """
        # Mapping reads the database session, so it stays sequential;
        # encoding and compressing only touch each task's own data.
        tasks = [self.exporter.export(exercise) for exercise in exercises]

        pool = Pool(size=max(1, self.concurrency))
        inner_archives = pool.map(pack_task, tasks)

        data = archive.write_archive(
            (f"{position}.zip", inner)
            for position, inner in enumerate(inner_archives, start=1))
        logger.info("Exported %d exercises in one batch, %d bytes.",
                    len(tasks), len(data))
        return data
