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

"""Importer of exercises from the interchange format.

An archive is either a single task (it has a manifest at its top level)
or a batch (every entry is itself an archive). Single tasks are decoded
and stored as exercises: if an exercise with the same uuid exists and the
actor may write it, it is overwritten after a snapshot of its state;
if the actor may not, the import becomes a new exercise (a fork) with a
fresh uuid. Batches are imported entry by entry, each in its own
transaction, and a failing entry does not stop the others.

"""

import enum
import logging
import uuid as uuidlib
from contextlib import closing
from typing import Callable, ContextManager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from taskex import config
from taskex.db import CloneRelation, Description, ExecutionEnvironment, \
    Exercise, ExerciseFile, ExerciseTest, PURPOSE_TEST, SessionGen, \
    TestingFramework, User
from taskex.exceptions import CorruptArchive, ExchangeError, \
    MalformedManifest
from taskex.versioning import ExerciseRepository, Permission, \
    VersioningGate
from taskexcommon import archive, manifest
from taskexcommon.task import Task, TaskFile


logger = logging.getLogger(__name__)


__all__ = [
    "ArchiveKind", "detect_kind", "ImportOutcome", "ExerciseImporter",
    "MODEL_SOLUTION_PLACEHOLDER_ID",
]


# Id some producers give to an empty file standing in for a missing
# model solution; it is never imported.
MODEL_SOLUTION_PLACEHOLDER_ID = "ms-placeholder-file"

DEFAULT_MIMETYPE = "application/octet-stream"


class ArchiveKind(enum.Enum):
    SINGLE = "single"
    BATCH = "batch"


def _is_top_level(name: str) -> bool:
    return "/" not in name.rstrip("/")


def detect_kind(zip_ref) -> ArchiveKind:
    """Tell single-task archives from batches.

    zip_ref: an archive opened with taskexcommon.archive.open_for_read.

    return: SINGLE if there is an .xml entry at the top level, BATCH if
        every entry is an .zip archive.

    raise (CorruptArchive): if the archive is empty or is neither.

    """
    names = archive.list_entries(zip_ref)
    if not names:
        raise CorruptArchive("The archive has no entries")
    if any(_is_top_level(name) and name.lower().endswith(".xml")
           for name in names):
        return ArchiveKind.SINGLE
    if all(name.lower().endswith(".zip") for name in names):
        return ArchiveKind.BATCH
    raise CorruptArchive(
        "The archive has neither a manifest nor only nested archives")


class ImportOutcome:
    """What happened to one entry of a batch.

    Exactly one of exercise, outcomes (for a nested batch) and error is
    set.

    """

    def __init__(self, entry_name: str, exercise: Exercise | None = None,
                 outcomes: list["ImportOutcome"] | None = None,
                 error: Exception | None = None):
        self.entry_name = entry_name
        self.exercise = exercise
        self.outcomes = outcomes
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None

    def __repr__(self):
        if self.error is not None:
            return f"<ImportOutcome {self.entry_name} failed: {self.error}>"
        return f"<ImportOutcome {self.entry_name} ok>"


class ExerciseImporter:
    """Import single-task and batch archives as exercises."""

    def __init__(
        self,
        session_factory: Callable[[], ContextManager[Session]] = SessionGen,
        permission: Permission | None = None,
        max_nesting_depth: int | None = None,
    ):
        """Initialize the ExerciseImporter.

        session_factory: returns a context manager yielding a fresh
            session; every stored exercise gets its own.
        permission: who may overwrite what; owners and admins if None.
        max_nesting_depth: how many levels of batches may wrap a single
            task; the configured value if None.

        """
        self.session_factory = session_factory
        self.permission = permission
        self.max_nesting_depth = max_nesting_depth \
            if max_nesting_depth is not None \
            else config.exchange.max_nesting_depth

    # Entry points.

    def import_archive(self, data: bytes, actor: User | None):
        """Import an archive of any kind.

        data: the bytes of the archive.
        actor: who is importing.

        return: the stored Exercise for a single-task archive, a list
            of ImportOutcome (one per entry, in archive order) for a
            batch.

        """
        return self._import(data, actor, depth=0)

    def import_single(self, data: bytes, actor: User | None) -> Exercise:
        """Import a single-task archive.

        raise (CorruptArchive): if the archive is unreadable or a batch.
        raise (MalformedManifest): if the manifest is invalid.
        raise (ValidationFailure): if the resulting exercise is invalid.

        """
        with closing(archive.open_for_read(data)) as zip_ref:
            if detect_kind(zip_ref) is not ArchiveKind.SINGLE:
                raise CorruptArchive("Expected a single-task archive")
            task = self._read_task(zip_ref)
        return self._store_task(task, actor)

    def import_batch(self, data: bytes,
                     actor: User | None) -> list[ImportOutcome]:
        """Import every archive contained in a batch archive."""
        return self._import_batch(data, actor, depth=0)

    # Internals.

    def _import(self, data: bytes, actor: User | None, depth: int):
        with closing(archive.open_for_read(data)) as zip_ref:
            kind = detect_kind(zip_ref)
            if kind is ArchiveKind.SINGLE:
                task = self._read_task(zip_ref)
        if kind is ArchiveKind.SINGLE:
            return self._store_task(task, actor)
        if depth >= self.max_nesting_depth:
            raise CorruptArchive("Batch archives nested too deeply")
        return self._import_batch(data, actor, depth)

    def _import_batch(self, data: bytes, actor: User | None,
                      depth: int) -> list[ImportOutcome]:
        outcomes = []
        with closing(archive.open_for_read(data)) as zip_ref:
            if detect_kind(zip_ref) is not ArchiveKind.BATCH:
                raise CorruptArchive("Expected a batch archive")
            for name in archive.list_entries(zip_ref):
                outcomes.append(
                    self._import_entry(zip_ref, name, actor, depth + 1))

        failed = sum(1 for outcome in outcomes if not outcome.ok)
        logger.info("Imported batch of %d entries, %d failed.",
                    len(outcomes), failed)
        return outcomes

    def _import_entry(self, zip_ref, name: str, actor: User | None,
                      depth: int) -> ImportOutcome:
        try:
            with archive.extracted_entry(zip_ref, name) as path:
                with open(path, "rb") as f:
                    inner = f.read()
                result = self._import(inner, actor, depth)
        except (ExchangeError, SQLAlchemyError) as error:
            logger.warning("Import of batch entry %s failed: %s",
                           name, error)
            return ImportOutcome(name, error=error)
        if isinstance(result, list):
            return ImportOutcome(name, outcomes=result)
        return ImportOutcome(name, exercise=result)

    @staticmethod
    def _read_task(zip_ref) -> Task:
        names = archive.list_entries(zip_ref)
        manifest_name = config.archive.manifest_name
        if manifest_name not in names:
            manifest_name = next(
                name for name in names
                if _is_top_level(name) and name.lower().endswith(".xml"))
        return manifest.decode(
            archive.read_entry(zip_ref, manifest_name),
            read_attachment=lambda path: archive.read_entry(zip_ref, path))

    def _store_task(self, task: Task, actor: User | None) -> Exercise:
        """Store a task, retrying once if a concurrent import of the same
        uuid won the race to create it.

        """
        for attempt in range(2):
            with self.session_factory() as session:
                try:
                    exercise = self._upsert(session, task, actor)
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    if attempt > 0:
                        raise
                    logger.warning("Concurrent import of %s detected, "
                                   "retrying.", task.uuid)
                    continue
                except BaseException:
                    session.rollback()
                    raise
                logger.info("Imported exercise %s (%s).",
                            exercise.uuid, exercise.title)
                return exercise
        raise AssertionError("unreachable")

    def _upsert(self, session: Session, task: Task,
                actor: User | None) -> Exercise:
        local_actor = None
        if actor is not None and actor.id is not None:
            local_actor = User.get_from_id(actor.id, session)

        repository = ExerciseRepository(session)
        gate = VersioningGate(repository, self.permission)

        # Lookups below must not flush a half-built exercise.
        with session.no_autoflush:
            resolution = gate.resolve(task.uuid, local_actor)
            if resolution.found and resolution.may_overwrite:
                exercise = resolution.existing
                gate.snapshot(exercise, local_actor)
                exercise.deleted = False
            elif resolution.found:
                exercise = Exercise(uuid=str(uuidlib.uuid4()),
                                    user=local_actor)
                exercise.clone_relations.append(
                    CloneRelation(origin=resolution.existing))
                logger.warning("Importing %s as new exercise %s: the actor "
                               "may not overwrite the existing one.",
                               task.uuid, exercise.uuid)
            else:
                exercise = Exercise(uuid=task.uuid or str(uuidlib.uuid4()),
                                    user=local_actor)
                if task.parent_uuid:
                    parent = repository.find_by_uuid(task.parent_uuid)
                    if parent is not None:
                        exercise.clone_relations.append(
                            CloneRelation(origin=parent))

            self._apply_task(session, exercise, task)

        repository.save(exercise)
        return exercise

    def _apply_task(self, session: Session, exercise: Exercise, task: Task):
        """Replace the content of the exercise with the one of the task."""
        exercise.title = task.title
        exercise.descriptions = [Description(
            text=task.description,
            language=task.language,
            primary=True,
        )]
        exercise.instruction = task.internal_description
        exercise.execution_environment = ExecutionEnvironment.find_or_create(
            session, task.proglang.get("name", ""),
            task.proglang.get("version", ""))

        candidates = {}
        for task_file in task.all_files():
            if task_file.id == MODEL_SOLUTION_PLACEHOLDER_ID:
                continue
            candidates[task_file.id] = self._exercise_file(task_file)
        ordered_files = list(candidates.values())

        frameworks = {}
        tests = []
        for test in task.tests:
            test_file_id = test.files[0].id
            exercise_file = candidates.pop(test_file_id, None)
            if exercise_file is None:
                raise MalformedManifest(
                    f"File {test_file_id} of test {test.id} is not usable")
            exercise_file.purpose = PURPOSE_TEST
            tests.append(ExerciseTest(
                exercise_file=exercise_file,
                testing_framework=self._testing_framework(
                    session, test.meta_data, frameworks),
                feedback_message=test.meta_data.get("feedback-message"),
            ))

        exercise.files = ordered_files
        exercise.tests = tests

    @staticmethod
    def _exercise_file(task_file: TaskFile) -> ExerciseFile:
        exercise_file = ExerciseFile(
            name=task_file.filename,
            read_only=task_file.usage_by_lms in ("display", "download"),
            hidden=task_file.visible == "no",
            role=task_file.internal_description,
        )
        if task_file.binary:
            exercise_file.attachment = bytes(task_file.content)
            exercise_file.attachment_filename = task_file.filename
            exercise_file.attachment_content_type = \
                task_file.mimetype or DEFAULT_MIMETYPE
        else:
            exercise_file.content = task_file.content
        return exercise_file

    @staticmethod
    def _testing_framework(session: Session, meta_data: dict[str, str],
                           cache: dict) -> TestingFramework | None:
        name = meta_data.get("testing-framework")
        if not name:
            return None
        key = (name, meta_data.get("testing-framework-version"))
        if key not in cache:
            cache[key] = TestingFramework.find_or_create(session, *key)
        return cache[key]
