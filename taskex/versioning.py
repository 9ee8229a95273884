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

"""Version and ownership decisions for imports.

Before an import touches an exercise that already exists, the gate
decides whether the importing actor may overwrite it and records a
snapshot of the state being replaced. It talks to the permission and
persistence collaborators and knows nothing about manifests.

"""

import base64
import logging

from sqlalchemy.orm import Session

from taskex.db import Exercise, ExerciseSnapshot, User
from taskex.exceptions import ValidationFailure
from taskexcommon.datetime import make_datetime


logger = logging.getLogger(__name__)


__all__ = [
    "Permission", "OwnerPermission", "ExerciseRepository", "Resolution",
    "VersioningGate", "serialize_exercise",
]


def serialize_exercise(exercise: Exercise) -> dict:
    """Return a JSON-compatible copy of the state of an exercise."""
    environment = exercise.execution_environment
    return {
        "uuid": exercise.uuid,
        "title": exercise.title,
        "instruction": exercise.instruction,
        "deleted": exercise.deleted,
        "user_id": exercise.user_id,
        "execution_environment": {
            "language": environment.language,
            "version": environment.version,
        } if environment is not None else None,
        "descriptions": [{
            "text": description.text,
            "language": description.language,
            "primary": description.primary,
        } for description in exercise.descriptions],
        "files": [{
            "id": exercise_file.id,
            "name": exercise_file.name,
            "content": exercise_file.content,
            "role": exercise_file.role,
            "purpose": exercise_file.purpose,
            "read_only": exercise_file.read_only,
            "hidden": exercise_file.hidden,
            "attachment": base64.b64encode(exercise_file.attachment)
            .decode("ascii") if exercise_file.attachment is not None
            else None,
            "attachment_filename": exercise_file.attachment_filename,
            "attachment_content_type": exercise_file.attachment_content_type,
        } for exercise_file in exercise.files],
        "tests": [{
            "file_id": test.exercise_file_id,
            "feedback_message": test.feedback_message,
            "testing_framework": {
                "name": test.testing_framework.name,
                "version": test.testing_framework.version,
            } if test.testing_framework is not None else None,
        } for test in exercise.tests],
    }


class Permission:
    """Decides whether an actor may overwrite an exercise."""

    def may_write(self, exercise: Exercise, actor: User | None) -> bool:
        raise NotImplementedError("Please subclass this class.")


class OwnerPermission(Permission):
    """The owner of an exercise and administrators may write it."""

    def may_write(self, exercise, actor):
        if actor is None:
            return False
        if actor.is_admin:
            return True
        return exercise.user_id is not None and exercise.user_id == actor.id


class ExerciseRepository:
    """Persistence of exercises and their snapshots in one session."""

    def __init__(self, session: Session):
        self.session = session

    def find_by_uuid(self, uuid: str, include_removed: bool = True,
                     lock: bool = False) -> Exercise | None:
        """Return the exercise with the given uuid, if any.

        include_removed: whether soft-removed exercises are considered.
        lock: whether to lock the row until the end of the transaction,
            serializing concurrent imports of the same uuid.

        """
        query = self.session.query(Exercise).filter(Exercise.uuid == uuid)
        if not include_removed:
            query = query.filter(Exercise.deleted.is_(False))
        if lock:
            query = query.with_for_update()
        return query.first()

    def save_snapshot(self, exercise: Exercise,
                      actor: User | None) -> ExerciseSnapshot:
        snapshot = ExerciseSnapshot(
            exercise=exercise,
            timestamp=make_datetime(),
            actor=actor,
            data=serialize_exercise(exercise),
        )
        self.session.add(snapshot)
        return snapshot

    def save(self, exercise: Exercise):
        """Validate the exercise and write it to the database.

        Nothing is committed: the caller owns the transaction.

        raise (ValidationFailure): if the exercise is invalid.

        """
        errors = exercise.validate()
        if errors:
            raise ValidationFailure(errors)
        self.session.add(exercise)
        self.session.flush()


class Resolution:
    """Outcome of VersioningGate.resolve."""

    def __init__(self, existing: Exercise | None, may_overwrite: bool):
        self.existing = existing
        self.may_overwrite = may_overwrite

    @property
    def found(self) -> bool:
        return self.existing is not None


class VersioningGate:
    """Look up existing exercises and guard their overwriting."""

    def __init__(self, repository: ExerciseRepository,
                 permission: Permission | None = None):
        self.repository = repository
        self.permission = permission if permission is not None \
            else OwnerPermission()

    def resolve(self, uuid: str | None, actor: User | None) -> Resolution:
        """Find the exercise an import of the given uuid would replace.

        The row, if found, stays locked until the transaction ends.

        uuid: the uuid carried by the imported task.
        actor: who is importing.

        return: the existing exercise (soft-removed ones included) and
            whether the actor may overwrite it.

        """
        if not uuid:
            return Resolution(None, False)
        existing = self.repository.find_by_uuid(
            uuid, include_removed=True, lock=True)
        if existing is None:
            return Resolution(None, False)
        may_overwrite = self.permission.may_write(existing, actor)
        if not may_overwrite:
            logger.info("Actor %s may not overwrite exercise %s.",
                        actor.username if actor is not None else None, uuid)
        return Resolution(existing, may_overwrite)

    def snapshot(self, exercise: Exercise,
                 actor: User | None) -> ExerciseSnapshot:
        """Record the current state of the exercise before it changes."""
        snapshot = self.repository.save_snapshot(exercise, actor)
        logger.debug("Recorded snapshot of exercise %s.", exercise.uuid)
        return snapshot
