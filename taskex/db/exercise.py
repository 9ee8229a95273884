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

"""Exercise-related database interface for SQLAlchemy.

An Exercise owns its descriptions, files, tests and snapshots: deleting
the exercise deletes them too. Execution environments and testing
frameworks are shared between exercises and looked up by value.

"""

import enum
import typing
from datetime import datetime

from sqlalchemy.orm import relationship, Session
from sqlalchemy.schema import Column, ForeignKey, UniqueConstraint
from sqlalchemy.types import Boolean, DateTime, Integer, JSON, LargeBinary, \
    String, Unicode

from taskexcommon.datetime import make_datetime
from . import Base

if typing.TYPE_CHECKING:
    from . import User


ROLE_REFERENCE_IMPLEMENTATION = "Reference Implementation"
ROLE_TEACHER_DEFINED_TEST = "Teacher-defined Test"

# Purpose of the files that back a test.
PURPOSE_TEST = "test"


class FileRole(enum.Enum):
    """Where a file of an exercise goes when exporting it."""

    REFERENCE_IMPLEMENTATION = "reference_implementation"
    TEST = "test"
    REGULAR = "regular"


class ExecutionEnvironment(Base):
    """A programming language and version exercises run with.

    """
    __tablename__ = 'execution_environments'
    __table_args__ = (
        UniqueConstraint('language', 'version'),
    )

    id: int = Column(
        Integer,
        primary_key=True)

    language: str = Column(
        Unicode,
        nullable=False)

    version: str = Column(
        Unicode,
        nullable=False,
        default="")

    @classmethod
    def find_or_create(cls, session: Session, language: str,
                       version: str) -> "ExecutionEnvironment":
        """Return the environment with the given values, creating it if
        needed (the new object is only added to the session).

        """
        environment = session.query(cls).filter(
            cls.language == language,
            cls.version == version,
        ).first()
        if environment is None:
            environment = cls(language=language, version=version)
            session.add(environment)
        return environment


class TestingFramework(Base):
    """A framework (e.g. JUnit 5) that runs the tests of an exercise.

    """
    __tablename__ = 'testing_frameworks'
    __table_args__ = (
        UniqueConstraint('name', 'version'),
    )

    # Not a test class, despite the name.
    __test__ = False

    id: int = Column(
        Integer,
        primary_key=True)

    name: str = Column(
        Unicode,
        nullable=False)

    version: str | None = Column(
        Unicode,
        nullable=True)

    @classmethod
    def find_or_create(cls, session: Session, name: str,
                       version: str | None) -> "TestingFramework":
        framework = session.query(cls).filter(
            cls.name == name,
            cls.version == version,
        ).first()
        if framework is None:
            framework = cls(name=name, version=version)
            session.add(framework)
        return framework


class Exercise(Base):
    """Class to store a programming exercise.

    """
    __tablename__ = 'exercises'

    # Auto increment primary key.
    id: int = Column(
        Integer,
        primary_key=True)

    # Global identifier of the exercise lineage, shared across platforms.
    uuid: str = Column(
        String(36),
        nullable=False,
        unique=True,
        index=True)

    title: str = Column(
        Unicode,
        nullable=False)

    # Instructions for teachers, not shown to students.
    instruction: str = Column(
        Unicode,
        nullable=False,
        default="")

    # Soft removal: removed exercises are hidden but still own their uuid.
    deleted: bool = Column(
        Boolean,
        nullable=False,
        default=False)

    created_at: datetime = Column(
        DateTime,
        nullable=False,
        default=make_datetime)

    updated_at: datetime = Column(
        DateTime,
        nullable=False,
        default=make_datetime,
        onupdate=make_datetime)

    execution_environment_id: int | None = Column(
        Integer,
        ForeignKey("execution_environments.id",
                   onupdate="CASCADE", ondelete="RESTRICT"),
        nullable=True,
        index=True)
    execution_environment: ExecutionEnvironment | None = relationship(
        ExecutionEnvironment)

    # Owner of the exercise.
    user_id: int | None = Column(
        Integer,
        ForeignKey('users.id',
                   onupdate="CASCADE", ondelete="SET NULL"),
        nullable=True,
        index=True)
    user: "User | None" = relationship(
        "User",
        back_populates="exercises")

    # These one-to-many relationships are the reversed directions of
    # the ones defined in the "child" classes using foreign keys.

    descriptions: list["Description"] = relationship(
        "Description",
        order_by="Description.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
        back_populates="exercise")

    files: list["ExerciseFile"] = relationship(
        "ExerciseFile",
        order_by="ExerciseFile.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
        back_populates="exercise")

    tests: list["ExerciseTest"] = relationship(
        "ExerciseTest",
        order_by="ExerciseTest.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
        back_populates="exercise")

    snapshots: list["ExerciseSnapshot"] = relationship(
        "ExerciseSnapshot",
        order_by="ExerciseSnapshot.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
        back_populates="exercise")

    # Relations in which this exercise is the clone.
    clone_relations: list["CloneRelation"] = relationship(
        "CloneRelation",
        foreign_keys="CloneRelation.clone_id",
        order_by="CloneRelation.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
        back_populates="clone")

    # Relations in which this exercise is the origin.
    derived_relations: list["CloneRelation"] = relationship(
        "CloneRelation",
        foreign_keys="CloneRelation.origin_id",
        order_by="CloneRelation.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
        back_populates="origin")

    @property
    def origin(self) -> "Exercise | None":
        """The exercise this one was cloned from, if any."""
        for relation in self.clone_relations:
            if relation.origin is not None:
                return relation.origin
        return None

    def primary_description(self) -> "Description | None":
        """Return the description marked primary, else the first one."""
        for description in self.descriptions:
            if description.primary:
                return description
        if self.descriptions:
            return self.descriptions[0]
        return None

    def test_files(self) -> list["ExerciseFile"]:
        return [test.exercise_file for test in self.tests
                if test.exercise_file is not None]

    def classify_file(self, exercise_file: "ExerciseFile") -> FileRole:
        """Return where the given file of this exercise is exported.

        Backing a test wins over the role: every file lands in exactly
        one place, and a test always keeps its file.

        """
        if any(exercise_file is test_file for test_file in self.test_files()):
            return FileRole.TEST
        if exercise_file.role == ROLE_REFERENCE_IMPLEMENTATION:
            return FileRole.REFERENCE_IMPLEMENTATION
        return FileRole.REGULAR

    def validate(self) -> dict[str, list[str]]:
        """Check the exercise before saving it.

        return: a dictionary from field name to error messages, empty
            if the exercise is valid.

        """
        errors: dict[str, list[str]] = {}

        def add(field, message):
            errors.setdefault(field, []).append(message)

        if not self.uuid:
            add("uuid", "can't be blank")
        if not self.title or not self.title.strip():
            add("title", "can't be blank")
        if not self.descriptions:
            add("descriptions", "at least one description is required")
        if self.execution_environment is None:
            add("execution_environment", "can't be blank")
        for exercise_file in self.files:
            if not exercise_file.name:
                add("files", "file name can't be blank")
            if exercise_file.attachment is not None and \
                    exercise_file.content is not None:
                add("files", f"{exercise_file.name} has both content "
                             f"and an attachment")
        for test in self.tests:
            if test.exercise_file is None:
                add("tests", "every test needs a file")
        return errors

    def __repr__(self):
        return f"<Exercise {self.uuid} {self.title!r}>"


class Description(Base):
    """A free-text description of an exercise in one language.

    """
    __tablename__ = 'descriptions'

    id: int = Column(
        Integer,
        primary_key=True)

    exercise_id: int = Column(
        Integer,
        ForeignKey("exercises.id",
                   onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
        index=True)
    exercise: Exercise = relationship(
        Exercise,
        back_populates="descriptions")

    text: str = Column(
        Unicode,
        nullable=False,
        default="")

    # Language code, e.g. "en".
    language: str = Column(
        Unicode,
        nullable=False,
        default="")

    primary: bool = Column(
        Boolean,
        nullable=False,
        default=False)


class ExerciseFile(Base):
    """A file of an exercise, either text or a binary attachment.

    """
    __tablename__ = 'exercise_files'

    id: int = Column(
        Integer,
        primary_key=True)

    exercise_id: int = Column(
        Integer,
        ForeignKey("exercises.id",
                   onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
        index=True)
    exercise: Exercise = relationship(
        Exercise,
        back_populates="files")

    # Full file name, including directories and extension.
    name: str = Column(
        Unicode,
        nullable=False)

    # Text body; None for binary files.
    content: str | None = Column(
        Unicode,
        nullable=True)

    # Free-text role hint, e.g. "Reference Implementation".
    role: str | None = Column(
        Unicode,
        nullable=True)

    # "test" for files backing a test, None otherwise.
    purpose: str | None = Column(
        Unicode,
        nullable=True)

    read_only: bool = Column(
        Boolean,
        nullable=False,
        default=False)

    hidden: bool = Column(
        Boolean,
        nullable=False,
        default=False)

    attachment: bytes | None = Column(
        LargeBinary,
        nullable=True)
    attachment_filename: str | None = Column(
        Unicode,
        nullable=True)
    attachment_content_type: str | None = Column(
        Unicode,
        nullable=True)

    test: "ExerciseTest | None" = relationship(
        "ExerciseTest",
        uselist=False,
        passive_deletes=True,
        back_populates="exercise_file")

    @property
    def has_attachment(self) -> bool:
        return self.attachment is not None

    @property
    def stem(self) -> str:
        """The file name without directories and extension."""
        basename = self.name.rsplit("/", 1)[-1]
        if "." in basename[1:]:
            return basename.rsplit(".", 1)[0]
        return basename


class ExerciseTest(Base):
    """A test of an exercise, backed by exactly one of its files.

    """
    __tablename__ = 'exercise_tests'

    id: int = Column(
        Integer,
        primary_key=True)

    exercise_id: int = Column(
        Integer,
        ForeignKey("exercises.id",
                   onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
        index=True)
    exercise: Exercise = relationship(
        Exercise,
        back_populates="tests")

    exercise_file_id: int = Column(
        Integer,
        ForeignKey("exercise_files.id",
                   onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
        unique=True)
    exercise_file: ExerciseFile = relationship(
        ExerciseFile,
        back_populates="test")

    testing_framework_id: int | None = Column(
        Integer,
        ForeignKey("testing_frameworks.id",
                   onupdate="CASCADE", ondelete="SET NULL"),
        nullable=True,
        index=True)
    testing_framework: TestingFramework | None = relationship(
        TestingFramework)

    # Message shown to students when the test fails.
    feedback_message: str | None = Column(
        Unicode,
        nullable=True)


class CloneRelation(Base):
    """Records that an exercise was cloned (or forked) from another.

    """
    __tablename__ = 'clone_relations'
    __table_args__ = (
        UniqueConstraint('origin_id', 'clone_id'),
    )

    id: int = Column(
        Integer,
        primary_key=True)

    origin_id: int = Column(
        Integer,
        ForeignKey("exercises.id",
                   onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
        index=True)
    origin: Exercise = relationship(
        Exercise,
        foreign_keys=[origin_id],
        back_populates="derived_relations")

    clone_id: int = Column(
        Integer,
        ForeignKey("exercises.id",
                   onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
        index=True)
    clone: Exercise = relationship(
        Exercise,
        foreign_keys=[clone_id],
        back_populates="clone_relations")


class ExerciseSnapshot(Base):
    """The state of an exercise right before an import overwrote it.

    Snapshots are only ever added, never modified.

    """
    __tablename__ = 'exercise_snapshots'

    id: int = Column(
        Integer,
        primary_key=True)

    exercise_id: int = Column(
        Integer,
        ForeignKey("exercises.id",
                   onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
        index=True)
    exercise: Exercise = relationship(
        Exercise,
        back_populates="snapshots")

    timestamp: datetime = Column(
        DateTime,
        nullable=False,
        default=make_datetime)

    # Who triggered the overwrite.
    actor_id: int | None = Column(
        Integer,
        ForeignKey('users.id',
                   onupdate="CASCADE", ondelete="SET NULL"),
        nullable=True)
    actor: "User | None" = relationship("User")

    # Serialized exercise, see taskex.versioning.serialize_exercise.
    data: dict = Column(
        JSON,
        nullable=False)
