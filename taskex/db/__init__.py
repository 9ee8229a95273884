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

"""Database layer: engine, session helpers and the ORM classes.

"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker, Session as OrmSession
from sqlalchemy.pool import StaticPool

from taskex import config


logger = logging.getLogger(__name__)


__all__ = [
    "engine", "Base", "Session", "SessionGen", "init_db", "drop_db",
    # user
    "User",
    # exercise
    "FileRole", "ROLE_REFERENCE_IMPLEMENTATION", "ROLE_TEACHER_DEFINED_TEST",
    "PURPOSE_TEST",
    "ExecutionEnvironment", "TestingFramework", "Exercise", "Description",
    "ExerciseFile", "ExerciseTest", "CloneRelation", "ExerciseSnapshot",
]


def _make_engine(url: str):
    if url.startswith("sqlite"):
        # A single shared connection, otherwise every connection to an
        # in-memory database would see a different, empty database.
        sqlite_engine = create_engine(
            url, echo=config.database.echo, poolclass=StaticPool,
            connect_args={"check_same_thread": False})

        @event.listens_for(sqlite_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return sqlite_engine
    return create_engine(url, echo=config.database.echo, pool_pre_ping=True)


engine = _make_engine(config.database.url)


class _BaseMixin:
    """Helpers available on every ORM class."""

    # Columns are annotated with plain types, not Mapped[...].
    __allow_unmapped__ = True

    @classmethod
    def get_from_id(cls, id_, session: OrmSession):
        """Return the object of this class with the given id.

        id_: the id of the object.
        session: the session to query.

        return: the object, or None if it does not exist.

        """
        return session.get(cls, id_)


Base = declarative_base(cls=_BaseMixin)

Session = sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def SessionGen() -> Iterator[OrmSession]:
    """Yield a session that is closed on exit.

    Nothing is committed implicitly: callers commit what they want to
    keep, and anything not committed is rolled back on close.

    """
    session = Session()
    try:
        yield session
    finally:
        session.close()


def init_db():
    """Create every table that does not exist yet."""
    Base.metadata.create_all(engine)
    logger.info("Database schema created.")


def drop_db():
    """Drop every table known to the ORM."""
    Base.metadata.drop_all(engine)


from .user import User
from .exercise import FileRole, ROLE_REFERENCE_IMPLEMENTATION, \
    ROLE_TEACHER_DEFINED_TEST, PURPOSE_TEST, ExecutionEnvironment, \
    TestingFramework, Exercise, Description, ExerciseFile, ExerciseTest, \
    CloneRelation, ExerciseSnapshot
