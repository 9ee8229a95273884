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

"""User-related database interface for SQLAlchemy.

Users are the actors of an import: the owner of an exercise, or someone
trying to overwrite it.

"""

import typing

from sqlalchemy.orm import relationship
from sqlalchemy.schema import Column
from sqlalchemy.types import Boolean, Integer, Unicode

from . import Base

if typing.TYPE_CHECKING:
    from . import Exercise


class User(Base):
    """Class to store a user.

    """

    __tablename__ = 'users'

    # Auto increment primary key.
    id: int = Column(
        Integer,
        primary_key=True)

    # Real name (human readable) of the user.
    first_name: str = Column(
        Unicode,
        nullable=False,
        default="")
    last_name: str = Column(
        Unicode,
        nullable=False,
        default="")

    username: str = Column(
        Unicode,
        nullable=False,
        unique=True)

    # Administrators may overwrite any exercise on import.
    is_admin: bool = Column(
        Boolean,
        nullable=False,
        default=False)

    # These one-to-many relationships are the reversed directions of
    # the ones defined in the "child" classes using foreign keys.

    exercises: list["Exercise"] = relationship(
        "Exercise",
        back_populates="user")

    def __repr__(self):
        return f"<User {self.username!r}>"
