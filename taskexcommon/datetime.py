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

"""Helpers for the timestamps stored in the database.

All datetimes are naive and in UTC.

"""

from datetime import datetime, timezone


__all__ = [
    "make_datetime",
    ]


def make_datetime(timestamp: int | float | None = None) -> datetime:
    """Return the datetime object associated with the given timestamp.

    timestamp: a POSIX timestamp, or None to use now.

    return: the datetime representing the UTC time of the
        given timestamp.

    """
    if timestamp is None:
        return datetime.now(timezone.utc).replace(tzinfo=None)
    else:
        return datetime.fromtimestamp(timestamp, timezone.utc) \
            .replace(tzinfo=None)

