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

"""Errors raised by the export and import pipelines.

"""


__all__ = [
    "ExchangeError", "CorruptArchive", "MalformedManifest",
    "MissingRequiredData", "ValidationFailure",
]


class ExchangeError(Exception):
    """Base class of every error of the exchange pipelines."""


class CorruptArchive(ExchangeError):
    """The container is unreadable, unsafe, or of an unknown kind."""


class MalformedManifest(ExchangeError):
    """The manifest violates the interchange schema."""


class MissingRequiredData(ExchangeError):
    """An exercise lacks data required to export it."""


class ValidationFailure(ExchangeError):
    """The mapped exercise was rejected by the domain validation.

    errors: a dictionary from field name to the list of messages for
        that field.

    """

    def __init__(self, errors: dict[str, list[str]]):
        self.errors = errors
        details = "; ".join(
            f"{field}: {', '.join(messages)}"
            for field, messages in sorted(errors.items()))
        super().__init__(f"Invalid exercise ({details})")
