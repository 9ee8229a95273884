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

"""Task Exchange: programming exercises in and out of the interchange format.

"""

__version__ = "1.0.0"

from .conf import config
from .exceptions import ExchangeError, CorruptArchive, MalformedManifest, \
    MissingRequiredData, ValidationFailure


__all__ = [
    "__version__", "config",
    "ExchangeError", "CorruptArchive", "MalformedManifest",
    "MissingRequiredData", "ValidationFailure",
]
