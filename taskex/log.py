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

"""Logging set-up shared by the command line scripts.

Library modules only create their logger with logging.getLogger(__name__);
handlers are installed here, once, by whoever runs the process.

"""

import logging
import sys


ROOT_LOGGERS = ["taskex", "taskexcommon", "taskexcontrib"]


class ShortFormatter(logging.Formatter):
    """Formatter printing time, level, logger name and message."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(levelname)-8s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S")


_handler: logging.Handler | None = None


def initialize_logging(level: str | int = logging.INFO) -> logging.Handler:
    """Attach a stderr handler to the loggers of all our packages.

    Calling this more than once only changes the level.

    level: the minimum level to emit, as a name or a number.

    return: the installed handler.

    """
    global _handler
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    if _handler is None:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(ShortFormatter())
        for name in ROOT_LOGGERS:
            logging.getLogger(name).addHandler(_handler)

    _handler.setLevel(level)
    for name in ROOT_LOGGERS:
        logging.getLogger(name).setLevel(level)
    return _handler
