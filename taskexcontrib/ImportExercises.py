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

"""Import an interchange archive (single task or batch) into the
database, on behalf of a user.

"""

import argparse
import logging
import sys

from taskex import config
from taskex.db import SessionGen, User, init_db
from taskex.exceptions import ExchangeError
from taskex.log import initialize_logging
from taskexcontrib.ExerciseImporter import ExerciseImporter


logger = logging.getLogger(__name__)


class ExerciseArchiveImporter:
    """Import the archive at a path as a given user."""

    def __init__(self, path: str, username: str | None):
        self.path = path
        self.username = username

    def do_import(self) -> bool:
        """Run the actual import code.

        return: True if every exercise was imported, False otherwise.

        """
        logger.info("Importing archive %s.", self.path)

        actor = None
        if self.username is not None:
            with SessionGen() as session:
                actor = session.query(User).filter(
                    User.username == self.username).first()
            if actor is None:
                logger.critical("User %s not found.", self.username)
                return False

        try:
            with open(self.path, "rb") as f:
                data = f.read()
        except OSError:
            logger.critical("Cannot read %s.", self.path, exc_info=True)
            return False

        try:
            result = ExerciseImporter().import_archive(data, actor)
        except ExchangeError as error:
            logger.critical("Import failed: %s", error)
            return False

        if not isinstance(result, list):
            logger.info("Imported exercise %s (%s).",
                        result.uuid, result.title)
            return True

        return self._report(result)

    def _report(self, outcomes, prefix: str = "") -> bool:
        success = True
        for outcome in outcomes:
            name = prefix + outcome.entry_name
            if not outcome.ok:
                logger.error("Entry %s failed: %s", name, outcome.error)
                success = False
            elif outcome.outcomes is not None:
                success = self._report(outcome.outcomes, name + "/") \
                    and success
            else:
                logger.info("Entry %s imported as exercise %s.",
                            name, outcome.exercise.uuid)
        return success


def main() -> int:
    """Parse arguments and launch process."""
    parser = argparse.ArgumentParser(
        description="Import exercises from an interchange archive.")
    parser.add_argument(
        "path",
        help="path of the archive to import")
    parser.add_argument(
        "-u", "--user",
        help="username of the importing user (the owner of new exercises)")
    parser.add_argument(
        "--init-db", action="store_true",
        help="create the database tables before importing")
    args = parser.parse_args()

    initialize_logging(config.logging.level)

    if args.init_db:
        init_db()

    importer = ExerciseArchiveImporter(path=args.path, username=args.user)
    return 0 if importer.do_import() else 1


if __name__ == "__main__":
    sys.exit(main())
