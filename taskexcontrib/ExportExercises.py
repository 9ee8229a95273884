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

"""Export exercises from the database to an interchange archive.

One exercise is written as a single-task archive, several as a batch
archive holding one single-task archive per exercise.

"""

import argparse
import logging
import os
import sys

from taskex import config
from taskex.db import Exercise, SessionGen
from taskex.exceptions import ExchangeError
from taskex.log import initialize_logging
from taskexcontrib.ExerciseExporter import BatchExporter, ExerciseExporter


logger = logging.getLogger(__name__)


class ExerciseArchiveExporter:
    """Export some exercises to a file."""

    def __init__(self, exercise_ids: list[int], export_target: str,
                 force_batch: bool = False):
        """Initialize the ExerciseArchiveExporter.

        exercise_ids: the ids of the exercises to export, in order.
        export_target: path of the archive to write.
        force_batch: write a batch archive even for one exercise.

        """
        self.exercise_ids = exercise_ids
        self.export_target = export_target
        self.force_batch = force_batch

    def do_export(self) -> bool:
        """Run the actual export code.

        return: True if successful, False otherwise.

        """
        logger.info("Starting export of exercises %s.",
                    ", ".join(str(i) for i in self.exercise_ids))

        if os.path.exists(self.export_target):
            logger.critical("The specified file already exists, "
                            "I won't overwrite it.")
            return False

        with SessionGen() as session:
            exercises = []
            for exercise_id in self.exercise_ids:
                exercise = Exercise.get_from_id(exercise_id, session)
                if exercise is None:
                    logger.critical("Exercise with ID %s not found.",
                                    exercise_id)
                    return False
                exercises.append(exercise)

            try:
                if len(exercises) == 1 and not self.force_batch:
                    data = ExerciseExporter().export_archive(exercises[0])
                else:
                    data = BatchExporter().export_batch(exercises)
            except ExchangeError as error:
                logger.critical("Export failed: %s", error)
                return False

        with open(self.export_target, "wb") as f:
            f.write(data)

        logger.info("Export finished successfully.")
        return True


def main() -> int:
    """Parse arguments and launch process."""
    parser = argparse.ArgumentParser(
        description="Export exercises to an interchange archive.")
    parser.add_argument(
        "exercise_ids", metavar="exercise_id", type=int, nargs="+",
        help="id of an exercise to export")
    parser.add_argument(
        "-o", "--output", required=True,
        help="path of the archive to create")
    parser.add_argument(
        "-b", "--batch", action="store_true",
        help="write a batch archive even for a single exercise")
    args = parser.parse_args()

    initialize_logging(config.logging.level)

    exporter = ExerciseArchiveExporter(
        exercise_ids=args.exercise_ids,
        export_target=args.output,
        force_batch=args.batch,
    )
    return 0 if exporter.do_export() else 1


if __name__ == "__main__":
    sys.exit(main())
