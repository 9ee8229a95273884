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

"""A unittest mixin giving each test a fresh database and factories for
the objects tests need.

The schema is recreated for every test. Objects created by the add_*
helpers are added to self.session but not committed; tests that call
code opening its own sessions (like the importer) commit first.

"""

import uuid

from taskex.db import Description, ExecutionEnvironment, Exercise, \
    ExerciseFile, ExerciseTest, Session, TestingFramework, User, drop_db, \
    init_db


class DatabaseMixin:
    """Mixin for tests that need the database."""

    def setUp(self):
        super().setUp()
        drop_db()
        init_db()
        self.session = Session()
        self._counter = 0

    def tearDown(self):
        self.session.rollback()
        self.session.close()
        drop_db()
        super().tearDown()

    def _unique(self) -> int:
        self._counter += 1
        return self._counter

    def add_user(self, **kwargs) -> User:
        n = self._unique()
        args = {
            "username": f"user{n}",
            "first_name": f"First {n}",
            "last_name": f"Last {n}",
        }
        args.update(kwargs)
        user = User(**args)
        self.session.add(user)
        return user

    def add_execution_environment(self, **kwargs) -> ExecutionEnvironment:
        args = {
            "language": "python",
            "version": "3.12",
        }
        args.update(kwargs)
        environment = ExecutionEnvironment(**args)
        self.session.add(environment)
        return environment

    def add_testing_framework(self, **kwargs) -> TestingFramework:
        args = {
            "name": "pytest",
            "version": "8.0",
        }
        args.update(kwargs)
        framework = TestingFramework(**args)
        self.session.add(framework)
        return framework

    def add_exercise(self, descriptions=None, **kwargs) -> Exercise:
        n = self._unique()
        args = {
            "uuid": str(uuid.uuid4()),
            "title": f"Exercise {n}",
            "instruction": f"Instruction {n}",
        }
        args.update(kwargs)
        if "execution_environment" not in args:
            args["execution_environment"] = self.add_execution_environment(
                version=f"3.{n}")
        exercise = Exercise(**args)
        if descriptions is None:
            descriptions = [Description(text=f"Description {n}",
                                        language="en", primary=True)]
        exercise.descriptions = descriptions
        self.session.add(exercise)
        return exercise

    def add_file(self, exercise: Exercise, **kwargs) -> ExerciseFile:
        n = self._unique()
        args = {
            "name": f"file{n}.py",
            "content": f"print({n})\n",
            "read_only": False,
            "hidden": False,
        }
        args.update(kwargs)
        exercise_file = ExerciseFile(**args)
        exercise.files.append(exercise_file)
        return exercise_file

    def add_test(self, exercise: Exercise, exercise_file=None,
                 **kwargs) -> ExerciseTest:
        if exercise_file is None:
            exercise_file = self.add_file(
                exercise, name=f"test_{self._unique()}.py",
                content="def test_it():\n    assert True\n")
        args = {
            "feedback_message": "Keep trying",
        }
        args.update(kwargs)
        if "testing_framework" not in args:
            args["testing_framework"] = self.add_testing_framework(
                version=f"8.{self._unique()}")
        test = ExerciseTest(exercise_file=exercise_file, **args)
        exercise.tests.append(test)
        return test
