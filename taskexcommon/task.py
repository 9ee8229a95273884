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

"""In-memory mirror of the interchange schema.

These objects only live for the duration of one export or import; the
exercises they are converted to and from are what gets stored.

"""


__all__ = [
    "USAGE_BY_LMS_VALUES", "VISIBLE_VALUES",
    "Task", "TaskFile", "Test", "ModelSolution",
]


USAGE_BY_LMS_VALUES = ("display", "edit", "download")
VISIBLE_VALUES = ("yes", "no", "delayed")


class _Value:
    """Equality and repr based on the instance attributes."""

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return self.__dict__ == other.__dict__

    def __repr__(self):
        fields = ", ".join(f"{key}={value!r}"
                           for key, value in self.__dict__.items())
        return f"{type(self).__name__}({fields})"


class TaskFile(_Value):
    """A file of a task.

    Text files carry a str content and no mimetype; binary files carry
    bytes and usually a mimetype.

    """

    def __init__(
        self,
        id: str,
        filename: str,
        content: str | bytes = "",
        binary: bool = False,
        mimetype: str | None = None,
        used_by_grader: bool = True,
        usage_by_lms: str = "edit",
        visible: str = "yes",
        internal_description: str | None = None,
    ):
        self.id = id
        self.filename = filename
        self.content = content
        self.binary = binary
        self.mimetype = mimetype
        self.used_by_grader = used_by_grader
        self.usage_by_lms = usage_by_lms
        self.visible = visible
        self.internal_description = internal_description


class Test(_Value):
    """A test of a task, with its files and free-form metadata."""

    __test__ = False

    def __init__(
        self,
        id: str,
        title: str = "",
        files: list[TaskFile] | None = None,
        meta_data: dict[str, str] | None = None,
        configuration: dict[str, str] | None = None,
    ):
        self.id = id
        self.title = title
        self.files = files if files is not None else []
        self.meta_data = meta_data if meta_data is not None else {}
        self.configuration = configuration \
            if configuration is not None else {}


class ModelSolution(_Value):
    """A reference implementation bundled with a task."""

    def __init__(self, id: str, files: list[TaskFile] | None = None):
        self.id = id
        self.files = files if files is not None else []


class Task(_Value):
    """One exercise in the interchange format."""

    def __init__(
        self,
        title: str = "",
        description: str = "",
        internal_description: str = "",
        language: str = "",
        proglang: dict[str, str] | None = None,
        uuid: str = "",
        parent_uuid: str | None = None,
        files: list[TaskFile] | None = None,
        tests: list[Test] | None = None,
        model_solutions: list[ModelSolution] | None = None,
    ):
        self.title = title
        self.description = description
        self.internal_description = internal_description
        self.language = language
        self.proglang = proglang if proglang is not None \
            else {"name": "", "version": ""}
        self.uuid = uuid
        self.parent_uuid = parent_uuid
        self.files = files if files is not None else []
        self.tests = tests if tests is not None else []
        self.model_solutions = model_solutions \
            if model_solutions is not None else []

    def all_files(self) -> list[TaskFile]:
        """Return the plain files, then the files of the tests, then the
        files of the model solutions.

        """
        result = list(self.files)
        for test in self.tests:
            result.extend(test.files)
        for model_solution in self.model_solutions:
            result.extend(model_solution.files)
        return result
