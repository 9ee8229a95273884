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

"""Encoding and decoding of the task manifest (task.xml).

The manifest is an XML document in the urn:proforma:v2.0 namespace.
Text files are embedded verbatim, binary files as base64. Text that XML
cannot carry faithfully (carriage returns are normalized away by every
parser, most control characters are forbidden) is embedded as base64 too,
marked with encoding="base64".

Decoding ignores elements and attributes it does not know, so manifests
written by newer producers can still be read.

"""

import base64
import binascii
import logging
import re
import xml.etree.ElementTree as ET
from typing import Callable

from taskex.exceptions import MalformedManifest
from .task import USAGE_BY_LMS_VALUES, VISIBLE_VALUES, ModelSolution, Task, \
    TaskFile, Test


logger = logging.getLogger(__name__)


__all__ = ["NAMESPACE", "encode", "decode"]


NAMESPACE = "urn:proforma:v2.0"

ET.register_namespace("", NAMESPACE)

# Characters allowed by XML 1.0, minus the carriage return.
_UNSAFE_TEXT = re.compile(
    "[^\t\n\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")

_TRUE_VALUES = ("true", "1")
_FALSE_VALUES = ("false", "0")


def _tag(name: str) -> str:
    return f"{{{NAMESPACE}}}{name}"


def _local(tag: str) -> str:
    """Strip the namespace from an element tag."""
    return tag.rsplit("}", 1)[-1]


def _format_bool(value: bool) -> str:
    return "true" if value else "false"


# Encoding.


def _set_text(element: ET.Element, text: str):
    if _UNSAFE_TEXT.search(text):
        element.set("encoding", "base64")
        element.text = base64.b64encode(text.encode("utf-8")).decode("ascii")
    else:
        element.text = text


def _add_text_child(parent: ET.Element, name: str, text: str) -> ET.Element:
    child = ET.SubElement(parent, _tag(name))
    _set_text(child, text)
    return child


def _encode_file(parent: ET.Element, task_file: TaskFile):
    element = ET.SubElement(parent, _tag("file"), {
        "id": str(task_file.id),
        "used-by-grader": _format_bool(task_file.used_by_grader),
        "usage-by-lms": task_file.usage_by_lms,
        "visible": task_file.visible,
    })

    if task_file.binary:
        content = task_file.content
        if isinstance(content, str):
            content = content.encode("utf-8")
        if task_file.mimetype:
            element.set("mimetype", task_file.mimetype)
        embedded = ET.SubElement(element, _tag("embedded-bin-file"),
                                 {"filename": task_file.filename})
        embedded.text = base64.b64encode(content).decode("ascii")
    else:
        content = task_file.content
        if isinstance(content, bytes):
            content = content.decode("utf-8")
        embedded = ET.SubElement(element, _tag("embedded-txt-file"),
                                 {"filename": task_file.filename})
        _set_text(embedded, content or "")

    if task_file.internal_description is not None:
        _add_text_child(element, "internal-description",
                        task_file.internal_description)


def _encode_files(parent: ET.Element, files: list[TaskFile]):
    container = ET.SubElement(parent, _tag("files"))
    for task_file in files:
        _encode_file(container, task_file)


def _encode_entries(parent: ET.Element, name: str, entries: dict[str, str]):
    container = ET.SubElement(parent, _tag(name))
    for key, value in entries.items():
        entry = ET.SubElement(container, _tag("entry"), {"key": key})
        _set_text(entry, str(value))


def encode(task: Task) -> bytes:
    """Serialize a task to the bytes of its manifest.

    task: the task to serialize.

    return: a UTF-8 encoded XML document.

    """
    attributes = {"uuid": task.uuid}
    if task.parent_uuid:
        attributes["parent-uuid"] = task.parent_uuid
    attributes["language"] = task.language or ""
    root = ET.Element(_tag("task"), attributes)

    _add_text_child(root, "title", task.title or "")
    _add_text_child(root, "description", task.description or "")
    _add_text_child(root, "internal-description",
                    task.internal_description or "")
    ET.SubElement(root, _tag("proglang"), {
        "name": task.proglang.get("name") or "",
        "version": task.proglang.get("version") or "",
    })

    _encode_files(root, task.files)

    tests = ET.SubElement(root, _tag("tests"))
    for test in task.tests:
        element = ET.SubElement(tests, _tag("test"), {"id": str(test.id)})
        _add_text_child(element, "title", test.title or "")
        _encode_files(element, test.files)
        if test.configuration:
            _encode_entries(element, "configuration", test.configuration)
        _encode_entries(element, "meta-data", test.meta_data)

    model_solutions = ET.SubElement(root, _tag("model-solutions"))
    for model_solution in task.model_solutions:
        element = ET.SubElement(model_solutions, _tag("model-solution"),
                                {"id": str(model_solution.id)})
        _encode_files(element, model_solution.files)

    ET.indent(root)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


# Decoding.


def _children(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if _local(child.tag) == name]


def _child(element: ET.Element, name: str) -> ET.Element | None:
    for child in element:
        if _local(child.tag) == name:
            return child
    return None


def _required_attribute(element: ET.Element, name: str, where: str) -> str:
    value = element.get(name)
    if value is None:
        raise MalformedManifest(f"Missing attribute {name} on {where}")
    return value


def _get_text(element: ET.Element | None, where: str) -> str:
    if element is None:
        return ""
    text = element.text or ""
    if element.get("encoding") == "base64":
        try:
            return base64.b64decode(text, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as error:
            raise MalformedManifest(
                f"Invalid base64 text in {where}") from error
    return text


def _parse_bool(value: str, where: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise MalformedManifest(f"Invalid boolean {value!r} in {where}")


def _parse_enum(value: str, allowed: tuple[str, ...], where: str) -> str:
    if value not in allowed:
        raise MalformedManifest(
            f"Unknown value {value!r} in {where}, expected one of "
            f"{', '.join(allowed)}")
    return value


def _decode_file(element: ET.Element,
                 read_attachment: Callable[[str], bytes] | None) -> TaskFile:
    file_id = _required_attribute(element, "id", "file")
    where = f"file {file_id}"
    used_by_grader = _parse_bool(
        _required_attribute(element, "used-by-grader", where), where)
    usage_by_lms = _parse_enum(
        _required_attribute(element, "usage-by-lms", where),
        USAGE_BY_LMS_VALUES, where)
    visible = _parse_enum(
        _required_attribute(element, "visible", where),
        VISIBLE_VALUES, where)

    internal_description_element = _child(element, "internal-description")
    internal_description = None
    if internal_description_element is not None:
        internal_description = _get_text(internal_description_element, where)

    embedded_txt = _child(element, "embedded-txt-file")
    embedded_bin = _child(element, "embedded-bin-file")
    attached_txt = _child(element, "attached-txt-file")
    attached_bin = _child(element, "attached-bin-file")

    if embedded_bin is not None or attached_bin is not None:
        binary = True
        if embedded_bin is not None:
            filename = _required_attribute(embedded_bin, "filename", where)
            try:
                content = base64.b64decode(
                    "".join((embedded_bin.text or "").split()), validate=True)
            except binascii.Error as error:
                raise MalformedManifest(
                    f"Invalid base64 content in {where}") from error
        else:
            filename, content = _read_attached(
                attached_bin, read_attachment, where)
        mimetype = element.get("mimetype")
    elif embedded_txt is not None or attached_txt is not None:
        binary = False
        mimetype = None
        if embedded_txt is not None:
            filename = _required_attribute(embedded_txt, "filename", where)
            content = _get_text(embedded_txt, where)
        else:
            filename, raw = _read_attached(
                attached_txt, read_attachment, where)
            try:
                content = raw.decode("utf-8")
            except UnicodeDecodeError as error:
                raise MalformedManifest(
                    f"Attached text of {where} is not UTF-8") from error
    else:
        raise MalformedManifest(f"No content for {where}")

    return TaskFile(
        id=file_id,
        filename=filename,
        content=content,
        binary=binary,
        mimetype=mimetype,
        used_by_grader=used_by_grader,
        usage_by_lms=usage_by_lms,
        visible=visible,
        internal_description=internal_description,
    )


def _read_attached(element: ET.Element,
                   read_attachment: Callable[[str], bytes] | None,
                   where: str) -> tuple[str, bytes]:
    """Resolve a file whose content lives in another archive entry."""
    path = (element.text or "").strip()
    if not path:
        raise MalformedManifest(f"Empty attachment path in {where}")
    if read_attachment is None:
        raise MalformedManifest(
            f"{where} refers to {path}, but no archive is available")
    filename = element.get("filename") or path.rsplit("/", 1)[-1]
    return filename, read_attachment(path)


def _decode_files(parent: ET.Element, where: str,
                  read_attachment: Callable[[str], bytes] | None,
                  required: bool) -> list[TaskFile]:
    container = _child(parent, "files")
    if container is None:
        if required:
            raise MalformedManifest(f"Missing files in {where}")
        return []
    files = [_decode_file(element, read_attachment)
             for element in _children(container, "file")]
    if required and not files:
        raise MalformedManifest(f"No files in {where}")
    return files


def _decode_entries(parent: ET.Element, name: str,
                    where: str) -> dict[str, str]:
    container = _child(parent, name)
    if container is None:
        return {}
    entries = {}
    for entry in _children(container, "entry"):
        key = _required_attribute(entry, "key", f"{name} of {where}")
        entries[key] = _get_text(entry, where)
    return entries


def decode(data: bytes,
           read_attachment: Callable[[str], bytes] | None = None) -> Task:
    """Parse the bytes of a manifest into a task.

    data: the manifest document.
    read_attachment: function returning the bytes of an archive entry,
        used for files stored outside the manifest; None if there is no
        archive around the manifest.

    return: the decoded task.

    raise (MalformedManifest): if the document violates the schema.

    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as error:
        raise MalformedManifest(f"Unparseable manifest: {error}") from error

    if _local(root.tag) != "task":
        raise MalformedManifest(
            f"Unexpected root element {_local(root.tag)}")

    uuid = root.get("uuid")
    if not uuid:
        raise MalformedManifest("Missing attribute uuid on task")

    title_element = _child(root, "title")
    if title_element is None:
        raise MalformedManifest("Missing title")

    proglang_element = _child(root, "proglang")
    if proglang_element is None:
        raise MalformedManifest("Missing proglang")
    proglang = {
        "name": _required_attribute(proglang_element, "name", "proglang"),
        "version": _required_attribute(proglang_element, "version",
                                       "proglang"),
    }

    files = _decode_files(root, "task", read_attachment, required=False)

    tests = []
    tests_element = _child(root, "tests")
    if tests_element is not None:
        for element in _children(tests_element, "test"):
            test_id = _required_attribute(element, "id", "test")
            where = f"test {test_id}"
            tests.append(Test(
                id=test_id,
                title=_get_text(_child(element, "title"), where),
                files=_decode_files(element, where, read_attachment,
                                    required=True),
                meta_data=_decode_entries(element, "meta-data", where),
                configuration=_decode_entries(element, "configuration",
                                              where),
            ))

    model_solutions = []
    model_solutions_element = _child(root, "model-solutions")
    if model_solutions_element is not None:
        for element in _children(model_solutions_element, "model-solution"):
            model_solution_id = _required_attribute(
                element, "id", "model-solution")
            where = f"model-solution {model_solution_id}"
            model_solutions.append(ModelSolution(
                id=model_solution_id,
                files=_decode_files(element, where, read_attachment,
                                    required=True),
            ))

    task = Task(
        title=_get_text(title_element, "title"),
        description=_get_text(_child(root, "description"), "description"),
        internal_description=_get_text(
            _child(root, "internal-description"), "internal-description"),
        language=root.get("language", ""),
        proglang=proglang,
        uuid=uuid,
        parent_uuid=root.get("parent-uuid") or None,
        files=files,
        tests=tests,
        model_solutions=model_solutions,
    )

    seen = set()
    for task_file in task.all_files():
        if task_file.id in seen:
            raise MalformedManifest(f"Duplicate file id {task_file.id}")
        seen.add(task_file.id)

    logger.debug("Decoded manifest of task %s with %d files.",
                 task.uuid, len(seen))
    return task
