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

"""Configuration for Task Exchange.

Values are read, in order of increasing priority, from the defaults
below, from a YAML file and from a few environment variables. The file
is the first existing one among $TASKEX_CONFIG, ./config/taskex.yaml
and /usr/local/etc/taskex.yaml.

"""

import logging
import os

import yaml


logger = logging.getLogger(__name__)


class ConfigSection:
    """A group of related settings, accessed as attributes."""

    def __init__(self, **defaults):
        self.__dict__.update(defaults)

    def _update(self, values: dict, section_name: str):
        for key, value in values.items():
            if key not in self.__dict__:
                logger.warning("Unknown configuration key %s.%s, ignoring.",
                               section_name, key)
                continue
            setattr(self, key, value)

    def __repr__(self):
        items = ", ".join("%s=%r" % item for item in sorted(self.__dict__.items()))
        return f"ConfigSection({items})"


class Config:
    """The whole configuration of the system."""

    def __init__(self):
        self.database = ConfigSection(
            # In-memory SQLite is only meant for development and tests;
            # deployments set a PostgreSQL URL in the configuration file.
            url="sqlite://",
            echo=False,
        )
        self.archive = ConfigSection(
            manifest_name="task.xml",
            # Largest uncompressed size accepted for a single entry.
            max_entry_size=100 * 1024 * 1024,
        )
        self.exchange = ConfigSection(
            # Size of the greenlet pool packing a batch export. Packing
            # is CPU-bound and never yields, so greenlets run in turn.
            export_concurrency=4,
            # A batch may contain single archives, not further batches.
            max_nesting_depth=1,
        )
        self.logging = ConfigSection(
            level="INFO",
        )

    def load(self, path: str | None = None) -> bool:
        """Load the configuration file and the environment overrides.

        path: explicit path of the file, or None to search the
            default locations.

        return: True if a file was read, False otherwise.

        """
        loaded = False
        for candidate in self._candidate_paths(path):
            if os.path.exists(candidate):
                loaded = self._load_file(candidate)
                break

        database_url = os.environ.get("TASKEX_DATABASE_URL")
        if database_url:
            self.database.url = database_url

        return loaded

    @staticmethod
    def _candidate_paths(path: str | None) -> list[str]:
        if path is not None:
            return [path]
        paths = []
        if "TASKEX_CONFIG" in os.environ:
            paths.append(os.environ["TASKEX_CONFIG"])
        paths.append(os.path.join(".", "config", "taskex.yaml"))
        paths.append(os.path.join("/", "usr", "local", "etc", "taskex.yaml"))
        return paths

    def _load_file(self, path: str) -> bool:
        try:
            with open(path, "rt", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError):
            logger.critical("Unable to load configuration file %s, "
                            "using defaults.", path, exc_info=True)
            return False

        if not isinstance(data, dict):
            logger.critical("Configuration file %s is not a mapping, "
                            "using defaults.", path)
            return False

        for section_name, values in data.items():
            section = getattr(self, section_name, None)
            if not isinstance(section, ConfigSection) or \
                    not isinstance(values, dict):
                logger.warning("Unknown configuration section %s, ignoring.",
                               section_name)
                continue
            section._update(values, section_name)

        logger.info("Using configuration file %s.", path)
        return True


config = Config()
config.load()
