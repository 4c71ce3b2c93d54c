"""
Idempotency markers
===================

Each bootstrap step leaves a marker once it succeeded on a host. Finding
the marker on a re-run turns the step into a no-op. Markers are plain
dicts stored under the key ``(hostname, operation)``, any backend
offering get/put/delete works.
"""
import os
import tempfile
import threading

import yaml

from swarmboot.util.logger import Logger

LOGGER = Logger(__name__)

RUNTIME = "runtime"
INIT = "init"
JOIN = "join"

OPERATIONS = (RUNTIME, INIT, JOIN)


def _check_key(hostname, operation):
    if operation not in OPERATIONS:
        raise ValueError(f"unknown operation '{operation}'")
    if not hostname or "/" in hostname or hostname.startswith("."):
        raise ValueError(f"invalid hostname '{hostname}'")


class MarkerStore:
    """The interface of all marker backends"""

    def get(self, hostname, operation):
        """Return the marker record or None"""
        raise NotImplementedError

    def put(self, hostname, operation, record):
        """Store record as marker, replacing an existing one"""
        raise NotImplementedError

    def delete(self, hostname, operation):
        """Remove a marker, a missing marker is ignored"""
        raise NotImplementedError

    def exists(self, hostname, operation):
        """True if a marker is present"""
        return self.get(hostname, operation) is not None


class MemoryMarkerStore(MarkerStore):
    """Keeps markers in a dict, used for rehearsals and tests"""

    def __init__(self):
        self._markers = {}
        self._lock = threading.Lock()

    def get(self, hostname, operation):
        _check_key(hostname, operation)
        with self._lock:
            record = self._markers.get((hostname, operation))
        return dict(record) if record is not None else None

    def put(self, hostname, operation, record):
        _check_key(hostname, operation)
        with self._lock:
            self._markers[(hostname, operation)] = dict(record)

    def delete(self, hostname, operation):
        _check_key(hostname, operation)
        with self._lock:
            self._markers.pop((hostname, operation), None)


class FileMarkerStore(MarkerStore):
    """
    Keeps every marker in a YAML file ``<directory>/<hostname>/<op>.yml``.

    Files are written to a temporary file first and then renamed, a crash
    never leaves a half written marker behind.

    Args:
        directory (str): the state directory
    """

    def __init__(self, directory):
        self.directory = directory

    def _path(self, hostname, operation):
        _check_key(hostname, operation)
        return os.path.join(self.directory, hostname, operation + ".yml")

    def get(self, hostname, operation):
        path = self._path(hostname, operation)
        try:
            with open(path, 'r') as stream:
                record = yaml.safe_load(stream)
        except FileNotFoundError:
            return None

        if not isinstance(record, dict):
            LOGGER.warning("Ignoring corrupt marker %s", path)
            return None
        return record

    def put(self, hostname, operation, record):
        path = self._path(hostname, operation)
        directory = os.path.dirname(path)
        os.makedirs(directory, exist_ok=True)

        fd, tmp = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, 'w') as stream:
                yaml.safe_dump(dict(record), stream, default_flow_style=False)
            os.replace(tmp, path)
        except BaseException:
            os.unlink(tmp)
            raise
        LOGGER.debug("Wrote %s marker %s", operation, path, host=hostname)

    def delete(self, hostname, operation):
        try:
            os.unlink(self._path(hostname, operation))
        except FileNotFoundError:
            pass
