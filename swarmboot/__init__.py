# pylint: disable=missing-docstring
from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version('swarmboot')
except PackageNotFoundError:
    __version__ = '0.1.0'

# Defining some constants
MANAGER = "manager"
WORKER = "worker"
ROLES = (MANAGER, WORKER)

DEFAULT_ADVERTISE_PORT = 2377
DEFAULT_STATE_DIR = "~/.swarmboot"
STATE_DIR_ENV = "SWARMBOOT_STATE_DIR"
