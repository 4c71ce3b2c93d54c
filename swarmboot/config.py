"""
Configuration
=============

The bootstrap configuration is read once from a YAML file and passed
explicitly to every component. A minimal file only lists the hosts::

    cluster-name: voting
    hosts:
      - hostname: swarm-master-1
        address: 192.168.56.11
        role: manager
      - hostname: swarm-worker-1
        address: 192.168.56.21
        role: worker
"""
import copy
import os

import yaml

from swarmboot import DEFAULT_ADVERTISE_PORT, DEFAULT_STATE_DIR, STATE_DIR_ENV
from swarmboot.errors import ConfigError
from swarmboot.inventory import Inventory
from swarmboot.util.net import is_port
from swarmboot.util.util import name_validation

DEFAULTS = {
    'cluster-name': 'swarm',
    'advertise-port': DEFAULT_ADVERTISE_PORT,
    'state-dir': DEFAULT_STATE_DIR,
    'ssh': {'user': None, 'options': []},
    'metrics-port': None,
    'retry': {'tries': 5, 'delay': 2, 'backoff': 2},
    'timeouts': {'command': 120, 'members': 60},
}


def _merged(defaults, values):
    out = copy.deepcopy(defaults)
    for key, val in (values or {}).items():
        if isinstance(out.get(key), dict) and isinstance(val, dict):
            out[key] = _merged(out[key], val)
        else:
            out[key] = val
    return out


def _seconds(timeouts, key):
    value = timeouts.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) \
            or value <= 0:
        raise ConfigError(f"timeouts.{key} must be a positive number of "
                          f"seconds, not {value!r}")
    return value


class RetryPolicy:  # pylint: disable=too-few-public-methods
    """Bounded exponential backoff for transient errors"""

    def __init__(self, tries=5, delay=2, backoff=2):
        if tries < 1 or delay < 0 or backoff < 1:
            raise ConfigError("retry needs tries >= 1, delay >= 0 and "
                              "backoff >= 1")
        self.tries = tries
        self.delay = delay
        self.backoff = backoff

    def __repr__(self):
        return "<RetryPolicy tries=%s delay=%s backoff=%s>" % (
            self.tries, self.delay, self.backoff)


class BootstrapConfig:  # pylint: disable=too-many-instance-attributes
    """
    Everything the bootstrap components need to know about a cluster.

    Args:
        config_dict (dict): the parsed YAML configuration
        require_hosts (bool): fail if no hosts are given. The commands
            acting on the local host only need the settings.

    Raises:
        ConfigError if a value is invalid.
    """

    def __init__(self, config_dict=None, require_hosts=True):
        if config_dict is not None and not isinstance(config_dict, dict):
            raise ConfigError("configuration must be a mapping")

        config = _merged(DEFAULTS, config_dict)

        try:
            self.cluster_name = name_validation(config['cluster-name'])
        except ValueError as exc:
            raise ConfigError(str(exc))

        self.advertise_port = config['advertise-port']
        if not is_port(self.advertise_port):
            raise ConfigError(f"invalid advertise-port "
                              f"{self.advertise_port!r}")

        self.metrics_port = config['metrics-port']
        if self.metrics_port is not None and not is_port(self.metrics_port):
            raise ConfigError(f"invalid metrics-port {self.metrics_port!r}")

        state_dir = os.getenv(STATE_DIR_ENV) or config['state-dir']
        self.state_dir = os.path.expanduser(state_dir)

        ssh = config['ssh'] or {}
        self.ssh_user = ssh.get('user')
        self.ssh_options = list(ssh.get('options') or [])
        self.ssh_sudo = bool(ssh.get('sudo', True))

        try:
            self.retry = RetryPolicy(**config['retry'])
        except TypeError as exc:
            raise ConfigError(f"invalid retry settings: {exc}")

        timeouts = config['timeouts']
        if not isinstance(timeouts, dict):
            raise ConfigError("timeouts must be a mapping")
        self.command_timeout = _seconds(timeouts, 'command')
        self.members_timeout = _seconds(timeouts, 'members')

        hosts = config.get('hosts')
        if hosts or require_hosts:
            self.inventory = Inventory.from_list(hosts)
        else:
            self.inventory = None

    @classmethod
    def from_file(cls, path, require_hosts=True):
        """Read a configuration file

        Raises:
            ConfigError if the file can't be read or parsed.
        """
        try:
            with open(path, 'r') as stream:
                config_dict = yaml.safe_load(stream)
        except OSError as exc:
            raise ConfigError(f"can't read {path}: {exc.strerror}")
        except yaml.YAMLError as exc:
            raise ConfigError(f"can't parse {path}: {exc}")

        return cls(config_dict, require_hosts=require_hosts)
