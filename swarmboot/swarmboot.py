"""
swarmboot
=========

The main entry point for bootstrapping a swarm cluster.
Don't use it directly, instead install the package with setup.py.
It automatically creates an executable in your path.

"""
import argparse
import asyncio
import sys

from mach import mach1

from . import __version__, ROLES
from .cli import (load_config, local_host, format_members, format_report,
                  init_cluster, issue_token, join_cluster, list_members,
                  apply as apply_inventory, rehearse as rehearse_inventory)
from .cluster.builder import ALREADY_JOINED, JOINED
from .errors import BootstrapError, ConfigError
from .tokens import JoinToken
from .util.logger import Logger

LOGGER = Logger(__name__)


def _run(coro):
    """Run a command coroutine, exit on errors

    Configuration errors exit with 2, all other errors with 1.
    """
    try:
        return asyncio.run(coro)
    except ConfigError as err:
        LOGGER.error(f"Error: {err}")
        sys.exit(2)
    except BootstrapError as err:
        LOGGER.error(f"Error: {err.reason}", host=err.host)
        sys.exit(1)


def _check_role(role):
    if role not in ROLES:
        LOGGER.error('Error: role must be [%s]' % " | ".join(ROLES))
        sys.exit(2)


def _config(path, require_hosts=False):
    try:
        return load_config(path, require_hosts=require_hosts)
    except ConfigError as err:
        LOGGER.error(f"Error: {err}")
        sys.exit(2)


def _host(conf, **kwargs):
    try:
        return local_host(conf, **kwargs)
    except ConfigError as err:
        LOGGER.error(f"Error: {err}")
        sys.exit(2)


@mach1()
class Swarmboot:  # pylint: disable=no-self-use
    """
    The main entry point for the program. This class does the CLI parsing
    and descides which action shoud be taken
    """
    def __init__(self):
        self.parser.add_argument(  # pylint: disable=no-member
            "--version", action="store_true",
            help="show version and exit",
            default=argparse.SUPPRESS)

        verbosity_help = "".join([
            "set the verbosity level (",
            "0 = quiet, ",
            "1 = error, ",
            "2 = warning, ",
            "3 = info, ",
            "4 = debug)"])
        self.parser.add_argument("--verbosity",  # pylint: disable=no-member
                                 "-v",
                                 help=verbosity_help,
                                 choices=['0', '1', '2', '3', '4', 'quiet',
                                          'error', 'warning', 'info', 'debug'],
                                 type=str,
                                 default='3')

    def _get_version(self, _=None):
        print("%s version: %s" % (self.__class__.__name__, __version__))
        sys.exit(0)

    def _set_verbosity(self, level):
        Logger.set_verbosity(level)

    def init(self, advertise: str = None, config: str = None):
        """
        Initialize a new cluster with this host as leader

        advertise - the address other hosts join, host[:port]
        config - configuration file
        """
        conf = _config(config)
        if not advertise and conf.inventory is None:
            LOGGER.error("Error: must specify --advertise")
            sys.exit(2)
        handle = _run(init_cluster(conf, _host(conf, address=advertise),
                                   advertise))
        print(handle.cluster_id)

    def token(self, role: str = None, config: str = None):
        """
        Print the join token of a role, run it on the leader

        role - one of manager or worker
        config - configuration file
        """
        _check_role(role)
        conf = _config(config)
        print(_run(issue_token(conf, _host(conf), role)))

    def join(self, token: str = None, role: str = None, config: str = None):
        """
        Join this host into the cluster of a token

        token - the join token printed by the leader
        role - one of manager or worker
        config - configuration file, enforces the role of the inventory
        """
        _check_role(role)
        conf = _config(config)
        if not token:
            LOGGER.error("Error: must specify --token")
            sys.exit(2)

        host = _host(conf, role=role)
        try:
            parsed = JoinToken.parse(token)
        except BootstrapError as err:
            LOGGER.error(f"Error: {err.reason}")
            sys.exit(2)

        _, admitted = _run(join_cluster(conf, host, parsed, role))
        print(JOINED if admitted else ALREADY_JOINED)

    def members(self, action: str, config: str = None):
        """
        Query the cluster members, run it on a manager

        action - list
        config - configuration file
        """
        if action != "list":
            LOGGER.error("Error: action must be [list]")
            sys.exit(2)

        conf = _config(config)
        print(format_members(_run(list_members(conf, _host(conf)))))

    def apply(self, config: str):
        """
        Bootstrap the cluster of an inventory over SSH

        config - configuration file listing the hosts
        """
        conf = _config(config, require_hosts=True)
        report = _run(apply_inventory(conf))
        print(format_report(report))
        if report.members:
            print(format_members(report.members))
        if not report.ok:
            sys.exit(1)

    def rehearse(self, config: str, latency: float = 0.0,
                 propagation: float = 0.0):
        """
        Bootstrap an inventory against simulated hosts, nothing is touched

        config - configuration file listing the hosts
        latency - seconds every simulated remote call takes
        propagation - seconds until managers other than the leader see new members
        """
        conf = _config(config, require_hosts=True)
        report = _run(rehearse_inventory(conf, latency, propagation))
        print(format_report(report))
        if report.members:
            print(format_members(report.members))
        if not report.ok:
            sys.exit(1)


def main():
    """
    run and execute swarmboot
    """
    k = Swarmboot()

    # pylint: disable=no-member
    k.parser.description = 'Bootstrap a swarm cluster. Use init, token and '\
                           'join on the hosts themselves, or apply to do it '\
                           'all over SSH.'

    # pylint misses the fact that Swarmboot is decorated with mach.
    # the mach decorator analyzes the methods in the class and dynamically
    # creates the CLI parser. It also adds the method run to the class.
    k.run()  # pylint: disable=no-member
