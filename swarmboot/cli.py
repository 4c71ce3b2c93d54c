"""
cli.py
======

misc functions to interact with the cluster, usually called from
``swarmboot.swarmboot.Swarmboot``.

Don't use directly
"""
import os
import socket

from swarmboot import MANAGER
from swarmboot.cluster.broker import CredentialBroker
from swarmboot.cluster.builder import ClusterBuilder
from swarmboot.cluster.initializer import ClusterInitializer
from swarmboot.cluster.joiner import MembershipJoiner
from swarmboot.cluster.view import ClusterStateView
from swarmboot.config import BootstrapConfig
from swarmboot.driver.docker import DockerDriver
from swarmboot.driver.executor import LocalExecutor
from swarmboot.driver.rehearsal import RehearsalDriver
from swarmboot.errors import ConfigError
from swarmboot.inventory import Host
from swarmboot.ssl import discovery_hash, read_cert, write_cert
from swarmboot.store import FileMarkerStore, MemoryMarkerStore
from swarmboot.util.hue import (  # pylint: disable=no-name-in-module
    bold, green, red)
from swarmboot.util.logger import Logger
from swarmboot.util.net import split_address

LOGGER = Logger(__name__)

MEMBER_COLUMNS = ("ID", "HOSTNAME", "STATUS", "AVAILABILITY",
                  "MANAGER STATUS", "ENGINE VERSION")

LOCALHOST = "127.0.0.1"


def load_config(path=None, require_hosts=False):
    """Read the configuration file, or use the defaults if path is None"""
    if path is None:
        return BootstrapConfig(require_hosts=require_hosts)
    return BootstrapConfig.from_file(path, require_hosts=require_hosts)


def local_host(config, role=MANAGER, address=None):
    """Describe the machine we run on as inventory host.

    If the configuration lists this machine, its inventory entry is used,
    so the intended role is enforced when joining.

    Raises:
        ConfigError if the inventory exists, but doesn't list this host.
    """
    hostname = socket.gethostname()
    if config.inventory is not None:
        try:
            return config.inventory.get(hostname)
        except KeyError:
            raise ConfigError(f"{hostname} is not part of the inventory")

    if address:
        try:
            address, _ = split_address(address, config.advertise_port)
        except ValueError as exc:
            raise ConfigError(str(exc))
    return Host(hostname, address or LOCALHOST, role)


def local_driver(config):
    """A driver running docker on this machine"""
    return DockerDriver(
        lambda host: LocalExecutor(timeout=config.command_timeout))


def format_members(records):
    """Render membership records as table, one line per member.

    The leader comes first, then the other managers and the workers.
    """
    order = {"leader": 0, "reachable": 1, "unreachable": 2}
    records = sorted(records, key=lambda r: (order.get(r.manager_status, 3),
                                             r.hostname))
    rows = [MEMBER_COLUMNS] + [
        (r.node_id, r.hostname, r.status, r.availability, r.manager_status,
         r.engine_version) for r in records]
    widths = [max(len(str(row[i])) for row in rows)
              for i in range(len(MEMBER_COLUMNS))]
    lines = ["   ".join(str(val).ljust(width)
                        for val, width in zip(row, widths)).rstrip()
             for row in rows]
    return "\n".join(lines)


def format_report(report):
    """Render the per host outcome of a bootstrap run"""
    width = max(len(name) for name in report.statuses)
    lines = []
    for name, status in report.statuses.items():
        status = status or "failed: not attempted"
        color = red if status.startswith("failed") else green
        lines.append(f"{bold(name.ljust(width))}  {color(status)}")
    return "\n".join(lines)


def ca_is_current(path, digest):
    """True if path holds the root CA with the discovery hash digest"""
    if not os.path.exists(path):
        return False
    try:
        return discovery_hash(read_cert(path)) == digest
    except ValueError:
        return False


async def init_cluster(config, host, advertise=None):
    """Initialize a cluster on this machine, store the CA next to the
    markers.

    Returns:
        :class:`swarmboot.state.ClusterHandle`
    """
    driver = local_driver(config)
    store = FileMarkerStore(config.state_dir)
    handle = await ClusterInitializer(
        driver, store, advertise_port=config.advertise_port).initialize(
            host, advertise)

    ca_path = os.path.join(config.state_dir, "ca.pem")
    if not ca_is_current(ca_path, handle.ca_digest):
        if os.path.exists(ca_path):
            LOGGER.warning("Replacing %s, it holds another CA", ca_path)
        write_cert(await driver.ca_certificate(host), ca_path)
    return handle


async def issue_token(config, host, role):
    """Issue a join token of role on this machine"""
    broker = CredentialBroker(local_driver(config),
                              advertise_port=config.advertise_port)
    return await broker.issue_token(host, role)


async def join_cluster(config, host, token, role):
    """Join this machine into the cluster of token.

    Returns:
        tuple of (MembershipRecord, bool) as
        :meth:`swarmboot.cluster.joiner.MembershipJoiner.admit`
    """
    joiner = MembershipJoiner(local_driver(config),
                              FileMarkerStore(config.state_dir))
    return await joiner.admit(host, token, role)


async def list_members(config, host):
    """List the members as seen by this machine"""
    return await ClusterStateView(local_driver(config)).list_members(host)


async def apply(config):
    """Bootstrap every host of the inventory over SSH"""
    builder = ClusterBuilder(config, DockerDriver.from_config(config),
                             FileMarkerStore(config.state_dir))
    return await builder.run()


async def rehearse(config, latency=0.0, propagation_delay=0.0):
    """Bootstrap the inventory against simulated hosts"""
    driver = RehearsalDriver(latency=latency,
                             propagation_delay=propagation_delay)
    builder = ClusterBuilder(config, driver, MemoryMarkerStore())
    return await builder.run()
