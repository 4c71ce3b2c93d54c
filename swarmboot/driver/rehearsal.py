"""
Rehearsal
=========

An in-memory stand-in for hosts and their container runtime. Nothing is
installed and no machine is touched, but the cluster behaves like a real
one: it has a root CA, role bound join secrets, one leader, serialised
admissions and a propagation delay before followers see new members.

Use it to try an inventory before running it for real::

    swarmboot rehearse inventory.yml
"""
# pylint: disable=too-many-instance-attributes
import asyncio
import random
import string
import time

from swarmboot import DEFAULT_ADVERTISE_PORT, MANAGER, ROLES
from swarmboot.driver import Driver
from swarmboot.errors import (AlreadyMemberOfOtherCluster, NotManager,
                              RoleMismatch, RuntimeUnavailable,
                              TokenExpiredOrRotated, UnreachableLeader)
from swarmboot.ssl import CertBundle, certificate_role
from swarmboot.state import (MembershipRecord, SwarmState, LEADER,
                             REACHABLE, UNREACHABLE, NOT_APPLICABLE)
from swarmboot.util.logger import Logger
from swarmboot.util.net import join_address, split_address

LOGGER = Logger(__name__)

DEFAULT_ENGINE_VERSION = "24.0.7"


def rand_id(num=25):
    """
    generate a random id like the ones docker uses for nodes and clusters
    """
    return ''.join(random.choice(string.ascii_lowercase + string.digits)
                   for _ in range(num))


class RehearsalHost:  # pylint: disable=too-few-public-methods
    """A simulated machine"""

    def __init__(self, hostname, address):
        self.hostname = hostname
        self.address = address
        self.runtime = None
        self.installable = True
        self.reachable = True
        self.metrics_port = None
        self.cluster = None
        self.node_id = ""


class RehearsalNode:  # pylint: disable=too-few-public-methods
    """A member entry of a simulated cluster"""

    def __init__(self, node_id, host, bundle, joined_at):
        self.node_id = node_id
        self.host = host
        self.bundle = bundle
        self.joined_at = joined_at

    @property
    def role(self):
        """The role the node certificate was issued for"""
        return certificate_role(self.bundle.cert)


class RehearsalCluster:
    """A simulated cluster, its state is owned by the leader"""

    def __init__(self, cluster_id, ca_bundle, advertise):
        self.cluster_id = cluster_id
        self.ca = ca_bundle
        self.advertise = advertise
        self.secrets = {role: rand_id() for role in ROLES}
        self.nodes = {}
        self.leader_id = None
        self.lock = asyncio.Lock()

    @property
    def leader(self):
        """The RehearsalNode currently leading"""
        return self.nodes[self.leader_id]

    def role_of_secret(self, secret):
        """The role a secret admits, None if the secret is unknown"""
        for role, value in self.secrets.items():
            if value == secret:
                return role
        return None


class RehearsalDriver(Driver):
    """
    Simulates hosts, their runtime and the cluster they form.

    Hosts are created on first use. A host starts without runtime, which
    :meth:`install_runtime` provides, unless :meth:`break_runtime` was
    called for it.

    Args:
        latency (float): seconds every remote operation takes
        propagation_delay (float): seconds before a new member shows up
            in the view of managers other than the leader
        engine_version (str): the version reported by the runtimes
        key_size (int): RSA key size for the CA and node certificates
    """

    def __init__(self, latency=0.0, propagation_delay=0.0,
                 engine_version=DEFAULT_ENGINE_VERSION, key_size=2048):
        self.latency = latency
        self.propagation_delay = propagation_delay
        self.engine_version = engine_version
        self.key_size = key_size
        self.hosts = {}
        self.clusters = {}

    # -- knobs for rehearsing failures --------------------------------------

    def machine(self, host):
        """Return the simulated machine behind host, creating it"""
        if host.hostname not in self.hosts:
            self.hosts[host.hostname] = RehearsalHost(host.hostname,
                                                      host.address)
        return self.hosts[host.hostname]

    def provide_runtime(self, host):
        """Pretend the runtime is already installed on host"""
        self.machine(host).runtime = self.engine_version

    def break_runtime(self, host):
        """Make the runtime of host unavailable and uninstallable"""
        machine = self.machine(host)
        machine.runtime = None
        machine.installable = False

    def set_reachable(self, host, reachable):
        """Cut or restore the network of host"""
        self.machine(host).reachable = reachable

    def rotate_secret(self, host, role):
        """Administratively rotate the join secret of role"""
        cluster = self._cluster_of(self.machine(host))
        cluster.secrets[role] = rand_id()
        LOGGER.info("Rotated %s join secret", role, host=host.hostname)

    # -- helpers -------------------------------------------------------------

    async def _roundtrip(self):
        if self.latency:
            await asyncio.sleep(self.latency)

    def _cluster_of(self, machine):
        if machine.cluster is None:
            raise NotManager(f"{machine.hostname} is not a swarm member",
                             host=machine.hostname)
        return self.clusters[machine.cluster]

    def _is_leader(self, machine):
        if machine.cluster is None:
            return False
        return self.clusters[machine.cluster].leader_id == machine.node_id

    async def _reach(self, host):
        machine = self.machine(host)
        await self._roundtrip()
        if not machine.reachable:
            if self._is_leader(machine):
                raise UnreachableLeader(f"{host.hostname} is unreachable",
                                        host=host.hostname)
            raise RuntimeUnavailable(f"{host.hostname} is unreachable",
                                     host=host.hostname)
        if machine.runtime is None:
            raise RuntimeUnavailable("runtime is not running",
                                     host=host.hostname)
        return machine

    def _manager_of(self, machine):
        cluster = self._cluster_of(machine)
        if cluster.nodes[machine.node_id].role != MANAGER:
            raise NotManager(f"{machine.hostname} is not a swarm manager",
                             host=machine.hostname)
        return cluster

    def _machine_at(self, address):
        for machine in self.hosts.values():
            if machine.address == address:
                return machine
        return None

    def _admit(self, cluster, machine, role):
        node_id = rand_id()
        bundle = CertBundle.create_signed(cluster.ca, node_id, role,
                                          cluster.cluster_id,
                                          hosts=[machine.hostname],
                                          size=self.key_size)
        cluster.nodes[node_id] = RehearsalNode(node_id, machine, bundle,
                                               time.monotonic())
        machine.cluster = cluster.cluster_id
        machine.node_id = node_id
        return node_id

    # -- Driver --------------------------------------------------------------

    async def runtime_version(self, host):
        machine = await self._reach(host)
        return machine.runtime

    async def install_runtime(self, host, metrics_port=None):
        machine = self.machine(host)
        await self._roundtrip()
        if not machine.reachable or not machine.installable:
            raise RuntimeUnavailable("runtime installation failed",
                                     host=host.hostname)
        machine.runtime = self.engine_version
        machine.metrics_port = metrics_port

    async def swarm_state(self, host):
        machine = await self._reach(host)
        if machine.cluster is None:
            return SwarmState()

        cluster = self.clusters[machine.cluster]
        node = cluster.nodes[machine.node_id]
        _, port = split_address(cluster.advertise, DEFAULT_ADVERTISE_PORT)
        managers = [cluster.advertise] + [
            join_address(n.host.address, port)
            for n in cluster.nodes.values()
            if n.role == MANAGER and n.node_id != cluster.leader_id]
        return SwarmState(
            node_id=machine.node_id,
            cluster_id=cluster.cluster_id,
            node_addr=machine.address,
            is_manager=node.role == MANAGER,
            is_leader=cluster.leader_id == machine.node_id,
            remote_managers=managers,
            ca_digest=cluster.ca.digest)

    async def init_cluster(self, host, advertise):
        machine = await self._reach(host)
        if machine.cluster is not None:
            raise AlreadyMemberOfOtherCluster(
                f"already part of cluster {machine.cluster}",
                host=host.hostname)

        cluster_id = rand_id()
        cluster = RehearsalCluster(
            cluster_id, CertBundle.create_ca(cluster_id, size=self.key_size),
            advertise)
        self.clusters[cluster_id] = cluster
        cluster.leader_id = self._admit(cluster, machine, MANAGER)
        LOGGER.debug("Created cluster %s", cluster_id, host=host.hostname)
        return cluster_id

    async def ca_certificate(self, host):
        machine = await self._reach(host)
        return self._manager_of(machine).ca.cert

    async def join_secret(self, host, role):
        machine = await self._reach(host)
        return self._manager_of(machine).secrets[role]

    async def join_cluster(self, host, token):
        machine = await self._reach(host)
        if machine.cluster is not None:
            raise AlreadyMemberOfOtherCluster(
                f"already part of cluster {machine.cluster}",
                host=host.hostname)

        address, _ = split_address(token.address, DEFAULT_ADVERTISE_PORT)
        remote = self._machine_at(address)
        await self._roundtrip()
        if remote is None or not remote.reachable:
            raise UnreachableLeader(f"can't reach {token.address}",
                                    host=host.hostname)
        if remote.cluster is None or remote.runtime is None:
            raise UnreachableLeader(f"no cluster listening on "
                                    f"{token.address}", host=host.hostname)

        cluster = self.clusters[remote.cluster]
        if cluster.ca.digest != token.ca_digest:
            raise TokenExpiredOrRotated("remote CA does not match the token",
                                        host=host.hostname)

        # admissions are serialised on the leader
        async with cluster.lock:
            await self._roundtrip()
            if not cluster.leader.host.reachable:
                raise UnreachableLeader("lost connection to the leader",
                                        host=host.hostname)
            role = cluster.role_of_secret(token.secret)
            if role is None:
                raise TokenExpiredOrRotated("invalid join token",
                                            host=host.hostname)
            if role != token.role:
                raise RoleMismatch(f"secret admits a {role}, the token claims "
                                   f"a {token.role}", host=host.hostname)
            return self._admit(cluster, machine, role)

    async def list_nodes(self, host):
        machine = await self._reach(host)
        cluster = self._manager_of(machine)
        now = time.monotonic()
        is_leader = cluster.leader_id == machine.node_id

        records = []
        for node in cluster.nodes.values():
            visible = (is_leader or node.host is machine
                       or node.node_id == cluster.leader_id
                       or now - node.joined_at >= self.propagation_delay)
            if not visible:
                continue

            if node.role != MANAGER:
                manager_status = NOT_APPLICABLE
            elif node.node_id == cluster.leader_id:
                manager_status = LEADER
            elif node.host.reachable:
                manager_status = REACHABLE
            else:
                manager_status = UNREACHABLE

            records.append(MembershipRecord(
                node_id=node.node_id,
                hostname=node.host.hostname,
                role=node.role,
                status="ready" if node.host.reachable else "down",
                manager_status=manager_status,
                engine_version=node.host.runtime or ""))
        return records
