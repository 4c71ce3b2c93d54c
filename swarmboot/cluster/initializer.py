"""
Cluster initializer
===================

Create the cluster on the bootstrap leader. This must happen exactly once,
a second ``init`` would split the hosts into two clusters. The ``init``
marker written on success makes every later call return the original
cluster instead.
"""
from swarmboot import DEFAULT_ADVERTISE_PORT
from swarmboot.errors import AlreadyMemberOfOtherCluster, ConfigError
from swarmboot.inventory import CLUSTER_MEMBER
from swarmboot.ssl import discovery_hash
from swarmboot.state import ClusterHandle
from swarmboot.store import INIT
from swarmboot.util.logger import Logger
from swarmboot.util.net import join_address, split_address

LOGGER = Logger(__name__)


class ClusterInitializer:
    """
    Args:
        driver (Driver): talks to the runtime of the leader
        store (MarkerStore): holds the ``init`` markers
        advertise_port (int): the port used if the advertise address
            has none
    """

    def __init__(self, driver, store, advertise_port=DEFAULT_ADVERTISE_PORT):
        self.driver = driver
        self.store = store
        self.advertise_port = advertise_port

    def advertise_address(self, host, advertise=None):
        """Normalize advertise, or the host address, to ``host:port``"""
        try:
            addr, port = split_address(advertise or host.address,
                                       self.advertise_port)
        except ValueError as exc:
            raise ConfigError(str(exc))
        return join_address(addr, port)

    async def create(self, host, advertise=None):
        """Like :meth:`initialize`, but also tell if a cluster was created.

        Returns:
            tuple of (ClusterHandle, bool)
        """
        marker = self.store.get(host.hostname, INIT)
        if marker is not None:
            handle = ClusterHandle.from_dict(marker)
            LOGGER.info("Cluster %s already initialized", handle.cluster_id,
                        host=host.hostname)
            host.advance(CLUSTER_MEMBER)
            return handle, False

        advertise = self.advertise_address(host, advertise)

        # raises RuntimeUnavailable if the runtime doesn't answer
        state = await self.driver.swarm_state(host)
        if state.member:
            if not self.created_here(state, advertise):
                raise AlreadyMemberOfOtherCluster(
                    f"node {state.node_id} already belongs to cluster "
                    f"{state.cluster_id or 'unknown'}, leave it first",
                    host=host.hostname)
            LOGGER.warning("Cluster exists but the init marker is missing, "
                           "restoring it", host=host.hostname)
            handle = await self._remember(host, state.cluster_id, advertise)
            return handle, False

        LOGGER.info("Initializing cluster on %s ...", advertise,
                    host=host.hostname)
        cluster_id = await self.driver.init_cluster(host, advertise)
        handle = await self._remember(host, cluster_id, advertise)
        LOGGER.success("Cluster %s initialized", cluster_id,
                       host=host.hostname)
        return handle, True

    @staticmethod
    def created_here(state, advertise):
        """True if state is the leader of a cluster advertised at advertise.

        That is the cluster an earlier, interrupted ``init`` created.
        """
        return (state.is_leader and state.cluster_id is not None
                and advertise in state.remote_managers)

    async def _remember(self, host, cluster_id, advertise):
        ca_cert = await self.driver.ca_certificate(host)
        handle = ClusterHandle(cluster_id, host.hostname, advertise,
                               discovery_hash(ca_cert))
        self.store.put(host.hostname, INIT, handle.as_dict())
        host.advance(CLUSTER_MEMBER)
        return handle

    async def initialize(self, host, advertise=None):
        """Create a new cluster with host as its leader.

        Args:
            host (Host): the bootstrap leader
            advertise (str): the address other hosts join, defaults to the
                host address

        Returns:
            :class:`swarmboot.state.ClusterHandle`

        Raises:
            RuntimeUnavailable if the runtime doesn't answer.
            AlreadyMemberOfOtherCluster if host is already part of a
            cluster it didn't initialize.
        """
        handle, _ = await self.create(host, advertise)
        return handle
