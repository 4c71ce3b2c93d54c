"""
Drivers carry out the primitive operations of a container runtime on a
host. The bootstrap components only talk to a :class:`Driver`, never to
a host directly.

Two drivers are available:

* :class:`swarmboot.driver.docker.DockerDriver` runs ``docker`` commands,
  locally or over SSH.
* :class:`swarmboot.driver.rehearsal.RehearsalDriver` simulates hosts and
  the cluster in memory. It is used for dry runs and in the tests.
"""


class Driver:
    """The operations every driver implements, all of them coroutines.

    Errors are reported with the exceptions of :mod:`swarmboot.errors`.
    """

    async def runtime_version(self, host):
        """Return the version of the running container runtime.

        Raises:
            RuntimeUnavailable if the runtime isn't answering.
        """
        raise NotImplementedError

    async def install_runtime(self, host, metrics_port=None):
        """Install and start the container runtime.

        Args:
            host (Host): the target host
            metrics_port (int): expose the runtime metrics on this port
        """
        raise NotImplementedError

    async def swarm_state(self, host):
        """Return the :class:`swarmboot.state.SwarmState` of host"""
        raise NotImplementedError

    async def init_cluster(self, host, advertise):
        """Create a new cluster with host as leader, return its id"""
        raise NotImplementedError

    async def ca_certificate(self, host):
        """Return the root CA certificate, host must be a manager"""
        raise NotImplementedError

    async def join_secret(self, host, role):
        """Return the live join secret of role, host must be a manager"""
        raise NotImplementedError

    async def join_cluster(self, host, token):
        """Run the join handshake of host with the cluster of token.

        Returns:
            the node id of host

        Raises:
            TokenExpiredOrRotated, UnreachableLeader
        """
        raise NotImplementedError

    async def list_nodes(self, host):
        """Return all nodes host knows of as MembershipRecords"""
        raise NotImplementedError
