"""
Credential broker
=================

Issue the join tokens of a cluster. Only the leader hands out tokens, so
all of them carry the same address and root CA digest. The secret is read
from the leader's live state on every call; as long as nobody rotates it,
repeated calls give the same token.
"""
from swarmboot import DEFAULT_ADVERTISE_PORT, MANAGER, ROLES, WORKER
from swarmboot.errors import ClusterNotInitialized, NotLeader
from swarmboot.ssl import discovery_hash
from swarmboot.tokens import JoinToken
from swarmboot.util.logger import Logger
from swarmboot.util.net import join_address, split_address

LOGGER = Logger(__name__)


class CredentialBroker:
    """
    Args:
        driver (Driver): talks to the runtime of the leader
        advertise_port (int): the cluster port, if the leader doesn't
            report one
    """

    def __init__(self, driver, advertise_port=DEFAULT_ADVERTISE_PORT):
        self.driver = driver
        self.advertise_port = advertise_port

    def _address(self, leader, state):
        for manager in state.remote_managers:
            addr, _ = split_address(manager, self.advertise_port)
            if addr == state.node_addr:
                return manager
        return join_address(state.node_addr or leader.address,
                            self.advertise_port)

    async def issue_token(self, leader, role):
        """Issue a join token for role.

        Args:
            leader (Host): the current leader of the cluster
            role (str): ``manager`` or ``worker``

        Returns:
            :class:`swarmboot.tokens.JoinToken`

        Raises:
            ClusterNotInitialized if leader isn't part of a cluster.
            NotLeader if leader is a member, but not the leader.
        """
        if role not in ROLES:
            raise ValueError(f"role must be one of {' | '.join(ROLES)}")

        state = await self.driver.swarm_state(leader)
        if not state.member:
            raise ClusterNotInitialized("no cluster on this host, run "
                                        "init first", host=leader.hostname)
        if not state.is_leader:
            raise NotLeader("tokens are only issued by the leader",
                            host=leader.hostname)

        secret = await self.driver.join_secret(leader, role)
        ca_cert = await self.driver.ca_certificate(leader)
        token = JoinToken(role, self._address(leader, state),
                          discovery_hash(ca_cert), secret)
        LOGGER.debug("Issued %r", token, host=leader.hostname)
        return token

    async def issue_manager_token(self, leader):
        """Issue a token admitting managers"""
        return await self.issue_token(leader, MANAGER)

    async def issue_worker_token(self, leader):
        """Issue a token admitting workers"""
        return await self.issue_token(leader, WORKER)
