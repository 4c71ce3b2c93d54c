"""
Membership joiner
=================

Admit a host into the cluster a join token points to. Everything that can
be checked locally is checked before the host is touched, and a ``join``
marker is written on success, so joining an already joined host again is
a harmless no-op.
"""
from swarmboot import MANAGER
from swarmboot.errors import AlreadyMemberOfOtherCluster, RoleMismatch
from swarmboot.inventory import CLUSTER_MEMBER
from swarmboot.state import (MembershipRecord, LEADER, REACHABLE,
                             NOT_APPLICABLE)
from swarmboot.store import JOIN
from swarmboot.util.logger import Logger

LOGGER = Logger(__name__)


def same_cluster(state, token):
    """True if the host described by state is in the cluster of token"""
    if state.ca_digest:
        return state.ca_digest == token.ca_digest
    return token.address in state.remote_managers


class MembershipJoiner:
    """
    Args:
        driver (Driver): talks to the runtime of the joining hosts
        store (MarkerStore): holds the ``join`` markers
    """

    def __init__(self, driver, store):
        self.driver = driver
        self.store = store

    def joined_record(self, host, token):
        """Return the record of a previous join into token's cluster.

        Returns:
            MembershipRecord or None if host has no matching ``join`` marker
        """
        marker = self.store.get(host.hostname, JOIN)
        if marker is None or marker.get('ca_digest') != token.ca_digest:
            return None
        return MembershipRecord.from_dict(marker['record'])

    async def _record(self, host, state):
        if not state.is_manager:
            manager_status = NOT_APPLICABLE
        elif state.is_leader:
            manager_status = LEADER
        else:
            manager_status = REACHABLE

        return MembershipRecord(
            node_id=state.node_id,
            hostname=host.hostname,
            role=state.role,
            manager_status=manager_status,
            engine_version=await self.driver.runtime_version(host))

    def _remember(self, host, token, record):
        self.store.put(host.hostname, JOIN,
                       {'address': token.address,
                        'ca_digest': token.ca_digest,
                        'record': record.as_dict()})
        host.advance(CLUSTER_MEMBER)

    @staticmethod
    def _check_roles(host, token, role):
        if role != token.role:
            raise RoleMismatch(f"a {token.role} token can't admit a {role}",
                               host=host.hostname)
        if role != host.role:
            raise RoleMismatch(f"host is meant to be a {host.role}, "
                               f"not a {role}", host=host.hostname)

    async def admit(self, host, token, role):
        """Like :meth:`join`, but also tell if the host was admitted now.

        Returns:
            tuple of (MembershipRecord, bool)
        """
        self._check_roles(host, token, role)

        marker = self.store.get(host.hostname, JOIN)
        if marker is not None:
            if marker.get('ca_digest') != token.ca_digest:
                raise AlreadyMemberOfOtherCluster(
                    f"already joined the cluster at "
                    f"{marker.get('address')}", host=host.hostname)
            LOGGER.info("Already joined as %s", role, host=host.hostname)
            host.advance(CLUSTER_MEMBER)
            return MembershipRecord.from_dict(marker['record']), False

        # raises RuntimeUnavailable if the runtime doesn't answer
        state = await self.driver.swarm_state(host)
        if state.member:
            if not same_cluster(state, token):
                raise AlreadyMemberOfOtherCluster(
                    f"node {state.node_id} belongs to another cluster, "
                    "leave it first", host=host.hostname)
            if state.role != role:
                raise RoleMismatch(f"already a member as {state.role}",
                                   host=host.hostname)
            LOGGER.warning("Already a member, restoring the join marker",
                           host=host.hostname)
            record = await self._record(host, state)
            self._remember(host, token, record)
            return record, False

        LOGGER.info("Joining cluster at %s as %s ...", token.address, role,
                    host=host.hostname)
        await self.driver.join_cluster(host, token)
        state = await self.driver.swarm_state(host)
        if state.role != role:
            # the secret, not the label of the token, decides the role
            raise RoleMismatch(f"token admitted the host as {state.role}, "
                               f"not as {role}", host=host.hostname)
        record = await self._record(host, state)
        self._remember(host, token, record)
        LOGGER.success("Joined cluster as %s", role, host=host.hostname)
        return record, True

    async def join(self, host, token, role):
        """Admit host into the cluster of token with role.

        Args:
            host (Host): the joining host
            token (JoinToken): issued by the leader for role
            role (str): ``manager`` or ``worker``

        Returns:
            :class:`swarmboot.state.MembershipRecord`

        Raises:
            RoleMismatch if role doesn't match the token or the host.
            AlreadyMemberOfOtherCluster if host is part of another cluster.
            RuntimeUnavailable if the runtime doesn't answer.
            TokenExpiredOrRotated if the token is no longer valid.
            UnreachableLeader if the leader can't be reached.
        """
        record, _ = await self.admit(host, token, role)
        return record
