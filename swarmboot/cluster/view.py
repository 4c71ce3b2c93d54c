"""
Cluster state view
==================

Read only queries of the cluster members. Managers other than the leader
learn about new members with a delay, callers needing a fresh view poll
with :meth:`ClusterStateView.wait_for_members`.
"""
import asyncio

from swarmboot.errors import (ClusterNotInitialized, MembersNotVisible,
                              NotManager)
from swarmboot.util.logger import Logger

LOGGER = Logger(__name__)


class ClusterStateView:
    """
    Args:
        driver (Driver): talks to the runtime of the managers
    """

    def __init__(self, driver):
        self.driver = driver

    async def list_members(self, host):
        """List the members of the cluster as seen from host.

        Args:
            host (Host): any manager of the cluster

        Returns:
            list of :class:`swarmboot.state.MembershipRecord`

        Raises:
            ClusterNotInitialized if host is not part of a cluster.
            NotManager if host is a worker.
        """
        state = await self.driver.swarm_state(host)
        if not state.member:
            raise ClusterNotInitialized("host is not part of a cluster",
                                        host=host.hostname)
        if not state.is_manager:
            raise NotManager("members can only be listed on a manager",
                             host=host.hostname)
        return await self.driver.list_nodes(host)

    async def wait_for_members(self, host, hostnames, timeout=60, delay=0.5,
                               backoff=2):
        """Poll host until every one of hostnames shows up as a member.

        Returns:
            the member list, including all of hostnames

        Raises:
            MembersNotVisible if some are still missing after timeout
            seconds.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        wait = delay

        while True:
            members = await self.list_members(host)
            missing = set(hostnames) - {m.hostname for m in members}
            if not missing:
                return members

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise MembersNotVisible(
                    f"not visible after {timeout}s: "
                    f"{', '.join(sorted(missing))}", host=host.hostname)

            LOGGER.debug("Waiting %.1fs for %s", min(wait, remaining),
                         ", ".join(sorted(missing)), host=host.hostname)
            await asyncio.sleep(min(wait, remaining))
            wait *= backoff
