"""
Builder
=======

Bootstrap a whole cluster from an inventory.

The pipeline fans out and in again:

1. the runtime is installed on all hosts at once
2. the leader initializes the cluster, every join waits for it
3. the join tokens are fetched once per role and shared
4. the remaining hosts join in parallel

A host failing doesn't stop the others. Every step is idempotent, so after
fixing the cause a second run picks up where the first one stopped.
"""
import asyncio

from swarmboot.cluster.broker import CredentialBroker
from swarmboot.cluster.initializer import ClusterInitializer
from swarmboot.cluster.installer import RuntimeInstaller
from swarmboot.cluster.joiner import MembershipJoiner
from swarmboot.cluster.view import ClusterStateView
from swarmboot.errors import (BootstrapError, ClusterNotInitialized,
                              MembersNotVisible, TokenExpiredOrRotated,
                              UnreachableLeader)
from swarmboot.util.hue import (  # pylint: disable=no-name-in-module
    lightcyan as cyan)
from swarmboot.util.logger import Logger
from swarmboot.util.util import async_retry

LOGGER = Logger(__name__)

INITIALIZED = "initialized"
ALREADY_INITIALIZED = "already-initialized (no-op)"
JOINED = "joined"
ALREADY_JOINED = "already-joined (no-op)"


class BootstrapReport:
    """The outcome of a bootstrap run.

    Attributes:
        statuses (dict): hostname to terminal status, in inventory order
        handle (ClusterHandle): the cluster, None if init failed
        members (list): the members as seen by the leader at the end
    """

    def __init__(self, inventory):
        self.statuses = {host.hostname: None for host in inventory}
        self.handle = None
        self.members = []

    def set(self, hostname, status):
        """Record the terminal status of a host"""
        self.statuses[hostname] = status

    def fail(self, hostname, error):
        """Record that host failed with error"""
        self.statuses[hostname] = f"failed: {error.reason}"

    @property
    def failed(self):
        """The host names that failed"""
        return [name for name, status in self.statuses.items()
                if status is None or status.startswith("failed")]

    @property
    def ok(self):  # pylint: disable=invalid-name
        """True if no host failed"""
        return not self.failed


class ClusterBuilder:  # pylint: disable=too-many-instance-attributes
    """
    Runs the bootstrap pipeline over every host of the configuration.

    Args:
        config (BootstrapConfig): the cluster configuration
        driver (Driver): talks to the hosts
        store (MarkerStore): holds the idempotency markers
    """

    def __init__(self, config, driver, store):
        self.config = config
        self.inventory = config.inventory
        self.driver = driver
        self.store = store
        self.installer = RuntimeInstaller(driver, store,
                                          metrics_port=config.metrics_port)
        self.initializer = ClusterInitializer(
            driver, store, advertise_port=config.advertise_port)
        self.broker = CredentialBroker(driver,
                                       advertise_port=config.advertise_port)
        self.joiner = MembershipJoiner(driver, store)
        self.view = ClusterStateView(driver)
        self._tokens = {}
        self._token_locks = {}

    async def _token(self, role):
        """Return the cached join token of role, fetching it on first use.

        Concurrent callers share one fetch.
        """
        if role not in self._token_locks:
            self._token_locks[role] = asyncio.Lock()
        async with self._token_locks[role]:
            if role not in self._tokens:
                self._tokens[role] = await self.broker.issue_token(
                    self.inventory.leader, role)
            return self._tokens[role]

    def _invalidate(self, role, token):
        """Drop token from the cache unless it was replaced already"""
        if self._tokens.get(role) == token:
            del self._tokens[role]

    async def _install(self, host, report):
        try:
            await self.installer.ensure_runtime(host)
        except BootstrapError as err:
            LOGGER.error("%s", err.reason, host=host.hostname)
            report.fail(host.hostname, err)
            return False
        return True

    async def _initialize(self, leader, barrier, report):
        try:
            handle, created = await self.initializer.create(leader)
        except BootstrapError as err:
            LOGGER.error("%s", err.reason, host=leader.hostname)
            report.fail(leader.hostname, err)
            barrier.set_exception(ClusterNotInitialized(
                f"leader {leader.hostname} failed to initialize"))
            return

        report.handle = handle
        report.set(leader.hostname,
                   INITIALIZED if created else ALREADY_INITIALIZED)
        barrier.set_result(handle)

    async def _admit_once(self, host):
        token = await self._token(host.role)
        try:
            return await self.joiner.admit(host, token, host.role)
        except TokenExpiredOrRotated:
            LOGGER.warning("Join token was rotated, fetching a new one",
                           host=host.hostname)
            self._invalidate(host.role, token)
            token = await self._token(host.role)
            return await self.joiner.admit(host, token, host.role)

    async def _join(self, host, barrier, report):
        try:
            await barrier
        except ClusterNotInitialized as err:
            report.fail(host.hostname, err)
            return

        retry = self.config.retry
        admit = async_retry(
            UnreachableLeader, tries=retry.tries, delay=retry.delay,
            backoff=retry.backoff,
            logger=lambda msg: LOGGER.warning(msg, host=host.hostname))(
                self._admit_once)
        try:
            _, admitted = await admit(host)
        except BootstrapError as err:
            LOGGER.error("%s", err.reason, host=host.hostname)
            report.fail(host.hostname, err)
            return

        report.set(host.hostname, JOINED if admitted else ALREADY_JOINED)

    async def _collect_members(self, report):
        leader = self.inventory.leader
        expected = [name for name, status in report.statuses.items()
                    if status and not status.startswith("failed")]
        try:
            report.members = await self.view.wait_for_members(
                leader, expected, timeout=self.config.members_timeout)
        except MembersNotVisible as err:
            LOGGER.warning("%s", err.reason, host=leader.hostname)
            report.members = await self.view.list_members(leader)

    async def run(self):
        """Bootstrap the cluster.

        Returns:
            :class:`BootstrapReport`
        """
        report = BootstrapReport(self.inventory)
        leader = self.inventory.leader
        self._tokens = {}
        self._token_locks = {}

        LOGGER.info(cyan("Bootstrapping cluster %s with %d hosts ..."),
                    self.config.cluster_name, len(self.inventory))
        ready = await asyncio.gather(*(self._install(host, report)
                                       for host in self.inventory))
        ready = dict(zip((h.hostname for h in self.inventory), ready))

        barrier = asyncio.get_running_loop().create_future()
        tasks = []
        if ready[leader.hostname]:
            tasks.append(self._initialize(leader, barrier, report))
        else:
            barrier.set_exception(ClusterNotInitialized(
                f"runtime of leader {leader.hostname} is not available"))

        tasks += [self._join(host, barrier, report)
                  for host in self.inventory.followers
                  if ready[host.hostname]]
        await asyncio.gather(*tasks)

        # nobody awaited the barrier if every follower failed to install
        if barrier.done() and not barrier.cancelled():
            barrier.exception()

        if report.handle is not None:
            try:
                await self._collect_members(report)
            except BootstrapError as err:
                LOGGER.error("Can't list the members: %s", err.reason,
                             host=leader.hostname)

        if report.ok:
            LOGGER.success("Cluster %s has %d members",
                           self.config.cluster_name, len(report.members))
        else:
            LOGGER.error("Bootstrap failed on %s",
                         ", ".join(report.failed))
        return report
