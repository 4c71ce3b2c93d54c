"""
Runtime installer
=================

Make sure the container runtime is installed and running on a host.
"""
from swarmboot.errors import RuntimeUnavailable
from swarmboot.inventory import RUNTIME_READY, CLUSTER_MEMBER
from swarmboot.store import RUNTIME
from swarmboot.util.logger import Logger

LOGGER = Logger(__name__)


class RuntimeInstaller:
    """
    Args:
        driver (Driver): carries out the installation
        store (MarkerStore): holds the ``runtime`` markers
        metrics_port (int): expose the runtime metrics on this port
    """

    def __init__(self, driver, store, metrics_port=None):
        self.driver = driver
        self.store = store
        self.metrics_port = metrics_port

    async def _answering(self, host):
        try:
            return await self.driver.runtime_version(host)
        except RuntimeUnavailable:
            return None

    async def ensure_runtime(self, host):
        """Install the runtime on host unless it is already there.

        Returns:
            the version of the runtime

        Raises:
            RuntimeUnavailable if the runtime can't be installed or
            doesn't answer afterwards.
        """
        marker = self.store.get(host.hostname, RUNTIME)
        if marker is not None:
            version = await self._answering(host)
            if version:
                LOGGER.debug("Runtime %s already installed", version,
                             host=host.hostname)
                self._ready(host)
                return version
            LOGGER.warning("Runtime marker found, but the runtime is not "
                           "answering. Installing again.", host=host.hostname)

        LOGGER.info("Installing container runtime ...", host=host.hostname)
        await self.driver.install_runtime(host,
                                          metrics_port=self.metrics_port)

        version = await self._answering(host)
        if not version:
            raise RuntimeUnavailable("runtime not answering after "
                                     "installation", host=host.hostname)

        self.store.put(host.hostname, RUNTIME,
                       {'engine_version': version,
                        'metrics_port': self.metrics_port})
        self._ready(host)
        LOGGER.success("Runtime %s ready", version, host=host.hostname)
        return version

    @staticmethod
    def _ready(host):
        if host.status != CLUSTER_MEMBER:
            host.advance(RUNTIME_READY)
