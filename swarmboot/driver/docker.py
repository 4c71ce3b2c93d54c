"""
Docker
======

Bootstrap a Docker Swarm by running the ``docker`` client on each host.
"""
import json

from swarmboot import MANAGER, WORKER
from swarmboot.driver import Driver
from swarmboot.driver.executor import (CommandError, LocalExecutor,
                                       SSHExecutor)
from swarmboot.errors import (AlreadyMemberOfOtherCluster, BootstrapError,
                              NotManager, RuntimeUnavailable,
                              TokenExpiredOrRotated, UnreachableLeader)
from swarmboot.ssl import load_cert
from swarmboot.state import (MembershipRecord, SwarmState, LEADER,
                             NOT_APPLICABLE)
from swarmboot.util.logger import Logger

LOGGER = Logger(__name__)

INSTALL_SCRIPT = ("command -v docker >/dev/null 2>&1 || "
                  "curl -fsSL https://get.docker.com | sh")
DAEMON_JSON = "/etc/docker/daemon.json"

# fragments of docker error messages and the errors they stand for
_DAEMON_DOWN = ("cannot connect to the docker daemon",
                "is the docker daemon running",
                "command not found",
                "no such file or directory")
_TOKEN_INVALID = ("invalid join token",
                  "token is invalid",
                  "remote ca does not match fingerprint",
                  "unmatched ca")
_UNREACHABLE = ("connection refused",
                "no route to host",
                "timeout",
                "timed out",
                "deadline exceeded",
                "connection error",
                "network is unreachable",
                "unavailable")
_ALREADY_MEMBER = ("already part of a swarm",)
_NOT_MANAGER = ("not a swarm manager",)


def _matches(stderr, fragments):
    text = stderr.lower()
    return any(f in text for f in fragments)


def parse_swarm_info(text):
    """Parse the output of ``docker info --format '{{json .Swarm}}'``.

    Raises:
        ValueError if text isn't valid JSON.
    """
    info = json.loads(text or "{}")
    if not isinstance(info, dict):
        raise ValueError("unexpected swarm info")

    if info.get('LocalNodeState') != 'active':
        return SwarmState()

    cluster = info.get('Cluster') or {}
    return SwarmState(
        node_id=info.get('NodeID', ''),
        cluster_id=cluster.get('ID') or None,
        node_addr=info.get('NodeAddr', ''),
        is_manager=bool(info.get('ControlAvailable')),
        remote_managers=[m['Addr'] for m in info.get('RemoteManagers') or []
                         if 'Addr' in m])


def parse_node_ls(text):
    """Parse ``docker node ls --format '{{json .}}'``, one JSON per line.

    Returns:
        list of :class:`swarmboot.state.MembershipRecord`
    """
    records = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        node = json.loads(line)
        manager_status = (node.get('ManagerStatus') or '').lower()
        records.append(MembershipRecord(
            node_id=node['ID'].rstrip(' *'),
            hostname=node['Hostname'],
            role=MANAGER if manager_status else WORKER,
            status=(node.get('Status') or 'unknown').lower(),
            availability=(node.get('Availability') or '').lower(),
            manager_status=manager_status or NOT_APPLICABLE,
            engine_version=node.get('EngineVersion', '')))
    return records


class DockerDriver(Driver):
    """
    Drives the Docker engine of every host through its command line.

    Args:
        executor_factory (callable): returns the executor for a host,
            defaults to local execution
        sudo (bool): prefix privileged commands with ``sudo -n``
    """

    def __init__(self, executor_factory=None, sudo=False):
        self.executor_factory = executor_factory or (
            lambda host: LocalExecutor())
        self.sudo = sudo
        self._executors = {}

    @classmethod
    def from_config(cls, config):
        """A driver reaching every host of config over SSH"""
        def factory(host):
            return SSHExecutor(host.address, user=config.ssh_user,
                               options=config.ssh_options,
                               timeout=config.command_timeout)
        return cls(factory, sudo=config.ssh_sudo)

    def _executor(self, host):
        if host.hostname not in self._executors:
            self._executors[host.hostname] = self.executor_factory(host)
        return self._executors[host.hostname]

    async def _run(self, host, args, stdin=None):
        if self.sudo:
            args = ["sudo", "-n"] + list(args)
        try:
            return await self._executor(host).run(args, stdin=stdin)
        except CommandError as exc:
            raise RuntimeUnavailable(str(exc), host=host.hostname)

    async def _docker(self, host, *args):
        result = await self._run(host, ["docker"] + list(args))
        if not result.ok and _matches(result.stderr, _DAEMON_DOWN):
            raise RuntimeUnavailable(result.stderr, host=host.hostname)
        return result

    async def runtime_version(self, host):
        result = await self._docker(host, "version", "--format",
                                    "{{.Server.Version}}")
        if not result.ok or not result.stdout:
            raise RuntimeUnavailable(
                result.stderr or "docker server not answering",
                host=host.hostname)
        return result.stdout

    async def _configure_metrics(self, host, metrics_port):
        current = await self._run(host, ["cat", DAEMON_JSON])
        try:
            daemon = json.loads(current.stdout) if current.ok else {}
        except ValueError:
            LOGGER.warning("%s is not valid JSON, replacing it", DAEMON_JSON,
                           host=host.hostname)
            daemon = {}

        addr = f"0.0.0.0:{metrics_port}"
        if daemon.get('metrics-addr') == addr:
            return False

        daemon['metrics-addr'] = addr
        result = await self._run(
            host, ["sh", "-c", f"mkdir -p /etc/docker && cat > {DAEMON_JSON}"],
            stdin=json.dumps(daemon, indent=2))
        if not result.ok:
            raise RuntimeUnavailable(f"can't write {DAEMON_JSON}: "
                                     f"{result.stderr}", host=host.hostname)
        LOGGER.info("Exposing runtime metrics on %s", addr,
                    host=host.hostname)
        return True

    async def install_runtime(self, host, metrics_port=None):
        result = await self._run(host, ["sh", "-c", INSTALL_SCRIPT])
        if not result.ok:
            raise RuntimeUnavailable(f"docker installation failed: "
                                     f"{result.stderr}", host=host.hostname)

        restart = False
        if metrics_port:
            restart = await self._configure_metrics(host, metrics_port)

        action = "restart" if restart else "start"
        for cmd in (["systemctl", "enable", "docker"],
                    ["systemctl", action, "docker"]):
            result = await self._run(host, cmd)
            if not result.ok:
                raise RuntimeUnavailable(result.stderr, host=host.hostname)

    async def swarm_state(self, host):
        result = await self._docker(host, "info", "--format",
                                    "{{json .Swarm}}")
        if not result.ok:
            raise RuntimeUnavailable(result.stderr, host=host.hostname)
        try:
            state = parse_swarm_info(result.stdout)
        except ValueError as exc:
            raise RuntimeUnavailable(f"unexpected docker info output: {exc}",
                                     host=host.hostname)

        if state.is_manager:
            result = await self._docker(host, "node", "inspect", "self",
                                        "--format",
                                        "{{json .ManagerStatus}}")
            if result.ok:
                manager = json.loads(result.stdout or "{}") or {}
                state.is_leader = bool(manager.get('Leader'))
        return state

    async def init_cluster(self, host, advertise):
        result = await self._docker(host, "swarm", "init",
                                    "--advertise-addr", advertise)
        if not result.ok:
            if _matches(result.stderr, _ALREADY_MEMBER):
                raise AlreadyMemberOfOtherCluster(result.stderr,
                                                  host=host.hostname)
            raise BootstrapError(f"swarm init failed: {result.stderr}",
                                 host=host.hostname)
        state = await self.swarm_state(host)
        return state.cluster_id

    async def ca_certificate(self, host):
        result = await self._docker(host, "swarm", "ca")
        if not result.ok:
            if _matches(result.stderr, _NOT_MANAGER):
                raise NotManager(result.stderr, host=host.hostname)
            raise BootstrapError(f"can't read swarm CA: {result.stderr}",
                                 host=host.hostname)
        return load_cert(result.stdout)

    async def join_secret(self, host, role):
        result = await self._docker(host, "swarm", "join-token", "-q", role)
        if not result.ok:
            if _matches(result.stderr, _NOT_MANAGER):
                raise NotManager(result.stderr, host=host.hostname)
            raise BootstrapError(f"can't read join token: {result.stderr}",
                                 host=host.hostname)
        return result.stdout

    async def join_cluster(self, host, token):
        result = await self._docker(host, "swarm", "join", "--token",
                                    token.secret, token.address)
        if not result.ok:
            stderr = result.stderr
            if _matches(stderr, _ALREADY_MEMBER):
                raise AlreadyMemberOfOtherCluster(stderr, host=host.hostname)
            if _matches(stderr, _TOKEN_INVALID):
                raise TokenExpiredOrRotated(stderr, host=host.hostname)
            if _matches(stderr, _UNREACHABLE):
                raise UnreachableLeader(stderr, host=host.hostname)
            raise BootstrapError(f"swarm join failed: {stderr}",
                                 host=host.hostname)
        state = await self.swarm_state(host)
        return state.node_id

    async def list_nodes(self, host):
        result = await self._docker(host, "node", "ls", "--format",
                                    "{{json .}}")
        if not result.ok:
            if _matches(result.stderr, _NOT_MANAGER):
                raise NotManager(result.stderr, host=host.hostname)
            raise BootstrapError(f"can't list nodes: {result.stderr}",
                                 host=host.hostname)
        records = parse_node_ls(result.stdout)
        leaders = [r for r in records if r.manager_status == LEADER]
        LOGGER.debug("%d nodes, leader %s", len(records),
                     leaders[0].hostname if leaders else "unknown",
                     host=host.hostname)
        return records
