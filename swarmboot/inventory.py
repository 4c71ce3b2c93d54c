"""
Inventory
=========

The static description of the hosts forming a cluster: who they are,
where to reach them and which role they are meant to have.
"""
from swarmboot import MANAGER, ROLES
from swarmboot.errors import ConfigError
from swarmboot.util.logger import Logger
from swarmboot.util.net import is_ip
from swarmboot.util.util import name_validation

LOGGER = Logger(__name__)

UNPROVISIONED = "unprovisioned"
RUNTIME_READY = "runtime-ready"
CLUSTER_MEMBER = "cluster-member"

# allowed status transitions, a host never moves backwards in one run
_TRANSITIONS = {
    UNPROVISIONED: (RUNTIME_READY, CLUSTER_MEMBER),
    RUNTIME_READY: (CLUSTER_MEMBER,),
    CLUSTER_MEMBER: (),
}


class Host:  # pylint: disable=too-many-instance-attributes,too-many-arguments
    """
    A member, or future member, of the cluster.

    Args:
        hostname (str): the host name, also the node name in the cluster
        address (str): the address other hosts use to reach this one
        role (str): the intended role, ``manager`` or ``worker``
        ram (int): memory in MB, informational
        cpus (int): number of CPUs, informational
        leader (bool): designated bootstrap leader
    """

    def __init__(self, hostname, address, role, ram=None, cpus=None,
                 leader=False):
        self.hostname = hostname
        self.address = address
        self.role = role
        self.ram = ram
        self.cpus = cpus
        self.leader = leader
        self.status = UNPROVISIONED

    def __repr__(self):
        return "<Host %s (%s, %s, %s)>" % (self.hostname, self.address,
                                          self.role, self.status)

    @property
    def is_manager(self):
        """True for hosts meant to be managers"""
        return self.role == MANAGER

    def advance(self, status):
        """Move the host forward in its provisioning state machine.

        Setting the current status again is a no-op.

        Raises:
            ValueError if the transition goes backwards.
        """
        if status == self.status:
            return
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(f"{self.hostname}: can't go from "
                             f"{self.status} to {status}")
        LOGGER.debug("%s -> %s", self.status, status, host=self.hostname)
        self.status = status

    @classmethod
    def from_dict(cls, data):
        """Create a host from a descriptor of the inventory file"""
        if not isinstance(data, dict):
            raise ConfigError(f"invalid host descriptor: {data!r}")
        try:
            hostname = name_validation(data['hostname'], kind="hostname")
            address = data['address']
        except KeyError as exc:
            raise ConfigError(f"host descriptor misses {exc}")
        except ValueError as exc:
            raise ConfigError(str(exc))

        role = data.get('role', 'worker')
        if role not in ROLES:
            raise ConfigError(f"{hostname}: role must be one of "
                              f"{' | '.join(ROLES)}, not '{role}'")

        if not isinstance(address, str) or not address:
            raise ConfigError(f"{hostname}: address can't be empty")

        if not is_ip(address):
            try:
                name_validation(address.split(".")[0], kind="address")
            except ValueError as exc:
                raise ConfigError(f"{hostname}: {exc}")

        return cls(hostname, address, role,
                   ram=data.get('ram'), cpus=data.get('cpus'),
                   leader=bool(data.get('leader', False)))


class Inventory:
    """
    An ordered collection of hosts with exactly one bootstrap leader.

    The leader is the host flagged with ``leader: true`` or, if none
    is flagged, the first manager.

    Args:
        hosts (list): list of :class:`Host`

    Raises:
        ConfigError if the hosts can't form a cluster.
    """

    def __init__(self, hosts):
        self.hosts = list(hosts)
        self._validate()
        self.leader = self._elect()

    def _validate(self):
        if not self.hosts:
            raise ConfigError("the inventory is empty")

        for attr in ('hostname', 'address'):
            values = [getattr(h, attr) for h in self.hosts]
            dupes = sorted({v for v in values if values.count(v) > 1})
            if dupes:
                raise ConfigError(f"duplicate {attr}: {', '.join(dupes)}")

        managers = self.managers
        if not managers:
            raise ConfigError("the inventory needs at least one manager")

        flagged = [h for h in self.hosts if h.leader]
        if len(flagged) > 1:
            raise ConfigError("only one host can be the leader")
        if flagged and not flagged[0].is_manager:
            raise ConfigError(f"leader {flagged[0].hostname} must be a "
                              "manager")

        if not len(managers) % 2:
            LOGGER.warning("%d managers can't tolerate more failures than "
                           "%d, prefer an odd number", len(managers),
                           len(managers) - 1)

    def _elect(self):
        for host in self.hosts:
            if host.leader:
                return host
        leader = self.managers[0]
        leader.leader = True
        return leader

    @property
    def managers(self):
        """All hosts meant to be managers, leader included"""
        return [h for h in self.hosts if h.is_manager]

    @property
    def workers(self):
        """All hosts meant to be workers"""
        return [h for h in self.hosts if not h.is_manager]

    @property
    def followers(self):
        """All hosts joining the leader's cluster, in inventory order"""
        return [h for h in self.hosts if h is not self.leader]

    def get(self, hostname):
        """Return the host called hostname.

        Raises:
            KeyError if the host isn't part of the inventory.
        """
        for host in self.hosts:
            if host.hostname == hostname:
                return host
        raise KeyError(hostname)

    def __iter__(self):
        return iter(self.hosts)

    def __len__(self):
        return len(self.hosts)

    @classmethod
    def from_list(cls, descriptors):
        """Build an inventory from a list of host descriptors"""
        if not isinstance(descriptors, list):
            raise ConfigError("hosts must be a list")
        return cls(Host.from_dict(d) for d in descriptors)
