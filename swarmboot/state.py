"""
Objects describing the state of a cluster and its members.
"""
import datetime

from swarmboot import MANAGER, WORKER

LEADER = "leader"
REACHABLE = "reachable"
UNREACHABLE = "unreachable"
NOT_APPLICABLE = "n/a"

MANAGER_STATUSES = (LEADER, REACHABLE, UNREACHABLE, NOT_APPLICABLE)

ACTIVE = "active"
AVAILABILITIES = (ACTIVE, "pause", "drain")


class SwarmState:  # pylint: disable=too-many-arguments,too-few-public-methods
    """
    What a host knows about its own cluster membership.

    Args:
        node_id (str): the node id, empty if not a member
        cluster_id (str): the cluster id, None if unknown or not a member
        node_addr (str): the address the node advertises
        is_manager (bool): the node is a manager
        is_leader (bool): the node is the current leader
        remote_managers (list): ``host:port`` of the known managers
        ca_digest (str): digest of the root CA if the host knows it
    """

    def __init__(self, node_id="", cluster_id=None, node_addr="",
                 is_manager=False, is_leader=False, remote_managers=None,
                 ca_digest=None):
        self.node_id = node_id
        self.cluster_id = cluster_id
        self.node_addr = node_addr
        self.is_manager = is_manager
        self.is_leader = is_leader
        self.remote_managers = list(remote_managers or [])
        self.ca_digest = ca_digest

    @property
    def member(self):
        """True if the host is part of a cluster"""
        return bool(self.node_id)

    @property
    def role(self):
        """The role of the node, None if not a member"""
        if not self.member:
            return None
        return MANAGER if self.is_manager else WORKER

    def __repr__(self):
        if not self.member:
            return "<SwarmState inactive>"
        return "<SwarmState %s %s%s>" % (self.node_id, self.role,
                                         " leader" if self.is_leader else "")


class MembershipRecord:  # pylint: disable=too-many-arguments
    """
    One entry of the cluster state view.

    Args:
        node_id (str): the node id
        hostname (str): the node's host name
        role (str): ``manager`` or ``worker``
        status (str): ``ready``, ``down`` or ``unknown``
        availability (str): ``active``, ``pause`` or ``drain``
        manager_status (str): ``leader``, ``reachable``, ``unreachable``
            or ``n/a`` for workers
        engine_version (str): version of the container runtime
    """

    FIELDS = ('node_id', 'hostname', 'role', 'status', 'availability',
              'manager_status', 'engine_version')

    def __init__(self, node_id, hostname, role, status="ready",
                 availability=ACTIVE, manager_status=NOT_APPLICABLE,
                 engine_version=""):
        self.node_id = node_id
        self.hostname = hostname
        self.role = role
        self.status = status
        self.availability = availability
        self.manager_status = manager_status
        self.engine_version = engine_version

    def as_dict(self):
        """The record as plain dict, e.g. for markers"""
        return {f: getattr(self, f) for f in self.FIELDS}

    @classmethod
    def from_dict(cls, data):
        """Inverse of :meth:`as_dict`, unknown keys are ignored"""
        return cls(**{f: data[f] for f in cls.FIELDS if f in data})

    def __eq__(self, other):
        if not isinstance(other, MembershipRecord):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def __repr__(self):
        return "<MembershipRecord %s %s %s %s>" % (
            self.hostname, self.role, self.manager_status, self.node_id)


class ClusterHandle:  # pylint: disable=too-many-arguments,too-few-public-methods
    """
    A reference to an initialized cluster.

    Args:
        cluster_id (str): the cluster id
        leader (str): host name of the bootstrap leader
        advertise (str): ``host:port`` the leader listens on
        ca_digest (str): digest of the root CA public key
        created_at (str): ISO timestamp of the initialization
    """

    FIELDS = ('cluster_id', 'leader', 'advertise', 'ca_digest', 'created_at')

    def __init__(self, cluster_id, leader, advertise, ca_digest,
                 created_at=None):
        self.cluster_id = cluster_id
        self.leader = leader
        self.advertise = advertise
        self.ca_digest = ca_digest
        self.created_at = created_at or datetime.datetime.now(
            datetime.timezone.utc).isoformat()

    def as_dict(self):
        """The handle as plain dict, stored in the init marker"""
        return {f: getattr(self, f) for f in self.FIELDS}

    @classmethod
    def from_dict(cls, data):
        """Restore a handle from an init marker"""
        return cls(**{f: data.get(f) for f in cls.FIELDS})

    def __eq__(self, other):
        if not isinstance(other, ClusterHandle):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def __repr__(self):
        return "<ClusterHandle %s leader=%s>" % (self.cluster_id, self.leader)
