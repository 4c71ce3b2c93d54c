"""
Errors raised while bootstrapping a cluster.

Every error carries a ``retryable`` flag. The bootstrap pipeline retries
the retryable ones with an exponential backoff and reports all others
to the operator immediately.
"""


class ConfigError(ValueError):
    """Raised if the inventory or configuration file is invalid"""


class BootstrapError(Exception):
    """Base class of all bootstrap protocol errors"""
    retryable = False

    def __init__(self, msg, host=None):
        super().__init__(msg)
        self.host = host

    @property
    def reason(self):
        """A short text for the per host report"""
        return f"{self.__class__.__name__}: {self}"


class RuntimeUnavailable(BootstrapError):
    """The container runtime on a host is missing or not answering"""


class AlreadyMemberOfOtherCluster(BootstrapError):
    """The host belongs to another cluster and must leave it first"""


class NotLeader(BootstrapError):
    """An operation reserved to the leader was called on another host"""


class NotManager(BootstrapError):
    """A manager-only operation was called on a worker"""


class ClusterNotInitialized(BootstrapError):
    """No cluster exists on the addressed host yet"""


class TokenExpiredOrRotated(BootstrapError):
    """The join token no longer matches the one of the leader.

    Fetch a fresh token and try again.
    """
    retryable = True


class UnreachableLeader(BootstrapError):
    """The network path to the leader is down"""
    retryable = True


class RoleMismatch(BootstrapError):
    """The requested role conflicts with the token or the host policy"""


class InvalidToken(BootstrapError):
    """The token string can't be parsed"""


class MembersNotVisible(BootstrapError):
    """Expected members didn't show up in the cluster view in time"""
