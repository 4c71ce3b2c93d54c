"""
Run commands on a host, either on the local machine or over SSH.
"""
import asyncio
import shlex

from swarmboot.util.logger import Logger

LOGGER = Logger(__name__)

SSH_CONNECTION_FAILED = 255


class CommandError(Exception):
    """Raised if a command could not be run at all"""


class CommandResult:  # pylint: disable=too-few-public-methods
    """The outcome of a command"""

    def __init__(self, returncode, stdout, stderr):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    @property
    def ok(self):  # pylint: disable=invalid-name
        """True if the command exited with 0"""
        return self.returncode == 0

    def __repr__(self):
        return "<CommandResult rc=%s>" % self.returncode


class LocalExecutor:
    """Runs commands on this machine.

    Args:
        timeout (int): seconds to wait for a command before killing it
    """

    def __init__(self, timeout=120):
        self.timeout = timeout

    def command(self, args):
        """The argument vector actually executed"""
        return list(args)

    async def run(self, args, stdin=None):
        """Run args and collect its output.

        Args:
            args (list): the command and its arguments
            stdin (str): fed to the command's standard input

        Raises:
            CommandError if the command can't be started or times out.
        """
        cmd = self.command(args)
        LOGGER.debug("Running %s", " ".join(shlex.quote(a) for a in cmd))
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE)
        except OSError as exc:
            raise CommandError(f"can't run {cmd[0]}: {exc}")

        data = stdin.encode() if stdin is not None else None
        try:
            out, err = await asyncio.wait_for(proc.communicate(data),
                                              self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise CommandError(f"{cmd[0]} timed out after {self.timeout}s")

        result = CommandResult(proc.returncode, out.decode().strip(),
                               err.decode().strip())
        LOGGER.debug("STDOUT: %s (Exit code %s)", result.stdout,
                     result.returncode)
        if result.stderr:
            LOGGER.debug("STDERR: %s", result.stderr)
        return result


class SSHExecutor(LocalExecutor):
    """Runs commands on a remote host through the ``ssh`` client.

    Args:
        address (str): the host to connect to
        user (str): the remote user, the ssh default if None
        options (list): extra arguments for ssh, e.g. ``["-i", "key"]``
        timeout (int): seconds to wait for a command
    """

    def __init__(self, address, user=None, options=None, timeout=120):
        super().__init__(timeout=timeout)
        self.address = address
        self.user = user
        self.options = list(options or [])

    def command(self, args):
        target = f"{self.user}@{self.address}" if self.user else self.address
        remote = " ".join(shlex.quote(a) for a in args)
        return (["ssh", "-o", "BatchMode=yes", "-o", "ConnectTimeout=10"]
                + self.options + [target, remote])

    async def run(self, args, stdin=None):
        result = await super().run(args, stdin=stdin)
        if result.returncode == SSH_CONNECTION_FAILED:
            raise CommandError(f"ssh to {self.address} failed: "
                               f"{result.stderr}")
        return result
