from unittest import mock

import pytest
import yaml

from swarmboot import __version__
from swarmboot.cli import (ca_is_current, format_members, format_report,
                           local_host)
from swarmboot.cluster.builder import BootstrapReport, INITIALIZED, JOINED
from swarmboot.config import BootstrapConfig
from swarmboot.errors import ConfigError, RuntimeUnavailable
from swarmboot.ssl import CertBundle, write_cert
from swarmboot.state import MembershipRecord
from swarmboot.swarmboot import Swarmboot

from .testdata import default_data, inventory, rehearsal


@pytest.fixture
def config_file(tmp_path):
    def write(**overrides):
        path = tmp_path / "inventory.yml"
        path.write_text(yaml.safe_dump(default_data(**overrides)))
        return str(path)
    return write


def test_format_members():
    records = [
        MembershipRecord("w1", "swarm-worker-1", "worker",
                         engine_version="24.0.7"),
        MembershipRecord("m2", "swarm-master-2", "manager",
                         manager_status="reachable", engine_version="24.0.7"),
        MembershipRecord("m1", "swarm-master-1", "manager",
                         manager_status="leader", engine_version="24.0.7"),
    ]
    lines = format_members(records).splitlines()

    assert lines[0].split()[:2] == ["ID", "HOSTNAME"]
    assert [line.split()[1] for line in lines[1:]] == [
        "swarm-master-1", "swarm-master-2", "swarm-worker-1"]
    assert lines[1].split()[4] == "leader"
    assert lines[3].split()[4] == "n/a"


def test_format_report():
    report = BootstrapReport(inventory())
    report.set("swarm-master-1", INITIALIZED)
    report.set("swarm-master-2", JOINED)
    report.fail("swarm-worker-1", RuntimeUnavailable("runtime is gone"))

    lines = format_report(report).splitlines()
    assert len(lines) == 5
    assert INITIALIZED in lines[0]
    assert "RuntimeUnavailable: runtime is gone" in lines[3]
    assert "not attempted" in lines[4]


def test_local_host_from_inventory():
    config = BootstrapConfig(default_data())
    with mock.patch("swarmboot.cli.socket.gethostname",
                    return_value="swarm-worker-1"):
        host = local_host(config, role="manager")
    assert host.role == "worker"
    assert host.address == "192.168.56.21"


def test_local_host_not_in_inventory():
    config = BootstrapConfig(default_data())
    with mock.patch("swarmboot.cli.socket.gethostname",
                    return_value="stranger"):
        with pytest.raises(ConfigError):
            local_host(config)


def test_local_host_without_inventory():
    config = BootstrapConfig(require_hosts=False)
    with mock.patch("swarmboot.cli.socket.gethostname",
                    return_value="swarm-master-1"):
        host = local_host(config, address="192.168.56.11:2377")
        default = local_host(config, role="worker")
    assert host.address == "192.168.56.11"
    assert host.role == "manager"
    assert default.address == "127.0.0.1"
    assert default.role == "worker"


def test_version(capsys):
    with pytest.raises(SystemExit) as err:
        Swarmboot().run(args=["--version"])
    assert err.value.code == 0
    assert __version__ in capsys.readouterr().out


def test_rehearse(config_file, capsys):
    with mock.patch("swarmboot.cli.RehearsalDriver", new=rehearsal):
        Swarmboot().run(args=["rehearse", config_file()])

    out = capsys.readouterr().out
    assert "swarm-worker-2" in out
    assert INITIALIZED in out
    assert "HOSTNAME" in out


def test_rehearse_invalid_config(config_file):
    path = config_file(**{"cluster-name": "under_score"})
    with pytest.raises(SystemExit) as err:
        Swarmboot().run(args=["rehearse", path])
    assert err.value.code == 2


def test_rehearse_missing_config(tmp_path):
    with pytest.raises(SystemExit) as err:
        Swarmboot().run(args=["rehearse", str(tmp_path / "nothing.yml")])
    assert err.value.code == 2


def test_join_with_invalid_token():
    with mock.patch("swarmboot.cli.socket.gethostname",
                    return_value="swarm-worker-1"):
        with pytest.raises(SystemExit) as err:
            Swarmboot().run(args=["join", "--token", "garbage",
                                  "--role", "worker"])
    assert err.value.code == 2


def test_join_with_invalid_role():
    with pytest.raises(SystemExit) as err:
        Swarmboot().run(args=["join", "--token", "garbage",
                              "--role", "admin"])
    assert err.value.code == 2


def test_init_needs_an_advertise_address():
    with pytest.raises(SystemExit) as err:
        Swarmboot().run(args=["init"])
    assert err.value.code == 2


def test_members_unknown_action():
    with pytest.raises(SystemExit) as err:
        Swarmboot().run(args=["members", "show"])
    assert err.value.code == 2


def test_ca_is_current(tmp_path):
    bundle = CertBundle.create_ca("x4gbkq0nxbd6q8ggmkde5m2e9", size=1024)
    path = str(tmp_path / "ca.pem")
    assert not ca_is_current(path, bundle.digest)

    write_cert(bundle.cert, path)
    assert ca_is_current(path, bundle.digest)
    assert not ca_is_current(path, "b" * 64)

    (tmp_path / "ca.pem").write_text("not a certificate")
    assert not ca_is_current(path, bundle.digest)
