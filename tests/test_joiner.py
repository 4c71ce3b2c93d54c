import asyncio
from unittest import mock

import pytest

from swarmboot.cluster.broker import CredentialBroker
from swarmboot.cluster.joiner import MembershipJoiner, same_cluster
from swarmboot.cluster.view import ClusterStateView
from swarmboot.driver.rehearsal import RehearsalDriver
from swarmboot.errors import (AlreadyMemberOfOtherCluster, RoleMismatch,
                              RuntimeUnavailable, TokenExpiredOrRotated,
                              UnreachableLeader)
from swarmboot.inventory import Host, CLUSTER_MEMBER, UNPROVISIONED
from swarmboot.state import SwarmState
from swarmboot.store import MemoryMarkerStore, JOIN
from swarmboot.tokens import JoinToken

from .testdata import DIGEST, OTHER_DIGEST, inventory, rehearsal, \
    start_cluster


def issued_role(driver, host):
    """The role written into the node certificate of host"""
    machine = driver.machine(host)
    return driver.clusters[machine.cluster].nodes[machine.node_id].role


class LabelBlindDriver(RehearsalDriver):
    """Admits with whatever role the secret stands for, like docker does"""

    def __init__(self, **kwargs):
        kwargs.setdefault("key_size", 1024)
        super().__init__(**kwargs)

    async def join_cluster(self, host, token):
        swarm = next(iter(self.clusters.values()))
        relabeled = JoinToken(swarm.role_of_secret(token.secret),
                              token.address, token.ca_digest, token.secret)
        return await super().join_cluster(host, relabeled)


class Cluster:  # pylint: disable=too-few-public-methods
    """A started cluster and the tools to extend it"""

    def __init__(self, driver=None, **kwargs):
        self.driver = driver or rehearsal(**kwargs)
        self.store = MemoryMarkerStore()
        self.hosts = inventory()
        self.broker = CredentialBroker(self.driver)
        self.joiner = MembershipJoiner(self.driver, self.store)
        self.view = ClusterStateView(self.driver)

    async def start(self):
        await start_cluster(self.driver, self.store, list(self.hosts))
        return (await self.broker.issue_manager_token(self.hosts.leader),
                await self.broker.issue_worker_token(self.hosts.leader))


def test_join_as_worker():
    cluster = Cluster()
    worker = cluster.hosts.get("swarm-worker-1")

    async def scenario():
        _, worker_token = await cluster.start()
        record = await cluster.joiner.join(worker, worker_token, "worker")
        return record, await cluster.view.list_members(cluster.hosts.leader)

    record, members = asyncio.run(scenario())
    assert record.hostname == "swarm-worker-1"
    assert record.role == "worker"
    assert record.manager_status == "n/a"
    assert record.engine_version == cluster.driver.engine_version
    assert worker.status == CLUSTER_MEMBER
    assert cluster.store.exists(worker.hostname, JOIN)
    assert issued_role(cluster.driver, worker) == "worker"
    assert record.node_id in [m.node_id for m in members]


def test_join_as_manager():
    cluster = Cluster()
    manager = cluster.hosts.get("swarm-master-2")

    async def scenario():
        manager_token, _ = await cluster.start()
        return await cluster.joiner.join(manager, manager_token, "manager")

    record = asyncio.run(scenario())
    assert record.role == "manager"
    assert record.manager_status == "reachable"
    assert issued_role(cluster.driver, manager) == "manager"


def test_join_twice_is_a_noop():
    cluster = Cluster()
    worker = cluster.hosts.get("swarm-worker-1")

    async def scenario():
        _, worker_token = await cluster.start()
        first = await cluster.joiner.join(worker, worker_token, "worker")
        with mock.patch.object(cluster.driver, "join_cluster") as join:
            second, admitted = await cluster.joiner.admit(worker,
                                                          worker_token,
                                                          "worker")
            assert not join.called
        third = await cluster.joiner.join(worker, worker_token, "worker")
        return first, second, admitted, third

    first, second, admitted, third = asyncio.run(scenario())
    assert first == second == third
    assert not admitted
    swarm = next(iter(cluster.driver.clusters.values()))
    assert len(swarm.nodes) == 2


def test_manager_token_never_admits_a_worker():
    cluster = Cluster()
    worker = cluster.hosts.get("swarm-worker-1")

    async def scenario():
        manager_token, _ = await cluster.start()
        with mock.patch.object(cluster.driver, "swarm_state") as state, \
                mock.patch.object(cluster.driver, "join_cluster") as join:
            with pytest.raises(RoleMismatch):
                await cluster.joiner.join(worker, manager_token, "worker")
            assert not state.called
            assert not join.called

    asyncio.run(scenario())
    assert cluster.driver.machine(worker).cluster is None
    assert not cluster.store.exists(worker.hostname, JOIN)


def test_worker_token_with_manager_role():
    cluster = Cluster()
    manager = cluster.hosts.get("swarm-master-2")

    async def scenario():
        _, worker_token = await cluster.start()
        await cluster.joiner.join(manager, worker_token, "manager")

    with pytest.raises(RoleMismatch):
        asyncio.run(scenario())
    assert cluster.driver.machine(manager).cluster is None


def test_host_policy_forbids_role():
    cluster = Cluster()
    worker = cluster.hosts.get("swarm-worker-1")

    async def scenario():
        manager_token, _ = await cluster.start()
        await cluster.joiner.join(worker, manager_token, "manager")

    with pytest.raises(RoleMismatch):
        asyncio.run(scenario())
    assert worker.status == UNPROVISIONED


def test_rotated_token():
    cluster = Cluster()
    worker = cluster.hosts.get("swarm-worker-1")

    async def scenario():
        _, worker_token = await cluster.start()
        cluster.driver.rotate_secret(cluster.hosts.leader, "worker")
        with pytest.raises(TokenExpiredOrRotated):
            await cluster.joiner.join(worker, worker_token, "worker")

        fresh = await cluster.broker.issue_worker_token(cluster.hosts.leader)
        return await cluster.joiner.join(worker, fresh, "worker")

    assert asyncio.run(scenario()).role == "worker"


def test_token_of_another_ca():
    cluster = Cluster()
    worker = cluster.hosts.get("swarm-worker-1")

    async def scenario():
        _, worker_token = await cluster.start()
        forged = JoinToken("worker", worker_token.address, OTHER_DIGEST,
                           worker_token.secret)
        await cluster.joiner.join(worker, forged, "worker")

    with pytest.raises(TokenExpiredOrRotated):
        asyncio.run(scenario())


def test_runtime_down():
    cluster = Cluster()
    worker = cluster.hosts.get("swarm-worker-1")

    async def scenario():
        _, worker_token = await cluster.start()
        cluster.driver.break_runtime(worker)
        await cluster.joiner.join(worker, worker_token, "worker")

    with pytest.raises(RuntimeUnavailable):
        asyncio.run(scenario())


def test_unreachable_leader_keeps_completed_joins():
    cluster = Cluster()
    leader = cluster.hosts.leader
    first = cluster.hosts.get("swarm-worker-1")
    second = cluster.hosts.get("swarm-worker-2")

    async def scenario():
        _, worker_token = await cluster.start()
        await cluster.joiner.join(first, worker_token, "worker")

        cluster.driver.set_reachable(leader, False)
        with pytest.raises(UnreachableLeader) as err:
            await cluster.joiner.join(second, worker_token, "worker")
        assert err.value.retryable

        cluster.driver.set_reachable(leader, True)
        members = await cluster.view.list_members(leader)
        assert "swarm-worker-1" in [m.hostname for m in members]
        assert "swarm-worker-2" not in [m.hostname for m in members]

        await cluster.joiner.join(second, worker_token, "worker")
        return await cluster.view.list_members(leader)

    members = asyncio.run(scenario())
    assert {"swarm-worker-1", "swarm-worker-2"} <= {m.hostname
                                                    for m in members}


def test_lost_marker_is_restored():
    cluster = Cluster()
    worker = cluster.hosts.get("swarm-worker-1")

    async def scenario():
        _, worker_token = await cluster.start()
        record = await cluster.joiner.join(worker, worker_token, "worker")
        cluster.store.delete(worker.hostname, JOIN)
        with mock.patch.object(cluster.driver, "join_cluster") as join:
            again, admitted = await cluster.joiner.admit(worker, worker_token,
                                                         "worker")
            assert not join.called
        return record, again, admitted

    record, again, admitted = asyncio.run(scenario())
    assert record == again
    assert not admitted
    assert cluster.store.exists(worker.hostname, JOIN)


def test_marker_of_another_cluster():
    cluster = Cluster()
    worker = cluster.hosts.get("swarm-worker-1")
    cluster.store.put(worker.hostname, JOIN, {
        "address": "10.0.0.1:2377", "ca_digest": OTHER_DIGEST,
        "record": {"node_id": "abc", "hostname": worker.hostname,
                   "role": "worker"}})

    async def scenario():
        _, worker_token = await cluster.start()
        assert cluster.joiner.joined_record(worker, worker_token) is None
        await cluster.joiner.join(worker, worker_token, "worker")

    with pytest.raises(AlreadyMemberOfOtherCluster):
        asyncio.run(scenario())


def test_member_of_another_cluster():
    cluster = Cluster()
    worker = cluster.hosts.get("swarm-worker-1")
    stranger = Host("other-leader", "10.0.0.1", "manager", leader=True)

    async def scenario():
        _, worker_token = await cluster.start()
        await start_cluster(cluster.driver, MemoryMarkerStore(), [stranger])
        other_token = await cluster.broker.issue_worker_token(stranger)
        await MembershipJoiner(cluster.driver, MemoryMarkerStore()).join(
            worker, other_token, "worker")

        await cluster.joiner.join(worker, worker_token, "worker")

    with pytest.raises(AlreadyMemberOfOtherCluster):
        asyncio.run(scenario())
    assert len(cluster.driver.clusters) == 2


def test_same_cluster():
    state = SwarmState(node_id="n1", remote_managers=["192.168.56.11:2377"])
    token = JoinToken("worker", "192.168.56.11:2377", DIGEST, "s")
    assert same_cluster(state, token)
    assert not same_cluster(
        state, JoinToken("worker", "10.0.0.1:2377", DIGEST, "s"))

    state.ca_digest = OTHER_DIGEST
    assert not same_cluster(state, token)


def test_relabeled_worker_secret_is_refused():
    cluster = Cluster()
    manager = cluster.hosts.get("swarm-master-2")

    async def scenario():
        _, worker_token = await cluster.start()
        forged = JoinToken("manager", worker_token.address,
                           worker_token.ca_digest, worker_token.secret)
        await cluster.joiner.join(manager, forged, "manager")

    with pytest.raises(RoleMismatch):
        asyncio.run(scenario())
    assert cluster.driver.machine(manager).cluster is None
    assert not cluster.store.exists(manager.hostname, JOIN)


def test_role_granted_by_the_secret_is_checked_after_joining():
    cluster = Cluster(LabelBlindDriver())
    manager = cluster.hosts.get("swarm-master-2")

    async def scenario():
        _, worker_token = await cluster.start()
        forged = JoinToken("manager", worker_token.address,
                           worker_token.ca_digest, worker_token.secret)
        with pytest.raises(RoleMismatch):
            await cluster.joiner.join(manager, forged, "manager")

    asyncio.run(scenario())
    assert issued_role(cluster.driver, manager) == "worker"
    assert not cluster.store.exists(manager.hostname, JOIN)
    assert manager.status != CLUSTER_MEMBER
