import asyncio
from unittest import mock

import pytest

from swarmboot.cluster.broker import CredentialBroker
from swarmboot.cluster.initializer import ClusterInitializer
from swarmboot.cluster.joiner import MembershipJoiner
from swarmboot.driver.rehearsal import RehearsalDriver
from swarmboot.errors import (AlreadyMemberOfOtherCluster, ConfigError,
                              RuntimeUnavailable)
from swarmboot.inventory import CLUSTER_MEMBER
from swarmboot.ssl import discovery_hash
from swarmboot.state import ClusterHandle
from swarmboot.store import MemoryMarkerStore, INIT

from .testdata import inventory, rehearsal, start_cluster


def test_initialize_creates_one_cluster():
    driver, store = rehearsal(), MemoryMarkerStore()
    leader = inventory().leader
    driver.provide_runtime(leader)

    handle = asyncio.run(ClusterInitializer(driver, store).initialize(leader))

    assert handle.leader == "swarm-master-1"
    assert handle.advertise == "192.168.56.11:2377"
    assert list(driver.clusters) == [handle.cluster_id]
    assert handle.ca_digest == discovery_hash(
        driver.clusters[handle.cluster_id].ca.cert)
    assert leader.status == CLUSTER_MEMBER
    assert ClusterHandle.from_dict(store.get(leader.hostname, INIT)) == handle


def test_initialize_twice_returns_the_same_handle():
    driver, store = rehearsal(), MemoryMarkerStore()
    leader = inventory().leader
    driver.provide_runtime(leader)
    initializer = ClusterInitializer(driver, store)

    async def scenario():
        first = await initializer.initialize(leader)
        with mock.patch.object(driver, "init_cluster") as init:
            second, created = await initializer.create(leader)
            assert not init.called
        return first, second, created

    first, second, created = asyncio.run(scenario())
    assert first == second
    assert not created
    assert len(driver.clusters) == 1


def test_custom_advertise_address():
    driver, store = rehearsal(), MemoryMarkerStore()
    leader = inventory().leader
    driver.provide_runtime(leader)

    handle = asyncio.run(ClusterInitializer(driver, store, advertise_port=4000)
                         .initialize(leader, "192.168.56.11"))
    assert handle.advertise == "192.168.56.11:4000"


def test_invalid_advertise_address():
    driver, store = rehearsal(), MemoryMarkerStore()
    leader = inventory().leader
    driver.provide_runtime(leader)

    with pytest.raises(ConfigError):
        asyncio.run(ClusterInitializer(driver, store).initialize(
            leader, "192.168.56.11:notaport"))


def test_runtime_unavailable():
    driver, store = rehearsal(), MemoryMarkerStore()
    leader = inventory().leader

    with pytest.raises(RuntimeUnavailable):
        asyncio.run(ClusterInitializer(driver, store).initialize(leader))
    assert not driver.clusters


class InterruptedDriver(RehearsalDriver):
    """Fails to read the CA once, right after the cluster was created"""

    def __init__(self, **kwargs):
        kwargs.setdefault("key_size", 1024)
        super().__init__(**kwargs)
        self.interrupted = False

    async def ca_certificate(self, host):
        if not self.interrupted:
            self.interrupted = True
            raise RuntimeUnavailable("connection reset", host=host.hostname)
        return await super().ca_certificate(host)


def test_resume_after_interrupted_init():
    driver, store = InterruptedDriver(), MemoryMarkerStore()
    leader = inventory().leader
    driver.provide_runtime(leader)
    initializer = ClusterInitializer(driver, store)

    async def scenario():
        with pytest.raises(RuntimeUnavailable):
            await initializer.create(leader)
        assert not store.exists(leader.hostname, INIT)
        return await initializer.create(leader)

    handle, created = asyncio.run(scenario())
    assert not created
    assert list(driver.clusters) == [handle.cluster_id]
    assert handle.ca_digest == driver.clusters[handle.cluster_id].ca.digest
    assert handle.advertise == "192.168.56.11:2377"
    assert ClusterHandle.from_dict(store.get(leader.hostname, INIT)) == handle
    assert leader.status == CLUSTER_MEMBER


def test_member_without_marker():
    driver = rehearsal()
    leader = inventory().leader
    driver.provide_runtime(leader)

    async def scenario():
        first = await ClusterInitializer(driver, MemoryMarkerStore()) \
            .initialize(leader)
        second = await ClusterInitializer(driver, MemoryMarkerStore()) \
            .initialize(leader)
        return first, second

    first, second = asyncio.run(scenario())
    assert first.cluster_id == second.cluster_id
    assert first.ca_digest == second.ca_digest
    assert len(driver.clusters) == 1


def test_member_of_a_cluster_advertised_elsewhere():
    driver = rehearsal()
    leader = inventory().leader
    driver.provide_runtime(leader)

    async def scenario():
        await ClusterInitializer(driver, MemoryMarkerStore()).initialize(
            leader, "192.168.56.11:4000")
        await ClusterInitializer(driver, MemoryMarkerStore()).initialize(
            leader)

    with pytest.raises(AlreadyMemberOfOtherCluster):
        asyncio.run(scenario())
    assert len(driver.clusters) == 1


def test_follower_manager_is_not_taken_for_the_leader():
    driver = rehearsal()
    hosts = inventory()
    leader, follower = hosts.leader, hosts.get("swarm-master-2")

    async def scenario():
        store = MemoryMarkerStore()
        await start_cluster(driver, store, [leader, follower])
        token = await CredentialBroker(driver).issue_manager_token(leader)
        await MembershipJoiner(driver, store).join(follower, token,
                                                   "manager")
        await ClusterInitializer(driver, MemoryMarkerStore()).initialize(
            follower)

    with pytest.raises(AlreadyMemberOfOtherCluster):
        asyncio.run(scenario())
    assert len(driver.clusters) == 1
