"""Tests for the ReadinessReconciler."""

import asyncio

from models import StoreState
from services.kubernetes_service import Workload
from services.reconciler import workloads_ready
from services.store_service import StoreService


def test_workloads_ready() -> None:
    assert not workloads_ready([])
    assert workloads_ready([Workload("a", [True]), Workload("b", [True, True])])
    assert not workloads_ready([Workload("a", [True]), Workload("b", [True, False])])
    # A pod with no container statuses yet is not ready
    assert not workloads_ready([Workload("a", [True]), Workload("b", [])])


async def _create(service: StoreService) -> str:
    record = await service.create_store()
    await service.provisioner.wait_for_installs()
    return record.id


async def test_no_workloads_stays_provisioning(service: StoreService) -> None:
    store_id = await _create(service)

    for _ in range(5):
        await service.reconciler.run_cycle()

    assert (await service.get_store(store_id)).state == StoreState.PROVISIONING


async def test_partial_readiness_stays_provisioning(service: StoreService, cluster) -> None:
    store_id = await _create(service)
    cluster.workloads[store_id] = [
        Workload("db", [True]),
        Workload("web", [True, False]),
    ]

    await service.reconciler.run_cycle()
    assert (await service.get_store(store_id)).state == StoreState.PROVISIONING


async def test_all_ready_transitions_once(service: StoreService, cluster) -> None:
    store_id = await _create(service)
    await service.reconciler.run_cycle()
    assert (await service.get_store(store_id)).state == StoreState.PROVISIONING

    cluster.set_ready(store_id, pods=3)
    await service.reconciler.run_cycle()

    stored = await service.get_store(store_id)
    assert stored.state == StoreState.READY
    assert stored.message == "Store is ready"

    # Ready stores are no longer polled, so a later poll error cannot touch them
    polls = cluster.listed.count(store_id)
    cluster.list_errors.add(store_id)
    await service.reconciler.run_cycle()
    assert cluster.listed.count(store_id) == polls
    assert (await service.get_store(store_id)).state == StoreState.READY


async def test_poll_error_is_isolated_per_store(service: StoreService, cluster) -> None:
    broken = await _create(service)
    healthy = await _create(service)
    cluster.list_errors.add(broken)
    cluster.set_ready(broken)
    cluster.set_ready(healthy)

    await service.reconciler.run_cycle()

    assert (await service.get_store(broken)).state == StoreState.PROVISIONING
    assert (await service.get_store(healthy)).state == StoreState.READY

    # Retried on the next cycle once the error clears
    cluster.list_errors.discard(broken)
    await service.reconciler.run_cycle()
    assert (await service.get_store(broken)).state == StoreState.READY


async def test_hung_check_does_not_block_other_stores(service: StoreService, cluster) -> None:
    hung = await _create(service)
    other = await _create(service)
    cluster.hang.add(hung)
    cluster.set_ready(other)

    await service.reconciler.run_cycle(timeout=0.05)
    assert (await service.get_store(other)).state == StoreState.READY
    assert (await service.get_store(hung)).state == StoreState.PROVISIONING

    # The hung check is still in flight and is not launched a second time
    await service.reconciler.run_cycle(timeout=0.05)
    assert cluster.listed.count(hung) == 1

    await service.reconciler.stop()


async def test_background_loop_drives_ready(service: StoreService, cluster) -> None:
    store_id = await _create(service)
    cluster.set_ready(store_id)

    await service.start()
    assert service.reconciler.running
    try:
        for _ in range(100):
            if (await service.get_store(store_id)).state == StoreState.READY:
                break
            await asyncio.sleep(0.01)
    finally:
        await service.stop()

    assert (await service.get_store(store_id)).state == StoreState.READY
    assert not service.reconciler.running
