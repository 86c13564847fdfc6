"""End to end store lifecycle against fake cluster and installer."""

from models import StoreState
from services.store_service import StoreService


async def test_failed_install_then_delete(service: StoreService, cluster, installer) -> None:
    service.registry._id_factory = lambda: "store-aaaaaa"
    installer.install_errors.add("store-aaaaaa")

    created = await service.create_store()
    listed = await service.list_stores()
    assert [(r.id, r.state) for r in listed] == [("store-aaaaaa", StoreState.PROVISIONING)]
    assert created.state == StoreState.PROVISIONING

    await service.provisioner.wait_for_installs()
    await service.reconciler.run_cycle()
    assert (await service.get_store("store-aaaaaa")).state == StoreState.FAILED

    assert await service.delete_store("store-aaaaaa") is None
    # No release was ever installed, so uninstall hit "not found" and moved on
    assert installer.uninstalls == ["store-aaaaaa"]
    assert cluster.deleted == ["store-aaaaaa"]
    assert await service.list_stores() == []


async def test_observed_states_follow_the_state_machine(
    service: StoreService, cluster
) -> None:
    record = await service.create_store()
    await service.provisioner.wait_for_installs()
    seen = [(await service.get_store(record.id)).state]

    await service.reconciler.run_cycle()
    seen.append((await service.get_store(record.id)).state)

    cluster.set_ready(record.id)
    await service.reconciler.run_cycle()
    seen.append((await service.get_store(record.id)).state)

    activity = [a["event"] for a in (await service.get_store(record.id)).activity]

    await service.delete_store(record.id)

    assert seen == [StoreState.PROVISIONING, StoreState.PROVISIONING, StoreState.READY]
    assert activity[0] == "PROVISIONING_START"
    assert activity[-1] == "STORE_READY"
    assert await service.list_stores() == []
