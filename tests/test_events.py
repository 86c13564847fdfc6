"""Tests for the EventPublisher's degraded modes."""

from models import StoreState
from services.events import EventPublisher, stream_key
from services.store_service import StoreService


async def test_disabled_publisher_is_a_noop() -> None:
    events = EventPublisher(redis_url="")

    await events.publish("store-abc123", "STORE_READY", "ready", "Ready")
    assert await events.history("store-abc123") == []
    await events.drop("store-abc123")
    assert await events.ping() == "disabled"
    await events.close()


async def test_malformed_redis_url_degrades_instead_of_raising() -> None:
    events = EventPublisher(redis_url="not-a-url")

    assert events.enabled
    await events.publish("store-abc123", "PROVISIONING_START", "started", "Provisioning")
    assert await events.history("store-abc123") == []
    await events.drop("store-abc123")
    assert await events.ping() == "disconnected"
    await events.close()


def test_stream_key() -> None:
    assert stream_key("store-abc123") == "store:events:store-abc123"


async def test_store_lifecycle_survives_malformed_redis_url(cluster, installer, registry) -> None:
    service = StoreService(
        cluster=cluster,
        installer=installer,
        events=EventPublisher(redis_url="not-a-url"),
        registry=registry,
        reconcile_interval=0.05,
    )

    record = await service.create_store()
    await service.provisioner.wait_for_installs()
    cluster.set_ready(record.id)
    await service.reconciler.run_cycle()
    assert (await service.get_store(record.id)).state == StoreState.READY

    assert await service.delete_store(record.id) is None
    assert await service.list_stores() == []
