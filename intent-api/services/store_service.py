"""
Store service — wires registry, provisioner, reconciler and teardown together
and exposes the operations the API router needs.
"""

import logging
from typing import Optional

from config import settings
from exceptions import StoreNotFoundError
from models import StoreRecord, StoreState
from services import metrics
from services.events import EventPublisher
from services.helm_service import HelmInstaller
from services.kubernetes_service import KubernetesCluster
from services.provisioner import Provisioner
from services.reconciler import ReadinessReconciler
from services.registry import StoreRegistry
from services.teardown import TeardownCoordinator

logger = logging.getLogger("store_service")


class StoreService:
    def __init__(
        self,
        cluster: Optional[KubernetesCluster] = None,
        installer: Optional[HelmInstaller] = None,
        events: Optional[EventPublisher] = None,
        registry: Optional[StoreRegistry] = None,
        reconcile_interval: Optional[float] = None,
    ) -> None:
        self.registry = registry or StoreRegistry()
        self.cluster = cluster or KubernetesCluster()
        self.installer = installer or HelmInstaller()
        self.events = events or EventPublisher()
        self.provisioner = Provisioner(self.registry, self.cluster, self.installer, self.events)
        self.reconciler = ReadinessReconciler(
            self.registry, self.cluster, self.events,
            interval=reconcile_interval or settings.RECONCILE_INTERVAL,
        )
        self.teardown = TeardownCoordinator(
            self.registry, self.cluster, self.installer, self.provisioner, self.events
        )

    async def start(self) -> None:
        self.reconciler.start()

    async def stop(self) -> None:
        await self.reconciler.stop()
        await self.provisioner.shutdown()
        await self.events.close()

    async def create_store(self) -> StoreRecord:
        """
        Allocate a store and start provisioning it.

        Returns as soon as the namespace call completes; the chart install
        and readiness detection continue in the background.
        Raises StoreAllocationError when no unique identity can be claimed.
        """
        record = await self.registry.allocate()
        record = await self.provisioner.provision(record)
        metrics.STORES_CREATED.inc()
        return record

    async def list_stores(self, state: Optional[StoreState] = None) -> list[StoreRecord]:
        return await self.registry.list_records(state)

    async def get_store(self, store_id: str) -> StoreRecord:
        record = await self.registry.get(store_id)
        if record is None:
            raise StoreNotFoundError(store_id)
        return record

    async def delete_store(self, store_id: str) -> Optional[StoreRecord]:
        """Returns None once removed, or the record if a teardown is already running."""
        return await self.teardown.teardown(store_id)

    async def count_stores_by_state(self) -> dict[str, int]:
        return await self.registry.count_by_state()
