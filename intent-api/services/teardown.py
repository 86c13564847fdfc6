"""
Teardown coordinator — removes a store's release and namespace, then its record.

Flow: mark Deleting → Helm uninstall → delete namespace → drop record.
"Already absent" counts as success at every step, so a failed teardown can
simply be requested again. A delete that arrives while a teardown for the
same store is in flight is a no-op returning the current record.
"""

import asyncio
import logging

from exceptions import ClusterError, HelmCommandError, StoreNotFoundError, TeardownError
from models import StoreRecord, StoreState
from services import metrics
from services.events import EventPublisher
from services.helm_service import HelmInstaller
from services.kubernetes_service import KubernetesCluster
from services.provisioner import Provisioner
from services.registry import StoreRegistry

logger = logging.getLogger("teardown")

_DELETABLE = (StoreState.PROVISIONING, StoreState.READY, StoreState.FAILED)


class TeardownCoordinator:
    def __init__(self, registry: StoreRegistry, cluster: KubernetesCluster,
                 installer: HelmInstaller, provisioner: Provisioner,
                 events: EventPublisher) -> None:
        self._registry = registry
        self._cluster = cluster
        self._installer = installer
        self._provisioner = provisioner
        self._events = events
        self._inflight: set[str] = set()
        self._lock = asyncio.Lock()

    def in_flight(self, store_id: str) -> bool:
        return store_id in self._inflight

    async def _begin(self, store_id: str) -> tuple[StoreRecord, bool]:
        """Claim the teardown. Returns (record, started)."""
        async with self._lock:
            record = await self._registry.get(store_id)
            if record is None:
                raise StoreNotFoundError(store_id)
            if store_id in self._inflight:
                return record, False
            if record.state != StoreState.DELETING:
                record = await self._registry.transition(
                    store_id, StoreState.DELETING, expected=_DELETABLE,
                    message="Deleting store resources...", event="DELETE_START",
                )
                if record is None:
                    raise StoreNotFoundError(store_id)
            else:
                await self._registry.note(store_id, "DELETE_RETRY", "Retrying teardown")
            self._inflight.add(store_id)
            return record, True

    async def teardown(self, store_id: str) -> StoreRecord | None:
        """
        Tear a store down. Returns None once the record is removed, or the
        current record when another teardown of it is already running.
        """
        record, started = await self._begin(store_id)
        if not started:
            logger.info(f"Store {store_id}: teardown already in progress")
            return record

        try:
            await self._events.publish(store_id, "DELETE_START", f"Deleting store {store_id}",
                                       StoreState.DELETING.value)
            await self._provisioner.settle(store_id)
            if await self._registry.get(store_id) is None:
                # Provisioning rejected the id; the namespace is not ours
                logger.info(f"Store {store_id}: record dropped during provisioning")
                return None

            # Step 1: Helm uninstall (release may not exist if provisioning failed)
            try:
                await self._installer.uninstall(store_id, store_id)
            except HelmCommandError as e:
                await self._abort(store_id, f"Helm uninstall failed: {str(e)[:200]}")
            await self._registry.note(store_id, "HELM_UNINSTALLED", "Helm release uninstalled")

            # Step 2: delete namespace (cascades to everything inside)
            try:
                await self._cluster.delete_namespace(store_id)
            except ClusterError as e:
                await self._abort(store_id, f"Namespace deletion failed: {str(e)[:200]}")

            await self._registry.remove(store_id)
            await self._events.publish(store_id, "DELETE_COMPLETE",
                                       f"Store {store_id} cleanup complete", "Deleted")
            await self._events.drop(store_id)
            metrics.STORES_DELETED.inc()
            logger.info(f"Store {store_id} cleanup complete")
            return None
        finally:
            self._inflight.discard(store_id)

    async def _abort(self, store_id: str, reason: str) -> None:
        logger.error(f"Store {store_id}: {reason}")
        await self._registry.note(store_id, "DELETE_FAILED", reason)
        await self._events.publish(store_id, "DELETE_FAILED", reason, StoreState.DELETING.value)
        raise TeardownError(store_id, reason)
