"""
Readiness reconciler — the periodic Provisioning → Ready control loop.

Each cycle checks every Provisioning store independently. A store is Ready
once its namespace has at least one pod and every pod reports all of its
containers ready. No pods yet means "not yet", never failure; query errors
are logged and retried on the next cycle without touching state.

Cycles never overlap. A check that outlives its cycle keeps running and is
not relaunched until it finishes, so one hung store cannot stall the rest.
"""

import asyncio
import logging
from functools import partial
from typing import Any, Optional

from config import settings
from exceptions import ClusterError
from models import StoreState
from services.events import EventPublisher
from services.kubernetes_service import KubernetesCluster, Workload
from services.registry import StoreRegistry

logger = logging.getLogger("reconciler")


def workloads_ready(workloads: list[Workload]) -> bool:
    return bool(workloads) and all(w.ready for w in workloads)


class ReadinessReconciler:
    def __init__(self, registry: StoreRegistry, cluster: KubernetesCluster,
                 events: EventPublisher,
                 interval: float = settings.RECONCILE_INTERVAL) -> None:
        self._registry = registry
        self._cluster = cluster
        self._events = events
        self._interval = interval
        self._checks: dict[str, asyncio.Task[Any]] = {}
        self._loop_task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._run(), name="readiness-reconciler")
        logger.info(f"Readiness reconciler started (interval={self._interval}s)")

    async def stop(self) -> None:
        tasks = list(self._checks.values())
        if self._loop_task is not None:
            tasks.append(self._loop_task)
            self._loop_task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Readiness reconciler stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.run_cycle(timeout=self._interval)
            except Exception:
                logger.exception("Reconciliation cycle crashed")
            await asyncio.sleep(self._interval)

    async def run_cycle(self, timeout: Optional[float] = None) -> None:
        """One pass over every Provisioning store."""
        store_ids = await self._registry.ids_in_state(StoreState.PROVISIONING)
        launched = []
        for store_id in store_ids:
            if store_id in self._checks:
                logger.debug(f"Store {store_id}: previous check still in flight")
                continue
            task = asyncio.create_task(self._check(store_id), name=f"check-{store_id}")
            self._checks[store_id] = task
            task.add_done_callback(partial(self._check_done, store_id))
            launched.append(task)
        if launched:
            await asyncio.wait(launched, timeout=timeout)

    def _check_done(self, store_id: str, task: asyncio.Task[Any]) -> None:
        self._checks.pop(store_id, None)
        if task.cancelled():
            return
        if (exc := task.exception()) is not None:
            logger.error(f"Store {store_id}: readiness check crashed", exc_info=exc)

    async def _check(self, store_id: str) -> None:
        try:
            workloads = await self._cluster.list_workloads(store_id)
        except ClusterError as e:
            logger.warning(f"Polling error for {store_id}: {e}")
            return
        if not workloads_ready(workloads):
            return
        ready = await self._registry.transition(
            store_id, StoreState.READY, expected=[StoreState.PROVISIONING],
            message="Store is ready", event="STORE_READY",
        )
        if ready:
            logger.info(f"Store {store_id} is now Ready at {ready.endpoint}")
            await self._events.publish(store_id, "STORE_READY",
                                       f"Store ready at {ready.endpoint}",
                                       StoreState.READY.value)
