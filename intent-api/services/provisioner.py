"""
Resource provisioner — stands up the namespace and chart release for a store.

Flow:
  1. Create namespace (awaited; failure is known before create returns)
  2. Helm install (background task; completion posts a state transition)

A namespace that already exists means the generated id collided with
something outside the registry. That request is rejected and its record
dropped, leaving the foreign namespace untouched.
"""

import asyncio
import logging
from functools import partial
from typing import Any

from exceptions import (
    ClusterError, HelmCommandError, NamespaceExistsError, StoreAllocationError,
    StoreNotFoundError,
)
from models import StoreRecord, StoreState
from services import metrics
from services.events import EventPublisher
from services.helm_service import HelmInstaller
from services.kubernetes_service import KubernetesCluster
from services.registry import StoreRegistry

logger = logging.getLogger("provisioner")


class Provisioner:
    def __init__(self, registry: StoreRegistry, cluster: KubernetesCluster,
                 installer: HelmInstaller, events: EventPublisher) -> None:
        self._registry = registry
        self._cluster = cluster
        self._installer = installer
        self._events = events
        self._installs: dict[str, asyncio.Task[Any]] = {}
        self._provisions: dict[str, asyncio.Event] = {}

    async def provision(self, record: StoreRecord) -> StoreRecord:
        """
        Run the namespace step and launch the install. The call is tracked
        per store so a concurrent teardown can wait for it in settle().
        """
        done = self._provisions.setdefault(record.id, asyncio.Event())
        try:
            return await self._provision(record)
        finally:
            done.set()
            self._provisions.pop(record.id, None)

    async def _provision(self, record: StoreRecord) -> StoreRecord:
        store_id = record.id
        await self._events.publish(store_id, "PROVISIONING_START", "Store provisioning started",
                                   StoreState.PROVISIONING.value)

        # Step 1: namespace
        try:
            await self._cluster.create_namespace(store_id)
        except NamespaceExistsError as e:
            await self._registry.remove(store_id)
            logger.error(f"Store {store_id}: namespace collision — request rejected")
            raise StoreAllocationError(str(e)) from e
        except ClusterError as e:
            logger.error(f"Store {store_id}: namespace creation failed: {e}")
            metrics.PROVISION_FAILURES.labels(stage="namespace").inc()
            failed = await self._fail(store_id, f"Namespace creation failed: {str(e)[:200]}")
            return failed or await self._registry.get(store_id) or record
        await self._registry.note(store_id, "NAMESPACE_READY", f"Namespace {store_id} ready")
        await self._events.publish(store_id, "NAMESPACE_READY", f"Namespace {store_id} ready",
                                   StoreState.PROVISIONING.value)

        # Step 2: helm install, fire-and-forget
        current = await self._registry.get(store_id)
        if current is None:
            # Record vanished while the namespace was being created
            logger.warning(f"Store {store_id}: record gone — removing orphan namespace")
            try:
                await self._cluster.delete_namespace(store_id)
            except ClusterError as e:
                logger.error(f"Store {store_id}: orphan namespace cleanup failed: {e}")
            raise StoreNotFoundError(store_id)
        if current.state != StoreState.PROVISIONING:
            logger.info(f"Store {store_id}: no longer provisioning — skipping install")
            return current
        if store_id not in self._installs:
            task = asyncio.create_task(self._install(store_id), name=f"install-{store_id}")
            self._installs[store_id] = task
            task.add_done_callback(partial(self._install_done, store_id))
        return current

    async def _install(self, store_id: str) -> None:
        await self._registry.note(store_id, "HELM_INSTALL", "Installing Helm chart")
        try:
            await self._installer.install(store_id, store_id)
        except HelmCommandError as e:
            logger.error(f"Store {store_id}: helm install failed: {e}")
            metrics.PROVISION_FAILURES.labels(stage="install").inc()
            await self._fail(store_id, f"Provisioning failed: {str(e)[:200]}")
            return
        await self._registry.note(store_id, "HELM_READY", "Helm chart installed successfully")
        await self._events.publish(store_id, "HELM_READY", "Helm chart installed",
                                   StoreState.PROVISIONING.value)

    def _install_done(self, store_id: str, task: asyncio.Task[Any]) -> None:
        self._installs.pop(store_id, None)
        if task.cancelled():
            return
        if (exc := task.exception()) is not None:
            logger.error(f"Store {store_id}: install task crashed", exc_info=exc)

    async def _fail(self, store_id: str, message: str):
        failed = await self._registry.transition(
            store_id, StoreState.FAILED, expected=[StoreState.PROVISIONING],
            message=message, event="PROVISION_FAILED",
        )
        if failed:
            await self._events.publish(store_id, "PROVISION_FAILED", message,
                                       StoreState.FAILED.value)
        return failed

    def pending_installs(self) -> int:
        return len(self._installs)

    async def settle(self, store_id: str) -> None:
        """Wait for the store's in-flight provision call and install, if any."""
        pending = self._provisions.get(store_id)
        if pending is not None:
            await pending.wait()
        task = self._installs.get(store_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def wait_for_installs(self) -> None:
        """Wait for all in-flight helm installs to finish."""
        while self._installs:
            await asyncio.gather(*list(self._installs.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = list(self._installs.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
