import asyncio
import os

# Route handlers are rate limited at import time; keep the test client under it.
os.environ.setdefault("RATE_LIMIT", "10000/minute")

import pytest

from exceptions import ClusterError, HelmCommandError, NamespaceExistsError
from services.events import EventPublisher
from services.kubernetes_service import Workload
from services.registry import StoreRegistry
from services.store_service import StoreService


class FakeCluster:
    """In-memory stand-in for KubernetesCluster."""

    def __init__(self) -> None:
        self.namespaces: set[str] = set()
        self.workloads: dict[str, list[Workload]] = {}
        self.create_errors: set[str] = set()
        self.delete_errors: set[str] = set()
        self.list_errors: set[str] = set()
        self.hang: set[str] = set()
        self.created: list[str] = []
        self.deleted: list[str] = []
        self.listed: list[str] = []
        self.create_gate: asyncio.Event | None = None
        self._never = asyncio.Event()

    async def create_namespace(self, name: str) -> None:
        self.created.append(name)
        if self.create_gate is not None:
            await self.create_gate.wait()
        if name in self.namespaces:
            raise NamespaceExistsError(f"Namespace {name} already exists")
        if name in self.create_errors:
            raise ClusterError(f"Namespace {name} create failed: Forbidden")
        self.namespaces.add(name)

    async def delete_namespace(self, name: str) -> bool:
        self.deleted.append(name)
        if name in self.delete_errors:
            raise ClusterError(f"Namespace {name} delete failed: Internal Server Error")
        if name not in self.namespaces:
            return False
        self.namespaces.discard(name)
        return True

    async def list_workloads(self, namespace: str) -> list[Workload]:
        self.listed.append(namespace)
        if namespace in self.hang:
            await self._never.wait()
        if namespace in self.list_errors:
            raise ClusterError(f"Listing pods in {namespace} failed: Service Unavailable")
        return list(self.workloads.get(namespace, []))

    def set_ready(self, namespace: str, pods: int = 2) -> None:
        self.workloads[namespace] = [
            Workload(name=f"pod-{i}", containers_ready=[True, True]) for i in range(pods)
        ]


class FakeInstaller:
    """In-memory stand-in for HelmInstaller."""

    def __init__(self) -> None:
        self.releases: set[str] = set()
        self.install_errors: set[str] = set()
        self.uninstall_errors: set[str] = set()
        self.installs: list[str] = []
        self.uninstalls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def install(self, release: str, namespace: str) -> None:
        self.installs.append(release)
        if self.gate is not None:
            await self.gate.wait()
        if release in self.install_errors:
            raise HelmCommandError("Helm command failed (rc=1): chart render error")
        self.releases.add(release)

    async def uninstall(self, release: str, namespace: str) -> bool:
        self.uninstalls.append(release)
        if release in self.uninstall_errors:
            raise HelmCommandError("Helm command failed (rc=1): cluster unreachable")
        if release not in self.releases:
            return False
        self.releases.discard(release)
        return True


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def installer() -> FakeInstaller:
    return FakeInstaller()


@pytest.fixture
def events() -> EventPublisher:
    return EventPublisher(redis_url="")


@pytest.fixture
def registry() -> StoreRegistry:
    return StoreRegistry()


@pytest.fixture
def service(cluster, installer, events, registry) -> StoreService:
    return StoreService(
        cluster=cluster,
        installer=installer,
        events=events,
        registry=registry,
        reconcile_interval=0.05,
    )
