"""
Kubernetes service layer — abstracts the core/v1 calls a store needs.

Design principles:
  - Translates K8s API exceptions to domain errors at this boundary
  - Blocking client calls run in a worker thread so the event loop never stalls
  - "Already gone" is reported, not raised, so teardown stays idempotent
"""

import asyncio
import logging
from dataclasses import dataclass, field

from kubernetes import client, config
from kubernetes.client import ApiException
from urllib3.exceptions import HTTPError

from config import settings
from exceptions import ClusterError, NamespaceExistsError

logger = logging.getLogger("kubernetes_service")

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
STORE_LABEL = "store.platform/id"


@dataclass
class Workload:
    """A pod in a store namespace and the readiness of each of its containers."""
    name: str
    containers_ready: list[bool] = field(default_factory=list)

    @property
    def ready(self) -> bool:
        return bool(self.containers_ready) and all(self.containers_ready)


class KubernetesCluster:
    def __init__(self, in_cluster: bool = settings.IN_CLUSTER,
                 kubeconfig: str = settings.KUBECONFIG) -> None:
        self._in_cluster = in_cluster
        self._kubeconfig = kubeconfig
        self._k8s_loaded = False

    def _ensure_k8s(self):
        """Load Kubernetes config exactly once."""
        if self._k8s_loaded:
            return
        if self._in_cluster:
            config.load_incluster_config()
        else:
            config.load_kube_config(config_file=self._kubeconfig or None)
        self._k8s_loaded = True

    def _core_api(self) -> client.CoreV1Api:
        try:
            self._ensure_k8s()
        except config.ConfigException as e:
            raise ClusterError(f"Kubernetes config could not be loaded: {e}") from e
        return client.CoreV1Api()

    def _create_namespace(self, name: str) -> None:
        try:
            self._core_api().create_namespace(
                client.V1Namespace(
                    metadata=client.V1ObjectMeta(
                        name=name,
                        labels={
                            MANAGED_BY_LABEL: "store-provisioner",
                            STORE_LABEL: name,
                        },
                    )
                )
            )
        except ApiException as e:
            if e.status == 409:
                raise NamespaceExistsError(f"Namespace {name} already exists") from e
            raise ClusterError(f"Namespace {name} create failed: {e.reason}") from e
        except HTTPError as e:
            raise ClusterError(f"Namespace {name} create failed: {e}") from e
        logger.info(f"Namespace {name} created")

    def _delete_namespace(self, name: str) -> bool:
        try:
            self._core_api().delete_namespace(name=name)
        except ApiException as e:
            if e.status == 404:
                logger.info(f"Namespace {name} already gone")
                return False
            raise ClusterError(f"Namespace {name} delete failed: {e.reason}") from e
        except HTTPError as e:
            raise ClusterError(f"Namespace {name} delete failed: {e}") from e
        logger.info(f"Namespace {name} deletion initiated")
        return True

    def _list_workloads(self, namespace: str) -> list[Workload]:
        try:
            pods = self._core_api().list_namespaced_pod(namespace=namespace)
        except ApiException as e:
            raise ClusterError(f"Listing pods in {namespace} failed: {e.reason}") from e
        except HTTPError as e:
            raise ClusterError(f"Listing pods in {namespace} failed: {e}") from e
        workloads = []
        for pod in pods.items or []:
            statuses = (pod.status.container_statuses if pod.status else None) or []
            workloads.append(Workload(
                name=pod.metadata.name,
                containers_ready=[bool(cs.ready) for cs in statuses],
            ))
        return workloads

    async def create_namespace(self, name: str) -> None:
        """Create namespace. Raises NamespaceExistsError on 409."""
        await asyncio.to_thread(self._create_namespace, name)

    async def delete_namespace(self, name: str) -> bool:
        """Delete namespace. Returns False if it was already absent."""
        return await asyncio.to_thread(self._delete_namespace, name)

    async def list_workloads(self, namespace: str) -> list[Workload]:
        return await asyncio.to_thread(self._list_workloads, namespace)
