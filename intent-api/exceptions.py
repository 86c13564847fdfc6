"""Domain exceptions for the store provisioning service."""


class StoreError(Exception):
    """Base exception for store lifecycle failures."""


class StoreNotFoundError(StoreError):
    """Raised when no record exists for a store identifier."""

    def __init__(self, store_id: str) -> None:
        super().__init__(f"Store '{store_id}' not found")
        self.store_id = store_id


class StoreAllocationError(StoreError):
    """Raised when a unique store identity could not be allocated."""


class InvalidTransitionError(StoreError):
    """Raised when a lifecycle transition is not permitted."""


class ClusterError(StoreError):
    """Raised when a cluster control plane call fails."""


class NamespaceExistsError(ClusterError):
    """Raised when a namespace to be created is already present."""


class HelmCommandError(StoreError):
    """Raised when a helm invocation fails."""


class ReleaseNotFoundError(HelmCommandError):
    """Raised when a helm release does not exist."""


class TeardownError(StoreError):
    """Raised when cleanup of a store's external resources fails."""

    def __init__(self, store_id: str, reason: str) -> None:
        super().__init__(f"Teardown of store '{store_id}' failed: {reason}")
        self.store_id = store_id
        self.reason = reason
