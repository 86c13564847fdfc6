"""
Configuration module — all settings from env vars with sensible defaults.
Follows 12-factor app methodology.
"""
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    # Kubernetes
    KUBECONFIG: str = os.environ.get("KUBECONFIG", "")
    IN_CLUSTER: bool = os.environ.get("IN_CLUSTER", "false").lower() == "true"

    # Helm
    HELM_BINARY: str = os.environ.get("HELM_BINARY", "helm")
    HELM_CHART_PATH: str = os.environ.get("HELM_CHART_PATH", "/charts/store")

    # Platform
    STORE_ID_PREFIX: str = os.environ.get("STORE_ID_PREFIX", "store-")
    DOMAIN_SUFFIX: str = os.environ.get("DOMAIN_SUFFIX", "localtest.me")
    ENDPOINT_SCHEME: str = os.environ.get("ENDPOINT_SCHEME", "http")
    ID_ALLOCATION_ATTEMPTS: int = int(os.environ.get("ID_ALLOCATION_ATTEMPTS", "5"))

    # Reconciliation
    RECONCILE_INTERVAL: float = float(os.environ.get("RECONCILE_INTERVAL", "5"))

    # Activity / audit ring buffers
    ACTIVITY_LOG_MAX: int = int(os.environ.get("ACTIVITY_LOG_MAX", "15"))
    AUDIT_LOG_MAX: int = int(os.environ.get("AUDIT_LOG_MAX", "50"))

    # Redis (optional event streams)
    REDIS_URL: str = os.environ.get("REDIS_URL", "")

    # Rate limiting
    RATE_LIMIT: str = os.environ.get("RATE_LIMIT", "10/minute")

    # API
    API_HOST: str = os.environ.get("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.environ.get("API_PORT", "3001"))
    CORS_ORIGINS: str = os.environ.get("CORS_ORIGINS", "*")
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
