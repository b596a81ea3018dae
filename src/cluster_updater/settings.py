"""Update controller configuration settings.

UpdaterSettings is the single configuration object accepted by create_app()
and the driver. It is a plain dataclass (not env-coupled) so tests can
inject config without touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .components import MANAGED_SELECTOR


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True, slots=True)
class UpdaterSettings:
    """Configuration for the update controller process.

    Defaults target an in-cluster deployment in kube-system.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production. Local uses the in-memory cluster API."""

    # ── Cluster API ────────────────────────────────────────────────
    api_server_url: str = "https://kubernetes.default.svc"
    """Base URL of the Kubernetes API server."""

    bearer_token: str = ""
    """Bearer token for API calls. Never log this."""

    token_file: str = ""
    """File holding the bearer token; the service-account token is used if empty."""

    ca_file: str = ""
    """CA bundle for the API server certificate."""

    request_timeout_seconds: float = 30.0

    # ── Managed components ─────────────────────────────────────────
    namespace: str = "kube-system"
    """Namespace of the managed workloads, their pods, and the config map."""

    managed_selector: str = MANAGED_SELECTOR
    """Label selector marking objects the controller manages."""

    # ── Desired version source ─────────────────────────────────────
    config_map_name: str = "cluster-config"
    version_key: str = "cluster.version"

    # ── Loop timing ────────────────────────────────────────────────
    resync_seconds: float = 30 * 60
    """Full relist period for every cache."""

    update_interval_seconds: float = 30.0
    """Pause between driver steps."""

    max_backoff_seconds: float = 300.0
    """Upper bound on the driver's backoff after failed steps."""

    run_driver: bool = True
    """Start the periodic driver alongside the HTTP app."""

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.is_local and not self.api_server_url:
            errors.append(f"{self.environment}: api_server_url is required")
        if not self.namespace:
            errors.append("namespace is required")
        if not self.config_map_name or not self.version_key:
            errors.append("config_map_name and version_key are required")
        if self.update_interval_seconds <= 0:
            errors.append("update_interval_seconds must be > 0")
        if self.max_backoff_seconds < self.update_interval_seconds:
            errors.append("max_backoff_seconds must be >= update_interval_seconds")
        if self.resync_seconds <= 0:
            errors.append("resync_seconds must be > 0")
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> UpdaterSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct UpdaterSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        defaults = cls()
        return cls(
            environment=env.get("ENVIRONMENT", defaults.environment),
            api_server_url=env.get("KUBE_API_URL", defaults.api_server_url),
            bearer_token=env.get("KUBE_BEARER_TOKEN", ""),
            token_file=env.get("KUBE_TOKEN_FILE", ""),
            ca_file=env.get("KUBE_CA_FILE", ""),
            request_timeout_seconds=float(
                env.get("KUBE_REQUEST_TIMEOUT_SECONDS", defaults.request_timeout_seconds)
            ),
            namespace=env.get("UPDATER_NAMESPACE", defaults.namespace),
            managed_selector=env.get("UPDATER_MANAGED_SELECTOR", defaults.managed_selector),
            config_map_name=env.get("UPDATER_CONFIG_MAP", defaults.config_map_name),
            version_key=env.get("UPDATER_VERSION_KEY", defaults.version_key),
            resync_seconds=float(env.get("UPDATER_RESYNC_SECONDS", defaults.resync_seconds)),
            update_interval_seconds=float(
                env.get("UPDATER_INTERVAL_SECONDS", defaults.update_interval_seconds)
            ),
            max_backoff_seconds=float(
                env.get("UPDATER_MAX_BACKOFF_SECONDS", defaults.max_backoff_seconds)
            ),
            run_driver=_env_bool(env.get("UPDATER_RUN_DRIVER"), defaults.run_driver),
        )
