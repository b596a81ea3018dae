"""Periodic driver for the update controller.

Reads the desired cluster version from the ``cluster-config`` ConfigMap and
calls ``UpdateController.update_to_version`` on a fixed interval. This is
the only place failed steps are retried: after a failure the next step is
delayed by a jittered exponential backoff, reset by the next success.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable

from ..components import Version
from ..errors import UpdateControllerError
from ..kube.client import KubeAPIError, KubeNotFoundError
from ..protocols import ClusterAPI
from ..settings import UpdaterSettings
from .controller import UpdateController

logger = logging.getLogger(__name__)


class UpdateDriver:
    """Re-drives the controller until the cluster converges, then keeps watching."""

    def __init__(
        self,
        controller: UpdateController,
        client: ClusterAPI,
        *,
        namespace: str = 'kube-system',
        config_map_name: str = 'cluster-config',
        version_key: str = 'cluster.version',
        interval_seconds: float = 30.0,
        max_backoff_seconds: float = 300.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._controller = controller
        self._client = client
        self._namespace = namespace
        self._config_map_name = config_map_name
        self._version_key = version_key
        self._interval = interval_seconds
        self._max_backoff = max_backoff_seconds
        self._sleep = sleep
        self.consecutive_failures = 0

    @classmethod
    def from_settings(
        cls,
        controller: UpdateController,
        client: ClusterAPI,
        settings: UpdaterSettings,
    ) -> UpdateDriver:
        return cls(
            controller,
            client,
            namespace=settings.namespace,
            config_map_name=settings.config_map_name,
            version_key=settings.version_key,
            interval_seconds=settings.update_interval_seconds,
            max_backoff_seconds=settings.max_backoff_seconds,
        )

    async def desired_version(self) -> Version | None:
        """The version the cluster should run, or None if none is configured.

        An unparsable value raises ``InvalidVersionError``.
        """
        try:
            config_map = await self._client.get_config_map(
                self._config_map_name, namespace=self._namespace,
            )
        except KubeNotFoundError:
            logger.warning(
                'ConfigMap %s/%s not found, nothing to update to',
                self._namespace,
                self._config_map_name,
            )
            return None

        raw = (config_map.get('data') or {}).get(self._version_key)
        if not raw:
            logger.warning(
                'ConfigMap %s has no %r key, nothing to update to',
                self._config_map_name,
                self._version_key,
            )
            return None
        return Version.parse(raw)

    async def run_once(self) -> bool:
        """Run one controller step. Returns True if a component was written."""
        target = await self.desired_version()
        if target is None:
            return False
        return await self._controller.update_to_version(target)

    def backoff_delay(self) -> float:
        """Exponential backoff with jitter, capped at ``max_backoff_seconds``."""
        delay = min(self._interval * (2 ** self.consecutive_failures), self._max_backoff)
        return random.uniform(delay / 2, delay)

    async def run_forever(self) -> None:
        """Run until cancelled."""
        logger.info(
            'Update driver started (interval=%.1fs, config=%s/%s)',
            self._interval,
            self._namespace,
            self._config_map_name,
        )
        while True:
            try:
                await self.run_once()
            except (UpdateControllerError, KubeAPIError) as exc:
                self.consecutive_failures += 1
                delay = self.backoff_delay()
                logger.warning(
                    'Update step failed (%d in a row), retrying in %.1fs: %s',
                    self.consecutive_failures,
                    delay,
                    exc,
                )
            else:
                self.consecutive_failures = 0
                delay = self._interval
            await self._sleep(delay)
