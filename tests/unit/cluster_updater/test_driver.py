"""UpdateDriver: desired version lookup, stepping, and backoff."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from cluster_updater.cluster import UpdateDriver
from cluster_updater.components import Version
from cluster_updater.errors import ComponentUpdateError, InvalidVersionError, NoComponentsError
from cluster_updater.inmemory import InMemoryKubeClient
from cluster_updater.kube.client import KubeAPIError
from cluster_updater.settings import UpdaterSettings


def _make_client(data: dict | None = None) -> InMemoryKubeClient:
    client = InMemoryKubeClient()
    if data is not None:
        client.add('ConfigMap', {
            'metadata': {'name': 'cluster-config', 'namespace': 'kube-system'},
            'data': data,
        })
    return client


def _make_controller(*results) -> MagicMock:
    controller = MagicMock()
    controller.update_to_version = AsyncMock(side_effect=list(results))
    return controller


class _StopLoop(Exception):
    pass


def _make_sleep(limit: int):
    """Fake sleep that records delays and stops the loop after ``limit`` calls."""
    delays: list[float] = []

    async def sleep(delay: float) -> None:
        delays.append(delay)
        if len(delays) >= limit:
            raise _StopLoop()

    return sleep, delays


class TestDesiredVersion:
    @pytest.mark.asyncio
    async def test_reads_config_map(self):
        driver = UpdateDriver(_make_controller(), _make_client({'cluster.version': 'v1.3.0+coreos.0'}))
        version = await driver.desired_version()
        assert version == Version.parse('1.3.0')
        assert str(version) == '1.3.0+coreos.0'

    @pytest.mark.asyncio
    async def test_missing_config_map(self):
        driver = UpdateDriver(_make_controller(), _make_client())
        assert await driver.desired_version() is None

    @pytest.mark.asyncio
    async def test_missing_key(self):
        driver = UpdateDriver(_make_controller(), _make_client({'other': '1'}))
        assert await driver.desired_version() is None

    @pytest.mark.asyncio
    async def test_invalid_value(self):
        driver = UpdateDriver(_make_controller(), _make_client({'cluster.version': 'latest'}))
        with pytest.raises(InvalidVersionError):
            await driver.desired_version()

    @pytest.mark.asyncio
    async def test_custom_location(self):
        client = InMemoryKubeClient()
        client.add('ConfigMap', {
            'metadata': {'name': 'versions', 'namespace': 'ops'},
            'data': {'target': '2.0.0'},
        })
        driver = UpdateDriver(
            _make_controller(), client,
            namespace='ops', config_map_name='versions', version_key='target',
        )
        assert await driver.desired_version() == Version.parse('2.0.0')


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_passes_target_to_controller(self):
        controller = _make_controller(True)
        driver = UpdateDriver(controller, _make_client({'cluster.version': '1.3.0'}))

        assert await driver.run_once() is True
        controller.update_to_version.assert_awaited_once_with(Version.parse('1.3.0'))

    @pytest.mark.asyncio
    async def test_no_target_skips_controller(self):
        controller = _make_controller()
        driver = UpdateDriver(controller, _make_client())

        assert await driver.run_once() is False
        controller.update_to_version.assert_not_awaited()


class TestBackoff:
    def test_grows_and_caps(self):
        driver = UpdateDriver(
            _make_controller(), _make_client(), interval_seconds=10, max_backoff_seconds=60,
        )
        for failures, ceiling in [(0, 10), (1, 20), (2, 40), (3, 60), (10, 60)]:
            driver.consecutive_failures = failures
            delay = driver.backoff_delay()
            assert ceiling / 2 <= delay <= ceiling


class TestRunForever:
    @pytest.mark.asyncio
    async def test_steady_interval_on_success(self):
        controller = _make_controller(True, False, False)
        sleep, delays = _make_sleep(3)
        driver = UpdateDriver(
            controller, _make_client({'cluster.version': '1.3.0'}),
            interval_seconds=7, sleep=sleep,
        )

        with pytest.raises(_StopLoop):
            await driver.run_forever()

        assert delays == [7, 7, 7]
        assert controller.update_to_version.await_count == 3

    @pytest.mark.asyncio
    async def test_failures_back_off_then_reset(self):
        controller = _make_controller(
            ComponentUpdateError('kube-apiserver', 'DaemonSet', KubeAPIError(500, 'boom')),
            NoComponentsError(),
            True,
        )
        sleep, delays = _make_sleep(3)
        driver = UpdateDriver(
            controller, _make_client({'cluster.version': '1.3.0'}),
            interval_seconds=10, max_backoff_seconds=100, sleep=sleep,
        )

        with pytest.raises(_StopLoop):
            await driver.run_forever()

        assert 10 <= delays[0] <= 20
        assert 20 <= delays[1] <= 40
        assert delays[2] == 10
        assert driver.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_bad_config_map_value_is_retried(self):
        controller = _make_controller()
        sleep, delays = _make_sleep(1)
        driver = UpdateDriver(
            controller, _make_client({'cluster.version': 'nope'}), sleep=sleep,
        )

        with pytest.raises(_StopLoop):
            await driver.run_forever()

        assert driver.consecutive_failures == 1
        controller.update_to_version.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancellation_stops_loop(self):
        controller = _make_controller(*([False] * 100))
        driver = UpdateDriver(
            controller, _make_client({'cluster.version': '1.3.0'}), interval_seconds=0.01,
        )
        task = asyncio.create_task(driver.run_forever())
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


def test_from_settings():
    settings = UpdaterSettings(
        namespace='ops',
        config_map_name='versions',
        version_key='target',
        update_interval_seconds=5,
        max_backoff_seconds=50,
    )
    driver = UpdateDriver.from_settings(_make_controller(), _make_client(), settings)
    driver.consecutive_failures = 10
    assert 25 <= driver.backoff_delay() <= 50
