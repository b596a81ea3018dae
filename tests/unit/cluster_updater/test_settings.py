"""UpdaterSettings defaults, validation, and environment loading."""

from __future__ import annotations

import pytest

from cluster_updater.settings import UpdaterSettings


class TestDefaults:
    def test_local_defaults_are_valid(self):
        settings = UpdaterSettings()
        assert settings.is_local
        assert settings.validate() == []
        assert settings.namespace == 'kube-system'
        assert settings.config_map_name == 'cluster-config'
        assert settings.version_key == 'cluster.version'
        assert settings.managed_selector == 'update-controller-managed=true'

    def test_frozen(self):
        with pytest.raises(AttributeError):
            UpdaterSettings().namespace = 'other'


class TestValidate:
    def test_remote_requires_api_url(self):
        errors = UpdaterSettings(environment='production', api_server_url='').validate()
        assert any('api_server_url' in e for e in errors)

    def test_local_ignores_api_url(self):
        assert UpdaterSettings(api_server_url='').validate() == []

    @pytest.mark.parametrize('overrides, fragment', [
        ({'namespace': ''}, 'namespace'),
        ({'version_key': ''}, 'version_key'),
        ({'update_interval_seconds': 0}, 'update_interval_seconds'),
        ({'update_interval_seconds': 60, 'max_backoff_seconds': 30}, 'max_backoff_seconds'),
        ({'resync_seconds': -1}, 'resync_seconds'),
    ])
    def test_rejects(self, overrides, fragment):
        errors = UpdaterSettings(**overrides).validate()
        assert len(errors) == 1
        assert fragment in errors[0]


class TestFromEnv:
    def test_empty_env_gives_defaults(self):
        assert UpdaterSettings.from_env({}) == UpdaterSettings()

    def test_reads_every_variable(self):
        settings = UpdaterSettings.from_env({
            'ENVIRONMENT': 'production',
            'KUBE_API_URL': 'https://10.0.0.1:6443',
            'KUBE_BEARER_TOKEN': 'tok',
            'KUBE_TOKEN_FILE': '/var/run/token',
            'KUBE_CA_FILE': '/var/run/ca.crt',
            'KUBE_REQUEST_TIMEOUT_SECONDS': '5',
            'UPDATER_NAMESPACE': 'ops',
            'UPDATER_MANAGED_SELECTOR': 'tier=control-plane',
            'UPDATER_CONFIG_MAP': 'versions',
            'UPDATER_VERSION_KEY': 'target',
            'UPDATER_RESYNC_SECONDS': '60',
            'UPDATER_INTERVAL_SECONDS': '10',
            'UPDATER_MAX_BACKOFF_SECONDS': '120',
            'UPDATER_RUN_DRIVER': 'no',
        })
        assert settings == UpdaterSettings(
            environment='production',
            api_server_url='https://10.0.0.1:6443',
            bearer_token='tok',
            token_file='/var/run/token',
            ca_file='/var/run/ca.crt',
            request_timeout_seconds=5.0,
            namespace='ops',
            managed_selector='tier=control-plane',
            config_map_name='versions',
            version_key='target',
            resync_seconds=60.0,
            update_interval_seconds=10.0,
            max_backoff_seconds=120.0,
            run_driver=False,
        )

    @pytest.mark.parametrize('raw, expected', [
        ('1', True), ('true', True), ('YES', True), ('off', False), ('', True),
    ])
    def test_run_driver_flag(self, raw, expected):
        assert UpdaterSettings.from_env({'UPDATER_RUN_DRIVER': raw}).run_driver is expected
