"""Async HTTP client for the Kubernetes API server.

Covers only what the update controller needs: list and watch the managed
kinds, patch their version-bearing fields, and read a ConfigMap.

Requests are issued exactly once. Retry and backoff belong to whoever
drives the controller, so a failed request surfaces as ``KubeAPIError``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Mapping

import httpx

logger = logging.getLogger(__name__)

MERGE_PATCH = 'application/merge-patch+json'
STRATEGIC_MERGE_PATCH = 'application/strategic-merge-patch+json'

IN_CLUSTER_TOKEN_FILE = '/var/run/secrets/kubernetes.io/serviceaccount/token'
IN_CLUSTER_CA_FILE = '/var/run/secrets/kubernetes.io/serviceaccount/ca.crt'


@dataclass(frozen=True, slots=True)
class ResourceKind:
    """REST location of one resource kind."""

    kind: str
    api_prefix: str
    plural: str
    namespaced: bool

    def path(self, namespace: str | None = None, name: str | None = None) -> str:
        parts = [self.api_prefix]
        if self.namespaced and namespace:
            parts.append(f'namespaces/{namespace}')
        parts.append(self.plural)
        if name:
            parts.append(name)
        return '/'.join(parts)


KINDS: Mapping[str, ResourceKind] = {
    'Node': ResourceKind('Node', '/api/v1', 'nodes', namespaced=False),
    'Pod': ResourceKind('Pod', '/api/v1', 'pods', namespaced=True),
    'ConfigMap': ResourceKind('ConfigMap', '/api/v1', 'configmaps', namespaced=True),
    'DaemonSet': ResourceKind('DaemonSet', '/apis/apps/v1', 'daemonsets', namespaced=True),
    'Deployment': ResourceKind('Deployment', '/apis/apps/v1', 'deployments', namespaced=True),
}


# ── Exception hierarchy ─────────────────────────────────────────


class KubeAPIError(Exception):
    """Base exception for Kubernetes API errors."""

    def __init__(
        self,
        status_code: int,
        message: str = '',
        *,
        response_body: str = '',
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f'Kubernetes API error {status_code}: {message}')


class KubeNotFoundError(KubeAPIError):
    """Object not found (404)."""

    def __init__(self, message: str = 'not found', **kwargs: Any) -> None:
        super().__init__(404, message, **kwargs)


class KubeGoneError(KubeAPIError):
    """Requested resourceVersion is too old (410); the caller must relist."""

    def __init__(self, message: str = 'resource version too old', **kwargs: Any) -> None:
        super().__init__(410, message, **kwargs)


class KubeTimeoutError(KubeAPIError):
    """Request to the API server timed out."""

    def __init__(self, message: str = 'Request timed out') -> None:
        super().__init__(0, message)


def _kind(kind: str) -> ResourceKind:
    try:
        return KINDS[kind]
    except KeyError:
        raise ValueError(f'unsupported resource kind {kind!r}') from None


# ── Client ───────────────────────────────────────────────────────


class KubeClient:
    """Async client for the subset of the Kubernetes API used here.

    Authenticates with a bearer token. ``http_client`` is injectable so
    tests can substitute a mock transport.
    """

    def __init__(
        self,
        *,
        base_url: str,
        bearer_token: str = '',
        http_client: httpx.AsyncClient | None = None,
        ca_file: str | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        if not base_url:
            raise ValueError('base_url is required')

        self._base_url = base_url.rstrip('/')
        self._bearer_token = bearer_token
        self._client = http_client or httpx.AsyncClient(verify=ca_file or True)
        self._timeout = float(timeout_seconds)

    @classmethod
    def from_settings(cls, settings: Any) -> KubeClient:
        """Build a client from ``UpdaterSettings``.

        Falls back to the in-cluster service account token when no token is
        configured and the token file exists.
        """
        token = settings.bearer_token
        token_file = settings.token_file or IN_CLUSTER_TOKEN_FILE
        if not token and Path(token_file).is_file():
            token = Path(token_file).read_text().strip()

        ca_file = settings.ca_file
        if not ca_file and Path(IN_CLUSTER_CA_FILE).is_file():
            ca_file = IN_CLUSTER_CA_FILE

        return cls(
            base_url=settings.api_server_url,
            bearer_token=token,
            ca_file=ca_file or None,
            timeout_seconds=settings.request_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self, content_type: str | None = None) -> dict[str, str]:
        headers = {'Accept': 'application/json'}
        if self._bearer_token:
            headers['Authorization'] = f'Bearer {self._bearer_token}'
        if content_type:
            headers['Content-Type'] = content_type
        return headers

    def _raise_for_status(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return

        body = resp.text
        message = body[:200] if body else f'HTTP {resp.status_code}'

        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = payload.get('message', message)
        except ValueError:
            pass

        if resp.status_code == 404:
            raise KubeNotFoundError(message=message, response_body=body)
        if resp.status_code == 410:
            raise KubeGoneError(message=message, response_body=body)

        raise KubeAPIError(
            status_code=resp.status_code,
            message=message,
            response_body=body,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        content: str | None = None,
        content_type: str | None = None,
    ) -> httpx.Response:
        url = f'{self._base_url}{path}'
        try:
            resp = await self._client.request(
                method,
                url,
                headers=self._headers(content_type),
                params=params,
                content=content,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            raise KubeTimeoutError(str(e)) from e
        except httpx.HTTPError as e:
            raise KubeAPIError(0, f'{method} {path} failed: {e}') from e

        self._raise_for_status(resp)
        return resp

    # ── Public API ───────────────────────────────────────────────

    async def list_objects(
        self,
        kind: str,
        *,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> dict[str, Any]:
        """List objects of ``kind``.

        Returns the raw list object, including ``metadata.resourceVersion``
        to start a watch from.
        """
        params = {'labelSelector': label_selector} if label_selector else None
        resp = await self._request('GET', _kind(kind).path(namespace), params=params)
        return resp.json()

    async def watch_objects(
        self,
        kind: str,
        *,
        namespace: str | None = None,
        label_selector: str | None = None,
        resource_version: str | None = None,
        timeout_seconds: int = 300,
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield watch events (``{"type": ..., "object": ...}``).

        The stream ends when the server closes it after ``timeout_seconds``.
        An in-band ``ERROR`` event with code 410 raises ``KubeGoneError``.
        """
        params: dict[str, str] = {
            'watch': 'true',
            'allowWatchBookmarks': 'true',
            'timeoutSeconds': str(timeout_seconds),
        }
        if label_selector:
            params['labelSelector'] = label_selector
        if resource_version:
            params['resourceVersion'] = resource_version

        url = f'{self._base_url}{_kind(kind).path(namespace)}'
        try:
            async with self._client.stream(
                'GET',
                url,
                headers=self._headers(),
                params=params,
                timeout=httpx.Timeout(self._timeout, read=timeout_seconds + self._timeout),
            ) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    self._raise_for_status(resp)
                async for line in resp.aiter_lines():
                    if not line.strip():
                        continue
                    event = json.loads(line)
                    if event.get('type') == 'ERROR':
                        status = event.get('object') or {}
                        if status.get('code') == 410:
                            raise KubeGoneError(message=status.get('message', 'watch expired'))
                        raise KubeAPIError(
                            status.get('code', 0),
                            status.get('message', 'watch error'),
                        )
                    yield event
        except httpx.TimeoutException as e:
            raise KubeTimeoutError(str(e)) from e
        except httpx.HTTPError as e:
            raise KubeAPIError(0, f'watch {kind} failed: {e}') from e

    async def patch_object(
        self,
        kind: str,
        name: str,
        patch: Mapping[str, Any],
        *,
        namespace: str | None = None,
        patch_type: str = MERGE_PATCH,
    ) -> dict[str, Any]:
        resp = await self._request(
            'PATCH',
            _kind(kind).path(namespace, name),
            content=json.dumps(patch),
            content_type=patch_type,
        )
        logger.info(
            'Patched %s %s',
            kind,
            name,
            extra={'kind': kind, 'object_name': name, 'namespace': namespace},
        )
        return resp.json()

    async def patch_node_annotations(
        self, name: str, annotations: Mapping[str, str],
    ) -> dict[str, Any]:
        return await self.patch_object(
            'Node', name, {'metadata': {'annotations': dict(annotations)}},
        )

    async def patch_container_image(
        self,
        kind: str,
        name: str,
        *,
        namespace: str,
        container: str,
        image: str,
    ) -> dict[str, Any]:
        """Set one pod-template container image; containers merge by name."""
        patch = {
            'spec': {
                'template': {
                    'spec': {
                        'containers': [{'name': container, 'image': image}],
                    },
                },
            },
        }
        return await self.patch_object(
            kind, name, patch, namespace=namespace, patch_type=STRATEGIC_MERGE_PATCH,
        )

    async def get_config_map(self, name: str, *, namespace: str) -> dict[str, Any]:
        """Get a ConfigMap. Raises ``KubeNotFoundError`` if it doesn't exist."""
        resp = await self._request('GET', KINDS['ConfigMap'].path(namespace, name))
        return resp.json()
