"""Kubernetes API access: HTTP client, label selectors and caches."""

from .client import (
    KubeAPIError,
    KubeClient,
    KubeGoneError,
    KubeNotFoundError,
    KubeTimeoutError,
)
from .informer import Informer, Lister, PodLister, Store
from .labels import Selector, SelectorError, parse_selector, selector_from_spec

__all__ = [
    'Informer',
    'KubeAPIError',
    'KubeClient',
    'KubeGoneError',
    'KubeNotFoundError',
    'KubeTimeoutError',
    'Lister',
    'PodLister',
    'Selector',
    'SelectorError',
    'Store',
    'parse_selector',
    'selector_from_spec',
]
