"""Cluster-wide update orchestration."""

from .catalog import build_catalog
from .controller import (
    ComponentStatus,
    UpdateController,
    highest_cluster_version,
    sort_components_by_priority,
)
from .driver import UpdateDriver

__all__ = [
    'ComponentStatus',
    'UpdateController',
    'UpdateDriver',
    'build_catalog',
    'highest_cluster_version',
    'sort_components_by_priority',
]
