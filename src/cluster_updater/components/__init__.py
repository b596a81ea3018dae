"""Managed cluster components and their version handling."""

from .base import (
    DAEMONSET_PRIORITY,
    DEPLOYMENT_PRIORITY,
    MANAGED_LABEL,
    MANAGED_SELECTOR,
    NODE_PRIORITY,
    PRIORITY_ANNOTATION,
    VERSION_ANNOTATION,
    Component,
)
from .daemonset import DaemonSetComponent
from .deployment import DeploymentComponent
from .node import NodeComponent
from .version import Version, image_for_version, version_from_image

__all__ = [
    'DAEMONSET_PRIORITY',
    'DEPLOYMENT_PRIORITY',
    'MANAGED_LABEL',
    'MANAGED_SELECTOR',
    'NODE_PRIORITY',
    'PRIORITY_ANNOTATION',
    'VERSION_ANNOTATION',
    'Component',
    'DaemonSetComponent',
    'DeploymentComponent',
    'NodeComponent',
    'Version',
    'image_for_version',
    'version_from_image',
]
