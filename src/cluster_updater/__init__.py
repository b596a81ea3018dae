"""Cluster update controller.

Rolls managed control-plane and node components to a target version, one
component per invocation.
"""

from .app import create_app
from .cluster import UpdateController, UpdateDriver
from .components import Version
from .settings import UpdaterSettings

__all__ = ["UpdateController", "UpdateDriver", "UpdaterSettings", "Version", "create_app"]
