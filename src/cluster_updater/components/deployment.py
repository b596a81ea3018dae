"""Deployment-backed component."""

from __future__ import annotations

from .base import DEPLOYMENT_PRIORITY, WorkloadComponent
from .version import Version


class DeploymentComponent(WorkloadComponent):
    """A replicated workload, converged once every replica is updated and ready."""

    kind = 'Deployment'
    default_priority = DEPLOYMENT_PRIORITY

    def converged(self, target: Version) -> bool:
        if self.version() != target:
            return False

        meta = self._obj.get('metadata') or {}
        spec = self._obj.get('spec') or {}
        status = self._obj.get('status') or {}

        # Status fields describe an older template until the controller
        # has observed the latest generation.
        if status.get('observedGeneration', 0) < meta.get('generation', 0):
            return False

        desired = spec.get('replicas', 1)
        return (
            status.get('updatedReplicas', 0) == desired
            and status.get('readyReplicas', 0) == desired
        )
