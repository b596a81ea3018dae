"""Update controller error hierarchy.

Every failure of an update attempt is surfaced to the caller as one of
these. Cluster API transport errors live with the client in
``cluster_updater.kube.client`` and are chained as ``__cause__`` when a
component write fails.
"""

from __future__ import annotations

from typing import Sequence


class UpdateControllerError(Exception):
    """Base error for the update controller."""


class InvalidVersionError(UpdateControllerError, ValueError):
    """A version string could not be parsed as a semantic version."""

    def __init__(self, value: str, reason: str = 'not a semantic version') -> None:
        self.value = value
        self.reason = reason
        super().__init__(f'invalid version {value!r}: {reason}')


class CacheNotSyncedError(UpdateControllerError):
    """A cache was listed before its first successful sync."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f'{kind} cache has not synced yet')


class CatalogBuildError(UpdateControllerError):
    """One or more cache listings or component constructions failed.

    Carries every collected failure; a partial catalog is never returned.
    """

    def __init__(self, errors: Sequence[Exception]) -> None:
        self.errors = tuple(errors)
        detail = '; '.join(str(e) for e in self.errors) or 'unknown failure'
        super().__init__(f'failed to build component catalog: {detail}')


class NoComponentsError(UpdateControllerError):
    """The catalog is empty, so there is no cluster version to compare to."""

    def __init__(self) -> None:
        super().__init__('no managed components found in cluster')


class ComponentUpdateError(UpdateControllerError):
    """The mutation of a single component failed."""

    def __init__(self, name: str, kind: str, cause: Exception) -> None:
        self.name = name
        self.kind = kind
        self.cause = cause
        super().__init__(f'failed update of {kind} {name!r}: {cause}')
