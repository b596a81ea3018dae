"""Prometheus metrics for the update controller.

Usage::

    from cluster_updater.observability.metrics import UPDATE_STEPS_TOTAL

    UPDATE_STEPS_TOTAL.labels(outcome="updated").inc()
"""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# ---------------------------------------------------------------------------
# Update loop
# ---------------------------------------------------------------------------

UPDATE_STEPS_TOTAL = Counter(
    "cluster_updater_update_steps_total",
    "update_to_version invocations by outcome (updated, converged, error).",
    labelnames=["outcome"],
    registry=REGISTRY,
)

COMPONENT_UPDATES_TOTAL = Counter(
    "cluster_updater_component_updates_total",
    "Mutating writes issued to components, by component kind.",
    labelnames=["kind"],
    registry=REGISTRY,
)

UPDATE_STEP_DURATION_SECONDS = Histogram(
    "cluster_updater_update_step_duration_seconds",
    "Wall time of one update_to_version invocation.",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

MANAGED_COMPONENTS = Gauge(
    "cluster_updater_managed_components",
    "Components in the most recently built catalog.",
    registry=REGISTRY,
)

CLUSTER_VERSION = Info(
    "cluster_updater_cluster_version",
    "Highest component version and last requested target version.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Caches
# ---------------------------------------------------------------------------

INFORMER_RELISTS_TOTAL = Counter(
    "cluster_updater_informer_relists_total",
    "Full relists performed by each cache.",
    labelnames=["kind"],
    registry=REGISTRY,
)

INFORMER_ERRORS_TOTAL = Counter(
    "cluster_updater_informer_errors_total",
    "List or watch failures observed by each cache.",
    labelnames=["kind"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Generate Prometheus exposition text and content-type header."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
