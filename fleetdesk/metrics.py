"""
Prometheus metrics for the reservation lifecycle

Categories:
- Expiration sweeps: runs, outcomes, expired reservations, vehicle releases
- Reservations: manual status transitions
- Realtime: change events received, cache invalidations
"""
import time
from typing import Optional
from prometheus_client import (
    Counter, Histogram,
    CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
)

# Custom registry (allows multiple instances for testing)
registry = CollectorRegistry()

# ============================================================
# Expiration Sweep Metrics
# ============================================================

sweep_runs_total = Counter(
    'sweep_runs_total',
    'Total expiration sweep runs',
    ['trigger', 'outcome'],  # outcome: ok, failed
    registry=registry
)

sweep_duration_seconds = Histogram(
    'sweep_duration_seconds',
    'Expiration sweep duration in seconds',
    ['trigger'],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=registry
)

reservations_expired_total = Counter(
    'reservations_expired_total',
    'Reservations moved to expired by a sweep',
    ['trigger'],
    registry=registry
)

reservation_expiry_write_failures_total = Counter(
    'reservation_expiry_write_failures_total',
    'Reservation status writes that failed during a sweep',
    [],
    registry=registry
)

vehicle_releases_total = Counter(
    'vehicle_releases_total',
    'Vehicles returned to available',
    ['source'],  # sweep, reconciliation, transition
    registry=registry
)

vehicle_release_failures_total = Counter(
    'vehicle_release_failures_total',
    'Vehicle release writes that failed',
    ['source'],
    registry=registry
)

# ============================================================
# Reservation Metrics
# ============================================================

reservation_transitions_total = Counter(
    'reservation_transitions_total',
    'Manual reservation status transitions',
    ['from_status', 'to_status'],
    registry=registry
)

# ============================================================
# Realtime / Cache Metrics
# ============================================================

realtime_events_total = Counter(
    'realtime_events_total',
    'Row change notifications received',
    ['table', 'type'],
    registry=registry
)

cache_invalidations_total = Counter(
    'cache_invalidations_total',
    'Cache key prefixes invalidated',
    ['prefix'],
    registry=registry
)

# ============================================================
# Helper Functions
# ============================================================

class MetricsTimer:
    """Context manager for timing operations"""

    def __init__(self, histogram, labels: Optional[dict] = None):
        self.histogram = histogram
        self.labels = labels or {}
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        if self.labels:
            self.histogram.labels(**self.labels).observe(duration)
        else:
            self.histogram.observe(duration)


def track_sweep(trigger: str, outcome: str, expired_count: int = 0):
    """Track one sweep run"""
    sweep_runs_total.labels(trigger=trigger, outcome=outcome).inc()
    if expired_count:
        reservations_expired_total.labels(trigger=trigger).inc(expired_count)


def track_expiry_write_failure():
    reservation_expiry_write_failures_total.inc()


def track_vehicle_release(source: str, success: bool = True):
    if success:
        vehicle_releases_total.labels(source=source).inc()
    else:
        vehicle_release_failures_total.labels(source=source).inc()


def track_transition(from_status: str, to_status: str):
    reservation_transitions_total.labels(from_status=from_status, to_status=to_status).inc()


def track_realtime_event(table: str, event_type: str):
    realtime_events_total.labels(table=table, type=event_type).inc()


def track_cache_invalidation(prefix: str):
    cache_invalidations_total.labels(prefix=prefix).inc()


def get_metrics_text() -> bytes:
    """Get metrics in Prometheus text format"""
    return generate_latest(registry)


def get_metrics_content_type() -> str:
    """Get Prometheus content type"""
    return CONTENT_TYPE_LATEST
