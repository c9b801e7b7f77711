"""Prometheus metrics for observability."""

from functools import lru_cache

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, Info

from todo_replica import __version__


class Metrics:
    """Prometheus metrics for the replica layer."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize all metrics.

        Args:
            registry: Registry to register with (process default if None)
        """
        registry = registry if registry is not None else REGISTRY
        self.registry = registry

        # Service info
        self.info = Info(
            "todo_replica",
            "Replica layer information",
            registry=registry,
        )
        self.info.info({"version": __version__})

        # Gateway operations
        self.gateway_operations_total = Counter(
            "gateway_operations_total",
            "Total number of remote store operations",
            ["operation", "kind", "status"],
            registry=registry,
        )

        self.gateway_operation_duration_seconds = Histogram(
            "gateway_operation_duration_seconds",
            "Duration of remote store operations in seconds",
            ["operation", "kind"],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
            registry=registry,
        )

        # Replica state
        self.replica_entities = Gauge(
            "replica_entities",
            "Number of entities held in the local replica",
            ["kind"],
            registry=registry,
        )

        self.replica_refresh_total = Counter(
            "replica_refresh_total",
            "Total number of full replica refreshes",
            ["status"],
            registry=registry,
        )

        self.replica_stale_writes_dropped_total = Counter(
            "replica_stale_writes_dropped_total",
            "Confirmed writes not mirrored because the session moved on",
            ["kind"],
            registry=registry,
        )

        # Ordering
        self.reorder_shifted_projects = Histogram(
            "reorder_shifted_projects",
            "Number of sibling projects shifted by a single move",
            buckets=[0, 1, 2, 5, 10, 25, 50, 100],
            registry=registry,
        )

    def record_gateway_operation(
        self,
        operation: str,
        kind: str,
        status: str,
        duration: float,
    ) -> None:
        """Record a remote store operation metric.

        Args:
            operation: Operation name (fetch_all, create, update, delete, ...)
            kind: Entity kind name
            status: Operation status (success, error)
            duration: Operation duration in seconds
        """
        self.gateway_operations_total.labels(
            operation=operation,
            kind=kind,
            status=status,
        ).inc()
        self.gateway_operation_duration_seconds.labels(
            operation=operation,
            kind=kind,
        ).observe(duration)


@lru_cache
def get_metrics() -> Metrics:
    """Get cached metrics instance."""
    return Metrics()
