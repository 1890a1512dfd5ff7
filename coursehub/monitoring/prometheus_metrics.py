"""
Prometheus metrics module for CourseHub.

Service timings come from the @measure_operation decorator; the
automation engine and the conflict detector record their own domain
counters. Everything lives in a custom registry exposed at
``/metrics/prometheus``.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Scraped on its own; the default process registry is not exported
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "coursehub_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "coursehub_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "coursehub_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

lesson_conflicts_detected_total = Counter(
    "coursehub_lesson_conflicts_detected_total",
    "Colliding lessons reported by the conflict detector",
    ["conflict_type"],  # teacher | room | both
    registry=REGISTRY,
)

automation_jobs_enqueued_total = Counter(
    "coursehub_automation_jobs_enqueued_total",
    "Automation enqueue attempts by kind and result",
    ["kind", "result"],  # ACCEPTED | DUPLICATE
    registry=REGISTRY,
)

automation_jobs_processed_total = Counter(
    "coursehub_automation_jobs_processed_total",
    "Automation job executions by kind and outcome",
    ["kind", "outcome"],  # completed | retry | failed
    registry=REGISTRY,
)

automation_job_duration_seconds = Histogram(
    "coursehub_automation_job_duration_seconds",
    "Automation job handler duration in seconds",
    ["kind"],
    registry=REGISTRY,
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

notifications_sent_total = Counter(
    "coursehub_notifications_sent_total",
    "Outbound notification attempts by provider and status",
    ["provider", "status"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Thin facade over the module-level collectors."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record one call made through ``BaseService.measure_operation``.

        Args:
            service: Service class name (e.g. 'LessonService')
            operation: Operation name (e.g. 'create_lesson')
            duration: Wall time in seconds
            status: 'success' or 'error'
            error_type: Exception class name when status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(duration)
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def inc_conflicts_detected(conflict_type: str) -> None:
        lesson_conflicts_detected_total.labels(conflict_type=conflict_type).inc()

    @staticmethod
    def record_job_enqueued(kind: str, result: str) -> None:
        automation_jobs_enqueued_total.labels(kind=kind, result=result).inc()

    @staticmethod
    def record_job_outcome(kind: str, outcome: str, duration: float) -> None:
        """Record one handler execution and its terminal or retry outcome."""
        automation_jobs_processed_total.labels(kind=kind, outcome=outcome).inc()
        automation_job_duration_seconds.labels(kind=kind).observe(max(duration, 0.0))

    @staticmethod
    def record_notification(provider: str, status: str) -> None:
        notifications_sent_total.labels(provider=provider, status=status).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Render the registry in the text exposition format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
