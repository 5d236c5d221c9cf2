"""
Prometheus metrics collection for Synexa.

Covers routine runs, routine steps, device commands, recurrence evaluation,
reminder processing and HTTP requests.
"""

from prometheus_client import (
    Counter, Histogram, CollectorRegistry, generate_latest,
    CONTENT_TYPE_LATEST
)

# Global metrics registry
metrics_registry = CollectorRegistry()


class SynexaMetrics:
    """Metrics for the routines and recurrence core."""

    def __init__(self, registry: CollectorRegistry = None):
        self.registry = registry or metrics_registry
        self._setup_metrics()

    def _setup_metrics(self):
        self.routine_runs_total = Counter(
            'synexa_routine_runs_total',
            'Total routine executions by summary status',
            ['summary', 'dry_run'],
            registry=self.registry
        )

        self.routine_duration = Histogram(
            'synexa_routine_duration_seconds',
            'Complete routine execution duration, delays included',
            ['dry_run'],
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 60.0, 300.0, float('inf')),
            registry=self.registry
        )

        self.step_outcomes_total = Counter(
            'synexa_routine_step_outcomes_total',
            'Routine step outcomes by action type and status',
            ['action_type', 'status'],
            registry=self.registry
        )

        self.step_duration = Histogram(
            'synexa_routine_step_duration_seconds',
            'Routine step dispatch duration in seconds, delay excluded',
            ['action_type'],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float('inf')),
            registry=self.registry
        )

        self.device_commands_total = Counter(
            'synexa_device_commands_total',
            'Device commands by provider and resulting status',
            ['provider', 'status'],
            registry=self.registry
        )

        self.recurrence_evaluations_total = Counter(
            'synexa_recurrence_evaluations_total',
            'Next-occurrence evaluations by rule type and outcome',
            ['rule_type', 'status'],
            registry=self.registry
        )

        self.reminders_processed_total = Counter(
            'synexa_reminders_processed_total',
            'Due reminders processed by result',
            ['result'],
            registry=self.registry
        )

        self.http_requests_total = Counter(
            'synexa_http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status_code'],
            registry=self.registry
        )

        self.http_request_duration = Histogram(
            'synexa_http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'endpoint'],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, float('inf')),
            registry=self.registry
        )

    def record_routine_run(self, summary: str, dry_run: bool, duration: float):
        label = str(dry_run).lower()
        self.routine_runs_total.labels(summary=summary, dry_run=label).inc()
        self.routine_duration.labels(dry_run=label).observe(duration)

    def record_step_outcome(self, action_type: str, status: str, duration: float):
        self.step_outcomes_total.labels(action_type=action_type, status=status).inc()
        self.step_duration.labels(action_type=action_type).observe(duration)

    def record_device_command(self, provider: str, status: str):
        self.device_commands_total.labels(provider=provider.lower(), status=status).inc()

    def record_recurrence_evaluation(self, rule_type: str, status: str):
        self.recurrence_evaluations_total.labels(rule_type=rule_type, status=status).inc()

    def record_reminder_processed(self, result: str):
        self.reminders_processed_total.labels(result=result).inc()

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self.http_requests_total.labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()
        self.http_request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def get_metrics(self) -> str:
        """Get current metrics in Prometheus text format."""
        return generate_latest(self.registry).decode('utf-8')

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST


# Global metrics instance
synexa_metrics = SynexaMetrics()
