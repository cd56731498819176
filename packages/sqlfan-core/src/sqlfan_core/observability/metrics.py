"""
Prometheus метрики sqlfan

Все метрики живут в отдельном registry, чтобы не конфликтовать
с метриками приложения, которое использует библиотеку.
"""

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

METRICS_REGISTRY = CollectorRegistry()

FANOUT_TASKS_TOTAL = Counter(
    "sqlfan_fanout_tasks_total",
    "Fan-out tasks by outcome",
    ["status"],  # dispatched, dropped, rejected, succeeded, failed
    registry=METRICS_REGISTRY,
)

REMOTE_CALL_DURATION = Histogram(
    "sqlfan_remote_call_duration_seconds",
    "Duration of remote dispatch calls",
    ["mode"],  # single, fanout
    registry=METRICS_REGISTRY,
)

DISPATCH_REQUESTS_TOTAL = Counter(
    "sqlfan_dispatch_requests_total",
    "Requests handled by the dispatch endpoint",
    ["operation", "status"],
    registry=METRICS_REGISTRY,
)

READER_RETRIES_TOTAL = Counter(
    "sqlfan_reader_retries_total",
    "Self-healing reader retries after an unknown column",
    registry=METRICS_REGISTRY,
)

READER_DEGRADED_TOTAL = Counter(
    "sqlfan_reader_degraded_total",
    "Reads that degraded to an empty result",
    ["reason"],
    registry=METRICS_REGISTRY,
)

ROWS_LOADED_TOTAL = Counter(
    "sqlfan_rows_loaded_total",
    "Rows written by the bulk loader",
    ["dialect"],
    registry=METRICS_REGISTRY,
)


def sample(name: str, labels: dict[str, str] | None = None) -> float:
    """Текущее значение метрики (0.0, если еще не записывалась)"""
    value = METRICS_REGISTRY.get_sample_value(name, labels or {})
    return value or 0.0


def render_latest() -> bytes:
    """Метрики в формате Prometheus exposition"""
    return generate_latest(METRICS_REGISTRY)
