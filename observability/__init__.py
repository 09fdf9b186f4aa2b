"""Observability package for pagewise."""

from .logging import setup_logging, log_performance, JSONFormatter, ColoredFormatter
from .metrics import (
    setup_prometheus_metrics,
    record_index_result,
    record_index_error,
    record_retrieval,
    record_cache_lookup,
    PrometheusMiddleware,
    pagewise_registry
)

__all__ = [
    'setup_logging',
    'log_performance',
    'JSONFormatter',
    'ColoredFormatter',
    'setup_prometheus_metrics',
    'record_index_result',
    'record_index_error',
    'record_retrieval',
    'record_cache_lookup',
    'PrometheusMiddleware',
    'pagewise_registry'
]
