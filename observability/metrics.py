"""Prometheus metrics for pagewise."""

import re
import time
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.core import CollectorRegistry

logger = logging.getLogger(__name__)

# Custom registry keeps pagewise metrics apart from the process defaults
pagewise_registry = CollectorRegistry()

# Request metrics
request_count = Counter(
    'pagewise_http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=pagewise_registry
)

request_duration = Histogram(
    'pagewise_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=pagewise_registry
)

# Retrieval metrics
retrieval_requests = Counter(
    'pagewise_retrieval_requests_total',
    'Total number of retrieval requests',
    ['status'],
    registry=pagewise_registry
)

retrieval_duration = Histogram(
    'pagewise_retrieval_duration_seconds',
    'Retrieval duration in seconds',
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    registry=pagewise_registry
)

retrieval_candidates = Histogram(
    'pagewise_retrieval_candidates_count',
    'Lexical candidates considered per retrieval',
    buckets=[1, 5, 10, 25, 50, 100, 250, 500],
    registry=pagewise_registry
)

# Indexing metrics
indexed_documents = Counter(
    'pagewise_indexed_documents_total',
    'Documents processed by the indexer',
    ['status'],
    registry=pagewise_registry
)

indexed_chunks = Histogram(
    'pagewise_indexed_chunks_count',
    'Number of chunks written per document',
    buckets=[1, 2, 5, 10, 25, 50, 100],
    registry=pagewise_registry
)

# Answer cache metrics
cache_lookups = Counter(
    'pagewise_cache_lookups_total',
    'Answer cache lookups by outcome',
    ['outcome'],
    registry=pagewise_registry
)

# Error metrics
error_count = Counter(
    'pagewise_errors_total',
    'Total number of errors',
    ['error_type', 'component'],
    registry=pagewise_registry
)


def index_status(result: Optional[bool]) -> str:
    """Label for an indexer tri-state result."""
    if result is True:
        return "inserted"
    if result is False:
        return "failed"
    return "skipped"


def record_index_result(result: Optional[bool], chunk_count: int = 0) -> None:
    status = index_status(result)
    indexed_documents.labels(status=status).inc()
    if status == "inserted":
        indexed_chunks.observe(chunk_count)


def record_index_error(error_type: str) -> None:
    indexed_documents.labels(status="error").inc()
    error_count.labels(error_type=error_type, component="indexing").inc()


def record_retrieval(duration: float, candidate_count: int, error: Optional[str] = None) -> None:
    """Record retrieval-related metrics."""
    status = "error" if error else "success"
    retrieval_requests.labels(status=status).inc()
    if error:
        error_count.labels(error_type=error, component="retrieval").inc()
        return
    retrieval_duration.observe(duration)
    retrieval_candidates.observe(candidate_count)


def record_cache_lookup(outcome: str) -> None:
    """outcome: ``exact``, ``fuzzy``, ``miss`` or ``disabled``."""
    cache_lookups.labels(outcome=outcome).inc()


def _normalize_endpoint(path: str) -> str:
    """Replace numeric IDs to keep label cardinality low."""
    return re.sub(r'/\d+', '/{id}', path)


class PrometheusMiddleware:
    """Middleware to collect Prometheus metrics for HTTP requests."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        method = request.method
        endpoint = _normalize_endpoint(request.url.path)
        start_time = time.time()
        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as e:
            logger.error(f"Request processing error: {e}")
            error_count.labels(error_type=type(e).__name__, component="http").inc()
            raise
        finally:
            request_count.labels(
                method=method,
                endpoint=endpoint,
                status_code=str(status_code)
            ).inc()
            request_duration.labels(method=method, endpoint=endpoint).observe(time.time() - start_time)


def setup_prometheus_metrics(app: FastAPI) -> None:
    """Install the request middleware and the ``/metrics`` endpoint."""
    app.add_middleware(PrometheusMiddleware)

    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics_endpoint():
        """Prometheus metrics endpoint."""
        return PlainTextResponse(generate_latest(pagewise_registry), media_type=CONTENT_TYPE_LATEST)

    logger.info("Prometheus metrics configured")
