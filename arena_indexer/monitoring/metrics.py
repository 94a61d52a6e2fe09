"""Prometheus metrics for monitoring indexer health and performance"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST, start_http_server

# Chain Read Metrics
chain_fetch_latency = Histogram(
    'chain_fetch_latency_seconds',
    'Full node request latency in seconds',
    ['method'],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0)
)

chain_fetch_errors = Counter(
    'chain_fetch_errors_total',
    'Total number of full node request errors',
    ['error_type']
)

# Indexer Metrics
indexer_cycles = Counter(
    'indexer_cycles_total',
    'Total number of indexing cycles by outcome',
    ['outcome']
)

indexer_cycle_latency = Histogram(
    'indexer_cycle_latency_seconds',
    'Duration of a full indexing cycle in seconds',
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0)
)

indexer_last_processed_version = Gauge(
    'indexer_last_processed_version',
    'Highest transaction version fully processed'
)

events_indexed = Counter(
    'events_indexed_total',
    'Total number of events applied to the read-model',
    ['event_type']
)

events_duplicate = Counter(
    'events_duplicate_total',
    'Total number of replayed events skipped by the idempotency key',
    ['event_type']
)

# Database Performance Metrics
db_query_latency = Histogram(
    'db_query_latency_seconds',
    'Database query latency in seconds',
    ['operation'],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0)
)

db_errors = Counter(
    'db_errors_total',
    'Total number of database errors',
    ['operation', 'error_type']
)

# Live Update Metrics
websocket_connections_active = Gauge(
    'websocket_connections_active',
    'Number of open live-update WebSocket connections'
)

websocket_messages_sent = Counter(
    'websocket_messages_sent_total',
    'Total number of live-update messages delivered',
    ['message_type']
)

# API Performance Metrics
api_requests_total = Counter(
    'api_requests_total',
    'Total number of API requests',
    ['endpoint', 'method', 'status']
)

api_request_latency = Histogram(
    'api_request_latency_seconds',
    'API request latency in seconds',
    ['endpoint', 'method'],
    buckets=(0.01, 0.05, 0.1, 0.2, 0.5, 1.0, 2.0)
)

api_errors = Counter(
    'api_errors_total',
    'Total number of API errors',
    ['endpoint', 'error_type']
)


def get_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format.

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest()


def get_content_type() -> str:
    """Get the content type for Prometheus metrics"""
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: int = 9090) -> None:
    """
    Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default 9090)
    """
    start_http_server(port)
