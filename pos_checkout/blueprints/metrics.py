"""
Prometheus metrics blueprint.

/metrics exposes checkout counters next to per-request HTTP metrics.
Restrict it to the monitoring network; it is not authenticated.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
import time
import os

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share counters through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    _metric_registry = None
else:
    registry = REGISTRY
    _metric_registry = REGISTRY


def _counter(name, documentation, labels=()):
    return Counter(name, documentation, list(labels), registry=_metric_registry)


# Checkout
sales_finalized_total = _counter(
    'pos_sales_finalized_total', 'Sales stored successfully', ['payment_method'])
checkout_rejections_total = _counter(
    'pos_checkout_rejections_total', 'Checkouts rejected by validation or persistence', ['reason'])
receipt_prints_total = _counter(
    'pos_receipt_prints_total', 'Receipt print dispatch outcomes', ['outcome'])

# HTTP
http_requests_total = _counter(
    'http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'http_status'])
http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)
http_requests_in_flight = Gauge(
    'http_requests_in_flight', 'HTTP requests currently being processed', registry=_metric_registry)


def record_sale(sale):
    sales_finalized_total.labels(payment_method=sale.payment_method).inc()


def record_rejection(error):
    """Count a rejected checkout under the reason carried in the error payload."""
    reason = (error.payload or {}).get('reason', 'validation')
    checkout_rejections_total.labels(reason=reason).inc()


def record_print(result):
    if result is None:
        return
    receipt_prints_total.labels(outcome='ok' if result.ok else 'failed').inc()


def setup_metrics_instrumentation(app):
    """Time every request; the scrape endpoint itself is not counted."""

    def _tracked():
        return request.endpoint != 'metrics.metrics'

    @app.before_request
    def start_request_timer():
        if _tracked():
            g.metrics_started_at = time.perf_counter()
            http_requests_in_flight.inc()

    @app.after_request
    def observe_request(response):
        started = g.get('metrics_started_at')
        if started is not None:
            endpoint = request.endpoint or 'unknown'
            http_request_duration_seconds.labels(request.method, endpoint).observe(time.perf_counter() - started)
            http_requests_total.labels(request.method, endpoint, response.status_code).inc()
        return response

    @app.teardown_request
    def release_in_flight(exception=None):
        # Runs even when a view raised, so the gauge cannot drift upwards
        if g.pop('metrics_started_at', None) is not None:
            http_requests_in_flight.dec()


@metrics_bp.route('/metrics')
def metrics():
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
