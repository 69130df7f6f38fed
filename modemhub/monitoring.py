"""
Request logging and metrics collection.

Tracks request counts, latencies and registry action outcomes, both
in memory (for the JSON summary) and as Prometheus metrics.
"""

import json
import logging
import time
from collections import defaultdict
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Container, Dict, Optional

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)

KNOWN_ACTIONS = ("add", "update", "delete")

# In-memory metrics
_metrics = {
    "request_count": 0,
    "requests_by_route": defaultdict(int),
    "responses_by_status": defaultdict(int),
    "action_success": defaultdict(int),
    "action_failures": defaultdict(int),
    "request_latencies": [],
}

request_counter = Counter(
    "modemhub_requests_total", "Total number of HTTP requests", ["route", "method", "status"]
)
request_latency = Histogram(
    "modemhub_request_duration_seconds", "Request latency in seconds", ["route"]
)
action_counter = Counter(
    "modemhub_registry_actions_total", "Registry actions by outcome", ["action", "outcome"]
)

PROMETHEUS_CONTENT_TYPE = CONTENT_TYPE_LATEST


def record_request(route: str, method: str, status: int, latency: float) -> None:
    """Track one handled HTTP request."""
    _metrics["request_count"] += 1
    _metrics["requests_by_route"][route] += 1
    _metrics["responses_by_status"][str(status)] += 1
    _metrics["request_latencies"].append(latency)

    request_counter.labels(route=route, method=method, status=str(status)).inc()
    request_latency.labels(route=route).observe(latency)

    # Keep only last 1000 latencies in memory
    if len(_metrics["request_latencies"]) > 1000:
        _metrics["request_latencies"] = _metrics["request_latencies"][-1000:]


def track_request(known_routes: Container[str]):
    """
    Decorator to track latency and status of a route dispatcher.

    The wrapped function takes ``(self, route, request)`` and returns a
    response with a ``status`` attribute. Routes outside ``known_routes``
    are recorded under the "unknown" label.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(self, route, request):
            start_time = time.time()
            status = 500

            try:
                response = func(self, route, request)
                status = response.status
                return response
            except Exception as e:
                logger.error(f"Dispatch failed for {route}: {type(e).__name__}: {e}")
                raise
            finally:
                latency = time.time() - start_time
                label = route if route in known_routes else "unknown"
                record_request(label, request.method, status, latency)

        return wrapper

    return decorator


def track_action(action: Any, success: bool) -> None:
    """Track a registry action outcome."""
    label = action if action in KNOWN_ACTIONS else "unknown"
    if success:
        _metrics["action_success"][label] += 1
    else:
        _metrics["action_failures"][label] += 1
    action_counter.labels(action=label, outcome="success" if success else "failure").inc()


def log_device_request(
    action: Any,
    user: Any,
    old_user: Any,
    client_ip: Optional[str],
    result: Dict[str, Any],
    source: str = "Quectel BG95",
) -> Dict[str, Any]:
    """Emit one structured log line for a modem request and return the entry."""
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action or "unknown",
        "user": user,
        "oldUser": old_user,
        "source": source,
        "ip": client_ip,
        "result": result,
    }
    logger.info(f"BG95 request log: {json.dumps(entry, default=str)}")
    return entry


def get_metrics_summary() -> Dict[str, Any]:
    """Get summary of all collected metrics."""
    latencies = _metrics["request_latencies"]
    total_actions = sum(_metrics["action_success"].values()) + sum(_metrics["action_failures"].values())

    return {
        "requests": {
            "total": _metrics["request_count"],
            "by_route": dict(_metrics["requests_by_route"]),
            "by_status": dict(_metrics["responses_by_status"]),
            "avg_latency_seconds": (
                sum(latencies) / len(latencies) if latencies else 0.0
            ),
            "p95_latency_seconds": (
                sorted(latencies)[int(len(latencies) * 0.95)] if latencies else 0.0
            ),
        },
        "actions": {
            "total": total_actions,
            "success": dict(_metrics["action_success"]),
            "failures": dict(_metrics["action_failures"]),
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def get_prometheus_metrics() -> bytes:
    """Get Prometheus metrics in text format."""
    return generate_latest()


def reset_metrics() -> None:
    """Reset the in-memory metrics. Prometheus counters are process-wide and kept."""
    _metrics["request_count"] = 0
    _metrics["requests_by_route"].clear()
    _metrics["responses_by_status"].clear()
    _metrics["action_success"].clear()
    _metrics["action_failures"].clear()
    _metrics["request_latencies"] = []
