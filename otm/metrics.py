import threading
from collections import defaultdict
from typing import Dict, Tuple


# (path, status) -> count
_http_requests_total: Dict[Tuple[str, str], int] = defaultdict(int)

# result -> count (created, consumed, not_found, ...)
_message_operations_total: Dict[str, int] = defaultdict(int)

_messages_purged_total = 0

# simple latency buckets in ms
_latency_buckets = {
    "100": 0,
    "500": 0,
    "+Inf": 0,
}
_latency_count = 0

# updated from threadpool handlers
_lock = threading.Lock()


def inc_http_request(path: str, status: int) -> None:
    key = (path, str(status))
    with _lock:
        _http_requests_total[key] += 1


def inc_message_result(result: str) -> None:
    with _lock:
        _message_operations_total[result] += 1


def inc_purged(count: int) -> None:
    global _messages_purged_total
    with _lock:
        _messages_purged_total += count


def observe_latency_ms(latency_ms: float) -> None:
    global _latency_count
    with _lock:
        _latency_count += 1
        if latency_ms <= 100:
            _latency_buckets["100"] += 1
        if latency_ms <= 500:
            _latency_buckets["500"] += 1
        _latency_buckets["+Inf"] += 1


def get_message_result(result: str) -> int:
    return _message_operations_total.get(result, 0)


def reset_metrics() -> None:
    global _messages_purged_total, _latency_count
    with _lock:
        _http_requests_total.clear()
        _message_operations_total.clear()
        _messages_purged_total = 0
        _latency_count = 0
        for le in _latency_buckets:
            _latency_buckets[le] = 0


def render_metrics() -> str:
    """Return plain text metrics."""
    lines: list[str] = []

    with _lock:
        http_requests = list(_http_requests_total.items())
        operations = list(_message_operations_total.items())
        buckets = list(_latency_buckets.items())
        purged, count = _messages_purged_total, _latency_count

    for (path, status), value in http_requests:
        lines.append(
            f'http_requests_total{{path="{path}",status="{status}"}} {value}'
        )

    for result, value in operations:
        lines.append(
            f'message_operations_total{{result="{result}"}} {value}'
        )

    lines.append(f"messages_purged_total {purged}")

    for le, value in buckets:
        lines.append(
            f'request_latency_ms_bucket{{le="{le}"}} {value}'
        )
    lines.append(f"request_latency_ms_count {count}")

    return "\n".join(lines) + "\n"
