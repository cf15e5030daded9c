import threading
import time
from typing import Any


_lock = threading.Lock()
_metrics: dict[str, float] = {
    "ws_connections_active": 0.0,
    "ws_connections_total": 0.0,
    "ws_auth_failures_total": 0.0,
    "ws_disconnects_total": 0.0,
    "ws_disconnect_client_disconnect": 0.0,
    "ws_disconnect_heartbeat_timeout": 0.0,
    "ws_disconnect_message_too_large": 0.0,
    "ws_disconnect_other": 0.0,
    "llm_turns_total": 0.0,
    "llm_failures_total": 0.0,
    "stt_connects_total": 0.0,
    "stt_reconnects_total": 0.0,
    "stt_failures_total": 0.0,
    "tts_utterances_total": 0.0,
    "tts_partial_flushes_total": 0.0,
    "feedback_generated_total": 0.0,
    "llm_latency_total_ms": 0.0,
    "llm_latency_samples": 0.0,
}


def increment_metric(name: str, amount: float = 1.0) -> None:
    key = str(name or "").strip()
    if not key:
        return
    with _lock:
        _metrics[key] = float(_metrics.get(key, 0.0)) + float(amount)


def decrement_metric(name: str, amount: float = 1.0) -> None:
    key = str(name or "").strip()
    if not key:
        return
    with _lock:
        next_value = float(_metrics.get(key, 0.0)) - float(amount)
        _metrics[key] = max(0.0, next_value)


def observe_llm_latency_ms(value_ms: float) -> None:
    latency = max(0.0, float(value_ms or 0.0))
    with _lock:
        _metrics["llm_latency_total_ms"] = float(_metrics.get("llm_latency_total_ms", 0.0)) + latency
        _metrics["llm_latency_samples"] = float(_metrics.get("llm_latency_samples", 0.0)) + 1.0


def record_ws_disconnect(reason: str) -> None:
    normalized = str(reason or "").strip().lower().replace(" ", "_").replace("-", "_")
    key_map = {
        "client_disconnect": "ws_disconnect_client_disconnect",
        "heartbeat_timeout": "ws_disconnect_heartbeat_timeout",
        "message_too_large": "ws_disconnect_message_too_large",
    }
    metric_key = key_map.get(normalized, "ws_disconnect_other")
    with _lock:
        _metrics["ws_disconnects_total"] = float(_metrics.get("ws_disconnects_total", 0.0)) + 1.0
        _metrics[metric_key] = float(_metrics.get(metric_key, 0.0)) + 1.0


def get_metrics_snapshot(extra: dict[str, Any] | None = None) -> dict[str, Any]:
    with _lock:
        data = dict(_metrics)

    latency_samples = max(1.0, float(data.get("llm_latency_samples") or 0.0))

    payload: dict[str, Any] = {
        "generated_at": time.time(),
        "avg_llm_latency_ms": round(float(data.get("llm_latency_total_ms") or 0.0) / latency_samples, 2),
    }
    for key, value in data.items():
        if key.startswith("llm_latency_"):
            payload[key] = float(value or 0.0) if key.endswith("_ms") else int(value or 0.0)
            continue
        payload[key] = int(value or 0.0)

    if extra:
        payload.update(extra)
    return payload
