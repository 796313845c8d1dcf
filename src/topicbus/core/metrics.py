from __future__ import annotations

import logging
import threading
import time
from collections import deque
from statistics import mean
from typing import Any, Deque, Dict, List, Optional, Tuple

LabelKey = Tuple[Tuple[str, str], ...]  # sorted (k, v) pairs
MetricKey = Tuple[str, LabelKey]


def _labels_key(labels: Dict[str, Any] | None) -> LabelKey:
    if not labels:
        return tuple()
    return tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def _pct(sorted_vals: List[float], q: float) -> float:
    if not sorted_vals:
        return 0.0
    idx = max(0, min(len(sorted_vals) - 1, int(round((len(sorted_vals) - 1) * q))))
    return sorted_vals[idx]


def _summary(vals: List[float]) -> Dict[str, float]:
    if not vals:
        return {"count": 0.0, "min": 0.0, "max": 0.0, "mean": 0.0, "p50": 0.0, "p99": 0.0}
    s = sorted(vals)
    return {
        "count": float(len(s)),
        "min": s[0],
        "max": s[-1],
        "mean": mean(s),
        "p50": _pct(s, 0.50),
        "p99": _pct(s, 0.99),
    }


class MetricsRegistry:
    """Counters, gauges and bounded histograms keyed by (name, labels)."""

    def __init__(self, hist_maxlen: int = 1024) -> None:
        self._lock = threading.RLock()
        self._hist_maxlen = int(hist_maxlen)
        self._counters: Dict[MetricKey, float] = {}
        self._gauges: Dict[MetricKey, float] = {}
        self._hists: Dict[MetricKey, Deque[float]] = {}

    def inc(self, name: str, n: float = 1.0, labels: Dict[str, Any] | None = None) -> None:
        key = (name, _labels_key(labels))
        with self._lock:
            self._counters[key] = self._counters.get(key, 0.0) + n

    def set(self, name: str, v: float, labels: Dict[str, Any] | None = None) -> None:
        with self._lock:
            self._gauges[(name, _labels_key(labels))] = float(v)

    def observe(self, name: str, v: float, labels: Dict[str, Any] | None = None) -> None:
        key = (name, _labels_key(labels))
        with self._lock:
            hist = self._hists.get(key)
            if hist is None:
                hist = self._hists[key] = deque(maxlen=self._hist_maxlen)
            hist.append(float(v))

    def counter_value(self, name: str, **labels: Any) -> float:
        with self._lock:
            return self._counters.get((name, _labels_key(labels)), 0.0)

    def gauge_value(self, name: str, **labels: Any) -> Optional[float]:
        with self._lock:
            return self._gauges.get((name, _labels_key(labels)))

    def snapshot(self) -> dict:
        with self._lock:
            counters = list(self._counters.items())
            gauges = list(self._gauges.items())
            hists = [(k, list(v)) for k, v in self._hists.items()]
        return {
            "counters": [{"name": n, "labels": dict(l), "value": v} for (n, l), v in counters],
            "gauges": [{"name": n, "labels": dict(l), "value": v} for (n, l), v in gauges],
            "hists": [{"name": n, "labels": dict(l), **_summary(v)} for (n, l), v in hists],
        }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._hists.clear()


REGISTRY = MetricsRegistry()


# ---------------- Public API (default registry) ----------------

def inc(name: str, n: float = 1.0, **labels: Any) -> None:
    REGISTRY.inc(name, n, labels)


def gauge_set(name: str, v: float, **labels: Any) -> None:
    REGISTRY.set(name, v, labels)


def observe_hist(name: str, v: float, **labels: Any) -> None:
    REGISTRY.observe(name, v, labels)


def snapshot() -> dict:
    return REGISTRY.snapshot()


def reset() -> None:
    REGISTRY.reset()


def emit(logger: Optional[logging.Logger] = None, json_mode: bool = False) -> None:
    """Write the current snapshot to ``logger``, one line per metric."""
    lg = logger or logging.getLogger("topicbus.metrics")
    snap = snapshot()
    if json_mode:
        for kind in ("counters", "gauges", "hists"):
            for m in snap[kind]:
                lg.info({"type": kind[:-1], **m})
        return
    for m in snap["counters"]:
        lg.info(f"[ctr] {m['name']} {m['labels']} value={m['value']:.0f}")
    for m in snap["gauges"]:
        lg.info(f"[gauge] {m['name']} {m['labels']} value={m['value']:.3f}")
    for m in snap["hists"]:
        lg.info(
            f"[hist] {m['name']} {m['labels']} n={int(m['count'])} "
            f"min={m['min']:.3f} p50={m['p50']:.3f} p99={m['p99']:.3f} max={m['max']:.3f}"
        )


class Timer:
    """Context manager: elapsed milliseconds into a histogram."""
    def __init__(self, hist_name: str, **labels: Any) -> None:
        self.hist_name = hist_name
        self.labels = labels
        self._t0 = 0.0

    def __enter__(self):
        self._t0 = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        observe_hist(self.hist_name, (time.perf_counter() - self._t0) * 1000.0, **self.labels)
        return False
