#!/usr/bin/env python3
"""
Spool Observability
===================
Process-wide encode counters: segments written, rows, bytes out, errors,
per-encoding usage and a rolling latency window.
"""

import json
import threading
import time
from collections import deque


class SpoolObservability:
    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        with cls._lock:
            if cls._instance is None:
                cls._instance = super(SpoolObservability, cls).__new__(cls)
                cls._instance._init_metrics()
        return cls._instance

    def _init_metrics(self):
        self.start_time = time.time()
        self.metrics = {
            "ops_total": 0,
            "rows_total": 0,
            "bytes_out": 0,
            "errors": 0,
            "latency_ms": deque(maxlen=1000),
            "encoding_usage": {},
        }

    def track_encode(self, encoding: str, rows: int, bytes_out: int, duration_ms: float, success: bool = True):
        with self._lock:
            self.metrics["ops_total"] += 1
            self.metrics["latency_ms"].append(duration_ms)
            if success:
                self.metrics["rows_total"] += rows
                self.metrics["bytes_out"] += bytes_out
            else:
                self.metrics["errors"] += 1

            usage = self.metrics["encoding_usage"].setdefault(encoding, {"ops": 0, "rows": 0, "bytes_out": 0})
            usage["ops"] += 1
            if success:
                usage["rows"] += rows
                usage["bytes_out"] += bytes_out

    def snapshot(self) -> dict:
        with self._lock:
            latencies = self.metrics["latency_ms"]
            ops = self.metrics["ops_total"]
            return {
                "uptime_sec": int(time.time() - self.start_time),
                "ops_total": ops,
                "rows_total": self.metrics["rows_total"],
                "bytes_out": self.metrics["bytes_out"],
                "errors": self.metrics["errors"],
                "error_rate": round(self.metrics["errors"] / max(1, ops), 4),
                "avg_latency_ms": round(sum(latencies) / max(1, len(latencies)), 3),
                "avg_bytes_per_row": round(self.metrics["bytes_out"] / max(1, self.metrics["rows_total"]), 2),
                "encodings": {k: dict(v) for k, v in self.metrics["encoding_usage"].items()},
            }

    def reset(self):
        with self._lock:
            self._init_metrics()

    def dump_telemetry(self, file_path: str = "spool_telemetry_v1.json"):
        with open(file_path, "w") as f:
            json.dump(self.snapshot(), f, indent=4)


# Global singleton access
Telemetry = SpoolObservability()
