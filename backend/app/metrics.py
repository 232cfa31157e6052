from __future__ import annotations

from prometheus_client import Counter, Histogram

tryon_requests = Counter("tryon_requests_total", "Try-on requests by outcome", ["outcome"])
tryon_poll_attempts = Counter("tryon_poll_attempts_total", "Vendor query calls issued")
tryon_latency = Histogram(
    "tryon_request_seconds",
    "End-to-end try-on latency",
    buckets=(1, 5, 10, 15, 20, 30, 45, 60, 120),
)
analysis_requests = Counter("tryon_analysis_requests_total", "Matching analysis requests by outcome", ["outcome"])
