"""Prometheus exporter helpers."""

from __future__ import annotations

from prometheus_client import Counter, Histogram


normalizations_total = Counter(
    "image_normalizations_total",
    "Total number of image normalisation calls by outcome.",
    ["outcome"],
)

encode_attempts_total = Counter(
    "image_encode_attempts_total",
    "Total number of encoder invocations by stage.",
    ["stage"],
)

output_size_bytes = Histogram(
    "image_normalized_size_bytes",
    "Size of normalised images in bytes.",
    buckets=(64 * 1024, 256 * 1024, 512 * 1024, 1024 * 1024, 2 * 1024 * 1024, 5 * 1024 * 1024),
)
