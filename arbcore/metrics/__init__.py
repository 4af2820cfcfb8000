from arbcore.metrics.exporter import LATENCY_BUCKETS_MS, MetricsExporter

__all__ = ["LATENCY_BUCKETS_MS", "MetricsExporter"]
