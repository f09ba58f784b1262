"""Synthetic health checks for Kubernetes clusters, with Prometheus and InfluxDB export."""

__version__ = "2.0.0"