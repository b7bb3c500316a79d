"""Observability package: structured logging, tracing and Prometheus metrics."""
