# ==== OPENTELEMETRY TRACING CONFIGURATION ==== #

"""
OpenTelemetry tracing configuration for the onramp order engine.

This module provides distributed tracing setup with OTLP export and automatic
instrumentation for SQLAlchemy and the HTTPX clients used to reach pricing,
payment and merchant endpoints.
"""

import os
from typing import Any, Dict

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from onramp.observability.logging import get_logger


logger = get_logger(__name__)


# ==== TRACING INITIALIZATION ==== #

def init_tracing(service_name: str) -> None:
    """
    Initialize OpenTelemetry tracing with an OTLP exporter.
    
    Tracing stays a no-op when OTEL_EXPORTER_OTLP_ENDPOINT is not set so
    local runs and tests do not need a collector.
    
    Args:
        service_name (str): Name of the service for tracing identification
    """
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    headers = os.getenv("OTEL_EXPORTER_OTLP_HEADERS")
    
    if not endpoint:
        return
    
    resource_attrs = _parse_key_values(os.getenv("OTEL_RESOURCE_ATTRIBUTES", ""))
    resource_attrs["service.name"] = os.getenv("OTEL_SERVICE_NAME", service_name)
    
    provider = TracerProvider(resource=Resource.create(resource_attrs))
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=endpoint, headers=_parse_key_values(headers))
        )
    )
    trace.set_tracer_provider(provider)
    
    try:
        # FastAPI instrumentation is applied in main.py
        SQLAlchemyInstrumentor().instrument()
        HTTPXClientInstrumentor().instrument()
    except Exception as e:
        logger.warning("Failed to setup auto-instrumentation", error=str(e))


def _parse_key_values(raw: str | None) -> Dict[str, Any]:
    """Parse comma-separated key=value pairs from an environment variable.
    
    Args:
        raw: Comma-separated key=value pairs
        
    Returns:
        Dictionary of parsed pairs
    """
    pairs: Dict[str, Any] = {}
    if not raw:
        return pairs
        
    for part in filter(None, map(str.strip, raw.split(","))):
        if "=" in part:
            key, value = part.split("=", 1)
            pairs[key.strip()] = value.strip()
    
    return pairs


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer instance for the given module.
    
    Args:
        name: Module name (typically __name__)
        
    Returns:
        Tracer instance
    """
    return trace.get_tracer(name)
