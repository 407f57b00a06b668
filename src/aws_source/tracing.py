"""OpenTelemetry tracing and Sentry error reporting."""

from pathlib import Path
from typing import Optional
import logging
import socket

import sentry_sdk
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.extension.aws.resource.ec2 import AwsEc2ResourceDetector
from opentelemetry.sdk.resources import (
    OTELResourceDetector,
    ProcessResourceDetector,
    Resource,
    get_aggregated_resources,
)
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes

from . import __version__

logger = logging.getLogger(__name__)

SERVICE_NAME = "aws-source"
HONEYCOMB_ENDPOINT = "https://api.honeycomb.io/v1/traces"
HEALTH_CHECK_SAMPLE_RATE = 0.1

_tracer_provider: Optional[TracerProvider] = None
_health_tracer_provider: Optional[TracerProvider] = None


def tracing_resource() -> Resource:
    """Describe this process: service, host and process, plus EC2 when deployed."""
    detectors = [OTELResourceDetector(), ProcessResourceDetector()]

    # The EC2 detector waits on the metadata endpoint, which is slow outside
    # EC2, so skip it when running from a git checkout
    if not Path(".git").exists():
        detectors.append(AwsEc2ResourceDetector())

    local = Resource.create({
        ResourceAttributes.SERVICE_NAME: SERVICE_NAME,
        ResourceAttributes.SERVICE_VERSION: __version__,
        ResourceAttributes.HOST_NAME: socket.gethostname(),
    })

    return get_aggregated_resources(detectors, initial_resource=local)


def init_sentry(dsn: str, run_mode: str = "release") -> bool:
    """
    Initialize Sentry if a DSN is configured.

    Returns:
        True if Sentry was initialized, False otherwise
    """
    if not dsn:
        logger.debug("Sentry disabled, no DSN set")
        return False

    environment = "prod" if run_mode == "release" else "dev"
    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=f"{SERVICE_NAME}@{__version__}",
        attach_stacktrace=True,
        traces_sample_rate=1.0,
        send_default_pii=False,
    )
    logger.info(f"Sentry configured for environment {environment}")
    return True


def _exporter(honeycomb_api_key: str) -> OTLPSpanExporter:
    if honeycomb_api_key:
        return OTLPSpanExporter(
            endpoint=HONEYCOMB_ENDPOINT,
            headers={"x-honeycomb-team": honeycomb_api_key},
        )
    return OTLPSpanExporter()


def init_tracing(honeycomb_api_key: str = "", sentry_dsn: str = "", run_mode: str = "release"):
    """
    Set up the global tracer provider and a sampled one for health checks.

    Spans are exported over OTLP/HTTP, to Honeycomb when an API key is
    given, otherwise to wherever the OTEL_EXPORTER_OTLP_* variables point.
    """
    global _tracer_provider, _health_tracer_provider

    init_sentry(sentry_dsn, run_mode)

    if honeycomb_api_key:
        logger.info(f"Sending traces to {HONEYCOMB_ENDPOINT}")

    resource = tracing_resource()

    _tracer_provider = TracerProvider(resource=resource)
    _tracer_provider.add_span_processor(BatchSpanProcessor(_exporter(honeycomb_api_key)))

    _health_tracer_provider = TracerProvider(
        resource=resource,
        sampler=ParentBased(TraceIdRatioBased(HEALTH_CHECK_SAMPLE_RATE)),
    )
    _health_tracer_provider.add_span_processor(BatchSpanProcessor(_exporter(honeycomb_api_key)))

    trace.set_tracer_provider(_tracer_provider)


def health_check_tracer() -> trace.Tracer:
    """Tracer for health checks, sampled so they don't drown out real traffic."""
    if _health_tracer_provider is None:
        return trace.get_tracer(__name__)
    return _health_tracer_provider.get_tracer(__name__)


def shutdown_tracing():
    """Flush and stop both tracer providers, then flush Sentry."""
    global _tracer_provider, _health_tracer_provider

    for provider in (_tracer_provider, _health_tracer_provider):
        if provider is None:
            continue
        try:
            provider.shutdown()
        except Exception as e:
            logger.error(f"Error shutting down tracer provider: {e}")

    _tracer_provider = None
    _health_tracer_provider = None

    sentry_sdk.flush(timeout=2)
