"""Tests for tracing and Sentry setup."""

from unittest.mock import patch

import pytest
from opentelemetry.sdk.resources import Resource

from aws_source import tracing


@pytest.fixture
def no_export():
    with patch('aws_source.tracing.OTLPSpanExporter') as exporter, \
            patch('aws_source.tracing.tracing_resource', return_value=Resource.create({})), \
            patch('aws_source.tracing.trace.set_tracer_provider') as set_provider, \
            patch('aws_source.tracing.sentry_sdk') as sentry:
        yield exporter, set_provider, sentry
        tracing.shutdown_tracing()


def test_init_sentry_without_dsn():
    with patch('aws_source.tracing.sentry_sdk.init') as init:
        assert tracing.init_sentry('') is False

    init.assert_not_called()


@pytest.mark.parametrize("run_mode,environment", [("release", "prod"), ("debug", "dev"), ("test", "dev")])
def test_init_sentry_environment(run_mode, environment):
    with patch('aws_source.tracing.sentry_sdk.init') as init:
        assert tracing.init_sentry('https://key@sentry.example.com/1', run_mode) is True

    assert init.call_args.kwargs['environment'] == environment
    assert init.call_args.kwargs['dsn'] == 'https://key@sentry.example.com/1'


def test_init_tracing_with_honeycomb(no_export):
    exporter, set_provider, _ = no_export

    tracing.init_tracing(honeycomb_api_key='hc-key')

    # One exporter per provider
    assert exporter.call_count == 2
    for c in exporter.call_args_list:
        assert c.kwargs['endpoint'] == tracing.HONEYCOMB_ENDPOINT
        assert c.kwargs['headers'] == {'x-honeycomb-team': 'hc-key'}
    set_provider.assert_called_once()


def test_init_tracing_defaults_to_otel_env(no_export):
    exporter, _, _ = no_export

    tracing.init_tracing()

    for c in exporter.call_args_list:
        assert c.kwargs == {}


def test_health_check_tracer_is_sampled(no_export):
    tracing.init_tracing()

    sampler = tracing._health_tracer_provider.sampler
    assert str(tracing.HEALTH_CHECK_SAMPLE_RATE) in sampler.get_description()
    assert tracing.health_check_tracer() is not None


def test_shutdown_tracing_resets_providers(no_export):
    _, _, sentry = no_export
    tracing.init_tracing()

    tracing.shutdown_tracing()

    assert tracing._tracer_provider is None
    assert tracing._health_tracer_provider is None
    sentry.flush.assert_called_with(timeout=2)


def test_tracing_resource_names_the_service():
    with patch('aws_source.tracing.get_aggregated_resources') as aggregate:
        tracing.tracing_resource()

    local = aggregate.call_args.kwargs['initial_resource']
    assert local.attributes['service.name'] == tracing.SERVICE_NAME
