"""HTTP health check for orchestration systems (Kubernetes, load balancers)."""

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from .engine import Engine
from .tracing import health_check_tracer

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080


def create_health_app(engine: Engine) -> FastAPI:
    """
    Build the health check app for an engine.

    GET /healthz returns 200 "ok" while the engine is connected to NATS,
    and 500 "NATS not connected" otherwise.
    """
    app = FastAPI(title="aws-source", docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/healthz", response_class=PlainTextResponse)
    async def healthz():
        with health_check_tracer().start_as_current_span("healthcheck") as span:
            connected = engine.is_nats_connected()
            span.set_attribute("om.health.natsConnected", connected)

        if connected:
            return PlainTextResponse("ok")

        logger.warning("Health check failed: NATS not connected")
        return PlainTextResponse("NATS not connected", status_code=500)

    return app


def create_health_server(engine: Engine, port: int = DEFAULT_PORT) -> uvicorn.Server:
    """uvicorn server for the health app, to be run inside the engine's event loop."""
    config = uvicorn.Config(
        create_health_app(engine),
        host="0.0.0.0",
        port=port,
        log_level="warning",
        access_log=False,
    )
    return uvicorn.Server(config)
