"""OpenTelemetry tracing for the sync service.

One TracerProvider per process, exported over OTLP (gRPC) or to the
console. instrument_app() wires the HTTP layer, log records, the SQL
engine behind the job queue and, when enabled, the Redis event publisher.
"""

import logging
import threading
from collections.abc import Callable

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

EXPORTERS = ("console", "otlp", "none")
# Probes are polled by orchestrators; tracing them only adds noise.
UNTRACED_URLS = "/api/v1/health"


def build_exporter(exporter_type: str, otlp_endpoint: str | None = None) -> SpanExporter | None:
    """Span exporter for TELEMETRY_EXPORTER. None means spans are recorded but not exported.

    "otlp" without an endpoint, and unknown types, fall back to the console.
    """
    if exporter_type == "none":
        return None
    if exporter_type == "otlp" and otlp_endpoint:
        return OTLPSpanExporter(
            endpoint=otlp_endpoint, insecure=otlp_endpoint.startswith("http://")
        )
    if exporter_type != "console":
        logger.warning(
            "Telemetry exporter %r unusable (endpoint=%s); using console",
            exporter_type,
            otlp_endpoint,
        )
    return ConsoleSpanExporter()


class TelemetryConfig:
    """Process-wide tracing setup for the API and the sync worker."""

    def __init__(
        self,
        service_name: str,
        service_version: str,
        enabled: bool = True,
        environment: str = "development",
    ) -> None:
        self.service_name = service_name
        self.service_version = service_version
        self.enabled = enabled
        self.environment = environment
        self.tracer_provider: TracerProvider | None = None
        self.instrumented: list[str] = []

    def setup_telemetry(
        self,
        exporter_type: str = "console",
        otlp_endpoint: str | None = None,
        sample_rate: float = 1.0,
    ) -> TracerProvider | None:
        """Create the tracer provider and make it global.

        Returns None when telemetry is disabled or the SDK fails to start;
        the service keeps running untraced in that case.
        """
        if not self.enabled:
            logger.info("Telemetry disabled")
            return None
        try:
            provider = TracerProvider(
                resource=Resource(
                    attributes={
                        SERVICE_NAME: self.service_name,
                        SERVICE_VERSION: self.service_version,
                        "deployment.environment": self.environment,
                    }
                ),
                sampler=TraceIdRatioBased(sample_rate),
            )
            exporter = build_exporter(exporter_type, otlp_endpoint)
            if exporter is not None:
                provider.add_span_processor(BatchSpanProcessor(exporter))
            trace.set_tracer_provider(provider)
        except Exception as e:
            logger.exception("Failed to initialize telemetry: %s", e)
            return None
        self.tracer_provider = provider
        logger.info(
            "OpenTelemetry initialized: service=%s version=%s exporter=%s sample_rate=%s",
            self.service_name,
            self.service_version,
            exporter_type,
            sample_rate,
        )
        return provider

    def _instrument(self, name: str, install: Callable[[TracerProvider], None]) -> bool:
        """Run one instrumentor; failures are logged and leave the others in place."""
        if not self.enabled or self.tracer_provider is None:
            return False
        try:
            install(self.tracer_provider)
        except Exception as e:
            logger.exception("Failed to instrument %s: %s", name, e)
            return False
        self.instrumented.append(name)
        logger.info("%s instrumentation enabled", name)
        return True

    def instrument_app(
        self,
        app: FastAPI,
        engine: AsyncEngine | None = None,
        redis: bool = False,
    ) -> list[str]:
        """Instrument requests, log records and, when given, SQL and Redis.

        Returns the names of the instrumentations that were installed.
        """
        self._instrument(
            "FastAPI",
            lambda tp: FastAPIInstrumentor.instrument_app(
                app, tracer_provider=tp, excluded_urls=UNTRACED_URLS
            ),
        )
        self._instrument(
            "logging", lambda tp: LoggingInstrumentor().instrument(tracer_provider=tp)
        )
        if engine is not None:
            self._instrument(
                "SQLAlchemy",
                lambda tp: SQLAlchemyInstrumentor().instrument(
                    engine=engine.sync_engine, tracer_provider=tp
                ),
            )
        if redis:
            self._instrument(
                "Redis", lambda tp: RedisInstrumentor().instrument(tracer_provider=tp)
            )
        return list(self.instrumented)

    def shutdown(self) -> None:
        """Flush pending spans and stop the provider."""
        if self.tracer_provider is None:
            return
        try:
            self.tracer_provider.shutdown()
        except Exception as e:
            logger.exception("Error during telemetry shutdown: %s", e)


_telemetry: TelemetryConfig | None = None
_telemetry_lock = threading.RLock()


def get_telemetry() -> TelemetryConfig | None:
    """Return the process telemetry (set by the app lifespan)."""
    with _telemetry_lock:
        return _telemetry


def set_telemetry(telemetry: TelemetryConfig | None) -> None:
    global _telemetry
    with _telemetry_lock:
        _telemetry = telemetry
