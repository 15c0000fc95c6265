"""Scan and git telemetry through OpenTelemetry, with a Prometheus fallback.

Both backends are optional. When neither is configured every helper here is a
no-op, so the scanner and git layer can record unconditionally.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

from fastapi import FastAPI

from codemanage import config

logger = logging.getLogger("codemanage.observability")

# name -> (kind, unit, description, labelled)
_METRICS: dict[str, tuple[str, str, str, bool]] = {
    "codemanage_scans_total": ("counter", "1", "Full project tree scans by result", True),
    "codemanage_scan_latency_ms": ("histogram", "ms", "Wall-clock duration of project tree scans", True),
    "codemanage_scan_projects": ("gauge", "1", "Projects found by the latest successful scan", False),
    "codemanage_git_commands_total": ("counter", "1", "Git subprocess invocations by result", True),
    "codemanage_git_latency_ms": ("histogram", "ms", "Git subprocess durations", True),
}


@dataclass
class _Telemetry:
    initialized: bool = False
    tracer: Any = None
    trace_provider: Any = None
    meter_provider: Any = None
    instrumentor: Any = None
    otel: dict[str, Any] = field(default_factory=dict)
    prom: dict[str, Any] = field(default_factory=dict)

    @property
    def otel_enabled(self) -> bool:
        return bool(self.otel)


_state = _Telemetry()


def _signal_endpoint(base_endpoint: str, signal_path: str) -> str:
    """Append ``/v1/traces`` or ``/v1/metrics`` to a collector base URL."""
    base = (base_endpoint or "").strip().rstrip("/")
    if not base or base.endswith(signal_path):
        return base
    if base.endswith("/v1"):
        base = base[: -len("/v1")]
    return base + signal_path


def _start_prometheus() -> None:
    try:
        from prometheus_client import Counter, Gauge, Histogram, start_http_server
    except ImportError as exc:
        logger.warning("prometheus_client unavailable, metrics endpoint disabled: %s", exc)
        return

    factories = {"counter": Counter, "histogram": Histogram, "gauge": Gauge}
    try:
        start_http_server(config.PROM_PORT)
        for name, (kind, _unit, description, labelled) in _METRICS.items():
            labels = ["result"] if labelled else []
            _state.prom[name] = factories[kind](name, description, labels)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Prometheus metrics endpoint not started: %s", exc)
        _state.prom.clear()
        return
    logger.info("Prometheus metrics on port %s", config.PROM_PORT)


def _start_otel(app: FastAPI | None) -> None:
    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry packages unavailable, tracing disabled: %s", exc)
        return

    service_name = config.OTEL_SERVICE_NAME or "code-manage"
    resource = Resource.create({"service.name": service_name})

    traces_endpoint = _signal_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=traces_endpoint or None)))
    trace.set_tracer_provider(trace_provider)

    metrics_endpoint = _signal_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    reader = PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=metrics_endpoint or None))
    meter_provider = MeterProvider(resource=resource, metric_readers=[reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("codemanage")

    for name, (kind, unit, description, _labelled) in _METRICS.items():
        # OTel has no synchronous gauge on older SDKs; project counts go in a histogram
        create = meter.create_counter if kind == "counter" else meter.create_histogram
        _state.otel[name] = create(name, unit=unit, description=description)

    _state.trace_provider = trace_provider
    _state.meter_provider = meter_provider
    _state.tracer = trace.get_tracer("codemanage")
    _state.instrumentor = FastAPIInstrumentor()
    if app is not None:
        _state.instrumentor.instrument_app(app)
    logger.info("OpenTelemetry exporting to %s as %s", config.OTEL_ENDPOINT, service_name)


def initialize(app: FastAPI | None = None) -> None:
    """Start the configured telemetry backends once per process."""
    if _state.initialized:
        if app is not None and _state.instrumentor is not None:
            _state.instrumentor.instrument_app(app)
        return
    _state.initialized = True

    if config.PROM_PORT > 0:
        _start_prometheus()
    if config.OTEL_ENABLED:
        _start_otel(app)
    else:
        logger.info("OpenTelemetry disabled (CODE_MANAGE_OTEL_ENABLED is not set)")


def shutdown(app: FastAPI | None = None) -> None:
    if not _state.initialized:
        return
    if app is not None and _state.instrumentor is not None:
        try:
            _state.instrumentor.uninstrument_app(app)
        except Exception:
            logger.debug("FastAPI uninstrumentation failed", exc_info=True)
    for provider in (_state.meter_provider, _state.trace_provider):
        if provider is None:
            continue
        try:
            provider.shutdown()
        except Exception:
            logger.debug("Telemetry provider shutdown failed", exc_info=True)
    _state.otel.clear()
    _state.tracer = None


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None) -> Iterator[Any]:
    if _state.tracer is None:
        yield None
        return
    with _state.tracer.start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        yield span


def _record(name: str, value: float, result: str | None) -> None:
    labels = {"result": result or "unknown"} if result is not None else {}
    kind = _METRICS[name][0]

    instrument = _state.otel.get(name)
    if instrument is not None:
        if kind == "counter":
            instrument.add(value, labels)
        else:
            instrument.record(value, labels)

    prom_metric = _state.prom.get(name)
    if prom_metric is not None:
        target = prom_metric.labels(**labels) if labels else prom_metric
        if kind == "counter":
            target.inc(value)
        elif kind == "gauge":
            target.set(value)
        else:
            target.observe(value)


def record_scan(result: str, duration_ms: float, *, project_count: int = 0) -> None:
    _record("codemanage_scans_total", 1, result)
    _record("codemanage_scan_latency_ms", max(0.0, float(duration_ms)), result)
    if result == "success":
        _record("codemanage_scan_projects", max(0, int(project_count)), None)


def record_git_command(result: str, duration_ms: float) -> None:
    _record("codemanage_git_commands_total", 1, result)
    _record("codemanage_git_latency_ms", max(0.0, float(duration_ms)), result)
