"""
OpenTelemetry 初始化

不设置全局 TracerProvider/MeterProvider：由进程管理器构造 Telemetry 句柄，
显式传给需要的组件，并在退出路径上统一 flush/shutdown。
"""
from __future__ import annotations

from typing import Dict, List

from opentelemetry import metrics, trace
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from core.config import TelemetrySettings
from core.logging_config import get_logger


logger = get_logger(__name__)

TRACES_PATH = "/api/2.0/otel/v1/traces"
METRICS_PATH = "/api/2.0/otel/v1/metrics"

# 网关 -> RPC 之间通过调用元数据传递 traceparent/tracestate 与 baggage
PROPAGATOR = CompositePropagator([TraceContextTextMapPropagator(), W3CBaggagePropagator()])


class Telemetry:
    """Tracer/Meter provider 句柄"""

    def __init__(
        self,
        tracer_provider: TracerProvider,
        meter_provider: MeterProvider,
        *,
        shutdown_timeout: float = 30.0,
    ) -> None:
        self.tracer_provider = tracer_provider
        self.meter_provider = meter_provider
        self.shutdown_timeout = shutdown_timeout

    def tracer(self, name: str) -> trace.Tracer:
        return self.tracer_provider.get_tracer(name)

    def meter(self, name: str) -> metrics.Meter:
        return self.meter_provider.get_meter(name)

    def shutdown(self) -> bool:
        """flush 并关闭两个 provider；返回是否在超时内全部 flush 成功。

        阻塞调用，异步上下文中应放入线程执行。
        """
        timeout_millis = int(self.shutdown_timeout * 1000)
        flushed = self.tracer_provider.force_flush(timeout_millis)
        flushed = self.meter_provider.force_flush(timeout_millis) and flushed
        self.tracer_provider.shutdown()
        self.meter_provider.shutdown(timeout_millis=timeout_millis)
        return bool(flushed)


def normalize_workspace_url(workspace_url: str) -> str:
    """去掉协议前缀与末尾斜杠，只保留 host[:port][/path]"""
    url = workspace_url.strip()
    for prefix in ("https://", "http://"):
        if url.startswith(prefix):
            url = url[len(prefix):]
            break
    return url.rstrip("/")


def build_endpoint(workspace_url: str, path: str) -> str:
    return f"https://{normalize_workspace_url(workspace_url)}{path}"


def _exporter_headers(token: str, table_name: str) -> Dict[str, str]:
    return {
        "content-type": "application/x-protobuf",
        "X-Databricks-UC-Table-Name": table_name,
        "Authorization": f"Bearer {token}",
    }


def _missing(config: TelemetrySettings, table_attr: str, table_var: str) -> List[str]:
    missing = []
    if not config.workspace_url:
        missing.append("DATABRICKS_WORKSPACE_URL")
    if not config.token:
        missing.append("DATABRICKS_TOKEN")
    if not getattr(config, table_attr):
        missing.append(table_var)
    return missing


def create_resource(config: TelemetrySettings) -> Resource:
    # Resource.create 会合并 OTEL_RESOURCE_ATTRIBUTES / OTEL_SERVICE_NAME
    return Resource.create({
        SERVICE_NAME: config.service_name,
        SERVICE_VERSION: config.service_version,
    })


def init_telemetry(config: TelemetrySettings) -> Telemetry:
    """构造 tracer/meter provider。

    未配置导出目标时仍返回可用的 provider（span/指标照常产生，只是不导出），应用继续运行。
    """
    resource = create_resource(config)

    tracer_provider = TracerProvider(resource=resource)
    missing = _missing(config, "uc_table_name", "DATABRICKS_UC_TABLE_NAME")
    if missing:
        logger.warning(
            "otel_trace_exporter_not_configured",
            missing_vars=", ".join(missing),
            message="Application will continue without trace export",
        )
    else:
        endpoint = build_endpoint(config.workspace_url, TRACES_PATH)
        exporter = OTLPSpanExporter(
            endpoint=endpoint,
            headers=_exporter_headers(config.token, config.uc_table_name),
        )
        tracer_provider.add_span_processor(BatchSpanProcessor(exporter))
        logger.info("otel_trace_exporter_configured", endpoint=endpoint)

    readers: List[MetricReader] = []
    missing = _missing(config, "uc_metrics_table_name", "DATABRICKS_UC_METRICS_TABLE_NAME")
    if missing:
        logger.warning(
            "otel_metrics_exporter_not_configured",
            missing_vars=", ".join(missing),
            message="Application will continue without metrics export",
        )
    else:
        metric_exporter = OTLPMetricExporter(
            endpoint=build_endpoint(config.workspace_url, METRICS_PATH),
            headers=_exporter_headers(config.token, config.uc_metrics_table_name),
        )
        readers.append(PeriodicExportingMetricReader(metric_exporter))
        logger.info("otel_metrics_exporter_configured")

    meter_provider = MeterProvider(resource=resource, metric_readers=readers)
    return Telemetry(tracer_provider, meter_provider, shutdown_timeout=config.shutdown_timeout)


def noop_telemetry() -> Telemetry:
    """不导出任何数据的句柄，测试与离线脚本使用"""
    return Telemetry(TracerProvider(), MeterProvider(), shutdown_timeout=1.0)
