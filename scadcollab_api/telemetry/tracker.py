"""
Application Insights Telemetry Tracker

Exports custom events, metrics and exceptions to Azure Application Insights
through opencensus. Every event is also recorded by the development logger,
so the helpers here are safe to call when no connection string is configured.
"""

import logging
from typing import Any

from opencensus.ext.azure import metrics_exporter
from opencensus.ext.azure.log_exporter import AzureLogHandler
from opencensus.stats import aggregation as aggregation_module
from opencensus.stats import measure as measure_module
from opencensus.stats import stats as stats_module
from opencensus.stats import view as view_module
from opencensus.tags import tag_map as tag_map_module

from .config import get_telemetry_config
from .context import get_request_context
from .dev_logger import log_dev_event

logger = logging.getLogger(__name__)

_exporter_logger: logging.Logger | None = None
_metrics_exporter: metrics_exporter.MetricsExporter | None = None
_measures: dict[str, measure_module.MeasureFloat] = {}


def initialize_telemetry() -> logging.Logger | None:
    """
    Attach the Azure exporters. Call once at application startup.

    Returns:
        The exporting logger, or None when telemetry is disabled or no
        connection string is configured
    """
    global _exporter_logger, _metrics_exporter

    if _exporter_logger is not None:
        return _exporter_logger

    config = get_telemetry_config()
    if not config.enabled:
        logger.info("[Telemetry] Disabled by configuration")
        return None
    if not config.app_insights_connection_string:
        logger.warning("[Telemetry] No Application Insights connection string; exporting disabled")
        return None

    try:
        exporter_logger = logging.getLogger("scadcollab_telemetry")
        exporter_logger.setLevel(logging.INFO)
        exporter_logger.propagate = False

        handler = AzureLogHandler(connection_string=config.app_insights_connection_string)

        def add_context(envelope):
            envelope.data.baseData.properties.update(_stringify(get_request_context()))
            envelope.data.baseData.properties["app_id"] = config.app_id
            envelope.data.baseData.properties["environment"] = config.environment
            return True

        handler.add_telemetry_processor(add_context)
        exporter_logger.addHandler(handler)

        _metrics_exporter = metrics_exporter.new_metrics_exporter(
            connection_string=config.app_insights_connection_string
        )
        _exporter_logger = exporter_logger
        logger.info("[Telemetry] Application Insights initialized")
        return exporter_logger

    except Exception as e:
        logger.error(f"[Telemetry] Failed to initialize Application Insights: {e}")
        return None


def _stringify(properties: dict[str, Any]) -> dict[str, str]:
    limit = get_telemetry_config().max_property_length
    return {k: str(v)[:limit] for k, v in properties.items() if v is not None}


def _merge(properties: dict[str, Any] | None) -> dict[str, Any]:
    config = get_telemetry_config()
    return {
        **get_request_context(),
        "app_id": config.app_id,
        "environment": config.environment,
        **(properties or {}),
    }


def _record(name: str, properties: dict[str, Any]) -> None:
    if get_telemetry_config().enable_dev_logger:
        log_dev_event(name, properties)


def track_event(name: str, properties: dict[str, Any] | None = None) -> None:
    """
    Track a custom event.

    Request context (request_id, user_id, session_id) and the app identity
    are merged in; explicit properties win over context values.
    """
    merged = _merge(properties)
    _record(name, merged)
    if _exporter_logger:
        _exporter_logger.info(name, extra={"custom_dimensions": _stringify(merged)})


def track_metric(name: str, value: float, properties: dict[str, Any] | None = None) -> None:
    """Record a single measurement, e.g. generation latency or render attempts."""
    merged = _merge(properties)
    _record("metric", {"metric_name": name, "metric_value": value, **merged})

    if _metrics_exporter is None:
        return

    measure = _measures.get(name)
    if measure is None:
        measure = measure_module.MeasureFloat(name, name, "units")
        view = view_module.View(
            name, name, [], measure, aggregation_module.LastValueAggregation()
        )
        stats_module.stats.view_manager.register_view(view)
        _measures[name] = measure

    mmap = stats_module.stats.stats_recorder.new_measurement_map()
    tmap = tag_map_module.TagMap()
    for key, val in _stringify(merged).items():
        tmap.insert(key, val)
    mmap.measure_float_put(measure, value)
    mmap.record(tmap)


def track_exception(
    exception: BaseException, properties: dict[str, Any] | None = None, level: str = "ERROR"
) -> None:
    """Track an exception with its type and message as properties."""
    merged = _merge(
        {
            "error_type": type(exception).__name__,
            "error_message": str(exception),
            **(properties or {}),
        }
    )
    _record("exception", merged)
    if _exporter_logger:
        _exporter_logger.log(
            getattr(logging, level.upper(), logging.ERROR),
            f"Exception: {type(exception).__name__}",
            exc_info=exception,
            extra={"custom_dimensions": _stringify(merged)},
        )


def flush_telemetry() -> None:
    """Flush pending exports, used during shutdown."""
    if _exporter_logger:
        for handler in _exporter_logger.handlers:
            handler.flush()
