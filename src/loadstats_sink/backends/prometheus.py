"""Prometheus backend serving the latest gauge values on a scrape endpoint."""

from __future__ import annotations

import logging
import re
import threading
from socketserver import ThreadingMixIn
from typing import Any, Callable, Dict, List, Optional, Tuple
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

import prometheus_client

from ..configuration_error import ConfigurationError
from ..export_error import ExportError
from .base import MetricsBackend

__all__ = ["PrometheusBackend", "sanitize_metric_name"]

logger = logging.getLogger(__name__)

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_:]")
_INVALID_LABEL_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def sanitize_metric_name(name: str) -> str:
    """Map a dotted metric name such as ``ok.latency.p50`` to the Prometheus charset."""
    cleaned = _INVALID_NAME_CHARS.sub("_", name)
    if not cleaned or cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    return cleaned


def _sanitize_label_name(name: str) -> str:
    cleaned = _INVALID_LABEL_CHARS.sub("_", name)
    if not cleaned or cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    return cleaned


class _ScrapeHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("Prometheus scrape: " + format, *args)


class _ScrapeServer(ThreadingMixIn, WSGIServer):
    """Serve each scrape on its own daemon thread."""

    daemon_threads = True
    allow_reuse_address = True

    def handle_error(self, request: Any, client_address: Any) -> None:
        logger.exception("Prometheus scrape from %s failed", client_address)


class PrometheusBackend(MetricsBackend):
    """Expose flushed gauges through a Prometheus scrape endpoint."""

    def __init__(
        self,
        name: str = "prometheus",
        endpoint: str = "/metrics",
        port: int = 9464,
        host: str = "0.0.0.0",
        registry: Optional[prometheus_client.CollectorRegistry] = None,
    ) -> None:
        """Create the backend; the HTTP server starts in :meth:`initialize`."""
        super().__init__(name=name)

        if port < 0:
            raise ConfigurationError("port must not be negative")

        self.endpoint = self._normalise_endpoint(endpoint)
        self.host = host
        self.port = port
        self.registry = registry
        self.gauges: Dict[Tuple[str, Tuple[str, ...]], prometheus_client.Gauge] = {}
        self._server: Optional[_ScrapeServer] = None
        self._server_thread: Optional[threading.Thread] = None

        logger.info("Created Prometheus backend on %s:%s at %s", host, port, self.endpoint)

    def initialize(self) -> None:
        """Start the scrape server on a daemon thread."""
        if self._initialized:
            return
        try:
            if self.registry is None:
                self.registry = prometheus_client.CollectorRegistry()
            application = prometheus_client.make_wsgi_app(self.registry)
            wrapped_application = self._wrap_app_with_endpoint(application, self.endpoint)

            self._server = make_server(
                self.host,
                self.port,
                wrapped_application,
                server_class=_ScrapeServer,
                handler_class=_ScrapeHandler,
            )
            self.port = self._server.server_port
            self._server_thread = threading.Thread(
                target=self._server.serve_forever,
                name=f"{self.name}-prometheus-server",
                daemon=True,
            )
            self._server_thread.start()
            logger.info(
                "Started Prometheus HTTP server on %s:%s at %s",
                self.host,
                self.port,
                self.endpoint,
            )
            self._initialized = True
        except Exception as exc:
            logger.error("Failed to initialise Prometheus backend: %s", exc)
            raise ConfigurationError(f"Failed to initialise Prometheus backend: {exc}") from exc

    def _get_or_create_gauge(
        self,
        name: str,
        tags: Dict[str, str],
        unit: Optional[str],
    ) -> Tuple[prometheus_client.Gauge, Tuple[str, ...]]:
        """Return the gauge for ``name`` and the label values in its label order."""
        if self.registry is None:
            raise ExportError("Prometheus registry has not been initialised")

        labels = {_sanitize_label_name(key): str(value) for key, value in tags.items()}
        label_names = tuple(sorted(labels))
        metric_name = sanitize_metric_name(name)
        key = (metric_name, label_names)

        gauge = self.gauges.get(key)
        if gauge is None:
            documentation = f"{name} gauge" + (f" ({unit})" if unit else "")
            gauge = prometheus_client.Gauge(
                metric_name,
                documentation,
                label_names,
                registry=self.registry,
            )
            self.gauges[key] = gauge

        label_values = tuple(labels[label] for label in label_names)
        return gauge, label_values

    def _export_batch(self, samples: List[Dict[str, Any]]) -> None:
        """Set every gauge in the batch to its sampled value."""
        try:
            for sample in samples:
                gauge, label_values = self._get_or_create_gauge(
                    sample["name"], sample["tags"], sample["unit"]
                )
                if label_values:
                    gauge.labels(*label_values).set(sample["value"])
                else:
                    gauge.set(sample["value"])
            logger.debug("Exported %s samples to Prometheus", len(samples))
        except Exception as exc:
            logger.error("Failed to export metrics to Prometheus: %s", exc)
            raise ExportError(f"Failed to export metrics to Prometheus: {exc}") from exc

    def close(self) -> None:
        """Stop the HTTP server after the final flush."""
        try:
            super().close()
        finally:
            if self._server is not None:
                self._server.shutdown()
                self._server.server_close()
                if self._server_thread is not None and self._server_thread.is_alive():
                    self._server_thread.join(timeout=1.0)
            self._server = None
            self._server_thread = None

    @staticmethod
    def _normalise_endpoint(endpoint: str) -> str:
        """Return a scrape endpoint that always begins with ``/``."""
        if not endpoint:
            return "/metrics"

        cleaned = endpoint.strip() or "/metrics"
        if not cleaned.startswith("/"):
            cleaned = f"/{cleaned}"
        return cleaned

    @staticmethod
    def _wrap_app_with_endpoint(
        application: Callable[[dict[str, Any], Callable[..., Any]], Any],
        endpoint: str,
    ) -> Callable[[dict[str, Any], Callable[..., Any]], Any]:
        """Serve ``application`` only on ``endpoint`` and 404 everything else."""
        if endpoint in {"/", ""}:
            return application

        def _wrapped(environ: dict[str, Any], start_response: Callable[..., Any]) -> Any:
            if environ.get("PATH_INFO", "") == endpoint:
                environ = dict(environ)
                environ["PATH_INFO"] = "/"
                return application(environ, start_response)

            start_response(
                "404 Not Found",
                [("Content-Type", "text/plain; charset=utf-8")],
            )
            return [b"Not Found"]

        return _wrapped
