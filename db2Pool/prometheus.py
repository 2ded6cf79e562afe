from prometheus_client import (
    start_http_server,
    Gauge,
    CollectorRegistry,
)
import logging
import socket

logger = logging.getLogger(__name__)

POOL_LABELS = ["pool"]


class CustomExporter:
    def __init__(self, port: int = 9877, host: str | None = None):
        """Initialize the Prometheus exporter for connection pool metrics.

        Parameters
        ----------
        port : int
            Port where the exporter will expose metrics.
        host : str, optional
            Network interface to bind the HTTP server to. If not provided,
            the exporter will bind to the current machine's hostname.
        """
        self.metric_dict: dict[str, Gauge] = {}
        self.port = port
        self.host = host or socket.gethostname()
        # Dedicated registry so several exporters (and tests) never collide.
        self.registry = CollectorRegistry()

        self.create_gauge(
            "db2_connection_status",
            "Indicates whether the DB2 database is reachable (1 = reachable, 0 = unreachable)",
            ["dbhost", "dbname"],
        )
        self.create_gauge(
            "db2pool_idle_connections",
            "Connections currently idle in the pool",
            POOL_LABELS,
        )
        self.create_gauge(
            "db2pool_checked_out_connections",
            "Connections currently held by callers",
            POOL_LABELS,
        )
        self.create_gauge(
            "db2pool_waiting_acquirers",
            "Callers blocked waiting for an idle connection",
            POOL_LABELS,
        )
        self.create_gauge(
            "db2pool_acquire_timeouts",
            "Number of acquire calls that timed out",
            POOL_LABELS,
        )

    def create_gauge(
        self,
        metric_name: str,
        metric_desc: str,
        metric_labels: list | None = None,
    ):
        """Create a new Prometheus gauge metric."""
        metric_labels = metric_labels or []
        try:
            if metric_labels:
                gauge = Gauge(
                    metric_name, metric_desc, metric_labels, registry=self.registry
                )
            else:
                gauge = Gauge(metric_name, metric_desc, registry=self.registry)
            self.metric_dict[metric_name] = gauge
            logger.info(f"[GAUGE] [{metric_name}] created")
        except ValueError as e:
            logger.warning(f"[GAUGE] [{metric_name}] already exists: {e}")
        except Exception as e:
            logger.error(f"[GAUGE] [{metric_name}] failed to create: {e}")

    def _child(self, metric_name: str, metric_labels: dict | None):
        gauge = self.metric_dict[metric_name]
        if metric_labels:
            return gauge.labels(**metric_labels)
        return gauge

    def set_gauge(self, metric_name: str, metric_value: float, metric_labels: dict | None = None):
        """
        Set the value of a Prometheus gauge metric.
        """
        metric_labels = metric_labels or {}
        try:
            self._child(metric_name, metric_labels).set(metric_value)
            labels_str = ', '.join(f'{key}: "{value}"' for key, value in metric_labels.items())
            logger.debug(f"[GAUGE] [{metric_name}{{{labels_str}}}] {metric_value}")
        except Exception as e:
            logger.error(f"[GAUGE] [{metric_name}] failed to update: {e}")

    def inc_gauge(self, metric_name: str, amount: float = 1, metric_labels: dict | None = None):
        """Increment a gauge, used for running totals such as timeouts."""
        try:
            self._child(metric_name, metric_labels).inc(amount)
        except Exception as e:
            logger.error(f"[GAUGE] [{metric_name}] failed to increment: {e}")

    def get_value(self, metric_name: str, metric_labels: dict | None = None) -> float | None:
        """Current value of a gauge, or ``None`` if it does not exist."""
        if metric_name not in self.metric_dict:
            return None
        return self.registry.get_sample_value(metric_name, metric_labels or {})

    def start(self):
        """Start the Prometheus HTTP server."""
        try:
            start_http_server(self.port, addr=self.host, registry=self.registry)
            logger.info(f"db2Pool metrics server started at {self.host}:{self.port}")
        except Exception as e:
            logger.fatal(
                f"Failed to start db2Pool metrics server at {self.host}:{self.port}: {e}"
            )
            raise e
