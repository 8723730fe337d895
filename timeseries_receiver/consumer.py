"""Downstream consumers that receive the metrics decoded from each request."""

import logging

from influxdb_client import InfluxDBClient, Point
from influxdb_client.client.write_api import SYNCHRONOUS

from timeseries_receiver.config import ReceiverConfig
from timeseries_receiver.metrics import MetricsContainer

logger = logging.getLogger(__name__)


class MetricsConsumer:
    """Interface for anything the receiver hands a MetricsContainer to."""

    def consume_metrics(self, metrics: MetricsContainer) -> None:
        raise NotImplementedError

    def health(self) -> str:
        return "unknown"


def container_to_points(metrics: MetricsContainer):
    """One InfluxDB point per data point: measurement = metric name, tags = labels."""
    points = []
    for series in metrics.series:
        for dp in series.data_points:
            point = Point(series.name).field("value", dp.value).time(dp.timestamp)
            for key, value in dp.attributes.items():
                point.tag(key, value)
            points.append(point)
    return points


class InfluxDBConsumer(MetricsConsumer):
    """
    Writes metrics synchronously to InfluxDB 1.8+ through the v2 client.

    Write errors are not retried; they propagate to the caller.
    """

    def __init__(self, url, token, bucket, org="prometheus", client=None):
        # The org parameter is required but not used for 1.8
        self.client = client or InfluxDBClient(url=url, token=token, org=org)
        self.bucket = bucket
        self.write_api = self.client.write_api(write_options=SYNCHRONOUS)

    @classmethod
    def from_config(cls, config: ReceiverConfig):
        return cls(
            url=config.influxdb_url,
            token=config.influxdb_token,
            bucket=config.influxdb_bucket,
        )

    def consume_metrics(self, metrics: MetricsContainer) -> None:
        points = container_to_points(metrics)
        if not points:
            return
        self.write_api.write(bucket=self.bucket, org='-', record=points)
        logger.debug(f"Written {len(points)} points to {self.bucket}")

    def health(self) -> str:
        try:
            if self.client.health().status == "pass":
                return "healthy"
            logger.error("Health check: InfluxDB client connection failed")
            return "unhealthy"
        except Exception as e:
            logger.error(f"Health check: InfluxDB connection error - {e}")
            return f"error: {e}"
