"""Test del consumer InfluxDB con un client finto."""

from datetime import datetime, timezone
from unittest import mock

import pytest

from timeseries_receiver.consumer import InfluxDBConsumer, container_to_points
from timeseries_receiver.decoder import DecodedSample
from timeseries_receiver.metrics import assemble_metrics

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def influx_client():
    return mock.MagicMock()


@pytest.fixture
def influx_consumer(influx_client):
    return InfluxDBConsumer(url="http://influx:8086", token="admin:admin",
                            bucket="prometheus_metrics/autogen", client=influx_client)


def _metrics():
    return assemble_metrics([
        DecodedSample(name="cpu", labels={"host": "a"}, timestamp=T0, value=1.0),
        DecodedSample(name="mem", labels={}, timestamp=T0, value=2.0),
        DecodedSample(name="cpu", labels={"host": "b"}, timestamp=T0, value=3.0),
    ])


def test_container_to_points():
    lines = [p.to_line_protocol() for p in container_to_points(_metrics())]
    ns = int(T0.timestamp()) * 10 ** 9
    assert lines == [
        f"cpu,host=a value=1 {ns}",
        f"cpu,host=b value=3 {ns}",
        f"mem value=2 {ns}",
    ]


def test_every_label_becomes_a_tag():
    metrics = assemble_metrics([
        DecodedSample(name="disk", labels={"host": "a", "device": "sda"}, timestamp=T0, value=0.5),
    ])
    point = container_to_points(metrics)[0]
    assert point.to_line_protocol().startswith("disk,device=sda,host=a value=0.5 ")


def test_consume_metrics_writes_points(influx_consumer, influx_client):
    influx_consumer.consume_metrics(_metrics())

    write_api = influx_client.write_api.return_value
    write_api.write.assert_called_once()
    kwargs = write_api.write.call_args.kwargs
    assert kwargs['bucket'] == "prometheus_metrics/autogen"
    assert len(kwargs['record']) == 3


def test_empty_container_is_not_written(influx_consumer, influx_client):
    influx_consumer.consume_metrics(assemble_metrics([]))
    influx_client.write_api.return_value.write.assert_not_called()


def test_write_errors_propagate(influx_consumer, influx_client):
    influx_client.write_api.return_value.write.side_effect = ConnectionError("refused")
    with pytest.raises(ConnectionError):
        influx_consumer.consume_metrics(_metrics())


def test_health(influx_consumer, influx_client):
    influx_client.health.return_value.status = "pass"
    assert influx_consumer.health() == "healthy"
    influx_client.health.return_value.status = "fail"
    assert influx_consumer.health() == "unhealthy"
    influx_client.health.side_effect = ConnectionError("refused")
    assert influx_consumer.health().startswith("error:")
