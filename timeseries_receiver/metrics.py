"""Metrics container built from decoded samples, one per request."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from timeseries_receiver.decoder import DecodedSample

SCOPE_NAME = "do-agent-timeseries"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DataPoint:
    timestamp: datetime
    value: float
    attributes: Dict[str, str] = field(default_factory=dict)


@dataclass
class MetricSeries:
    """All data points of one metric name, in arrival order."""
    name: str
    data_points: List[DataPoint] = field(default_factory=list)
    kind: str = "gauge"


@dataclass
class MetricsContainer:
    scope_name: str = SCOPE_NAME
    series: List[MetricSeries] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.series

    def data_point_count(self) -> int:
        return sum(len(s.data_points) for s in self.series)

    def to_dict(self) -> dict:
        return {
            'scope': self.scope_name,
            'metrics': [
                {
                    'name': s.name,
                    'type': s.kind,
                    'datapoints': [
                        {
                            'timestamp': dp.timestamp.isoformat(),
                            'value': dp.value,
                            'attributes': dp.attributes,
                        }
                        for dp in s.data_points
                    ],
                }
                for s in self.series
            ],
        }


def assemble_metrics(
    samples: Iterable[DecodedSample],
    clock: Optional[Callable[[], datetime]] = None,
) -> MetricsContainer:
    """
    Group decoded samples by metric name.

    Series appear in the order their name was first seen. Samples without a
    timestamp get `clock()` (current UTC time by default), read once per
    data point.
    """
    clock = clock or utc_now
    container = MetricsContainer()
    index: Dict[str, MetricSeries] = {}

    for sample in samples:
        series = index.get(sample.name)
        if series is None:
            series = MetricSeries(name=sample.name)
            index[sample.name] = series
            container.series.append(series)

        timestamp = sample.timestamp if sample.timestamp is not None else clock()
        series.data_points.append(
            DataPoint(timestamp=timestamp, value=sample.value, attributes=dict(sample.labels))
        )

    return container
