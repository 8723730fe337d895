"""
Receiver configuration, read from environment variables.

RECEIVER_ENDPOINT, RECEIVER_READ_TIMEOUT and RECEIVER_WRITE_TIMEOUT govern
the HTTP transport only. INFLUXDB_* select where decoded metrics are written.
"""

import os
import re
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

DEFAULT_ENDPOINT = "0.0.0.0:4319"
DEFAULT_READ_TIMEOUT = "30s"
DEFAULT_WRITE_TIMEOUT = "30s"

_DURATION_RE = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$')
_DURATION_UNITS = {'ms': 0.001, 's': 1.0, 'm': 60.0, 'h': 3600.0}


def parse_duration(value: str) -> float:
    """Parse '500ms', '30s', '1m', '2h' or bare seconds into seconds."""
    match = _DURATION_RE.match(value)
    if not match:
        raise ValueError(f"invalid duration: {value!r}")
    number, unit = match.groups()
    return float(number) * _DURATION_UNITS[unit or 's']


def split_endpoint(endpoint: str) -> Tuple[str, int]:
    host, sep, port = endpoint.rpartition(':')
    if not sep or not port.isdigit():
        raise ValueError(f"endpoint must be host:port, got {endpoint!r}")
    return host or '0.0.0.0', int(port)


@dataclass
class ReceiverConfig:
    endpoint: str = DEFAULT_ENDPOINT
    read_timeout: float = 30.0
    write_timeout: float = 30.0
    payload_dump_dir: Optional[str] = None
    influxdb_host: str = 'localhost'
    influxdb_port: int = 8086
    influxdb_database: str = 'prometheus_metrics'
    influxdb_username: str = 'admin'
    influxdb_password: str = 'adminpassword'
    log_level: str = 'INFO'

    @property
    def host(self) -> str:
        return split_endpoint(self.endpoint)[0]

    @property
    def port(self) -> int:
        return split_endpoint(self.endpoint)[1]

    @property
    def influxdb_url(self) -> str:
        return f"http://{self.influxdb_host}:{self.influxdb_port}"

    @property
    def influxdb_token(self) -> str:
        # Token format for InfluxDB 1.8
        return f"{self.influxdb_username}:{self.influxdb_password}"

    @property
    def influxdb_bucket(self) -> str:
        return f"{self.influxdb_database}/autogen"


def load_config(environ: Optional[Mapping[str, str]] = None) -> ReceiverConfig:
    env = os.environ if environ is None else environ

    endpoint = env.get('RECEIVER_ENDPOINT', DEFAULT_ENDPOINT)
    split_endpoint(endpoint)

    return ReceiverConfig(
        endpoint=endpoint,
        read_timeout=parse_duration(env.get('RECEIVER_READ_TIMEOUT', DEFAULT_READ_TIMEOUT)),
        write_timeout=parse_duration(env.get('RECEIVER_WRITE_TIMEOUT', DEFAULT_WRITE_TIMEOUT)),
        payload_dump_dir=env.get('RECEIVER_PAYLOAD_DUMP_DIR') or None,
        influxdb_host=env.get('INFLUXDB_HOST', 'localhost'),
        influxdb_port=int(env.get('INFLUXDB_PORT', 8086)),
        influxdb_database=env.get('INFLUXDB_DATABASE', 'prometheus_metrics'),
        influxdb_username=env.get('INFLUXDB_USERNAME', 'admin'),
        influxdb_password=env.get('INFLUXDB_PASSWORD', 'adminpassword'),
        log_level=env.get('LOG_LEVEL', 'INFO').upper(),
    )
