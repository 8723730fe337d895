"""
Timeseries binary wire format
=============================

Each record in a request body is laid out as (all integers little-endian):

    [length: u16][label field: length bytes, UTF-8]
    [timestamp: i64, milliseconds since epoch, 0 = unset][value: f64]

The label field joins the metric name and its label pairs with NUL bytes:

    name \\x00 key1 \\x00 value1 \\x00 key2 \\x00 value2 ...

Records are concatenated with no terminator; EOF ends the stream.
"""

import struct
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

LABEL_SEPARATOR = "\x00"
MAX_LABEL_FIELD_LENGTH = 0xFFFF
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

_LENGTH = struct.Struct("<H")
_TIMESTAMP = struct.Struct("<q")
_VALUE = struct.Struct("<d")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

TRUNCATED_STREAM = "truncated-stream"
MALFORMED_LABEL_FIELD = "malformed-label-field"
TIMESTAMP_OUT_OF_RANGE = "timestamp-out-of-range"


class DecodeError(Exception):
    """A request body could not be decoded. `cause` says which check failed."""

    def __init__(self, message: str, cause: str):
        super().__init__(message)
        self.cause = cause


@dataclass
class DecodedSample:
    """One record of the wire format. `timestamp` is None when unset."""
    name: str
    labels: Dict[str, str] = field(default_factory=dict)
    timestamp: Optional[datetime] = None
    value: float = 0.0


def _read_exact(stream, size: int, what: str) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    data = b"".join(chunks)
    if len(data) < size:
        raise DecodeError(
            f"read {what}: unexpected end of stream ({len(data)} of {size} bytes)",
            TRUNCATED_STREAM,
        )
    return data


def read_record(stream) -> Optional[Tuple[bytes, int, float]]:
    """
    Read one record from a binary stream.

    Returns (label_field, timestamp_ms, value), or None when the stream ends
    cleanly before a new record starts. Raises DecodeError when the stream
    ends in the middle of a record.
    """
    head = stream.read(_LENGTH.size)
    if not head:
        return None
    if len(head) < _LENGTH.size:
        head += _read_exact(stream, _LENGTH.size - len(head), "label field length")
    (length,) = _LENGTH.unpack(head)

    label_field = _read_exact(stream, length, "label field")
    (timestamp_ms,) = _TIMESTAMP.unpack(_read_exact(stream, _TIMESTAMP.size, "timestamp"))
    (value,) = _VALUE.unpack(_read_exact(stream, _VALUE.size, "value"))
    return label_field, timestamp_ms, value


def parse_label_field(label_field: str) -> Tuple[str, Dict[str, str]]:
    """Split a label field into the metric name and its labels (last key wins)."""
    parts = label_field.split(LABEL_SEPARATOR)
    if len(parts) % 2 != 1 or not parts[0]:
        raise DecodeError(
            f"invalid label field format ({len(parts)} parts)", MALFORMED_LABEL_FIELD
        )

    labels = {}
    for i in range(1, len(parts), 2):
        labels[parts[i]] = parts[i + 1]
    return parts[0], labels


def _timestamp_from_millis(timestamp_ms: int) -> Optional[datetime]:
    if timestamp_ms == 0:
        return None
    try:
        return _EPOCH + timedelta(milliseconds=timestamp_ms)
    except OverflowError:
        raise DecodeError(
            f"timestamp {timestamp_ms}ms is out of range", TIMESTAMP_OUT_OF_RANGE
        ) from None


def iter_samples(stream) -> Iterator[DecodedSample]:
    """Lazily decode records from `stream` until it ends cleanly."""
    while True:
        record = read_record(stream)
        if record is None:
            return
        raw_field, timestamp_ms, value = record

        try:
            text = raw_field.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(
                f"label field is not valid UTF-8: {e}", MALFORMED_LABEL_FIELD
            ) from e
        name, labels = parse_label_field(text)

        yield DecodedSample(
            name=name,
            labels=labels,
            timestamp=_timestamp_from_millis(timestamp_ms),
            value=value,
        )


def decode_samples(stream) -> List[DecodedSample]:
    """
    Decode a whole request body.

    Either every record is decoded and returned in stream order, or a
    DecodeError is raised and nothing is returned.
    """
    return list(iter_samples(stream))


def encode_record(name: str, labels: Dict[str, str], timestamp_ms: int, value: float) -> bytes:
    """Encode a single observation in the wire format."""
    if not name:
        raise ValueError("metric name must not be empty")
    if not INT64_MIN <= timestamp_ms <= INT64_MAX:
        raise ValueError(f"timestamp {timestamp_ms}ms does not fit in a signed 64-bit integer")

    parts = [name]
    for key, label_value in labels.items():
        parts.extend((key, label_value))
    for part in parts:
        if LABEL_SEPARATOR in part:
            raise ValueError(f"NUL byte not allowed in label field part {part!r}")

    label_field = LABEL_SEPARATOR.join(parts).encode("utf-8")
    if len(label_field) > MAX_LABEL_FIELD_LENGTH:
        raise ValueError(
            f"label field for {name!r} is {len(label_field)} bytes, max is {MAX_LABEL_FIELD_LENGTH}"
        )

    return (
        _LENGTH.pack(len(label_field))
        + label_field
        + _TIMESTAMP.pack(timestamp_ms)
        + _VALUE.pack(value)
    )


def encode_samples(records: Iterable[Tuple[str, Dict[str, str], int, float]]) -> bytes:
    """Encode (name, labels, timestamp_ms, value) tuples into one stream."""
    return b"".join(encode_record(*record) for record in records)
