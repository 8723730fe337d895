"""Test del reader Snappy framing usato dal receiver."""

import io

import pytest
import snappy

from timeseries_receiver.compression import (
    STREAM_IDENTIFIER_CHUNK,
    PayloadError,
    SnappyFramedReader,
    decompress_body,
)
from timeseries_receiver.decoder import decode_samples, encode_samples

PAYLOAD = encode_samples([
    ("sonar_cpu", {"host": "web-1"}, 1700000000000, 0.5),
    ("sonar_mem", {"host": "web-1"}, 1700000000000, 2048.0),
])


def compress(data):
    out = io.BytesIO()
    snappy.stream_compress(io.BytesIO(data), out)
    return out.getvalue()


class CountingStream(io.BytesIO):
    def __init__(self, data):
        super().__init__(data)
        self.max_position = 0

    def read(self, size=-1):
        data = super().read(size)
        self.max_position = max(self.max_position, self.tell())
        return data


def test_round_trip():
    assert decompress_body(compress(PAYLOAD)) == PAYLOAD


def test_empty_body_is_empty_stream():
    assert decompress_body(b"") == b""
    assert decompress_body(STREAM_IDENTIFIER_CHUNK) == b""


def test_body_without_identifier_is_rejected():
    with pytest.raises(PayloadError, match="missing snappy identifier"):
        decompress_body(PAYLOAD)


def chunk_boundaries(compressed):
    boundaries = {0}
    position = 0
    while position < len(compressed):
        position += 4 + int.from_bytes(compressed[position + 1:position + 4], "little")
        boundaries.add(position)
    return boundaries


def test_truncated_body_is_rejected_inside_any_chunk():
    compressed = compress(PAYLOAD)
    boundaries = chunk_boundaries(compressed)
    assert len(boundaries) >= 3

    for cut in range(len(compressed)):
        if cut in boundaries:
            continue
        with pytest.raises(PayloadError):
            decompress_body(compressed[:cut])


def test_truncated_identifier_is_rejected():
    with pytest.raises(PayloadError):
        decompress_body(STREAM_IDENTIFIER_CHUNK[:7])


def test_bad_checksum_is_rejected():
    compressed = bytearray(compress(PAYLOAD))
    checksum_offset = len(STREAM_IDENTIFIER_CHUNK) + 4
    compressed[checksum_offset] ^= 0xFF
    with pytest.raises(PayloadError, match="corrupt snappy chunk"):
        decompress_body(bytes(compressed))


def test_skippable_chunks_are_ignored():
    compressed = compress(PAYLOAD)
    split = len(STREAM_IDENTIFIER_CHUNK)
    padded = compressed[:split] + b"\x80\x03\x00\x00abc" + b"\xfe\x01\x00\x00\x00" + compressed[split:]
    assert decompress_body(padded) == PAYLOAD


def test_reserved_chunk_type_is_rejected():
    with pytest.raises(PayloadError, match="unskippable"):
        decompress_body(STREAM_IDENTIFIER_CHUNK + b"\x02\x00\x00\x00")


def test_reads_one_chunk_at_a_time():
    data = bytes(range(256)) * 1000
    stream = CountingStream(compress(data))
    reader = SnappyFramedReader(stream)

    assert reader.read(10) == data[:10]
    assert stream.max_position < len(stream.getvalue())
    assert reader.read(10) == data[10:20]
    assert reader.read() == data[20:]


def test_decoder_reads_through_reader():
    samples = decode_samples(SnappyFramedReader(io.BytesIO(compress(PAYLOAD))))
    assert [s.name for s in samples] == ["sonar_cpu", "sonar_mem"]
