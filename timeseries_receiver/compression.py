"""
Streaming reader for the snappy framing format.

Request bodies arrive as a sequence of chunks, each one
[type: u8][length: u24 little-endian][data: length bytes]. The reader pulls
one chunk at a time from the underlying stream and hands each data chunk to
cramjam (the snappy implementation behind python-snappy), which checks its
CRC and decompresses it. Only the current chunk is held in memory.
"""

import io

import cramjam

STREAM_IDENTIFIER = b"sNaPpY"
STREAM_IDENTIFIER_CHUNK = b"\xff\x06\x00\x00" + STREAM_IDENTIFIER

CHUNK_COMPRESSED = 0x00
CHUNK_UNCOMPRESSED = 0x01
CHUNK_STREAM_IDENTIFIER = 0xff
MAX_UNSKIPPABLE_CHUNK = 0x7f


class PayloadError(Exception):
    """The request body is not a valid snappy framed stream."""


def _read_full(stream, size):
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


class SnappyFramedReader:
    """
    File-like view of the decompressed content of a snappy framed stream.

    An empty underlying stream reads as empty. Anything else must start with
    the stream identifier; a chunk cut short, a bad checksum or a reserved
    chunk type raises PayloadError from read().
    """

    def __init__(self, stream):
        self._stream = stream
        self._buf = b""
        self._seen_identifier = False

    def read(self, size=-1):
        if size is None or size < 0:
            parts = [self._buf]
            self._buf = b""
            while self._next_chunk():
                parts.append(self._buf)
                self._buf = b""
            return b"".join(parts)

        while not self._buf:
            if not self._next_chunk():
                return b""
        data, self._buf = self._buf[:size], self._buf[size:]
        return data

    def _next_chunk(self):
        """Load the next chunk into the buffer. False at a clean end of stream."""
        header = _read_full(self._stream, 4)
        if not header:
            return False
        if len(header) < 4:
            raise PayloadError("snappy stream truncated inside a chunk header")

        chunk_type = header[0]
        length = int.from_bytes(header[1:], "little")
        body = _read_full(self._stream, length)
        if len(body) < length:
            raise PayloadError(
                f"snappy stream truncated: chunk of {length} bytes has only {len(body)}"
            )

        if chunk_type == CHUNK_STREAM_IDENTIFIER:
            if body != STREAM_IDENTIFIER:
                raise PayloadError("invalid snappy stream identifier")
            self._seen_identifier = True
            return True
        if not self._seen_identifier:
            raise PayloadError("stream missing snappy identifier")

        if chunk_type in (CHUNK_COMPRESSED, CHUNK_UNCOMPRESSED):
            try:
                self._buf = bytes(cramjam.snappy.decompress(STREAM_IDENTIFIER_CHUNK + header + body))
            except cramjam.DecompressionError as e:
                raise PayloadError(f"corrupt snappy chunk: {e}") from e
        elif chunk_type <= MAX_UNSKIPPABLE_CHUNK:
            raise PayloadError(f"reserved unskippable snappy chunk type {chunk_type:#04x}")
        # 0x80-0xfe: skippable and padding chunks carry no data
        return True


def decompress_body(body: bytes) -> bytes:
    """Decompress a whole snappy framed body held in memory."""
    return SnappyFramedReader(io.BytesIO(body)).read()
