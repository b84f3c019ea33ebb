"""
Binary codec for sample records.

Two framings share one record body:

File framing (trace files):
    Bytes 0-7:   offset     (i64) Milliseconds since recording start
    Bytes 8-11:  length     (i32) Body length in bytes
    Bytes 12-:   body

Wire framing (network connection):
    Bytes 0-3:   length     (i32) Body length in bytes
    Bytes 4-:    body

Body layout (45 bytes + payload):
    Byte 0:      physical_layer      (u8)
    Bytes 1-16:  device_id           (16 bytes)
    Bytes 17-32: receiver_id         (16 bytes)
    Bytes 33-40: receiver_timestamp  (i64) Milliseconds since epoch
    Bytes 41-44: rssi                (f32)
    Bytes 45-:   sensed_data         (length - 45 bytes)

All fields are big-endian.
"""

import struct
from typing import BinaryIO, Iterator, Optional

from .record import SampleRecord, MIN_BODY_LENGTH
from ..core.errors import TruncatedRecord, MalformedLength, TraceIOError


class SampleCodec:
    """
    Encode and decode sample records.

    The codec is stateless; the only state involved is the stream cursor.

    Usage:
        with open(path, 'rb') as f:
            for record in SampleCodec.iter_records(f):
                process(record)
    """

    # q=i64 offset, i=i32 length
    FRAME_FORMAT = '>qi'
    FRAME_SIZE = 12

    # i=i32 length
    LENGTH_FORMAT = '>i'
    LENGTH_SIZE = 4

    # B=u8, 16s, 16s, q=i64, f=f32
    BODY_FORMAT = '>B16s16sqf'
    BODY_SIZE = MIN_BODY_LENGTH

    @classmethod
    def encode_body(cls, record: SampleRecord) -> bytes:
        """Encode the record body (no offset, no length)."""
        fixed = struct.pack(
            cls.BODY_FORMAT,
            record.physical_layer,
            record.device_id,
            record.receiver_id,
            record.receiver_timestamp,
            record.rssi,
        )
        if record.sensed_data:
            return fixed + record.sensed_data
        return fixed

    @classmethod
    def decode_body(cls, body: bytes, offset: int = 0) -> SampleRecord:
        """
        Decode a record body.

        Args:
            body: Exactly one record body
            offset: Offset to attach to the decoded record

        Raises:
            MalformedLength: If the body cannot hold the fixed fields
        """
        if len(body) < cls.BODY_SIZE:
            raise MalformedLength(context={'length': len(body), 'minimum': cls.BODY_SIZE})

        physical_layer, device_id, receiver_id, timestamp, rssi = struct.unpack(
            cls.BODY_FORMAT, body[:cls.BODY_SIZE]
        )
        payload = body[cls.BODY_SIZE:]

        return SampleRecord(
            physical_layer=physical_layer,
            device_id=device_id,
            receiver_id=receiver_id,
            receiver_timestamp=timestamp,
            rssi=rssi,
            sensed_data=bytes(payload) if payload else None,
            offset=offset,
        )

    @classmethod
    def encode(cls, record: SampleRecord) -> bytes:
        """Encode a record in file framing."""
        body = cls.encode_body(record)
        return struct.pack(cls.FRAME_FORMAT, record.offset, len(body)) + body

    @classmethod
    def encode_wire(cls, record: SampleRecord) -> bytes:
        """Encode a record in wire framing."""
        body = cls.encode_body(record)
        return struct.pack(cls.LENGTH_FORMAT, len(body)) + body

    @classmethod
    def decode(cls, stream: BinaryIO) -> Optional[SampleRecord]:
        """
        Decode the next file-framed record.

        Returns:
            The record, or None if the stream is exhausted at a record boundary

        Raises:
            TruncatedRecord: Stream ended inside the frame or body
            MalformedLength: Declared length below the minimum body size
            TraceIOError: Underlying read failure
        """
        frame = _read_exact(stream, cls.FRAME_SIZE)
        if not frame:
            return None
        if len(frame) < cls.FRAME_SIZE:
            raise TruncatedRecord(context={'field': 'frame', 'read': len(frame)})

        offset, length = struct.unpack(cls.FRAME_FORMAT, frame)
        return cls.decode_body(_read_body(stream, length), offset=offset)

    @classmethod
    def decode_wire(cls, stream: BinaryIO) -> Optional[SampleRecord]:
        """Decode the next wire-framed record. Same contract as decode()."""
        prefix = _read_exact(stream, cls.LENGTH_SIZE)
        if not prefix:
            return None
        if len(prefix) < cls.LENGTH_SIZE:
            raise TruncatedRecord(context={'field': 'length', 'read': len(prefix)})

        (length,) = struct.unpack(cls.LENGTH_FORMAT, prefix)
        return cls.decode_body(_read_body(stream, length))

    @classmethod
    def iter_records(cls, stream: BinaryIO) -> Iterator[SampleRecord]:
        """Yield file-framed records until the stream is exhausted."""
        while True:
            record = cls.decode(stream)
            if record is None:
                return
            yield record


def _read_body(stream: BinaryIO, length: int) -> bytes:
    if length < MIN_BODY_LENGTH:
        raise MalformedLength(context={'length': length, 'minimum': MIN_BODY_LENGTH})

    body = _read_exact(stream, length)
    if len(body) < length:
        raise TruncatedRecord(context={'field': 'body', 'declared': length, 'read': len(body)})
    return body


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    """Read up to size bytes, looping over short reads. Short result means EOF."""
    chunks = []
    remaining = size
    try:
        while remaining > 0:
            chunk = stream.read(remaining)
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
    except OSError as e:
        raise TraceIOError(f"Read failed: {e}", context={'requested': size}) from e
    return b''.join(chunks)


# Verify struct sizes at module load
assert struct.calcsize(SampleCodec.FRAME_FORMAT) == SampleCodec.FRAME_SIZE, \
    "Frame format size mismatch"
assert struct.calcsize(SampleCodec.BODY_FORMAT) == SampleCodec.BODY_SIZE, \
    "Body format size mismatch"
