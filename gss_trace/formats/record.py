"""
Sample record model and physical layer constants.

A SampleRecord is one timestamped sensor observation. It is the unit that
flows through every reader, pipeline, writer and renderer in the package.
"""

from dataclasses import dataclass, replace
from typing import Optional


# Device and receiver identifiers are fixed-width
DEVICE_ID_SIZE = 16

# physical layer (1) + device id (16) + receiver id (16)
# + receiver timestamp (8) + rssi (4)
MIN_BODY_LENGTH = 1 + DEVICE_ID_SIZE + DEVICE_ID_SIZE + 8 + 4


class PhysicalLayer:
    """Physical layer identifiers."""

    # Wildcard used in subscriptions and filters
    ALL = 0

    # Bit-packed sensor family with a structured payload
    PIPSQUEAK = 1

    WIFI = 2

    WINS = 3

    @classmethod
    def name(cls, value: int) -> str:
        """Get human-readable name for a physical layer."""
        names = {
            cls.ALL: 'ALL',
            cls.PIPSQUEAK: 'PIPSQUEAK',
            cls.WIFI: 'WIFI',
            cls.WINS: 'WINS',
        }
        return names.get(value, f'UNKNOWN({value})')

    @classmethod
    def is_valid(cls, value: int) -> bool:
        """Physical layers are carried in a single unsigned byte."""
        return 0 <= value <= 0xFF


@dataclass
class SampleRecord:
    """
    One sensor sample.

    Attributes:
        physical_layer: Sensing technology tag (0-255)
        device_id: 16-byte identifier of the emitting device
        receiver_id: 16-byte identifier of the receiving sensor
        receiver_timestamp: Milliseconds since epoch, set by the receiver
        rssi: Signal strength (stored as IEEE-754 single precision)
        sensed_data: Opaque payload, None when absent
        offset: Milliseconds; file-relative when stored, wall-clock-relative
            when replayed
    """
    physical_layer: int
    device_id: bytes
    receiver_id: bytes
    receiver_timestamp: int
    rssi: float
    sensed_data: Optional[bytes] = None
    offset: int = 0

    def __post_init__(self):
        """Validate identifier widths."""
        self.device_id = bytes(self.device_id)
        self.receiver_id = bytes(self.receiver_id)
        if len(self.device_id) != DEVICE_ID_SIZE:
            raise ValueError(
                f"Device id must be {DEVICE_ID_SIZE} bytes, got {len(self.device_id)}"
            )
        if len(self.receiver_id) != DEVICE_ID_SIZE:
            raise ValueError(
                f"Receiver id must be {DEVICE_ID_SIZE} bytes, got {len(self.receiver_id)}"
            )
        if not PhysicalLayer.is_valid(self.physical_layer):
            raise ValueError(f"Physical layer out of range: {self.physical_layer}")
        if self.sensed_data is not None:
            # An empty payload is stored as absent
            self.sensed_data = bytes(self.sensed_data) or None

    @property
    def payload_length(self) -> int:
        return len(self.sensed_data) if self.sensed_data else 0

    @property
    def body_length(self) -> int:
        """Length of the record body as declared in the length field."""
        return MIN_BODY_LENGTH + self.payload_length

    def with_timing(self, receiver_timestamp: Optional[int] = None,
                    offset: Optional[int] = None) -> 'SampleRecord':
        """Copy of this record with a rewritten timestamp and/or offset."""
        changes = {}
        if receiver_timestamp is not None:
            changes['receiver_timestamp'] = receiver_timestamp
        if offset is not None:
            changes['offset'] = offset
        return replace(self, **changes)

    def __repr__(self) -> str:
        return (
            f"SampleRecord(layer={PhysicalLayer.name(self.physical_layer)}, "
            f"device=0x{self.device_id[-3:].hex()}, "
            f"ts={self.receiver_timestamp}, "
            f"offset={self.offset}, "
            f"payload={self.payload_length}B)"
        )


def make_id(value: int) -> bytes:
    """Build a 16-byte identifier whose low-order bytes hold ``value``."""
    if value < 0:
        raise ValueError(f"Identifier must be non-negative: {value}")
    return value.to_bytes(DEVICE_ID_SIZE, 'big')
