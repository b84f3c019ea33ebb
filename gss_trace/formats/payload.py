"""
Decoder for bit-packed pipsqueak payloads.

Payload layout:
    Byte 0:   feature bitmask
    Byte 1-:  one field per set bit, in this order

    Bit   Size  Field
    0x01  1     binary flag (bit 0) + coarse temperature (bits 1-7, -40 C)
    0x02  2     fine temperature: byte 0 whole degrees (-40 C),
                low nibble of byte 1 sixteenths of a degree
    0x04  1     light level (0-255)
    0x40  4     battery: u16 millivolts, u16 millijoules

A header with bit 0x80 set marks an encoded payload variant that is not
decoded. Such payloads, payloads shorter than 2 bytes, and payloads from any
other physical layer are reported as a hex string only.

Decoding never raises: a field that fails to decode is logged and left None.
"""

import logging
import struct
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .record import PhysicalLayer
from ..core.errors import FieldDecodeError

logger = logging.getLogger(__name__)


OPAQUE_MARKER = 0x80

TEMPERATURE_OFFSET_C = 40

FLAG_TEMP7 = 0x01
FLAG_TEMP16 = 0x02
FLAG_LIGHT = 0x04
FLAG_BATTERY = 0x40


@dataclass
class DecodedPayload:
    """
    Structured view of a sensed-data payload.

    Every typed field is independently optional. raw_hex is set when the
    payload was not decoded structurally.
    """
    binary_flag: Optional[bool] = None
    temp7: Optional[int] = None
    temp16: Optional[float] = None
    light_level: Optional[int] = None
    battery_millivolts: Optional[int] = None
    battery_millijoules: Optional[int] = None
    raw_hex: Optional[str] = None

    @property
    def has_typed_fields(self) -> bool:
        return any(
            value is not None
            for value in (
                self.binary_flag,
                self.temp7,
                self.temp16,
                self.light_level,
                self.battery_millivolts,
                self.battery_millijoules,
            )
        )

    @property
    def battery_volts(self) -> Optional[float]:
        if self.battery_millivolts is None:
            return None
        return self.battery_millivolts / 1000.0

    @property
    def battery_joules(self) -> Optional[float]:
        if self.battery_millijoules is None:
            return None
        return self.battery_millijoules / 1000.0


def _decode_temp7(data: bytes, result: DecodedPayload) -> None:
    value = data[0]
    result.binary_flag = bool(value & 0x01)
    result.temp7 = (value >> 1) - TEMPERATURE_OFFSET_C


def _decode_temp16(data: bytes, result: DecodedPayload) -> None:
    whole = data[0]
    fraction = data[1] & 0x0F
    result.temp16 = whole - TEMPERATURE_OFFSET_C + fraction / 16.0


def _decode_light(data: bytes, result: DecodedPayload) -> None:
    result.light_level = data[0]


def _decode_battery(data: bytes, result: DecodedPayload) -> None:
    millivolts, millijoules = struct.unpack('>HH', data[:4])
    result.battery_millivolts = millivolts
    result.battery_millijoules = millijoules


# (bit, size, name, decoder), consumed in this order
FIELDS: List[Tuple[int, int, str, Callable[[bytes, DecodedPayload], None]]] = [
    (FLAG_TEMP7, 1, 'temp7', _decode_temp7),
    (FLAG_TEMP16, 2, 'temp16', _decode_temp16),
    (FLAG_LIGHT, 1, 'light', _decode_light),
    (FLAG_BATTERY, 4, 'battery', _decode_battery),
]


def to_hex(data: Optional[bytes]) -> str:
    """Uppercase hex rendering with 0x prefix; empty string for no data."""
    if not data:
        return ''
    return '0x' + data.hex().upper()


def is_opaque(payload: Optional[bytes]) -> bool:
    """True when the payload must be reported verbatim."""
    return payload is None or len(payload) < 2 or bool(payload[0] & OPAQUE_MARKER)


def decode_payload(physical_layer: int, payload: Optional[bytes]) -> DecodedPayload:
    """
    Decode a sensed-data payload.

    Args:
        physical_layer: Physical layer of the record the payload came from
        payload: Raw sensed data, may be None

    Returns:
        DecodedPayload with typed fields, or with only raw_hex set
    """
    if physical_layer != PhysicalLayer.PIPSQUEAK or is_opaque(payload):
        return DecodedPayload(raw_hex=to_hex(payload))

    header = payload[0]
    cursor = 1
    result = DecodedPayload()

    for bit, size, name, decoder in FIELDS:
        if not header & bit:
            continue
        if cursor + size > len(payload):
            logger.debug(
                f"Payload ends before {name} field "
                f"(need {size} bytes at {cursor}, have {len(payload)})"
            )
            break
        try:
            decoder(payload[cursor:cursor + size], result)
        except (IndexError, ValueError, struct.error) as e:
            error = FieldDecodeError(f"Failed to decode {name} field: {e}",
                                     context={'header': f'0x{header:02X}'})
            logger.warning(error.message)
        cursor += size

    return result
