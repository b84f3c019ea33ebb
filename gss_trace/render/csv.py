"""
CSV projection of sample records.

Two column layouts exist:

Generic (any physical layer):
    offset, receiver timestamp, physical layer, device id, receiver id,
    rssi, received data (hex)

Pipsqueak (bit-packed family):
    offset, receiver timestamp, physical layer, device id, receiver id,
    rssi, then either the decoded fields (binary flag, temperature,
    fine temperature, light, battery V, battery J) or the hex payload when
    the record is not of that family or its payload is opaque.

Identifiers are full hex in the generic layout and a short hex form of the
low 24 bits in the pipsqueak layout. No field can contain a comma, so rows
are written without quoting.
"""

from typing import Optional

from ..formats.payload import DecodedPayload, decode_payload, to_hex
from ..formats.record import SampleRecord, PhysicalLayer


GENERIC_COLUMNS = (
    'Offset (ms)',
    'Receiver Timestamp (ms)',
    'Physical Layer',
    'Device ID',
    'Receiver ID',
    'RSSI',
    'Received Data',
)

PIPSQUEAK_COLUMNS = (
    'Offset (ms)',
    'Receiver Timestamp (ms)',
    'Physical Layer',
    'Device ID',
    'Receiver ID',
    'RSSI',
    'Binary Flag',
    'Temperature (C)',
    'Fine Temperature (C)',
    'Light Level',
    'Battery (V)',
    'Battery (J)',
)


def _header(columns) -> str:
    return ','.join(f'"{name}"' for name in columns) + '\n'


GENERIC_HEADER = _header(GENERIC_COLUMNS)
PIPSQUEAK_HEADER = _header(PIPSQUEAK_COLUMNS)

# Low-order identifier bytes that are significant for known device families
SHORT_ID_BYTES = 3


def to_hex_string(data: bytes) -> str:
    """Full identifier: 0x followed by every byte in uppercase hex."""
    return '0x' + bytes(data).hex().upper()


def short_id(data: bytes) -> str:
    """Short identifier: low 3 bytes as a 24-bit integer in uppercase hex."""
    value = int.from_bytes(bytes(data)[-SHORT_ID_BYTES:], 'big')
    return f'0x{value:X}'


def _opt(value, fmt: str = '{}') -> str:
    if value is None:
        return ''
    return fmt.format(value)


def _common_fields(record: SampleRecord, id_format) -> list:
    return [
        str(record.offset),
        str(record.receiver_timestamp),
        str(record.physical_layer & 0xFF),
        id_format(record.device_id),
        id_format(record.receiver_id),
        f'{record.rssi:.3f}',
    ]


def render_generic_row(record: SampleRecord) -> str:
    """Row for the generic layout, newline-terminated."""
    fields = _common_fields(record, to_hex_string)
    fields.append(to_hex(record.sensed_data))
    return ','.join(fields) + '\n'


def render_pipsqueak_row(record: SampleRecord,
                         payload: Optional[DecodedPayload] = None) -> str:
    """Row for the pipsqueak layout, newline-terminated."""
    if payload is None:
        payload = decode_payload(record.physical_layer, record.sensed_data)

    fields = _common_fields(record, short_id)

    if record.physical_layer == PhysicalLayer.PIPSQUEAK and payload.has_typed_fields:
        flag = None if payload.binary_flag is None else int(payload.binary_flag)
        fields.extend([
            _opt(flag),
            _opt(payload.temp7),
            _opt(payload.temp16, '{:.4f}'),
            _opt(payload.light_level),
            _opt(payload.battery_volts, '{:.3f}'),
            _opt(payload.battery_joules, '{:.3f}'),
        ])
    else:
        fields.append(payload.raw_hex if payload.raw_hex is not None else to_hex(record.sensed_data))

    return ','.join(fields) + '\n'


def render_row(record: SampleRecord,
               payload: Optional[DecodedPayload] = None,
               pipsqueak: bool = False) -> str:
    """Render one record in the requested layout."""
    if pipsqueak:
        return render_pipsqueak_row(record, payload)
    return render_generic_row(record)


def header_for(pipsqueak: bool = False) -> str:
    return PIPSQUEAK_HEADER if pipsqueak else GENERIC_HEADER
