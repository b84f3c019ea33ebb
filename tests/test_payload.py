"""
Tests for the bit-packed payload decoder.

CRITICAL TESTS:
1. test_header_0x41_example - temp7 and battery decoded, others absent
2. test_fine_temperature_extremes - boundary values of the 0x02 field
3. test_opaque_marker - high bit means hex only, whatever follows
"""

import logging
import struct

import pytest

from gss_trace.formats import payload as payload_module
from gss_trace.formats.payload import DecodedPayload, decode_payload, is_opaque, to_hex
from gss_trace.formats.record import PhysicalLayer

PIPSQUEAK = PhysicalLayer.PIPSQUEAK


class TestEscapeHatch:
    """Payloads that are reported verbatim."""

    def test_absent_payload(self):
        result = decode_payload(PIPSQUEAK, None)
        assert result.raw_hex == ''
        assert not result.has_typed_fields

    def test_short_payload(self):
        result = decode_payload(PIPSQUEAK, b'\x04')
        assert result.raw_hex == '0x04'
        assert not result.has_typed_fields

    @pytest.mark.parametrize("rest", [b'\x00', b'\xFF\xFF\xFF\xFF\xFF\xFF', b'\x19\x64\x0B\xB8\x00'])
    def test_opaque_marker(self, rest):
        data = bytes([0xC1]) + rest
        result = decode_payload(PIPSQUEAK, data)
        assert result.raw_hex == '0x' + data.hex().upper()
        assert not result.has_typed_fields
        assert is_opaque(data)

    def test_other_physical_layer(self):
        result = decode_payload(PhysicalLayer.WIFI, b'\x04\x80')
        assert result.raw_hex == '0x0480'
        assert result.light_level is None

    def test_to_hex(self):
        assert to_hex(b'\x0a\xbc') == '0x0ABC'
        assert to_hex(b'') == ''
        assert to_hex(None) == ''


class TestFields:
    """Individual header bits."""

    def test_header_0x41_example(self):
        """Bits 0x01 and 0x40: temp7 from byte 1, battery from bytes 2-5."""
        data = bytes([0x41, 0x19, 0x64, 0x0B, 0xB8, 0x00])
        result = decode_payload(PIPSQUEAK, data)

        millivolts, millijoules = struct.unpack('>HH', data[2:6])
        assert result.binary_flag is True
        assert result.temp7 == (0x19 >> 1) - 40
        assert result.battery_millivolts == millivolts
        assert result.battery_millijoules == millijoules
        assert result.temp16 is None
        assert result.light_level is None
        assert result.raw_hex is None

    def test_binary_flag_and_coarse_temperature(self):
        result = decode_payload(PIPSQUEAK, bytes([0x01, 0x5A]))
        assert result.binary_flag is False
        assert result.temp7 == 45 - 40

    @pytest.mark.parametrize("light", [0, 1, 128, 255])
    def test_light_only(self, light):
        result = decode_payload(PIPSQUEAK, bytes([0x04, light, 0x99, 0x99]))
        assert result.light_level == light
        assert 0 <= result.light_level <= 255
        assert result.binary_flag is None
        assert result.temp7 is None
        assert result.temp16 is None
        assert result.battery_millivolts is None

    @pytest.mark.parametrize("raw, expected", [
        ((0x00, 0x00), -40.0),
        ((0x00, 0x0F), -40.0 + 15 / 16),
        ((0xFF, 0x0F), 215.9375),
        ((0xFF, 0xF0), 215.0),
        ((0x28, 0x08), 0.5),
    ])
    def test_fine_temperature_extremes(self, raw, expected):
        """Only the low nibble of the second byte counts as sixteenths."""
        result = decode_payload(PIPSQUEAK, bytes([0x02, *raw]))
        assert result.temp16 == pytest.approx(expected)

    def test_field_order(self):
        """Fields follow bit order regardless of which are present."""
        data = bytes([0x47, 0x51, 0x3C, 0x04, 0x7F, 0x0C, 0xE4, 0x03, 0xE8])
        result = decode_payload(PIPSQUEAK, data)

        assert result.binary_flag is True
        assert result.temp7 == 0
        assert result.temp16 == pytest.approx(20.25)
        assert result.light_level == 0x7F
        assert result.battery_millivolts == 3300
        assert result.battery_millijoules == 1000
        assert result.battery_volts == pytest.approx(3.3)
        assert result.battery_joules == pytest.approx(1.0)

    def test_unknown_bits_consume_nothing(self):
        result = decode_payload(PIPSQUEAK, bytes([0x3C, 0x20]))
        assert result.light_level == 0x20


class TestDegradation:
    """Decoding never fails."""

    def test_insufficient_bytes_stop_decoding(self):
        """Battery needs 4 bytes; earlier fields survive."""
        result = decode_payload(PIPSQUEAK, bytes([0x45, 0x19, 0x10, 0x0B]))
        assert result.temp7 == -28
        assert result.light_level == 0x10
        assert result.battery_millivolts is None

    def test_field_failure_is_absent(self, monkeypatch, caplog):
        def broken(data, result):
            raise ValueError("bad field")

        fields = list(payload_module.FIELDS)
        fields[2] = (0x04, 1, 'light', broken)
        monkeypatch.setattr(payload_module, 'FIELDS', fields)

        with caplog.at_level(logging.WARNING):
            result = decode_payload(PIPSQUEAK, bytes([0x45, 0x19, 0x10, 0x0B, 0xB8, 0x00, 0x10]))

        assert result.light_level is None
        assert result.temp7 == -28
        assert result.battery_millivolts == 3000
        assert "light" in caplog.text

    def test_defaults(self):
        assert not DecodedPayload().has_typed_fields
        assert DecodedPayload().battery_volts is None
