"""Tests for the packet codec and XOR cipher."""
import pytest

from kerong_ble import ProtocolError
from kerong_ble.crypto import (
    build_packet, parse_packet, encode, decode,
    frame_checksum, verify_checksum, xor_transform,
)
from kerong_ble.models import Frame, Response, ResponseStatus


class TestBuildPacket:

    def test_no_data(self):
        # F5 + 20 + 00 + 00 + 5F = 0x174
        assert build_packet(0x20) == bytes([0xF5, 0x20, 0x00, 0x00, 0x5F, 0x74])

    def test_pairing_packet(self):
        packet = build_packet(0x0F, b"9155")
        header = [0xF5, 0x0F, 0x00, 0x04, 0x5F]
        expected_sum = (sum(header) + sum(b"9155")) & 0xFF
        assert packet == bytes(header + [expected_sum]) + b"9155"

    def test_checksum_covers_header_and_data(self):
        data = bytes(range(200, 240))
        packet = build_packet(0x68, data)
        assert packet[5] == (sum(packet[:5]) + sum(data)) & 0xFF
        assert verify_checksum(packet)

    def test_accepts_list_data(self):
        assert build_packet(0x21, [1, 2, 3]) == build_packet(0x21, b"\x01\x02\x03")

    def test_rejects_bad_input(self):
        with pytest.raises(ValueError):
            build_packet(0x100)
        with pytest.raises(ValueError):
            build_packet(0x68, [256])
        with pytest.raises(ValueError):
            build_packet(0x68, bytes(256))

    def test_frame_matches_build_packet(self):
        frame = Frame(0x6C)
        assert frame.stx == 0xF5
        assert frame.etx == 0x5F
        assert frame.data_length == 0
        assert frame.to_bytes() == build_packet(0x6C)

    def test_aliases(self):
        assert encode is build_packet
        assert decode is parse_packet


class TestParsePacket:

    @pytest.mark.parametrize("cmd,data", [
        (0x0F, b"9155"),
        (0x60, b""),
        (0x68, bytes([0x02, 0, 0, 0, 0, 0x10, 0, 0x24, 1, 1, 0, 0])),
        (0x72, bytes(range(255))),
    ])
    def test_decode_recovers_encoded_frame(self, cmd, data):
        response = parse_packet(build_packet(cmd, data))
        assert response.cmd == cmd
        assert response.status == ResponseStatus.REQUEST
        assert response.data_length == len(data)
        assert response.payload == data

    def test_status_and_payload(self):
        raw = Frame(0x6C, b"abc", ask=0x24).to_bytes()
        response = parse_packet(raw)
        assert response.status == ResponseStatus.PARTIAL
        assert response.payload == b"abc"
        assert response.raw == raw
        assert not response.ok

    def test_payload_truncated_to_available_bytes(self):
        raw = bytes([0xF5, 0x6C, 0x10, 0x10, 0x5F, 0x00, 0x01, 0x02])
        assert parse_packet(raw).payload == b"\x01\x02"

    def test_short_frame(self):
        with pytest.raises(ProtocolError):
            parse_packet(b"\xf5\x60\x10")

    def test_header_is_not_validated(self):
        response = parse_packet(bytes([0x00, 0x21, 0x10, 0x00, 0x00, 0x00]))
        assert response.cmd == 0x21
        assert response.ok

    def test_status_name_for_unknown_code(self):
        response = Response(cmd=0x6B, status=0x01, data_length=0)
        assert response.status_name == "UNKNOWN(0x01)"
        assert "0x6B" in str(response)


class TestChecksum:

    def test_low_byte(self):
        assert frame_checksum([0xFF, 0xFF], [0x5F]) == (0xFF + 0xFF + 0x5F) & 0xFF

    def test_verify_rejects_tampered_frame(self):
        packet = bytearray(build_packet(0x68, b"123456"))
        packet[-1] ^= 0x01
        assert not verify_checksum(packet)

    def test_verify_rejects_bad_markers(self):
        packet = bytearray(build_packet(0x20))
        packet[0] = 0xF4
        assert not verify_checksum(packet)
        assert not verify_checksum(b"\xf5")


class TestXorTransform:

    def test_known_value(self):
        assert xor_transform([0x01, 0x58, 0xFF], 0x7A) == bytes([0x7B, 0x22, 0x85])

    def test_involution_all_bytes_and_keys(self):
        data = bytes(range(256))
        for key in range(256):
            assert xor_transform(xor_transform(data, key), key) == data

    def test_zero_key_is_identity(self):
        assert xor_transform(b"000000", 0) == b"000000"
