from __future__ import annotations

import struct

import pytest

from minitftp.constants import BLOCK_SIZE, DATAGRAM_SIZE
from minitftp.errors import DecodeError, EncodeError, ValidationError
from minitftp.packet import Ack, Data, Err, ErrorCode, ReadRequest, decode, encode, next_block


def test_roundtrip_read_request():
    p = ReadRequest(filename="boot.img", mode="octet")
    assert encode(p) == b"\x00\x01boot.img\x00octet\x00"
    assert decode(encode(p)) == p


def test_roundtrip_data():
    p = Data(block=7, payload=b"hello")
    raw = encode(p)
    assert raw[:4] == b"\x00\x03\x00\x07"
    assert decode(raw) == p
    assert decode(raw).is_last is True


def test_roundtrip_full_and_empty_data():
    full = Data(block=1, payload=b"x" * BLOCK_SIZE)
    assert len(encode(full)) == DATAGRAM_SIZE
    assert decode(encode(full)) == full
    assert full.is_last is False

    empty = Data(block=2)
    assert encode(empty) == b"\x00\x03\x00\x02"
    assert decode(encode(empty)) == empty


def test_roundtrip_ack():
    a = Ack(65535)
    assert encode(a) == b"\x00\x04\xff\xff"
    assert decode(encode(a)) == a


def test_roundtrip_err():
    e = Err(code=ErrorCode.NOT_FOUND, message="no such file")
    assert encode(e) == b"\x00\x05\x00\x01no such file\x00"
    p = decode(encode(e))
    assert p == e
    assert p.code is ErrorCode.NOT_FOUND


def test_next_block_wraps():
    for b in range(0, 65536):
        assert next_block(b) == (b + 1) % 65536
    assert next_block(65535) == 0
    assert encode(Data(next_block(65535), b""))[2:4] == b"\x00\x00"


@pytest.mark.parametrize(
    "raw",
    [
        b"",
        b"\x00",
        b"\x00\x00\x00\x01",
        b"\x00\x02file\x00octet\x00",  # write requests are not served
        b"\x00\x06\x00\x00",
        b"\xff\xff",
        b"\x00\x03\x00",
        b"\x00\x04\x00",
    ],
)
def test_unrecognized_operation(raw):
    with pytest.raises(DecodeError, match="unrecognized operation"):
        decode(raw)


def test_oversized_datagram_rejected():
    raw = encode(Data(1, b"x" * BLOCK_SIZE)) + b"x"
    with pytest.raises(DecodeError, match="too large"):
        decode(raw)


@pytest.mark.parametrize("mode", ["NETASCII", "netascii", "mail", "octets", "oct"])
def test_unsupported_mode(mode):
    raw = b"\x00\x01file\x00" + mode.encode() + b"\x00"
    with pytest.raises(ValidationError, match="unsupported mode"):
        decode(raw)


def test_mode_is_case_insensitive():
    p = decode(b"\x00\x01file\x00OcTeT\x00")
    assert p == ReadRequest("file", "OcTeT")


def test_empty_filename():
    with pytest.raises(ValidationError, match="empty filename"):
        decode(b"\x00\x01\x00octet\x00")


def test_empty_mode():
    with pytest.raises(ValidationError):
        decode(b"\x00\x01file\x00\x00")


def test_missing_terminators():
    with pytest.raises(DecodeError):
        decode(b"\x00\x01file")
    with pytest.raises(DecodeError):
        decode(b"\x00\x01file\x00octet")
    with pytest.raises(DecodeError):
        decode(b"\x00\x05\x00\x01oops")


def test_request_options_are_ignored():
    raw = b"\x00\x01file\x00octet\x00blksize\x001428\x00"
    assert decode(raw) == ReadRequest("file", "octet")


def test_unknown_error_code():
    with pytest.raises(DecodeError, match="unknown error code"):
        decode(struct.pack("!HH", 5, 99) + b"x\x00")


def test_encode_rejects_bad_packets():
    with pytest.raises(EncodeError):
        encode(Data(1, b"x" * (BLOCK_SIZE + 1)))
    with pytest.raises(EncodeError):
        encode(Ack(65536))
    with pytest.raises(EncodeError):
        encode(ReadRequest("bad\x00name"))
    with pytest.raises(EncodeError):
        encode(b"\x00\x04\x00\x01")
    with pytest.raises(EncodeError, match="packet too large"):
        encode(Err(ErrorCode.UNKNOWN, "m" * 600))
    with pytest.raises(EncodeError, match="packet too large"):
        encode(ReadRequest("f" * 600))


def test_largest_error_message_fits_a_datagram():
    e = Err(ErrorCode.UNKNOWN, "m" * (DATAGRAM_SIZE - 5))
    raw = encode(e)
    assert len(raw) == DATAGRAM_SIZE
    assert decode(raw) == e
    with pytest.raises(EncodeError):
        encode(Err(ErrorCode.UNKNOWN, "m" * (DATAGRAM_SIZE - 4)))
