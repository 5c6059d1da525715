from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Callable, Dict, Tuple, Union

from .constants import (
    BLOCK_SIZE,
    DATAGRAM_SIZE,
    HEADER_FORMAT,
    HEADER_SIZE,
    MAX_BLOCK_NUMBER,
    MODE_OCTET,
    OPCODE_SIZE,
)
from .errors import DecodeError, EncodeError, ValidationError


class OpCode(enum.IntEnum):
    RRQ = 1
    WRQ = 2  # recognised on the wire, never served
    DATA = 3
    ACK = 4
    ERROR = 5


class ErrorCode(enum.IntEnum):
    UNKNOWN = 0
    NOT_FOUND = 1
    ACCESS_VIOLATION = 2
    DISK_FULL = 3
    ILLEGAL_OPERATION = 4
    UNKNOWN_TRANSFER_ID = 5
    FILE_ALREADY_EXISTS = 6
    NO_SUCH_USER = 7


def next_block(block: int) -> int:
    """Block number that follows ``block``; 65535 wraps to 0."""
    return (block + 1) & MAX_BLOCK_NUMBER


def _pack_header(opcode: OpCode, value: int) -> bytes:
    if not 0 <= value <= MAX_BLOCK_NUMBER:
        raise EncodeError(f"header value out of range: {value}")
    return struct.pack(HEADER_FORMAT, int(opcode), value)


def _pack_string(value: str) -> bytes:
    try:
        raw = value.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise EncodeError(f"string is not encodable: {value!r}") from exc
    if b"\x00" in raw:
        raise EncodeError(f"string contains a NUL byte: {value!r}")
    return raw + b"\x00"


def _read_string(raw: bytes, start: int, field: str) -> Tuple[str, int]:
    end = raw.find(b"\x00", start)
    if end < 0:
        raise DecodeError(f"{field} is not NUL-terminated")
    try:
        value = raw[start:end].decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(f"{field} is not valid UTF-8") from exc
    return value, end + 1


@dataclass(frozen=True, slots=True)
class ReadRequest:
    filename: str
    mode: str = MODE_OCTET

    def to_bytes(self) -> bytes:
        opcode = struct.pack("!H", int(OpCode.RRQ))
        return opcode + _pack_string(self.filename) + _pack_string(self.mode)

    @staticmethod
    def from_bytes(raw: bytes) -> "ReadRequest":
        filename, offset = _read_string(raw, OPCODE_SIZE, "filename")
        mode, _ = _read_string(raw, offset, "mode")
        if not filename:
            raise ValidationError("empty filename")
        if mode.lower() != MODE_OCTET:
            raise ValidationError(f"unsupported mode: {mode!r}")
        return ReadRequest(filename=filename, mode=mode)


@dataclass(frozen=True, slots=True)
class Data:
    block: int
    payload: bytes = b""

    @property
    def is_last(self) -> bool:
        return len(self.payload) < BLOCK_SIZE

    def to_bytes(self) -> bytes:
        if len(self.payload) > BLOCK_SIZE:
            raise EncodeError(f"payload too large: {len(self.payload)}")
        return _pack_header(OpCode.DATA, self.block) + bytes(self.payload)

    @staticmethod
    def from_bytes(raw: bytes) -> "Data":
        if len(raw) < HEADER_SIZE:
            raise DecodeError("unrecognized operation")
        _, block = struct.unpack_from(HEADER_FORMAT, raw)
        return Data(block=block, payload=bytes(raw[HEADER_SIZE:]))


@dataclass(frozen=True, slots=True)
class Ack:
    block: int

    def to_bytes(self) -> bytes:
        return _pack_header(OpCode.ACK, self.block)

    @staticmethod
    def from_bytes(raw: bytes) -> "Ack":
        if len(raw) < HEADER_SIZE:
            raise DecodeError("unrecognized operation")
        _, block = struct.unpack_from(HEADER_FORMAT, raw)
        return Ack(block=block)


@dataclass(frozen=True, slots=True)
class Err:
    code: ErrorCode
    message: str = ""

    def to_bytes(self) -> bytes:
        return _pack_header(OpCode.ERROR, int(self.code)) + _pack_string(self.message)

    @staticmethod
    def from_bytes(raw: bytes) -> "Err":
        if len(raw) < HEADER_SIZE:
            raise DecodeError("unrecognized operation")
        _, code = struct.unpack_from(HEADER_FORMAT, raw)
        try:
            error_code = ErrorCode(code)
        except ValueError as exc:
            raise DecodeError(f"unknown error code: {code}") from exc
        message, _ = _read_string(raw, HEADER_SIZE, "message")
        return Err(code=error_code, message=message)


Packet = Union[ReadRequest, Data, Ack, Err]

_DECODERS: Dict[int, Callable[[bytes], Packet]] = {
    OpCode.RRQ: ReadRequest.from_bytes,
    OpCode.DATA: Data.from_bytes,
    OpCode.ACK: Ack.from_bytes,
    OpCode.ERROR: Err.from_bytes,
}


def encode(packet: Packet) -> bytes:
    if not isinstance(packet, (ReadRequest, Data, Ack, Err)):
        raise EncodeError(f"not a packet: {packet!r}")
    raw = packet.to_bytes()
    if len(raw) > DATAGRAM_SIZE:
        raise EncodeError(f"packet too large: {len(raw)} bytes")
    return raw


def decode(raw: bytes) -> Packet:
    if len(raw) > DATAGRAM_SIZE:
        raise DecodeError(f"datagram too large: {len(raw)} bytes")
    if len(raw) < OPCODE_SIZE:
        raise DecodeError("unrecognized operation")
    (opcode,) = struct.unpack_from("!H", raw)
    decoder = _DECODERS.get(opcode)
    if decoder is None:
        raise DecodeError("unrecognized operation")
    return decoder(bytes(raw))
