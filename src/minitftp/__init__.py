"""minitftp: a read-only, octet-mode TFTP server and client.

- packet framing is separate from the transfer state machines
- sessions are pure; sockets and threads live in the server and client drivers
- one in-memory payload is served to every read request
"""

import logging

from .client import Client, Metrics
from .errors import (
    DecodeError,
    EncodeError,
    ProtocolError,
    RetryExhausted,
    TftpError,
    TransportError,
    ValidationError,
)
from .packet import Ack, Data, Err, ErrorCode, OpCode, ReadRequest, decode, encode
from .server import Server

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Ack",
    "Client",
    "Data",
    "DecodeError",
    "EncodeError",
    "Err",
    "ErrorCode",
    "Metrics",
    "OpCode",
    "ProtocolError",
    "ReadRequest",
    "RetryExhausted",
    "Server",
    "TftpError",
    "TransportError",
    "ValidationError",
    "decode",
    "encode",
]
