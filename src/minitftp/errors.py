from __future__ import annotations


class TftpError(Exception):
    pass


class DecodeError(TftpError, ValueError):
    """Raised for a datagram that is not a well-formed packet."""


class ValidationError(DecodeError):
    """Well-formed on the wire but rejected, e.g. empty filename or non-octet mode."""


class EncodeError(TftpError, ValueError):
    pass


class ProtocolError(TftpError):
    """The peer ended the transfer with an error packet."""

    def __init__(self, code: int, message: str):
        super().__init__(f"peer error {int(code)}: {message}")
        self.code = code
        self.message = message


class TransportError(TftpError):
    pass


class RetryExhausted(TftpError):
    pass
