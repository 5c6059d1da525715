"""Transfer state machines.

Both sessions are pure: they consume decoded packets and return the packet to
send next (or ``None``). Sockets, threads and timers live in the server and
client drivers.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import BinaryIO

from .constants import BLOCK_SIZE, DEFAULT_RETRIES, MODE_OCTET
from .errors import ProtocolError, RetryExhausted
from .packet import Ack, Data, Err, Packet, ReadRequest, next_block


class ServerState(enum.Enum):
    AWAITING_FIRST_SEND = "awaiting-first-send"
    AWAITING_ACK = "awaiting-ack"
    COMPLETED = "completed"
    FAILED = "failed"


class ClientState(enum.Enum):
    SENDING_REQUEST = "sending-request"
    AWAITING_DATA = "awaiting-data"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class ServerSession:
    """Serves ``payload`` to one peer, one block per matching Ack."""

    payload: bytes
    retries: int = DEFAULT_RETRIES
    block_size: int = BLOCK_SIZE
    state: ServerState = ServerState.AWAITING_FIRST_SEND
    block: int = 0  # last block sent
    offset: int = 0  # payload offset of the last block sent
    last: Data | None = None
    retries_left: int = field(init=False)
    blocks_sent: int = 0
    retransmits: int = 0

    def __post_init__(self) -> None:
        self.retries_left = self.retries

    @property
    def done(self) -> bool:
        return self.state in (ServerState.COMPLETED, ServerState.FAILED)

    @property
    def bytes_sent(self) -> int:
        if self.last is None:
            return 0
        return self.offset + len(self.last.payload)

    def _send_block(self, offset: int) -> Data:
        self.offset = offset
        self.block = next_block(self.block)
        self.last = Data(self.block, self.payload[offset : offset + self.block_size])
        self.blocks_sent += 1
        self.retries_left = self.retries
        return self.last

    def handle(self, packet: Packet) -> Data | None:
        if isinstance(packet, ReadRequest):
            return self.start(packet)
        if isinstance(packet, Ack):
            return self.on_ack(packet)
        if isinstance(packet, Err):
            self.on_error(packet)
        return None

    def start(self, rrq: ReadRequest) -> Data | None:
        # a repeated request from an active peer carries no new information
        if self.state is not ServerState.AWAITING_FIRST_SEND:
            return None
        self.state = ServerState.AWAITING_ACK
        return self._send_block(0)

    def on_ack(self, ack: Ack) -> Data | None:
        if self.state is not ServerState.AWAITING_ACK or self.last is None:
            return None
        if ack.block != self.block:
            return None
        if len(self.last.payload) < self.block_size:
            self.state = ServerState.COMPLETED
            return None
        return self._send_block(self.offset + len(self.last.payload))

    def on_error(self, err: Err) -> None:
        self.state = ServerState.FAILED
        raise ProtocolError(err.code, err.message)

    def on_timeout(self) -> Data | None:
        """Resend the outstanding block, or fail once the retries are spent."""
        if self.state is not ServerState.AWAITING_ACK or self.last is None:
            return None
        if self.retries_left <= 0:
            self.state = ServerState.FAILED
            raise RetryExhausted(f"no ack for block {self.block} after {self.retries} retries")
        self.retries_left -= 1
        self.retransmits += 1
        return self.last


@dataclass(slots=True)
class ClientSession:
    """Receives one file into ``out``, acknowledging every block."""

    filename: str
    out: BinaryIO
    retries: int = DEFAULT_RETRIES
    block_size: int = BLOCK_SIZE
    state: ClientState = ClientState.SENDING_REQUEST
    expected: int = 1
    last_sent: Packet | None = None
    retries_left: int = field(init=False)
    bytes_received: int = 0
    blocks_received: int = 0

    def __post_init__(self) -> None:
        self.retries_left = self.retries

    @property
    def done(self) -> bool:
        return self.state in (ClientState.COMPLETED, ClientState.FAILED)

    def request(self) -> ReadRequest:
        rrq = ReadRequest(filename=self.filename, mode=MODE_OCTET)
        self.state = ClientState.AWAITING_DATA
        self.last_sent = rrq
        return rrq

    def on_data(self, data: Data) -> Ack | None:
        if self.state is not ClientState.AWAITING_DATA:
            return None

        if data.block != self.expected:
            if self.blocks_received and next_block(data.block) == self.expected:
                # our ack was lost; the server resent the previous block
                self.consume_attempt(f"duplicate block {data.block}")
                return Ack(data.block)
            return None

        self.out.write(data.payload)
        self.bytes_received += len(data.payload)
        self.blocks_received += 1
        self.retries_left = self.retries
        self.expected = next_block(data.block)
        if len(data.payload) < self.block_size:
            self.state = ClientState.COMPLETED

        ack = Ack(data.block)
        self.last_sent = ack
        return ack

    def on_error(self, err: Err) -> None:
        self.state = ClientState.FAILED
        raise ProtocolError(err.code, err.message)

    def consume_attempt(self, reason: str, cause: BaseException | None = None) -> None:
        self.retries_left -= 1
        if self.retries_left <= 0:
            self.state = ClientState.FAILED
            raise RetryExhausted(f"exhausted retries waiting for block {self.expected}: {reason}") from cause
