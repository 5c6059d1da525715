from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import BinaryIO

from .constants import DATAGRAM_SIZE, DEFAULT_RETRIES, DEFAULT_TIMEOUT_S
from .errors import DecodeError
from .net import Address, Impairment, UdpEndpoint
from .packet import Data, Err, decode, encode
from .session import ClientSession

log = logging.getLogger(__name__)


@dataclass(slots=True)
class Metrics:
    bytes_received: int = 0
    blocks: int = 0
    timeouts: int = 0
    retransmits: int = 0
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.bytes_received * 8 / 1_000_000) / self.duration_s


@dataclass(slots=True)
class Client:
    server: Address
    out: BinaryIO
    local: Address = ("127.0.0.1", 0)
    retries: int = DEFAULT_RETRIES
    timeout: float = DEFAULT_TIMEOUT_S
    impairment: Impairment | None = None
    logger: logging.Logger = log

    def send(self, filename: str) -> Metrics:
        """Request ``filename`` from the server and write it to ``out``."""
        udp = UdpEndpoint.bound(self.local, timeout=self.timeout, impairment=self.impairment)
        try:
            return self.transfer(udp, filename)
        finally:
            udp.close()

    def transfer(self, udp: UdpEndpoint, filename: str) -> Metrics:
        if not filename:
            raise ValueError("filename must not be empty")

        metrics = Metrics()
        session = ClientSession(filename, self.out, retries=self.retries)
        me = "%s:%d" % udp.local_address
        peer = self.server
        pinned: Address | None = None

        udp.sendto(encode(session.request()), self.server)
        self.logger.debug("[%s] sent read request for %r to %s:%d", me, filename, *self.server)

        while not session.done:
            try:
                raw, addr = udp.recvfrom(DATAGRAM_SIZE + 1)
            except TimeoutError as exc:
                metrics.timeouts += 1
                session.consume_attempt("timed out", exc)
                if session.last_sent is not None:
                    metrics.retransmits += 1
                    udp.sendto(encode(session.last_sent), peer)
                continue

            if pinned is not None and addr != pinned:
                self.logger.debug("[%s] dropping datagram from unknown peer %s:%d", me, addr[0], addr[1])
                session.consume_attempt(f"datagram from unknown peer {addr[0]}:{addr[1]}")
                continue

            try:
                packet = decode(raw)
            except DecodeError as exc:
                self.logger.debug("[%s] error decoding reply from %s:%d: %s", me, addr[0], addr[1], exc)
                session.consume_attempt(str(exc), exc)
                continue

            if isinstance(packet, Err):
                session.on_error(packet)
            if not isinstance(packet, Data):
                self.logger.debug("[%s] unexpected %r from %s:%d", me, packet, addr[0], addr[1])
                session.consume_attempt(f"unexpected {type(packet).__name__}")
                continue

            ack = session.on_data(packet)
            if ack is None:
                self.logger.debug("[%s] discarding block %d; expected %d", me, packet.block, session.expected)
                session.consume_attempt(f"out of sequence block {packet.block}")
                continue

            # replies may come from a different port than the request went to;
            # the first accepted block fixes the peer for the rest of the transfer
            peer = pinned = addr
            udp.sendto(encode(ack), peer)
            self.logger.debug("[%s] acked block %d (%d bytes)", me, ack.block, len(packet.payload))

        self.out.flush()
        metrics.bytes_received = session.bytes_received
        metrics.blocks = session.blocks_received
        metrics.end_ts = time.monotonic()
        self.logger.info(
            "[%s] received %r; bytes=%d blocks=%d",
            me,
            filename,
            metrics.bytes_received,
            metrics.blocks,
        )
        return metrics

