from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Dict

from .constants import DATAGRAM_SIZE, DEFAULT_RETRIES, DEFAULT_TIMEOUT_S, POLL_INTERVAL_S
from .errors import DecodeError, ProtocolError, RetryExhausted, TransportError, ValidationError
from .net import Address, Impairment, UdpEndpoint
from .packet import Packet, ReadRequest, decode, encode
from .session import ServerSession

log = logging.getLogger(__name__)


@dataclass(slots=True)
class Server:
    """Serves one in-memory payload to every read request.

    Each peer address gets its own session thread and inbox; the payload is
    the only thing the sessions share, and nothing writes to it.
    """

    payload: bytes
    retries: int = DEFAULT_RETRIES
    timeout: float = DEFAULT_TIMEOUT_S
    impairment: Impairment | None = None
    logger: logging.Logger = log
    _sessions: Dict[Address, "queue.Queue[Packet]"] = field(default_factory=dict, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _stopped: threading.Event = field(default_factory=threading.Event, init=False)

    def __post_init__(self) -> None:
        if self.payload is None:
            raise ValueError("payload is required")
        self.payload = bytes(self.payload)

    @property
    def active_sessions(self) -> int:
        with self._lock:
            return len(self._sessions)

    def listen_and_serve(self, address: Address) -> None:
        udp = UdpEndpoint.bound(address, timeout=POLL_INTERVAL_S, impairment=self.impairment)
        self.logger.info("listening on %s:%d ...", *udp.local_address)
        try:
            self.serve(udp)
        finally:
            udp.close()

    def serve(self, udp: UdpEndpoint) -> None:
        """Receive and dispatch datagrams until ``shutdown`` is called.

        A shutdown requested before the loop starts is honoured; a stopped
        server does not restart.

        The socket should carry a short timeout so the loop can notice the
        shutdown flag; a failed read raises ``TransportError``.
        """
        while not self._stopped.is_set():
            try:
                raw, addr = udp.recvfrom(DATAGRAM_SIZE + 1)
            except TimeoutError:
                continue
            except TransportError:
                if self._stopped.is_set():
                    break
                raise
            self.dispatch(udp, raw, addr)

    def shutdown(self) -> None:
        self._stopped.set()

    def dispatch(self, udp: UdpEndpoint, raw: bytes, addr: Address) -> None:
        try:
            packet = decode(raw)
        except ValidationError as exc:
            self.logger.warning("[%s:%d] rejected request: %s", addr[0], addr[1], exc)
            return
        except DecodeError as exc:
            self.logger.debug("[%s:%d] bad packet: %s", addr[0], addr[1], exc)
            return

        with self._lock:
            inbox = self._sessions.get(addr)
            if inbox is None and isinstance(packet, ReadRequest):
                inbox = queue.Queue()
                self._sessions[addr] = inbox
                worker = threading.Thread(
                    target=self._run_session,
                    args=(udp, addr, inbox),
                    name=f"tftp-session-{addr[0]}:{addr[1]}",
                    daemon=True,
                )
                worker.start()

        if inbox is None:
            self.logger.debug("[%s:%d] ignoring %s with no active transfer", addr[0], addr[1], type(packet).__name__)
            return
        inbox.put(packet)

    def _run_session(self, udp: UdpEndpoint, addr: Address, inbox: "queue.Queue[Packet]") -> None:
        peer = f"{addr[0]}:{addr[1]}"
        session = ServerSession(self.payload, retries=self.retries)
        # only a send re-arms the timer; ignored packets leave it running
        deadline = time.monotonic() + self.timeout
        try:
            while not session.done:
                try:
                    packet = inbox.get(timeout=max(0.0, deadline - time.monotonic()))
                except queue.Empty:
                    reply = session.on_timeout()
                    deadline = time.monotonic() + self.timeout
                    if reply is not None:
                        self.logger.debug("[%s] timeout; resending block %d", peer, reply.block)
                else:
                    if isinstance(packet, ReadRequest) and session.blocks_sent == 0:
                        self.logger.info("[%s] read request for %r", peer, packet.filename)
                    reply = session.handle(packet)
                    if reply is None and not session.done:
                        self.logger.debug("[%s] ignoring %r", peer, packet)
                if reply is not None:
                    udp.sendto(encode(reply), addr)
                    deadline = time.monotonic() + self.timeout
        except ProtocolError as exc:
            self.logger.error("[%s] received error: %s", peer, exc.message)
        except RetryExhausted as exc:
            self.logger.error("[%s] transfer abandoned: %s", peer, exc)
        except TransportError as exc:
            self.logger.error("[%s] error sending data packet: %s", peer, exc)
        else:
            self.logger.info(
                "[%s] transfer complete; blocks=%d bytes=%d retransmits=%d",
                peer,
                session.blocks_sent,
                session.bytes_sent,
                session.retransmits,
            )
        finally:
            with self._lock:
                if self._sessions.get(addr) is inbox:
                    del self._sessions[addr]
