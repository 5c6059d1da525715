from __future__ import annotations

import random
import socket
import time
from dataclasses import dataclass
from typing import Tuple

from .constants import DEFAULT_PORT
from .errors import TransportError

Address = Tuple[str, int]


def parse_address(value: str, default_port: int = DEFAULT_PORT) -> Address:
    """Split ``host:port`` (or a bare host) into a socket address."""
    host, sep, port = value.rpartition(":")
    if not sep:
        return value, default_port
    if not port.isdigit():
        raise ValueError(f"invalid port in address: {value!r}")
    return host or "0.0.0.0", int(port)


@dataclass(frozen=True, slots=True)
class Impairment:
    """Outbound loss and delay injection, used to exercise retry paths."""

    loss_rate: float = 0.0
    delay_ms: int = 0

    def should_drop(self) -> bool:
        return self.loss_rate > 0 and random.random() < self.loss_rate

    def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)


class UdpEndpoint:
    def __init__(self, sock: socket.socket, impairment: Impairment | None = None):
        self.sock = sock
        self.impairment = impairment or Impairment()

    @classmethod
    def bound(
        cls,
        address: Address,
        timeout: float | None = None,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind(address)
        except OSError as exc:
            sock.close()
            raise TransportError(f"unable to bind UDP address {address[0]}:{address[1]}") from exc
        sock.settimeout(timeout)
        return cls(sock, impairment)

    @property
    def local_address(self) -> Address:
        host, port = self.sock.getsockname()[:2]
        return host, port

    def settimeout(self, timeout: float | None) -> None:
        self.sock.settimeout(timeout)

    def sendto(self, data: bytes, addr: Address) -> None:
        if self.impairment.should_drop():
            return
        self.impairment.sleep_if_needed()
        try:
            self.sock.sendto(data, addr)
        except OSError as exc:
            raise TransportError(f"failed sending {len(data)} bytes to {addr[0]}:{addr[1]}") from exc

    def recvfrom(self, bufsize: int = 65535) -> Tuple[bytes, Address]:
        """Receive one datagram; raises ``TimeoutError`` when the deadline passes."""
        try:
            data, addr = self.sock.recvfrom(bufsize)
        except TimeoutError:
            raise
        except OSError as exc:
            raise TransportError("failed reading from socket") from exc
        return data, (addr[0], addr[1])

    def close(self) -> None:
        self.sock.close()
