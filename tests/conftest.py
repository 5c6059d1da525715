from __future__ import annotations

import threading
import time
from typing import Callable, Iterator

import pytest

from minitftp.net import UdpEndpoint
from minitftp.server import Server


class FakeEndpoint:
    """Records outbound datagrams instead of touching a socket."""

    def __init__(self):
        self.sent: list[tuple[bytes, tuple[str, int]]] = []
        self._lock = threading.Lock()

    def sendto(self, data: bytes, addr: tuple[str, int]) -> None:
        with self._lock:
            self.sent.append((data, addr))

    def snapshot(self) -> list[tuple[bytes, tuple[str, int]]]:
        with self._lock:
            return list(self.sent)


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@pytest.fixture
def fake_endpoint() -> FakeEndpoint:
    return FakeEndpoint()


@pytest.fixture
def serve_payload() -> Iterator[Callable[..., tuple[Server, tuple[str, int]]]]:
    """Start a loopback server thread for a payload; returns (server, address)."""
    running: list[tuple[Server, UdpEndpoint, threading.Thread]] = []

    def start(payload: bytes, **kwargs) -> tuple[Server, tuple[str, int]]:
        server = Server(payload, **kwargs)
        udp = UdpEndpoint.bound(("127.0.0.1", 0), timeout=0.05, impairment=kwargs.get("impairment"))
        t = threading.Thread(target=server.serve, args=(udp,), daemon=True)
        t.start()
        running.append((server, udp, t))
        return server, udp.local_address

    yield start

    for server, udp, t in running:
        server.shutdown()
        t.join(timeout=2.0)
        udp.close()
