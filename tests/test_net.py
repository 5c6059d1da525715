from __future__ import annotations

import pytest

from minitftp.net import Impairment, UdpEndpoint, parse_address


@pytest.mark.parametrize(
    "value,expected",
    [
        ("127.0.0.1:69", ("127.0.0.1", 69)),
        ("localhost:6969", ("localhost", 6969)),
        ("10.0.0.5", ("10.0.0.5", 69)),
        (":7000", ("0.0.0.0", 7000)),
    ],
)
def test_parse_address(value, expected):
    assert parse_address(value) == expected


def test_parse_address_default_port():
    assert parse_address("127.0.0.2", default_port=0) == ("127.0.0.2", 0)


def test_parse_address_rejects_bad_port():
    with pytest.raises(ValueError):
        parse_address("127.0.0.1:tftp")


def test_impairment_defaults_never_drop():
    assert Impairment().should_drop() is False
    assert Impairment(loss_rate=1.0).should_drop() is True


def test_endpoint_roundtrip_and_timeout():
    a = UdpEndpoint.bound(("127.0.0.1", 0), timeout=0.5)
    b = UdpEndpoint.bound(("127.0.0.1", 0), timeout=0.05)
    try:
        b.sendto(b"ping", a.local_address)
        data, addr = a.recvfrom()
        assert data == b"ping"
        assert addr == b.local_address
        with pytest.raises(TimeoutError):
            b.recvfrom()
    finally:
        a.close()
        b.close()
