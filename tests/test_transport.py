# tests/test_transport.py
import socket

import pytest

from pinger.errors import PermissionDenied, ReceiveTimeout, TransmitError, TransportError
from pinger.transport import raw
from pinger.transport.fake import FakeTransport, echo_reply
from pinger.transport.raw import RawTransport
from pinger.wire.codec import decode, encode


class FakeSocket:
    """Records what RawTransport asks of the OS."""

    def __init__(self, incoming=None, send_error=None, fd=3):
        self.options = []
        self.timeouts = []
        self.sent = []
        self.incoming = list(incoming or [])
        self.send_error = send_error
        self.closed = 0
        self.fd = fd
        self.timeout = None

    def fileno(self):
        return self.fd

    def setsockopt(self, level, opt, value):
        self.options.append((level, opt, value))

    def settimeout(self, value):
        self.timeouts.append(value)
        self.timeout = value

    def gettimeout(self):
        return self.timeout

    def setblocking(self, flag):
        self.timeout = None if flag else 0.0

    def sendto(self, data, addr):
        if self.send_error:
            raise self.send_error
        self.sent.append((data, addr))
        return len(data)

    def recvfrom(self, bufsize):
        item = self.incoming.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item[:bufsize], ("192.0.2.9", 0)

    def recv(self, bufsize):
        if not self.incoming and self.timeout == 0.0:
            raise BlockingIOError(11, "Resource temporarily unavailable")
        return self.recvfrom(bufsize)[0]

    def close(self):
        self.closed += 1


def _ipv4(icmp: bytes) -> bytes:
    return bytes([0x45]) + b"\x00" * 19 + icmp


def test_open_without_privilege_raises_permission_denied(monkeypatch):
    def refuse(*args, **kwargs):
        raise PermissionError(1, "Operation not permitted")

    monkeypatch.setattr(socket, "socket", refuse)
    with pytest.raises(PermissionDenied) as info:
        RawTransport.open(socket.AF_INET)
    assert isinstance(info.value.__cause__, PermissionError)


def test_open_other_failure_is_transport_error(monkeypatch):
    def broken(*args, **kwargs):
        raise OSError(97, "Address family not supported")

    monkeypatch.setattr(socket, "socket", broken)
    with pytest.raises(TransportError) as info:
        RawTransport.open(socket.AF_INET6)
    assert not isinstance(info.value, PermissionDenied)


def test_open_picks_protocol_for_family(monkeypatch):
    calls = []

    def make(family, kind, proto):
        calls.append((family, kind, proto))
        return FakeSocket()

    monkeypatch.setattr(socket, "socket", make)
    RawTransport.open(socket.AF_INET)
    RawTransport.open(socket.AF_INET6)
    assert calls == [
        (socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_ICMP),
        (socket.AF_INET6, socket.SOCK_RAW, socket.IPPROTO_ICMPV6),
    ]


def test_configure_v4_sets_ttl_and_buffer_once():
    sock = FakeSocket()
    t = RawTransport(sock, socket.AF_INET)
    t.configure(64, False, 5096)
    assert (socket.IPPROTO_IP, socket.IP_TTL, 64) in sock.options
    assert (socket.SOL_SOCKET, socket.SO_RCVBUF, 5096) in sock.options

    applied = len(sock.options)
    t.configure(64, False, 5096)
    assert len(sock.options) == applied


def test_configure_v6_uses_hop_limit():
    sock = FakeSocket()
    RawTransport(sock, socket.AF_INET6).configure(10, False, 2048)
    assert (socket.IPPROTO_IPV6, socket.IPV6_UNICAST_HOPS, 10) in sock.options


def test_configure_dont_fragment_on_linux(monkeypatch):
    monkeypatch.setattr(raw.sys, "platform", "linux")
    sock = FakeSocket()
    RawTransport(sock, socket.AF_INET).configure(255, True, 5096)
    assert (socket.IPPROTO_IP, raw._IP_MTU_DISCOVER, raw._IP_PMTUDISC_DO) in sock.options


def test_receive_deadline_only_applied_on_change():
    sock = FakeSocket()
    t = RawTransport(sock, socket.AF_INET)
    assert t.set_receive_deadline(250) is True
    assert t.set_receive_deadline(250) is False
    assert t.set_receive_deadline(100) is True
    assert sock.timeouts == [0.25, 0.1]


def test_send_returns_timestamp_and_wraps_errors():
    sock = FakeSocket()
    t = RawTransport(sock, socket.AF_INET)
    stamp = t.send_to(b"abc", "192.0.2.9")
    assert isinstance(stamp, float)
    assert sock.sent == [(b"abc", ("192.0.2.9", 0))]

    failing = RawTransport(FakeSocket(send_error=OSError(101, "Network is unreachable")), socket.AF_INET)
    with pytest.raises(TransmitError):
        failing.send_to(b"abc", "192.0.2.9")


def test_receive_strips_ipv4_header():
    icmp = encode(0, 0, 5, 6, b"data")
    t = RawTransport(FakeSocket(incoming=[_ipv4(icmp)]), socket.AF_INET)
    data, source = t.receive_from(5096)
    assert data == icmp
    assert source == ("192.0.2.9", 0)


def test_receive_v6_is_untouched():
    icmp = encode(129, 0, 5, 6, b"data")
    t = RawTransport(FakeSocket(incoming=[icmp]), socket.AF_INET6)
    assert t.receive_from(5096)[0] == icmp


def test_receive_timeout_and_errors():
    t = RawTransport(FakeSocket(incoming=[socket.timeout(), OSError(104, "reset")]), socket.AF_INET)
    with pytest.raises(ReceiveTimeout):
        t.receive_from(5096)
    with pytest.raises(TransportError) as info:
        t.receive_from(5096)
    assert not isinstance(info.value, ReceiveTimeout)


def test_drain_discards_queued_datagrams():
    sock = FakeSocket(incoming=[b"old-1", b"old-2"])
    t = RawTransport(sock, socket.AF_INET)
    t.set_receive_deadline(250)

    assert t.drain_pending() == 2
    assert sock.incoming == []
    assert t.drain_pending() == 0
    assert sock.gettimeout() == 0.25


def test_drain_works_with_high_descriptor_numbers():
    sock = FakeSocket(incoming=[b"old"], fd=5000)
    t = RawTransport(sock, socket.AF_INET)
    assert t.drain_pending() == 1
    assert sock.gettimeout() is None


def test_drain_failure_is_transmit_error():
    sock = FakeSocket(incoming=[OSError(9, "Bad file descriptor")])
    t = RawTransport(sock, socket.AF_INET)
    with pytest.raises(TransmitError):
        t.drain_pending()


def test_close_is_idempotent():
    sock = FakeSocket()
    t = RawTransport(sock, socket.AF_INET)
    with t:
        pass
    t.close()
    assert sock.closed == 1


def test_fake_transport_delivers_scripted_replies_in_order():
    fake = FakeTransport.echoing(delay_ms=1)
    fake.set_receive_deadline(100)
    fake.send_to(encode(8, 0, 7, 1, b"x"), "192.0.2.1")
    data, _ = fake.receive_from(5096)
    reply = decode(data)
    assert (reply.type, reply.identifier, reply.sequence, reply.payload) == (0, 7, 1, b"x")

    with pytest.raises(ReceiveTimeout):
        fake.receive_from(5096)


def test_fake_transport_drain_drops_only_arrived_datagrams():
    fake = FakeTransport()
    fake.inject(b"stale")
    fake.inject(b"future", delay_ms=10000)
    assert fake.drain_pending() == 1
    assert [m[1] for m in fake.inbox] == [b"future"]


def test_echo_reply_maps_request_types():
    assert decode(echo_reply(decode(encode(128, 0, 1, 1)))).type == 129
    assert decode(echo_reply(decode(encode(13, 0, 1, 1)))).type == 14
