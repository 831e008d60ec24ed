# pinger/transport/raw.py
import errno
import socket
import sys
import time
from typing import Optional

from pinger.errors import PermissionDenied, ReceiveTimeout, TransmitError, TransportError
from pinger.log import get_logger
from pinger.transport.base import Transport
from pinger.wire.codec import strip_ip_header

log = get_logger(__name__)

# Linux path-MTU discovery values; "do" sets DF on every datagram
_IP_MTU_DISCOVER = getattr(socket, "IP_MTU_DISCOVER", 10)
_IP_PMTUDISC_DONT = 0
_IP_PMTUDISC_DO = 2
_IP_DONTFRAGMENT_WIN = 14
_IP_DONTFRAG_BSD = 28


def _dont_fragment_option(family: int, enabled: bool) -> Optional[tuple[int, int, int]]:
    """(level, option, value) that toggles DF for *family* on this platform."""
    if family == socket.AF_INET6:
        opt = getattr(socket, "IPV6_DONTFRAG", None)
        if opt is None:
            return None
        return socket.IPPROTO_IPV6, opt, int(enabled)
    if sys.platform.startswith("linux"):
        return socket.IPPROTO_IP, _IP_MTU_DISCOVER, _IP_PMTUDISC_DO if enabled else _IP_PMTUDISC_DONT
    if sys.platform == "win32":
        return socket.IPPROTO_IP, _IP_DONTFRAGMENT_WIN, int(enabled)
    if sys.platform == "darwin" or "bsd" in sys.platform:
        return socket.IPPROTO_IP, _IP_DONTFRAG_BSD, int(enabled)
    return None


def _is_permission_error(exc: OSError) -> bool:
    if isinstance(exc, PermissionError):
        return True
    if exc.errno in (errno.EPERM, errno.EACCES):
        return True
    return getattr(exc, "winerror", None) == 10013  # WSAEACCES


class RawTransport(Transport):
    """
    Raw ICMP / ICMPv6 socket. We need raw sockets because we build the ICMP
    header ourselves, which is also why creating one needs elevated rights.
    """

    def __init__(self, sock: socket.socket, family: int):
        super().__init__(family)
        self.sock = sock
        self._options: Optional[tuple[int, bool, int]] = None

    @classmethod
    def open(cls, family: int) -> "RawTransport":
        proto = socket.IPPROTO_ICMPV6 if family == socket.AF_INET6 else socket.IPPROTO_ICMP
        try:
            sock = socket.socket(family, socket.SOCK_RAW, proto)
        except OSError as e:
            if _is_permission_error(e):
                raise PermissionDenied() from e
            raise TransportError(f"cannot create raw socket: {e}") from e
        return cls(sock, family)

    def configure(self, ttl: int, dont_fragment: bool, receive_buffer_size: int) -> None:
        options = (ttl, dont_fragment, receive_buffer_size)
        if options == self._options:
            return

        try:
            if self.family == socket.AF_INET6:
                self.sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_UNICAST_HOPS, ttl)
            else:
                self.sock.setsockopt(socket.IPPROTO_IP, socket.IP_TTL, ttl)
            self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, receive_buffer_size)
        except OSError as e:
            raise TransportError(f"cannot apply socket options: {e}") from e

        df = _dont_fragment_option(self.family, dont_fragment)
        if df is not None:
            try:
                self.sock.setsockopt(*df)
            except OSError as e:
                # some stacks refuse DF on raw sockets; keep going without it
                log.warning("could not set don't-fragment: %s", e)
        elif dont_fragment:
            log.warning("don't-fragment is not supported on %s", sys.platform)

        self._options = options

    def _apply_receive_deadline(self, deadline_ms: int) -> None:
        self.sock.settimeout(deadline_ms / 1000.0)

    def send_to(self, data: bytes, address: str) -> float:
        try:
            self.sock.sendto(data, (address, 0))
        except OSError as e:
            raise TransmitError(f"send to {address} failed: {e}") from e
        return time.perf_counter()

    def receive_from(self, bufsize: int) -> tuple[bytes, object]:
        try:
            data, source = self.sock.recvfrom(bufsize)
        except socket.timeout as e:
            raise ReceiveTimeout() from e
        except OSError as e:
            raise TransportError(f"receive failed: {e}") from e

        # v4 raw sockets hand back the IP header too; v6 ones don't
        if self.family == socket.AF_INET:
            data = strip_ip_header(data)
        return data, source

    def drain_pending(self) -> int:
        drained = 0
        previous = self.sock.gettimeout()
        try:
            # non-blocking reads until the queue is empty
            self.sock.setblocking(False)
            while True:
                try:
                    self.sock.recv(65535)
                except BlockingIOError:
                    break
                drained += 1
        except OSError as e:
            raise TransmitError(f"could not drain stale replies: {e}") from e
        finally:
            self.sock.settimeout(previous)
        if drained:
            log.debug("drained %d stale datagram(s)", drained)
        return drained

    def close(self) -> None:
        if self.sock is None:
            return
        try:
            self.sock.close()
        finally:
            self.sock = None
