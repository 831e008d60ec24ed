# pinger/transport/fake.py
import socket
import time

from pinger.errors import ReceiveTimeout, TransmitError
from pinger.transport.base import Transport
from pinger.wire.codec import Packet, REPLY_TYPES, decode, encode


def echo_reply(request: Packet) -> bytes:
    """What a well-behaved target sends back for *request*."""
    reply_type = REPLY_TYPES.get(request.type, 0)
    return encode(reply_type, 0, request.identifier, request.sequence, request.payload)


class FakeTransport(Transport):
    """
    In-memory transport with simulated arrival times.

    script: dict[sequence] -> list of (delay_ms, reply) queued when that
    sequence is sent. reply is either raw ICMP bytes or a callable taking the
    decoded request and returning bytes.
    responder: callable(request) -> list of (delay_ms, reply), used for
    sequences the script doesn't mention. With neither, the target is silent.
    send_errors: sequences whose send fails with TransmitError.
    """

    def __init__(self, family: int = socket.AF_INET, script=None, responder=None,
                 send_errors=(), source: str = "192.0.2.1"):
        super().__init__(family)
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.responder = responder
        self.send_errors = set(send_errors)
        self.source = source

        self.inbox = []            # (arrival, data, source), ordered by arrival
        self.sent = []             # raw bytes of every successful send
        self.configured = []
        self.deadline_calls = []   # deadlines actually pushed down
        self.receive_calls = 0
        self.drained = 0
        self.closed = False

    @classmethod
    def echoing(cls, delay_ms: float = 1, **kwargs) -> "FakeTransport":
        return cls(responder=lambda req: [(delay_ms, echo_reply)], **kwargs)

    def inject(self, data: bytes, delay_ms: float = 0) -> None:
        """Queue an unsolicited datagram."""
        self._queue(time.perf_counter() + delay_ms / 1000.0, data)

    def _queue(self, arrival: float, data: bytes) -> None:
        self.inbox.append((arrival, data, (self.source, 0)))
        self.inbox.sort(key=lambda m: m[0])

    def configure(self, ttl: int, dont_fragment: bool, receive_buffer_size: int) -> None:
        self.configured.append((ttl, dont_fragment, receive_buffer_size))

    def _apply_receive_deadline(self, deadline_ms: int) -> None:
        self.deadline_calls.append(deadline_ms)

    def send_to(self, data: bytes, address: str) -> float:
        if self.closed:
            raise TransmitError("transport is closed")
        request = decode(data)
        if request.sequence in self.send_errors:
            raise TransmitError(f"scripted send failure for seq {request.sequence}")

        self.sent.append(data)
        now = time.perf_counter()

        if request.sequence in self.script:
            replies = self.script[request.sequence]
        elif self.responder is not None:
            replies = self.responder(request)
        else:
            replies = []

        for delay_ms, reply in replies:
            payload = reply(request) if callable(reply) else reply
            self._queue(now + delay_ms / 1000.0, payload)
        return now

    def receive_from(self, bufsize: int) -> tuple[bytes, object]:
        self.receive_calls += 1
        wait = (self.applied_deadline_ms or 0) / 1000.0
        now = time.perf_counter()

        if self.inbox and self.inbox[0][0] <= now + wait:
            arrival, data, source = self.inbox.pop(0)
            if arrival > now:
                time.sleep(arrival - now)
            return data[:bufsize], source

        time.sleep(wait)
        raise ReceiveTimeout()

    def drain_pending(self) -> int:
        now = time.perf_counter()
        ready = [m for m in self.inbox if m[0] <= now]
        self.inbox = [m for m in self.inbox if m[0] > now]
        self.drained += len(ready)
        return len(ready)

    def close(self) -> None:
        self.closed = True
