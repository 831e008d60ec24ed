# pinger/transport/base.py
from abc import ABC, abstractmethod
from typing import Optional


class Transport(ABC):
    """One datagram endpoint owned by a single probing run.

    Subclasses supply the socket work; the base class keeps track of the
    receive deadline so it is only pushed down when it actually changes.
    """

    def __init__(self, family: int):
        self.family = family
        self.applied_deadline_ms: Optional[int] = None

    @abstractmethod
    def configure(self, ttl: int, dont_fragment: bool, receive_buffer_size: int) -> None:
        raise NotImplementedError

    def set_receive_deadline(self, deadline_ms: int) -> bool:
        """Apply *deadline_ms* if it differs from the current one. Returns True if applied."""
        if deadline_ms == self.applied_deadline_ms:
            return False
        self._apply_receive_deadline(deadline_ms)
        self.applied_deadline_ms = deadline_ms
        return True

    @abstractmethod
    def _apply_receive_deadline(self, deadline_ms: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def send_to(self, data: bytes, address: str) -> float:
        """Transmit *data*; return a monotonic timestamp taken right after the send."""
        raise NotImplementedError

    @abstractmethod
    def receive_from(self, bufsize: int) -> tuple[bytes, object]:
        """Blocking receive bounded by the last deadline.

        Returns ICMP bytes (no IP header) and the source endpoint. Raises
        ReceiveTimeout when the deadline passes, TransportError on I/O failure.
        """
        raise NotImplementedError

    @abstractmethod
    def drain_pending(self) -> int:
        """Discard already-queued datagrams; return how many were dropped."""
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
