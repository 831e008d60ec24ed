# pinger/engine/state.py
import copy
import math
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Optional

from pinger.engine.rules import receive_deadline
from pinger.schemas import NO_REPLY, Outcome

COUNTER_MAX = 0xFFFFFFFFFFFFFFFF  # counters are unsigned 64-bit


@dataclass
class RunResults:
    sent: int = 0
    received: int = 0
    lost: int = 0
    has_overflowed: bool = False
    is_running: bool = False
    scan_was_canceled: bool = False

    # (type, code) -> count of accepted replies
    packet_types: Counter = field(default_factory=Counter)
    # one entry per finished iteration, NO_REPLY for lost ones
    response_times: list = field(default_factory=list)
    current_time: float = NO_REPLY

    last_outcome: Optional[Outcome] = None
    last_sequence: Optional[int] = None

    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    def _bump(self, name: str) -> None:
        value = getattr(self, name)
        if value >= COUNTER_MAX:
            self.has_overflowed = True
            return
        setattr(self, name, value + 1)

    def count_sent(self) -> None:
        self._bump("sent")

    def record_reply(self, type_: int, code: int, rtt_ms: float) -> None:
        self._bump("received")
        self.packet_types[(type_, code)] += 1
        self.save_response_time(rtt_ms)

    def record_lost(self) -> None:
        self._bump("lost")
        self.save_response_time(NO_REPLY)

    def save_response_time(self, rtt_ms: float) -> None:
        self.response_times.append(rtt_ms)
        self.current_time = rtt_ms

    def start(self) -> None:
        self.started_at = time.perf_counter()
        self.finished_at = None
        self.is_running = True

    def finish(self) -> None:
        if self.started_at is not None and self.finished_at is None:
            self.finished_at = time.perf_counter()
        self.is_running = False

    # ---- summaries -------------------------------------------------------

    @property
    def total_time_ms(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.finished_at if self.finished_at is not None else time.perf_counter()
        return (end - self.started_at) * 1000.0

    def _answered(self) -> list:
        return [t for t in self.response_times if t >= 0]

    @property
    def min_time(self) -> Optional[float]:
        answered = self._answered()
        return min(answered) if answered else None

    @property
    def max_time(self) -> Optional[float]:
        answered = self._answered()
        return max(answered) if answered else None

    @property
    def avg_time(self) -> Optional[float]:
        answered = self._answered()
        return math.fsum(answered) / len(answered) if answered else None

    @property
    def loss_fraction(self) -> float:
        if not self.response_times:
            return 0.0
        return sum(1 for t in self.response_times if t < 0) / len(self.response_times)

    def snapshot(self) -> "RunResults":
        """Independent copy for sinks that hold on to results between iterations."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "sent": self.sent,
            "received": self.received,
            "lost": self.lost,
            "has_overflowed": self.has_overflowed,
            "scan_was_canceled": self.scan_was_canceled,
            "packet_types": {f"{t}/{c}": n for (t, c), n in sorted(self.packet_types.items())},
            "response_times": list(self.response_times),
            "min_ms": self.min_time,
            "max_ms": self.max_time,
            "avg_ms": self.avg_time,
            "loss_fraction": self.loss_fraction,
            "total_time_ms": self.total_time_ms,
        }


@dataclass
class ReceiveWindow:
    """
    Bounded wait for one reply.

    elapsed  - ms since the request went out
    remaining - ms left of the configured timeout (rounded up)
    deadline - what the next blocking receive may use, capped at the slice
    """
    timeout_ms: float
    sent_at: float
    clock: Callable[[], float] = time.perf_counter

    def elapsed_ms(self) -> float:
        return (self.clock() - self.sent_at) * 1000.0

    def remaining_ms(self) -> int:
        return math.ceil(self.timeout_ms - self.elapsed_ms())

    def next_deadline_ms(self) -> Optional[int]:
        """None once the timeout is used up."""
        return receive_deadline(self.remaining_ms())
