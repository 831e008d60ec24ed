import ipaddress
import random
import socket
from dataclasses import dataclass, replace
from typing import Optional

from pinger.wire.payload import DEFAULT_MESSAGE


@dataclass(frozen=True)
class RunConfig:
    address: str                      # already resolved, numeric
    count: int = 5
    continuous: bool = False
    interval_ms: int = 1000
    timeout_ms: int = 3000
    ttl: int = 255
    dont_fragment: bool = False
    receive_buffer_size: int = 5096

    # payload: explicit bytes win, then payload_size filler, then message text
    payload: Optional[bytes] = None
    payload_size: Optional[int] = None
    message: str = DEFAULT_MESSAGE
    random_message: bool = False

    random_timing: bool = False
    random_interval_ms: tuple[int, int] = (5000, 100000)

    icmp_type: Optional[int] = None   # None -> echo request for the family
    icmp_code: int = 0

    def __post_init__(self):
        # raises ValueError for hostnames; resolution happens before we get here
        ipaddress.ip_address(self.address)

        if self.count < 0:
            raise ValueError("count cannot be negative")
        if self.interval_ms < 1:
            raise ValueError("interval cannot be less than 1ms")
        if self.timeout_ms < 1:
            raise ValueError("timeout cannot be less than 1ms")
        if not 0 <= self.ttl <= 255:
            raise ValueError("TTL has to be between 0 and 255")
        if not 0 < self.receive_buffer_size < 65000:
            raise ValueError("receive buffer size must be between 1 and 64999")
        if self.payload_size is not None and not 0 <= self.payload_size < 100000:
            raise ValueError("payload size must be between 0 and 99999")
        if self.icmp_type is not None and not 0 <= self.icmp_type <= 255:
            raise ValueError("ICMP type must fit in one byte")
        if not 0 <= self.icmp_code <= 255:
            raise ValueError("ICMP code must fit in one byte")
        low, high = self.random_interval_ms
        if not 1 <= low <= high:
            raise ValueError("random interval range must satisfy 1 <= low <= high")

    @property
    def is_v6(self) -> bool:
        return ipaddress.ip_address(self.address).version == 6

    @property
    def family(self) -> int:
        return socket.AF_INET6 if self.is_v6 else socket.AF_INET


# name -> (timeout_ms, interval_ms)
TIMING_PRESETS = {
    "paranoid": (10000, 300000),
    "sneaky": (5000, 120000),
    "quiet": (5000, 30000),
    "polite": (3000, 3000),
    "nimble": (2000, 750),
    "speedy": (1500, 500),
    "insane": (750, 100),
}
TIMING_ALIASES = {
    "0": "paranoid", "1": "sneaky", "2": "quiet", "3": "polite",
    "4": "nimble", "5": "speedy", "6": "insane", "7": "random",
}


def with_timing(config: RunConfig, name: str, rng=None) -> RunConfig:
    """Return a copy of *config* with one of the named timing presets applied."""
    key = TIMING_ALIASES.get(str(name).lower(), str(name).lower())
    if key == "random":
        rng = rng or random
        low, high = config.random_interval_ms
        return replace(
            config,
            timeout_ms=15000,
            interval_ms=rng.randint(low, high),
            random_timing=True,
            random_message=True,
        )
    if key not in TIMING_PRESETS:
        raise ValueError(f"unknown timing preset: {name!r}")
    timeout_ms, interval_ms = TIMING_PRESETS[key]
    return replace(config, timeout_ms=timeout_ms, interval_ms=interval_ms)
