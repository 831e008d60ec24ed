# pinger/wire/codec.py
"""
ICMP wire format.

    0               8               16                              31
    +---------------+---------------+-------------------------------+
    |     Type      |     Code      |           Checksum            |
    +---------------+---------------+-------------------------------+
    |          Identifier           |        Sequence Number        |
    +-------------------------------+-------------------------------+
    |                         Payload ...                           |
    +---------------------------------------------------------------+

All multi-byte fields are in network byte order.
"""
import struct
from dataclasses import dataclass
from typing import Optional

from pinger.errors import MalformedPacket

HEADER_FMT = "!BBHHH"
HEADER_SIZE = struct.calcsize(HEADER_FMT)  # 8

ICMP_ECHO_REPLY = 0
ICMP_ECHO_REQUEST = 8
ICMPV6_ECHO_REQUEST = 128
ICMPV6_ECHO_REPLY = 129

# query message -> the type its answer carries
REPLY_TYPES = {
    ICMP_ECHO_REQUEST: ICMP_ECHO_REPLY,
    13: 14,  # timestamp
    15: 16,  # information
    17: 18,  # address mask
    ICMPV6_ECHO_REQUEST: ICMPV6_ECHO_REPLY,
}


@dataclass
class Packet:
    type: int
    code: int
    checksum: int = 0
    identifier: int = 0
    sequence: int = 0
    payload: bytes = b""

    def to_bytes(self) -> bytes:
        header = struct.pack(HEADER_FMT, self.type, self.code, self.checksum,
                             self.identifier, self.sequence)
        return header + self.payload

    def is_checksum_valid(self) -> bool:
        """Diagnostic only; replies are matched whether or not this holds."""
        return checksum(self.to_bytes()) == 0


def checksum(data: bytes) -> int:
    """Internet checksum (RFC 1071) over *data*.

    Sum 16-bit big-endian words, pad an odd trailing byte with zero, fold the
    carries back in until the sum fits 16 bits, return the one's complement.
    """
    if len(data) % 2:
        data += b"\x00"

    total = 0
    for i in range(0, len(data), 2):
        total += (data[i] << 8) + data[i + 1]

    while total >> 16:
        total = (total & 0xFFFF) + (total >> 16)

    return ~total & 0xFFFF


def encode(type: int, code: int, identifier: int, sequence: int, payload: bytes = b"") -> bytes:
    """Build a packet with a freshly computed checksum."""
    identifier &= 0xFFFF
    sequence &= 0xFFFF
    header = struct.pack(HEADER_FMT, type, code, 0, identifier, sequence)
    csum = checksum(header + payload)
    header = struct.pack(HEADER_FMT, type, code, csum, identifier, sequence)
    return header + payload


def decode(data: bytes, length: Optional[int] = None) -> Packet:
    if length is None:
        length = len(data)
    length = min(length, len(data))
    if length < HEADER_SIZE:
        raise MalformedPacket(f"need at least {HEADER_SIZE} bytes, got {length}")

    type_, code, csum, identifier, sequence = struct.unpack(HEADER_FMT, data[:HEADER_SIZE])
    return Packet(
        type=type_,
        code=code,
        checksum=csum,
        identifier=identifier,
        sequence=sequence,
        payload=bytes(data[HEADER_SIZE:length]),
    )


def strip_ip_header(data: bytes) -> bytes:
    """Drop the IPv4 header a raw ICMP socket hands back with each datagram."""
    if not data:
        return data
    if data[0] >> 4 != 4:
        return data
    ihl = (data[0] & 0x0F) * 4
    return data[ihl:]


def echo_request_type(family_v6: bool) -> int:
    return ICMPV6_ECHO_REQUEST if family_v6 else ICMP_ECHO_REQUEST
