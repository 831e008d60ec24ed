# pinger/engine/rules.py
from typing import Optional

from pinger.wire.codec import Packet, REPLY_TYPES

# longest single blocking receive; bounds how late a cancel is noticed
RECEIVE_SLICE_MS = 250


def receive_deadline(remaining_ms: int, slice_ms: int = RECEIVE_SLICE_MS) -> Optional[int]:
    """Deadline for the next receive call, or None when nothing is left."""
    if remaining_ms <= 0:
        return None
    return min(remaining_ms, slice_ms)


def expected_reply_type(request_type: int) -> Optional[int]:
    return REPLY_TYPES.get(request_type)


def is_matching_reply(reply: Packet, request_type: int, session_id: int, sequence: int) -> bool:
    """
    True if *reply* answers the request we just sent:
    - it carries the answer type (code 0) for the request type, and
    - identifier and sequence are ours.
    For request types with no known answer type, anything that isn't our
    own request echoed back is allowed through on identifier+sequence.
    """
    wanted = expected_reply_type(request_type)
    if wanted is not None:
        if reply.type != wanted or reply.code != 0:
            return False
    elif reply.type == request_type:
        return False
    return reply.identifier == (session_id & 0xFFFF) and reply.sequence == (sequence & 0xFFFF)
