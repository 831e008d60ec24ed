# pinger/wire/payload.py
import random
import string

DEFAULT_MESSAGE = "R U Alive?"

_ALPHABET = string.ascii_letters + string.digits


def filler(size: int) -> bytes:
    """Repeating 0x00..0xFF pattern of exactly *size* bytes."""
    return bytes(i & 0xFF for i in range(max(0, size)))


def text(message: str) -> bytes:
    return message.encode("ascii", errors="replace")


def random_text(length: int, rng: random.Random = None) -> bytes:
    rng = rng or random
    return "".join(rng.choice(_ALPHABET) for _ in range(max(0, length))).encode("ascii")


def build_payload(config, rng: random.Random = None) -> bytes:
    """Payload for one iteration: explicit bytes, random text, sized filler or literal text."""
    if config.payload is not None:
        return bytes(config.payload)
    if config.random_message:
        if config.payload_size is not None:
            length = config.payload_size
        else:
            length = len(config.message) or len(DEFAULT_MESSAGE)
        return random_text(length, rng)
    if config.payload_size is not None:
        return filler(config.payload_size)
    return text(config.message)
