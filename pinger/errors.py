# pinger/errors.py


class PingError(Exception):
    """Base class for everything the probing core raises."""


class PermissionDenied(PingError):
    """Raw socket creation was refused; the process needs elevated privileges."""

    def __init__(self, message: str = None):
        super().__init__(
            message
            or "Raw sockets require administrative rights. "
               "Run as root/Administrator (or grant CAP_NET_RAW) and try again."
        )


class TransportError(PingError):
    pass


class TransmitError(TransportError):
    pass


class ReceiveTimeout(TransportError):
    """A single bounded receive call elapsed without data."""


class MalformedPacket(PingError, ValueError):
    pass


class Cancelled(PingError):
    pass
