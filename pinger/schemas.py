from typing import Literal

# every iteration ends in exactly one of these
Outcome = Literal["success", "timeout", "transmit_error", "cancelled"]

NO_REPLY = -1.0  # latency sentinel for lost iterations
