# pinger/engine/controller.py

import random
import secrets
import threading
from typing import Callable, Optional

from pinger.config import RunConfig
from pinger.engine.rules import is_matching_reply
from pinger.engine.state import ReceiveWindow, RunResults
from pinger.errors import Cancelled, MalformedPacket, ReceiveTimeout, TransportError
from pinger.log import get_logger
from pinger.schemas import Outcome
from pinger.transport.base import Transport
from pinger.transport.raw import RawTransport
from pinger.wire.codec import Packet, decode, echo_request_type, encode
from pinger.wire.payload import build_payload

log = get_logger(__name__)


def generate_session_id() -> int:
    return secrets.randbelow(0x10000)


class ProbeEngine:
    """
    Runs one probing session at a time against a single, already resolved
    address. The session id is fixed per engine so every packet it sends can
    be told apart from unrelated ICMP traffic.
    """

    def __init__(self,
                 transport_factory: Callable[[int], Transport] = RawTransport.open,
                 session_id: Optional[int] = None,
                 rng: Optional[random.Random] = None):
        self.transport_factory = transport_factory
        self.session_id = (generate_session_id() if session_id is None else session_id) & 0xFFFF
        self.rng = rng or random.Random()

    def run(self,
            config: RunConfig,
            on_iteration: Optional[Callable[[RunResults], None]] = None,
            cancel: Optional[threading.Event] = None) -> RunResults:
        """
        Probe config.address until count is reached (or forever when
        continuous) or *cancel* is set. *on_iteration* gets the live results
        after every finished iteration, on this thread; it must not mutate them.

        Only setup failures (PermissionDenied, TransportError while opening or
        configuring the socket) escape; per-iteration failures end up in the
        returned results, and a failing callback is logged and skipped.
        """
        cancel = cancel or threading.Event()
        results = RunResults()

        transport = self.transport_factory(config.family)
        try:
            transport.configure(config.ttl, config.dont_fragment, config.receive_buffer_size)
            results.start()
            log.info("probing %s (session %#06x, %s)", config.address, self.session_id,
                     "continuous" if config.continuous else f"count={config.count}")

            interval_ms = config.interval_ms
            index = 0
            while config.continuous or index < config.count:
                index += 1

                # -------------------------------
                # 1) Wait out the interval
                # -------------------------------
                if index != 1:
                    if cancel.wait(interval_ms / 1000.0):
                        results.scan_was_canceled = True
                        break
                    if config.random_timing:
                        low, high = config.random_interval_ms
                        interval_ms = self.rng.randint(low, high)

                # -------------------------------
                # 2) One request / reply exchange
                # -------------------------------
                sequence = index & 0xFFFF
                outcome = self._probe_once(transport, config, sequence, results, cancel)
                results.last_outcome = outcome
                results.last_sequence = sequence

                if outcome == "cancelled":
                    results.scan_was_canceled = True
                    break

                # -------------------------------
                # 3) Notify the sink
                # -------------------------------
                if on_iteration is not None:
                    try:
                        on_iteration(results)
                    except Exception:
                        log.exception("seq=%d: result callback failed", sequence)
        finally:
            transport.close()
            results.finish()

        log.info("finished %s: sent=%d received=%d lost=%d%s", config.address,
                 results.sent, results.received, results.lost,
                 " (canceled)" if results.scan_was_canceled else "")
        return results

    def _probe_once(self, transport: Transport, config: RunConfig, sequence: int,
                    results: RunResults, cancel: threading.Event) -> Outcome:
        request_type = config.icmp_type
        if request_type is None:
            request_type = echo_request_type(config.is_v6)
        payload = build_payload(config, self.rng)
        packet = encode(request_type, config.icmp_code, self.session_id, sequence, payload)

        try:
            # leftovers belong to requests that already timed out
            transport.drain_pending()
            sent_at = transport.send_to(packet, config.address)
        except TransportError as e:
            log.warning("seq=%d: general transmit error: %s", sequence, e)
            results.record_lost()
            return "transmit_error"
        except Exception:
            log.exception("seq=%d: general error while sending", sequence)
            results.record_lost()
            return "transmit_error"
        results.count_sent()

        try:
            reply, rtt_ms = self._await_reply(transport, config, request_type, sequence,
                                              sent_at, cancel)
        except Cancelled:
            return "cancelled"
        except ReceiveTimeout:
            log.info("seq=%d: request timed out", sequence)
            results.record_lost()
            return "timeout"
        except TransportError as e:
            log.warning("seq=%d: general error while waiting for reply: %s", sequence, e)
            results.record_lost()
            return "transmit_error"
        except Exception:
            log.exception("seq=%d: general error while waiting for reply", sequence)
            results.record_lost()
            return "transmit_error"

        log.debug("seq=%d: reply type=%d code=%d in %.2fms", sequence, reply.type, reply.code, rtt_ms)
        results.record_reply(reply.type, reply.code, rtt_ms)
        return "success"

    def _await_reply(self, transport: Transport, config: RunConfig, request_type: int,
                     sequence: int, sent_at: float,
                     cancel: threading.Event) -> tuple[Packet, float]:
        """Wait in slices of at most RECEIVE_SLICE_MS, checking *cancel* between them."""
        window = ReceiveWindow(config.timeout_ms, sent_at)
        while True:
            if cancel.is_set():
                raise Cancelled()

            deadline = window.next_deadline_ms()
            if deadline is None:
                raise ReceiveTimeout(f"no reply within {config.timeout_ms}ms")
            transport.set_receive_deadline(deadline)

            try:
                data, source = transport.receive_from(config.receive_buffer_size)
            except ReceiveTimeout:
                continue

            try:
                reply = decode(data)
            except MalformedPacket as e:
                log.debug("discarding datagram from %s: %s", source, e)
                continue

            if is_matching_reply(reply, request_type, self.session_id, sequence):
                return reply, window.elapsed_ms()

            log.debug("discarding type=%d id=%d seq=%d from %s", reply.type,
                      reply.identifier, reply.sequence, source)
