# tools/run_ping.py
# Usage examples:
#   sudo python3 -m tools.run_ping 8.8.8.8
#   sudo python3 -m tools.run_ping 8.8.8.8 --count 10 --interval 500 --timeout 1000 --ttl 64
#   sudo python3 -m tools.run_ping ::1 --continuous --random
#   python3 -m tools.run_ping fake --count 3
#
# Notes:
# - The target must already be a numeric address; no DNS lookups happen here.
# - Ctrl+C cancels the run; the partial results are still printed.

import argparse
import json
import logging
import sys
import threading

from pinger.config import RunConfig, with_timing
from pinger.engine.controller import ProbeEngine
from pinger.log import configure
from pinger.schemas import NO_REPLY


def print_iteration(results):
    seq = results.last_sequence
    if results.last_outcome == "success":
        print(f"reply: icmp_seq={seq} time={results.current_time:.1f}ms")
    elif results.last_outcome == "timeout":
        print(f"request timed out: icmp_seq={seq}")
    else:
        print(f"general transmit error: icmp_seq={seq}")


def build_config(args) -> RunConfig:
    target = "127.0.0.1" if args.target == "fake" else args.target
    cfg = RunConfig(
        address=target,
        count=args.count,
        continuous=args.continuous,
        interval_ms=args.interval,
        timeout_ms=args.timeout,
        ttl=args.ttl,
        dont_fragment=args.dont_fragment,
        receive_buffer_size=args.buffer,
        payload_size=args.size,
        message=args.message,
        random_message=args.random,
        icmp_type=args.type,
        icmp_code=args.code,
    )
    if args.timing:
        cfg = with_timing(cfg, args.timing)
    return cfg


def build_engine(args) -> ProbeEngine:
    if args.target == "fake":
        from pinger.transport.fake import FakeTransport, echo_reply
        # every fourth request goes unanswered
        return ProbeEngine(transport_factory=lambda family: FakeTransport(
            family,
            responder=lambda req: [] if req.sequence % 4 == 0 else [(5 + req.sequence, echo_reply)],
        ))
    return ProbeEngine()


def run(args) -> int:
    cfg = build_config(args)
    engine = build_engine(args)
    cancel = threading.Event()
    box = {}

    def worker():
        try:
            box["results"] = engine.run(cfg, on_iteration=print_iteration, cancel=cancel)
        except Exception as e:
            box["error"] = e

    t = threading.Thread(target=worker, name="pinger", daemon=True)
    t.start()
    try:
        while t.is_alive():
            t.join(0.1)
    except KeyboardInterrupt:
        cancel.set()
        t.join()

    if "error" in box:
        print(f"error: {box['error']}", file=sys.stderr)
        return 1

    res = box["results"]
    summary = res.to_dict()
    summary["target"] = cfg.address
    summary["response_times"] = [rtt if rtt != NO_REPLY else None for rtt in res.response_times]
    print(json.dumps(summary, indent=2))
    return 0


def build_argparser():
    ap = argparse.ArgumentParser(description="Raw-socket ICMP pinger")
    ap.add_argument("target", help="Numeric IPv4/IPv6 address (or 'fake' to use FakeTransport)")
    ap.add_argument("--count", "-c", type=int, default=5, help="Number of requests to send")
    ap.add_argument("--continuous", "-t", action="store_true", help="Send until interrupted")
    ap.add_argument("--interval", type=int, default=1000, help="Wait between requests (milliseconds)")
    ap.add_argument("--timeout", "-w", type=int, default=3000, help="Reply timeout (milliseconds)")
    ap.add_argument("--ttl", "-i", type=int, default=255, help="Time to live / hop limit")
    ap.add_argument("--dont-fragment", "--df", action="store_true", help="Set the don't fragment flag")
    ap.add_argument("--buffer", "--rb", type=int, default=5096, help="Receive buffer size")
    ap.add_argument("--size", "-s", type=int, default=None, help="Payload size in bytes")
    ap.add_argument("--message", "-m", default="R U Alive?", help="Payload text")
    ap.add_argument("--random", "--rng", action="store_true", help="Random payload text per request")
    ap.add_argument("--type", "--pt", type=int, default=None, help="ICMP type to send")
    ap.add_argument("--code", "--pc", type=int, default=0, help="ICMP code to send")
    ap.add_argument("--timing", "--ti", default=None,
                    help="Timing preset: paranoid|sneaky|quiet|polite|nimble|speedy|insane|random or 0-7")
    ap.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return ap


if __name__ == "__main__":
    ap = build_argparser()
    args = ap.parse_args()
    configure(logging.DEBUG if args.verbose else logging.WARNING)
    try:
        sys.exit(run(args))
    except ValueError as e:
        ap.error(str(e))
