from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .client import Client
from .constants import DEFAULT_CLIENT_ADDRESS, DEFAULT_RETRIES, DEFAULT_SERVER_ADDRESS, DEFAULT_TIMEOUT_S
from .errors import TftpError
from .net import Address, Impairment, parse_address
from .server import Server

log = logging.getLogger("minitftp")


def _local_address(value: str) -> Address:
    return parse_address(value, default_port=0)


def cmd_serve(args: argparse.Namespace) -> int:
    try:
        payload = Path(args.file).read_bytes()
    except OSError as exc:
        log.error("unable to read %s: %s", args.file, exc)
        return 1
    impair = Impairment(args.loss_rate, args.delay_ms)
    server = Server(payload, retries=args.retries, timeout=args.timeout, impairment=impair)
    log.info("serving %s (%d bytes)", args.file, len(payload))
    try:
        server.listen_and_serve(args.address)
    except KeyboardInterrupt:
        server.shutdown()
    except TftpError as exc:
        log.error("server stopped: %s", exc)
        return 1
    return 0


def cmd_get(args: argparse.Namespace) -> int:
    impair = Impairment(args.loss_rate, args.delay_ms)
    to_stdout = args.out == "-"
    out = sys.stdout.buffer if to_stdout else open(args.out, "wb")
    try:
        client = Client(
            args.address,
            out,
            local=args.client_address,
            retries=args.retries,
            timeout=args.timeout,
            impairment=impair,
        )
        metrics = client.send(args.filename)
    except TftpError as exc:
        log.error("transfer of %r failed: %s", args.filename, exc)
        return 1
    finally:
        if not to_stdout:
            out.close()

    payload = {
        "role": "client",
        "bytes": metrics.bytes_received,
        "blocks": metrics.blocks,
        "seconds": metrics.duration_s,
        "mbps": metrics.throughput_mbps,
        "timeouts": metrics.timeouts,
        "retransmits": metrics.retransmits,
    }
    print(json.dumps(payload, indent=2) if args.json else payload, file=sys.stderr)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="minitftp", description="Read-only TFTP server and client (octet mode).")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument("--retries", type=int, default=DEFAULT_RETRIES)
        x.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT_S, help="seconds per attempt")
        x.add_argument("--loss-rate", type=float, default=0.0, help="simulate outbound packet loss")
        x.add_argument("--delay-ms", type=int, default=0, help="simulate outbound send delay")

    serve = sub.add_parser("serve", help="serve one file to every read request")
    add_common(serve)
    serve.add_argument("--address", type=parse_address, default=DEFAULT_SERVER_ADDRESS, help="listen address")
    serve.add_argument("--file", required=True, help="filepath to the payload")
    serve.set_defaults(func=cmd_serve)

    get = sub.add_parser("get", help="download a file from a server")
    add_common(get)
    get.add_argument("--address", type=parse_address, default=DEFAULT_SERVER_ADDRESS, help="server address")
    get.add_argument("--client-address", type=_local_address, default=DEFAULT_CLIENT_ADDRESS, help="local bind address")
    get.add_argument("--filename", required=True, help="filename of the requested payload")
    get.add_argument("--out", default="-", help="output path, '-' for stdout")
    get.add_argument("--json", action="store_true")
    get.set_defaults(func=cmd_get)

    return p


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    if args.cmd == "serve" and not args.file:
        p.error("filepath must not be empty")
    if args.cmd == "get" and not args.filename:
        p.error("filename must not be empty")
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
