from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Mapping

from .benchmarks.config import SIZE_50KB, Impl
from .benchmarks.lifecycle import create_client, start_server
from .client import REQUEST_TIMEOUT_S_DEFAULT, TransferFailure
from .server import StartupFailure

LOGGER = logging.getLogger("crossbench.pair")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one crossbench server/client pair")
    parser.add_argument("--server", help="Server implementation")
    parser.add_argument("--client", help="Client implementation")
    parser.add_argument("--messages", type=int, help="Number of messages to send")
    parser.add_argument("--payload-bytes", type=int, help="Size of each message in bytes")
    parser.add_argument(
        "--timeout",
        type=float,
        default=REQUEST_TIMEOUT_S_DEFAULT,
        help="Per-request client timeout in seconds",
    )
    return parser.parse_args(argv)


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name, str(default))
    try:
        return int(value)
    except ValueError:
        print(f"invalid {name} value {value!r}; defaulting to {default}", file=sys.stderr)
        return default


def run(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    env = os.environ

    try:
        server_impl = Impl.parse(args.server or env.get("PAIR_SERVER", Impl.STDLIB.value))
        client_impl = Impl.parse(args.client or env.get("PAIR_CLIENT", Impl.STDLIB.value))
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    messages = args.messages
    if messages is None:
        messages = _env_int(env, "PAIR_MESSAGES", 100)
    payload_bytes = args.payload_bytes
    if payload_bytes is None:
        payload_bytes = _env_int(env, "PAIR_PAYLOAD_BYTES", SIZE_50KB)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        handle = start_server(server_impl)
    except StartupFailure:
        LOGGER.exception("failed to start %s server", server_impl)
        return 1

    with handle:
        client = create_client(client_impl, handle.host, handle.port, timeout=args.timeout)
        try:
            client.run(messages, payload_bytes)
        except TransferFailure:
            LOGGER.exception("%s client failed against %s server", client_impl, server_impl)
            return 1
        received_messages, received_bytes = handle.server.counters.snapshot()

    expected_bytes = messages * payload_bytes
    print(f"Sent:     {messages} messages, {expected_bytes} bytes")
    print(f"Received: {received_messages} messages, {received_bytes} bytes")

    if received_messages != messages or received_bytes != expected_bytes:
        print(f"\nPair status: MISMATCH ({server_impl} server, {client_impl} client)", file=sys.stderr)
        return 1
    print(f"\nPair status: OK ({server_impl} server, {client_impl} client)", file=sys.stderr)
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
