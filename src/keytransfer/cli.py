"""
Command-line interface: ``keytransfer listen`` and ``keytransfer connect BUNDLE``.

Each invocation runs one session, optionally sends a file once the peer is
connected and writes received messages to a file or stdout.
"""

import argparse
import logging
import queue
import sys
from typing import List, Optional

from .config import TransferConfig
from .events import (
    ErrorConnect,
    ErrorListen,
    Established,
    Listening,
    Lost,
    ReceiveOk,
    SendOk,
    SessionEvent,
)
from .interactor import TransferInteractor
from .session import TransferSession
from .types import DEFAULT_PORT, KeyTransferError


def _config_from_args(args: argparse.Namespace) -> TransferConfig:
    return TransferConfig(
        port=args.port,
        bind_host=args.bind_host,
        advertise_host=args.advertise_host,
        read_timeout=args.read_timeout,
        frame_timeout=args.frame_timeout,
    )


def _run_session(args: argparse.Namespace, session: TransferSession, events: queue.Queue[SessionEvent]) -> int:
    payload: Optional[bytes] = None
    if args.send:
        with open(args.send, "rb") as f:
            payload = f.read()

    waiting_send = payload is not None
    waiting_receive = args.out is not None

    try:
        while True:
            try:
                event = events.get(timeout=args.wait)
            except queue.Empty:
                print("timed out waiting for the peer", file=sys.stderr)
                return 1

            if isinstance(event, Listening):
                print(event.bundle, flush=True)
            elif isinstance(event, Established):
                print(f"connected to {event.peer_address}", file=sys.stderr)
                if payload is not None:
                    session.send(payload, token=args.send)
                if not waiting_send and not waiting_receive:
                    return 0
            elif isinstance(event, SendOk):
                print(f"sent {event.token}", file=sys.stderr)
                waiting_send = False
            elif isinstance(event, ReceiveOk):
                with open(args.out, "wb") as out:
                    out.write(event.message)
                print(f"received {len(event.message)} bytes into {args.out}", file=sys.stderr)
                waiting_receive = False
            elif isinstance(event, Lost):
                print("connection lost", file=sys.stderr)
                return 0 if not (waiting_send or waiting_receive) else 1
            elif isinstance(event, (ErrorConnect, ErrorListen)):
                print("could not establish a connection", file=sys.stderr)
                return 1

            if not waiting_send and not waiting_receive:
                return 0
    finally:
        session.close()
        session.join(timeout=args.frame_timeout + args.read_timeout)


def cmd_listen(args: argparse.Namespace) -> int:
    events: queue.Queue[SessionEvent] = queue.Queue()
    interactor = TransferInteractor(_config_from_args(args))
    session = interactor.listen(events.put)
    return _run_session(args, session, events)


def cmd_connect(args: argparse.Namespace) -> int:
    events: queue.Queue[SessionEvent] = queue.Queue()
    interactor = TransferInteractor(_config_from_args(args))
    session = interactor.connect(args.bundle, events.put)
    return _run_session(args, session, events)


def main(argv: Optional[List[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="keytransfer", description="Transfer a key to a nearby device over TLS-PSK.")
    p.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument("--send", metavar="FILE", help="file to send once connected")
        x.add_argument("--out", metavar="FILE", help="write the first received message here")
        x.add_argument("--port", type=int, default=DEFAULT_PORT)
        x.add_argument("--bind-host", default="0.0.0.0")
        x.add_argument("--advertise-host", default=None)
        x.add_argument("--read-timeout", type=float, default=TransferConfig.read_timeout)
        x.add_argument("--frame-timeout", type=float, default=TransferConfig.frame_timeout)
        x.add_argument("--wait", type=float, default=300.0, help="seconds to wait for each event")

    listen = sub.add_parser("listen")
    add_common(listen)
    listen.set_defaults(func=cmd_listen)

    connect = sub.add_parser("connect")
    add_common(connect)
    connect.add_argument("bundle")
    connect.set_defaults(func=cmd_connect)

    args = p.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    try:
        return int(args.func(args))
    except KeyTransferError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
