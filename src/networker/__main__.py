"""
=============================================================================
NETWORKER CLI ENTRY POINT
=============================================================================

Command-line interface for trying connections out by hand.

=============================================================================
USAGE
=============================================================================

    # Accept up to 5 peers on port 15001 and log what they send
    python -m networker serve --port 15001 --max-connections 5

    # Dial it, send stdin line by line, print what comes back
    python -m networker connect 127.0.0.1 15001

    # Binary mode: received data is printed as hex
    python -m networker serve --binary

=============================================================================
"""

import argparse
import logging
import sys
import threading
from typing import List, Optional

from . import __version__
from .config import NetworkerConfig
from .core import Acceptor, Connection
from .errors import NetworkerError


logger = logging.getLogger("networker.cli")


def setup_logging(log_level: str):
    """Configure the root logger and the "networker" logger level."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("networker").setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="networker",
        description="Minimal bidirectional TCP connections",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m networker serve --port 15001          # Accept peers on 15001
  python -m networker serve --max-connections 1   # Any free port, one peer
  python -m networker connect 127.0.0.1 15001     # Chat with a server
        """,
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: NETWORKER_LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"networker {__version__}",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    # ─────────────────────────────────────────────────────────────────────
    # serve
    # ─────────────────────────────────────────────────────────────────────

    serve = commands.add_parser("serve", help="Accept peers and log their messages")
    serve.add_argument(
        "--host", "-H",
        default=None,
        help="Address to bind (default: NETWORKER_HOST or 127.0.0.1)",
    )
    serve.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to bind (default: NETWORKER_PORT or any free port)",
    )
    serve.add_argument(
        "--max-connections", "-m",
        type=int,
        default=10,
        help="Peers to accept before the accept loop ends (default: 10)",
    )
    serve.add_argument(
        "--binary", "-b",
        action="store_true",
        help="Read accepted connections in binary mode",
    )

    # ─────────────────────────────────────────────────────────────────────
    # connect
    # ─────────────────────────────────────────────────────────────────────

    connect = commands.add_parser("connect", help="Dial a peer and send stdin lines")
    connect.add_argument("host", help="Remote address")
    connect.add_argument("port", type=int, help="Remote port")
    connect.add_argument(
        "--binary", "-b",
        action="store_true",
        help="Read the connection in binary mode",
    )

    return parser


def build_config(args: argparse.Namespace) -> NetworkerConfig:
    """Environment first, then CLI arguments on top."""
    config = NetworkerConfig.from_env()

    # "connect" also has host/port, but they name the remote, not the bind
    if args.command == "serve":
        if args.host:
            config.host = args.host
        if args.port is not None:
            config.port = args.port
    if args.log_level:
        config.log_level = args.log_level

    config.validate()
    return config


def _format(conn: Connection, unit) -> str:
    if isinstance(unit, bytes):
        return f"{conn} <bytes {len(unit)}> {unit.hex()}"
    return f"{conn} {unit}"


def _drain(conn: Connection) -> List[str]:
    drained = []
    for receive in (conn.receive_text, conn.receive_binary):
        unit = receive()
        while unit is not None:
            drained.append(_format(conn, unit))
            unit = receive()
    return drained


def serve(config: NetworkerConfig, max_connections: int, binary: bool) -> int:
    """
    Log what registered peers send until Ctrl+C, or until the accept loop
    is done and every registered connection stopped receiving.
    """
    acceptor = Acceptor(config)
    port = acceptor.bind()
    print(f"Listening on {config.host}:{port} (Ctrl+C to stop)")

    acceptor.listen(max_connections)
    switched = set()
    stop = threading.Event()

    try:
        while not stop.wait(config.poll_interval):
            # Registrations are complete once the accept loop reports done
            listening = acceptor.is_listening
            connections = acceptor.connections
            for conn in connections:
                if binary and conn.id not in switched:
                    conn.set_receiver_to_binary()
                    conn.restart_listening()
                    switched.add(conn.id)
                for message in _drain(conn):
                    logger.info(message)

            # Nothing left that could produce another message
            if not listening and not any(c.is_receiving for c in connections):
                for conn in connections:
                    for message in _drain(conn):
                        logger.info(message)
                logger.info("All connections closed")
                stop.set()
    except KeyboardInterrupt:
        print("\nShutting down...")
    finally:
        acceptor.close()

    return 0


def connect(config: NetworkerConfig, host: str, port: int, binary: bool) -> int:
    conn = Connection.dial(host, port, config)
    if binary:
        conn.set_receiver_to_binary()
        conn.restart_listening()

    stop = threading.Event()

    def printer():
        while not stop.wait(config.poll_interval):
            for message in _drain(conn):
                print(message, flush=True)

    thread = threading.Thread(target=printer, name="networker-printer", daemon=True)
    thread.start()

    try:
        for line in sys.stdin:
            conn.send_text(line if line.endswith("\n") else line + "\n")
    except KeyboardInterrupt:
        pass
    finally:
        stop.set()
        thread.join(config.join_timeout)
        for message in _drain(conn):
            print(message)
        conn.disconnect()

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ValueError as e:
        parser.error(str(e))

    setup_logging(config.log_level)

    try:
        if args.command == "serve":
            return serve(config, args.max_connections, args.binary)
        return connect(config, args.host, args.port, args.binary)
    except NetworkerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
