"""
=============================================================================
LWS CLI ENTRY POINT
=============================================================================

Command-line interface for starting a server.

=============================================================================
USAGE
=============================================================================

    # Defaults: every interface, port 8000, options from lws.config.yaml
    python -m lws

    # Custom port and middleware (resolved as lws-static, then static)
    python -m lws --port 3000 --stack static ./mw/log.py

    # HTTPS with the built-in certificate, or with your own
    python -m lws --https
    python -m lws --key server.key --cert server.crt

    # HTTP/2 (always over TLS)
    python -m lws --http2

    # Print every verbose event
    python -m lws --verbose

Exit status is 1 when the configuration is invalid or the port cannot be
bound, 0 after a clean shutdown (SIGINT/SIGTERM).

=============================================================================
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any, Dict, List, Optional

from . import __version__
from .errors import LwsError
from .server import Lws

logger = logging.getLogger("lws")

# argparse dests that are server options
OPTION_NAMES = (
    "port", "hostname", "max_connections", "keep_alive_timeout",
    "https", "http2", "key", "cert", "pfx", "ciphers", "secure_protocol",
    "server", "stack", "module_prefix", "module_dir", "config_file",
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lws",
        description="A modular web server for development",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  lws                                   # Defaults, port 8000
  lws --port 3000 --stack static        # Serve with the lws-static plugin
  lws --https                           # Built-in self-signed certificate
  lws --http2 --key k.pem --cert c.pem  # HTTP/2 with your certificate
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: 8000)")
    parser.add_argument("--hostname", help="Hostname or IP to listen on (default: all interfaces)")
    parser.add_argument("--max-connections", type=int,
                        help="Maximum number of concurrent connections")
    parser.add_argument("--keep-alive-timeout", type=int,
                        help="Idle milliseconds before a keep-alive connection is closed (0 = never)")

    # ─────────────────────────────────────────────────────────────────────
    # TRANSPORT ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--https", action="store_true", default=None,
                        help="Enable HTTPS using a built-in certificate for 127.0.0.1/localhost")
    parser.add_argument("--http2", action="store_true", default=None, help="Enable HTTP/2 (over TLS)")
    parser.add_argument("--key", help="SSL key file path, supply along with --cert")
    parser.add_argument("--cert", help="SSL cert file path, supply along with --key")
    parser.add_argument("--pfx", help="PFX/PKCS12 file holding the key and certificate chain")
    parser.add_argument("--ciphers", help="Cipher suite specification, replacing the default")
    parser.add_argument("--secure-protocol", help="SSL method to use, e.g. TLSv1_2_method")
    parser.add_argument("--server", help="Custom server factory module, e.g. lws-foo")

    # ─────────────────────────────────────────────────────────────────────
    # MIDDLEWARE ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--stack", nargs="*", help="Middleware module names or file paths, in order")
    parser.add_argument("--module-prefix", help="Prefix tried first when resolving modules (default: lws-)")
    parser.add_argument("--module-dir", nargs="*", help="Directories to search for plugin modules")
    parser.add_argument("--config-file", "-c", help="Config file path (default: lws.config.yaml)")

    # ─────────────────────────────────────────────────────────────────────
    # OUTPUT ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--verbose", "-v", action="store_true", help="Log every verbose event")
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--version", action="version", version=f"lws {__version__}")
    return parser


def setup_logging(log_level: str) -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("lws").setLevel(level)


def options_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Server options the user actually set on the command line."""
    return {name: getattr(args, name) for name in OPTION_NAMES if getattr(args, name) is not None}


async def serve(options: Dict[str, Any], verbose: bool = False) -> int:
    """
    Run a server until SIGINT/SIGTERM or a bind failure.

    Returns:
        Process exit status.
    """
    loop = asyncio.get_running_loop()
    lws = Lws()
    stopped = asyncio.Event()
    errors: List[BaseException] = []

    def on_verbose(key: str, value: Any = None):
        if verbose:
            logger.info(f"{key} {value}")
        if key == "server.listening":
            print(f"Listening on {', '.join(value)}")
        elif key == "server.error":
            errors.append(value)
            stopped.set()

    lws.on("verbose", on_verbose)
    server = lws.listen(options)
    server.on("close", stopped.set)

    def shutdown(sig: signal.Signals):
        logger.info(f"Received {sig.name}, initiating shutdown...")
        stopped.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown, sig)
        except NotImplementedError:
            # Windows event loops; Ctrl+C still raises KeyboardInterrupt
            logger.debug(f"Signal handler for {sig.name} not supported")

    await stopped.wait()
    server.close()
    await server.wait_closed()

    if errors:
        print(f"lws: {errors[0]}", file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        return asyncio.run(serve(options_from_args(args), verbose=args.verbose))
    except (LwsError, ValueError, OSError) as e:
        print(f"lws: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
