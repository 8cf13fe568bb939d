"""
=============================================================================
STATICSERVE CLI ENTRY POINT
=============================================================================

    # Serve the current directory on localhost:8080
    python -m staticserve

    # A built single-page app on all interfaces
    python -m staticserve ./dist --host 0.0.0.0 --spa

    # Browsable file share with directory listings
    python -m staticserve ~/shared --listing

    # CDN-style: cache, CORS for one origin, HTTPS with hardening headers
    python -m staticserve ./assets --cache-ttl 300 \\
        --cors https://app.example.com --security \\
        --certfile cert.pem --keyfile key.pem

=============================================================================
CONFIGURATION PRECEDENCE
=============================================================================

    built-in defaults  <  STATICSERVE_* environment  <  command-line flags

Every flag defaults to "not given" so that an environment variable is only
overridden by a flag that was actually passed. See ServerConfig.from_env
for the variable names.

=============================================================================
"""

import argparse
import logging
import sys
from typing import List, Mapping, Optional

from . import __version__
from .config import LOG_LEVELS, ServerConfig
from .middleware import CompressionConfig, CORSConfig, SecurityConfig
from .server import StaticServer


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="staticserve",
        description="Serve a directory over HTTP with caching, compression and CORS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m staticserve                          # ./ on 127.0.0.1:8080
  python -m staticserve ./dist --spa             # single-page app
  python -m staticserve ./files --listing        # directory listings
  python -m staticserve ./assets --cache-ttl 60  # in-memory cache
        """,
    )

    parser.add_argument(
        "root",
        nargs="?",
        default=None,
        help="Directory to serve (default: current directory)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for containers)",
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 8080, 0 picks a free port)",
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum worker threads (default: 16)",
    )
    parser.add_argument("--certfile", default=None, help="TLS certificate (PEM); enables HTTPS")
    parser.add_argument("--keyfile", default=None, help="TLS private key (PEM)")

    # ─────────────────────────────────────────────────────────────────────
    # SITE
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--spa",
        action="store_true",
        default=None,
        help="Serve index.html for paths that do not exist",
    )
    listing = parser.add_mutually_exclusive_group()
    listing.add_argument(
        "--listing",
        dest="listing",
        action="store_true",
        default=None,
        help="Show HTML listings for directories without an index file",
    )
    listing.add_argument(
        "--no-listing",
        dest="listing",
        action="store_false",
        help="Answer 404 for directories without an index file (default)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # STAGES
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--cors",
        nargs="*",
        metavar="ORIGIN",
        default=None,
        help="Enable CORS; no origins means any origin",
    )
    parser.add_argument(
        "--cors-credentials",
        action="store_true",
        help="Send Access-Control-Allow-Credentials: true",
    )
    parser.add_argument("--cache-ttl", type=float, default=None, help="Cache TTL in seconds (0 disables)")
    parser.add_argument("--cache-size", type=int, default=None, help="Maximum cached responses")

    compression = parser.add_mutually_exclusive_group()
    compression.add_argument(
        "--compression-level",
        type=int,
        default=None,
        help="Brotli quality 0-11; gzip uses it clamped to 1-9 (default: 6)",
    )
    compression.add_argument(
        "--no-compression",
        action="store_true",
        help="Disable response compression",
    )
    parser.add_argument(
        "--security",
        action="store_true",
        help="Add security headers (HSTS and co.) to HTTPS responses",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / META
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Access log format (default: text)",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"staticserve {__version__}",
    )
    return parser


def config_from_args(
    args: argparse.Namespace,
    env: Optional[Mapping[str, str]] = None,
) -> ServerConfig:
    """Environment-derived config with the flags that were given applied on top."""
    config = ServerConfig.from_env(env)

    if args.root is not None:
        config.root_dir = args.root
    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.workers is not None:
        config.max_workers = args.workers
        config.min_workers = min(config.min_workers, args.workers)
    if args.certfile is not None:
        config.certfile = args.certfile
    if args.keyfile is not None:
        config.keyfile = args.keyfile

    if args.spa is not None:
        config.enable_spa = args.spa
    if args.listing is not None:
        config.enable_directory_listing = args.listing

    if args.cors is not None:
        config.cors = CORSConfig(
            allow_origins=args.cors or ["*"],
            allow_credentials=args.cors_credentials,
        )
    elif args.cors_credentials and config.cors is not None:
        config.cors.allow_credentials = True

    if args.cache_ttl is not None:
        config.cache.ttl = args.cache_ttl
    if args.cache_size is not None:
        config.cache.max_size = args.cache_size

    if args.no_compression:
        config.compression = None
    elif args.compression_level is not None:
        config.compression = CompressionConfig(level=args.compression_level)

    if args.security:
        config.security = SecurityConfig()

    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format

    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, build the server and run it. Returns the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
        server = StaticServer(config)
    except ValueError as e:
        parser.error(str(e))

    try:
        server.run()
    except OSError as e:
        # bind failures, unreadable certificates
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
