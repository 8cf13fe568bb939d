"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All settings live in one dataclass, ServerConfig, with the per-stage
settings nested inside it:

    ServerConfig
    ├── network      host, port, backlog, buffer_size, timeout, certfile, keyfile
    ├── http         keep_alive, keep_alive_timeout, max_request_size
    ├── threads      min_workers, max_workers
    ├── site         root_dir, index_file, enable_spa, enable_directory_listing,
    │                show_hidden, allow_symlink_escape
    ├── logging      log_level, log_format
    └── stages       cors        Optional[CORSConfig]         None = off
                     cache       CacheConfig                  ttl 0 = off
                     compression Optional[CompressionConfig]  None = off
                     security    Optional[SecurityConfig]     None = off

Values are checked once by validate() at startup (fail fast), never at
first use.

=============================================================================
ENVIRONMENT VARIABLES
=============================================================================

    STATICSERVE_HOST               host
    STATICSERVE_PORT               port
    STATICSERVE_ROOT               root_dir
    STATICSERVE_WORKERS            max_workers
    STATICSERVE_TIMEOUT            timeout (seconds)
    STATICSERVE_SPA                enable_spa            (1/true/yes/on)
    STATICSERVE_LISTING            enable_directory_listing
    STATICSERVE_CACHE_TTL          cache.ttl (seconds)
    STATICSERVE_CACHE_SIZE         cache.max_size
    STATICSERVE_COMPRESSION_LEVEL  compression.level
    STATICSERVE_NO_COMPRESSION     disable compression
    STATICSERVE_CORS_ORIGINS       comma-separated origins; enables CORS
    STATICSERVE_SECURITY_HEADERS   enable security headers
    STATICSERVE_CERTFILE           TLS certificate (PEM)
    STATICSERVE_KEYFILE            TLS private key (PEM)
    STATICSERVE_LOG_LEVEL          log_level
    STATICSERVE_LOG_FORMAT         log_format (text/json)

    STATICSERVE_PORT=3000 STATICSERVE_SPA=1 python -m staticserve ./dist

=============================================================================
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .middleware.cache import CacheConfig
from .middleware.compression import CompressionConfig
from .middleware.cors import CORSConfig
from .middleware.security import SecurityConfig


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_TRUE = {"1", "true", "yes", "on"}


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE


@dataclass
class ServerConfig:
    """
    Configuration for the static file server.

        Development:
            ServerConfig(root_dir="./public", enable_directory_listing=True,
                         log_level="DEBUG")

        Single-page app behind a TLS proxy:
            ServerConfig(host="0.0.0.0", root_dir="/srv/app/dist",
                         enable_spa=True, trust_forwarded_proto=True,
                         cache=CacheConfig(ttl=60),
                         security=SecurityConfig())
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    port: int = 8080
    """0 lets the OS pick a free port."""

    backlog: int = 128
    buffer_size: int = 8192

    timeout: Optional[float] = 30.0
    """Socket timeout in seconds. None blocks forever."""

    certfile: Optional[str] = None
    keyfile: Optional[str] = None
    """Serve HTTPS when certfile is set."""

    trust_forwarded_proto: bool = False
    """Take the request scheme from X-Forwarded-Proto (only behind a proxy)."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16

    # ─────────────────────────────────────────────────────────────────────
    # SITE
    # ─────────────────────────────────────────────────────────────────────

    root_dir: str = "."
    index_file: str = "index.html"
    enable_spa: bool = False
    enable_directory_listing: bool = False
    show_hidden: bool = False

    allow_symlink_escape: bool = False
    """Serve symlinks whose target lies outside root_dir."""

    # ─────────────────────────────────────────────────────────────────────
    # PIPELINE STAGES
    # ─────────────────────────────────────────────────────────────────────

    cors: Optional[CORSConfig] = None
    cache: CacheConfig = field(default_factory=CacheConfig)
    compression: Optional[CompressionConfig] = field(default_factory=CompressionConfig)
    security: Optional[SecurityConfig] = None

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"
    server_name: str = "staticserve/1.0"

    @property
    def use_tls(self) -> bool:
        return self.certfile is not None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """Build a config from STATICSERVE_* environment variables."""
        if env is None:
            env = os.environ

        config = cls(
            host=env.get("STATICSERVE_HOST", "127.0.0.1"),
            port=int(env.get("STATICSERVE_PORT", "8080")),
            root_dir=env.get("STATICSERVE_ROOT", "."),
            max_workers=int(env.get("STATICSERVE_WORKERS", "16")),
            timeout=float(env.get("STATICSERVE_TIMEOUT", "30")),
            enable_spa=_env_bool(env, "STATICSERVE_SPA"),
            enable_directory_listing=_env_bool(env, "STATICSERVE_LISTING"),
            certfile=env.get("STATICSERVE_CERTFILE"),
            keyfile=env.get("STATICSERVE_KEYFILE"),
            log_level=env.get("STATICSERVE_LOG_LEVEL", "INFO").upper(),
            log_format=env.get("STATICSERVE_LOG_FORMAT", "text"),
            cache=CacheConfig(
                ttl=float(env.get("STATICSERVE_CACHE_TTL", "0")),
                max_size=int(env.get("STATICSERVE_CACHE_SIZE", "100")),
            ),
        )

        if config.min_workers > config.max_workers:
            config.min_workers = config.max_workers

        if _env_bool(env, "STATICSERVE_NO_COMPRESSION"):
            config.compression = None
        elif "STATICSERVE_COMPRESSION_LEVEL" in env:
            config.compression = CompressionConfig(
                level=int(env["STATICSERVE_COMPRESSION_LEVEL"])
            )

        origins = env.get("STATICSERVE_CORS_ORIGINS")
        if origins:
            config.cors = CORSConfig(
                allow_origins=[o.strip() for o in origins.split(",") if o.strip()]
            )

        if _env_bool(env, "STATICSERVE_SECURITY_HEADERS"):
            config.security = SecurityConfig()

        return config

    def validate(self) -> None:
        """Raise ValueError for the first invalid setting."""
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.max_request_size < 1024:
            raise ValueError("max_request_size must be >= 1024")

        if not os.path.isdir(self.root_dir):
            raise ValueError(f"root_dir is not a directory: {self.root_dir}")

        if not self.index_file or "/" in self.index_file or os.sep in self.index_file:
            raise ValueError(f"index_file must be a plain file name, got {self.index_file!r}")

        if self.keyfile is not None and self.certfile is None:
            raise ValueError("keyfile requires certfile")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {LOG_LEVELS}")

        if self.log_format not in ("text", "json"):
            raise ValueError("log_format must be 'text' or 'json'")

        self.cache.validate()
        for stage in (self.cors, self.compression, self.security):
            if stage is not None:
                stage.validate()

    @property
    def log_level_number(self) -> int:
        return getattr(logging, self.log_level.upper())
