"""
=============================================================================
CORE NETWORKING
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  SOCKET SERVER   listening socket, accept loop, TLS wrapping,       │
    │                  SIGINT/SIGTERM → graceful shutdown                 │
    └─────────────────────────────────────────────────────────────────────┘
                                    │  Connection
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │  THREAD POOL     bounded queue + worker threads; full queue → 503   │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │  CONNECTION      buffered request reads, keep-alive timeouts,       │
    │                  streamed response writes, TCP close sequence       │
    └─────────────────────────────────────────────────────────────────────┘

Nothing here knows about files or middleware; StaticServer in
staticserve.server ties these to the request pipeline.

=============================================================================
"""

from .socket_server import SocketServer, create_ssl_context
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "create_ssl_context",
    "Connection",
    "ConnectionState",
    "ThreadPool",
]
