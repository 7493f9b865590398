"""
=============================================================================
SMOLLCHAT
=============================================================================

A single-room chat server on raw HTTP/1.1 sockets, no web framework.

Browsers log in with a username (kept in a cookie), then hold a
"long-poll" request open on /new-message. When anyone posts to /message,
every waiting browser gets the message as the answer to its long-poll and
immediately opens the next one.

=============================================================================
PACKAGE LAYOUT
=============================================================================

    http/         request parser, response builder, router, status codes
    chat/         ChatMessage and the long-poll ListenerRegistry
    core/         listening socket, per-client Connection, worker pool
    handlers/     the chat routes and static resource lookup
    middleware/   access logging
    config.py     ChatConfig: defaults, .env, environment
    server.py     ChatServer: wires it all together
    qr.py         terminal QR code for the join URL
    resources/    bundled index.html, chat.html, chat.js, style.css

=============================================================================
"""

__version__ = "1.0.0"

from .config import ChatConfig
from .server import ChatServer

__all__ = ["ChatServer", "ChatConfig", "__version__"]
