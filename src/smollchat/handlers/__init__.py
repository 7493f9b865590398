"""
Request handlers.

    ChatHandlers      the chat routes (pages, login, long-poll, messages)
    StaticResources   file-backed resource lookup with traversal protection
"""

from .static import StaticResources, render_template, BUNDLED_RESOURCES
from .chat import ChatHandlers, ResourceLookup, username_from_cookie, username_from_login

__all__ = [
    "ChatHandlers",
    "ResourceLookup",
    "StaticResources",
    "render_template",
    "BUNDLED_RESOURCES",
    "username_from_cookie",
    "username_from_login",
]
