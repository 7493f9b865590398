"""
Chat core: message values and the long-poll listener registry.
"""

from .message import ChatMessage
from .registry import (
    DeliveryPolicy,
    ListenerCapacityExceeded,
    ListenerRegistry,
    ListenerSlot,
)

__all__ = [
    "ChatMessage",
    "DeliveryPolicy",
    "ListenerCapacityExceeded",
    "ListenerRegistry",
    "ListenerSlot",
]
