"""
=============================================================================
LISTENER REGISTRY
=============================================================================

Connects the two halves of a chat exchange:

    ┌──────────────┐   GET /new-message    ┌──────────────────────┐
    │  Browser A   │ ────────────────────► │ worker: register()   │
    │  (listener)  │                       │         wait() ...   │
    └──────────────┘                       └──────────▲───────────┘
                                                      │ slot.deliver()
    ┌──────────────┐   POST /message       ┌──────────┴───────────┐
    │  Browser B   │ ────────────────────► │ worker: deliver(msg) │
    │  (poster)    │                       └──────────────────────┘
    └──────────────┘

A long-poll request registers a ListenerSlot and blocks on it. A posted
message is handed to the pending slots and every woken listener answers
its browser with the message as JSON.

=============================================================================
SLOT LIFECYCLE
=============================================================================

    register() ──► PENDING ──┬── deliver()        ──► DELIVERED ──► removed
                             ├── timeout          ──► CLOSED    ──► removed
                             ├── client went away ──► CLOSED    ──► removed
                             └── registry.close() ──► CLOSED    ──► removed

A slot accepts at most ONE message. Once closed it refuses late
deliveries, so a message can never be "delivered" to a listener that
already answered 204 and hung up.

=============================================================================
DELIVERY POLICIES
=============================================================================

    FAN_OUT_ALL (default)
        Every pending slot gets the same message. The whole slot map is
        swapped out under the lock, so a listener registering during the
        delivery waits for the NEXT message instead of half-receiving
        this one.

    FAN_OUT_ONE
        Slots are popped newest-first, one at a time, and each is
        delivered individually until none are left. Same end result for
        the listeners, but the lock is released between slots.

With no listeners pending a message is dropped: deliver() returns 0 and
never blocks.

=============================================================================
BACKPRESSURE
=============================================================================

Each waiting listener occupies a worker thread. max_listeners caps how
many can wait at once; register() past the cap raises
ListenerCapacityExceeded, which the server answers with 503.

=============================================================================
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional

from .message import ChatMessage


logger = logging.getLogger(__name__)


class ListenerCapacityExceeded(Exception):
    """Raised by register() when max_listeners slots are already pending."""


class DeliveryPolicy(Enum):
    """How deliver() hands a message to pending listeners."""

    FAN_OUT_ALL = "all"
    FAN_OUT_ONE = "one"


@dataclass(eq=False)
class ListenerSlot:
    """
    One-shot delivery channel for a single long-poll request.

    Attributes:
        client_address: (ip, port) of the waiting client, for logs.
        id: Short identifier for log lines.
        created_at: When the slot was registered.
    """

    client_address: Optional[tuple[str, int]] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    created_at: float = field(default_factory=time.time)

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _event: threading.Event = field(default_factory=threading.Event, repr=False)
    _message: Optional[ChatMessage] = field(default=None, repr=False)
    _closed: bool = field(default=False, repr=False)

    @property
    def delivered(self) -> bool:
        """True once a message has been placed in the slot."""
        return self._message is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, message: ChatMessage) -> bool:
        """
        Place a message in the slot and wake the waiter.

        Returns:
            True if the slot took the message, False if it was already
            closed or already holds one.
        """
        with self._lock:
            if self._closed or self._message is not None:
                return False
            self._message = message
        self._event.set()
        return True

    def cancel(self) -> None:
        """Close the slot without a message and wake the waiter."""
        with self._lock:
            self._closed = True
        self._event.set()

    def wait(self, timeout: Optional[float]) -> bool:
        """Block until woken or timeout. Returns True if woken."""
        return self._event.wait(timeout)

    def close(self) -> Optional[ChatMessage]:
        """
        Close the slot and return whatever it holds.

        After this, deliver() always returns False.
        """
        with self._lock:
            self._closed = True
            return self._message


class ListenerRegistry:
    """
    Pending long-poll listeners, keyed by slot id.

    Usage:

        registry = ListenerRegistry()

        # Listener side (one worker thread per long-poll)
        message = registry.listen(timeout=30.0, is_connected=conn.peer_connected)
        if message is None:
            ...  # timed out or client gone: answer 204

        # Poster side
        registry.deliver(ChatMessage("alice", "hi"))
    """

    def __init__(
        self,
        policy: DeliveryPolicy = DeliveryPolicy.FAN_OUT_ALL,
        max_listeners: int = 64,
        poll_interval: float = 1.0,
    ):
        """
        Args:
            policy: Delivery policy (see module docstring).
            max_listeners: Most slots allowed to wait at once.
            poll_interval: How often a waiting listener checks whether its
                           client is still connected, in seconds.
        """
        if max_listeners < 1:
            raise ValueError("max_listeners must be >= 1")
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")

        self.policy = policy
        self.max_listeners = max_listeners
        self.poll_interval = poll_interval

        self._slots: Dict[str, ListenerSlot] = {}
        self._lock = threading.Lock()  # Protects _slots
        self._closed = False

    # =========================================================================
    # LISTENER SIDE
    # =========================================================================

    def register(self, client_address: Optional[tuple[str, int]] = None) -> ListenerSlot:
        """
        Create and store a new pending slot.

        Raises:
            ListenerCapacityExceeded: If max_listeners slots are pending.
        """
        slot = ListenerSlot(client_address=client_address)

        with self._lock:
            if self._closed:
                # Shutting down: hand back a slot that wakes immediately
                slot.cancel()
                return slot

            if len(self._slots) >= self.max_listeners:
                raise ListenerCapacityExceeded(
                    f"{len(self._slots)} listeners already waiting "
                    f"(max {self.max_listeners})"
                )
            self._slots[slot.id] = slot

        logger.debug(f"[{slot.id}] Listener registered from {client_address}")
        return slot

    def wait(
        self,
        slot: ListenerSlot,
        timeout: Optional[float],
        is_connected: Optional[Callable[[], bool]] = None,
    ) -> Optional[ChatMessage]:
        """
        Block until the slot gets a message, the timeout passes, or the
        client disconnects.

        The slot is always deregistered and closed before returning.

        Args:
            slot: Slot returned by register().
            timeout: Longest wait in seconds (None waits until delivery,
                     disconnect or close()).
            is_connected: Optional callable checked every poll_interval;
                          returning False abandons the wait.

        Returns:
            The delivered message, or None.
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        try:
            while True:
                if deadline is None:
                    step = self.poll_interval
                else:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        logger.debug(f"[{slot.id}] Listener timed out")
                        break
                    step = min(self.poll_interval, remaining)

                if slot.wait(step):
                    break

                if is_connected is not None and not is_connected():
                    logger.debug(f"[{slot.id}] Listener disconnected while waiting")
                    break
        finally:
            self.discard(slot)

        # close() and a racing deliver() serialize on the slot lock, so a
        # message that lands after the loop exits is still returned here
        return slot.close()

    def listen(
        self,
        timeout: Optional[float],
        client_address: Optional[tuple[str, int]] = None,
        is_connected: Optional[Callable[[], bool]] = None,
    ) -> Optional[ChatMessage]:
        """register() then wait()."""
        slot = self.register(client_address)
        return self.wait(slot, timeout, is_connected)

    def discard(self, slot: ListenerSlot) -> None:
        """Remove a slot from the registry (no-op if already gone)."""
        with self._lock:
            self._slots.pop(slot.id, None)

    # =========================================================================
    # POSTER SIDE
    # =========================================================================

    def deliver(self, message: ChatMessage) -> int:
        """
        Hand a message to the pending listeners.

        Returns:
            Number of listeners that received it. 0 means the message was
            dropped because nobody was waiting.
        """
        if self.policy is DeliveryPolicy.FAN_OUT_ONE:
            delivered = self._deliver_one_by_one(message)
        else:
            delivered = self._deliver_to_all(message)

        if delivered == 0:
            logger.debug("No listeners waiting, message dropped")
        else:
            logger.debug(f"Message delivered to {delivered} listener(s)")
        return delivered

    def _deliver_to_all(self, message: ChatMessage) -> int:
        with self._lock:
            slots, self._slots = self._slots, {}

        return sum(1 for slot in slots.values() if slot.deliver(message))

    def _deliver_one_by_one(self, message: ChatMessage) -> int:
        delivered = 0
        while True:
            with self._lock:
                if not self._slots:
                    break
                # Dicts pop LIFO, newest listener first
                _, slot = self._slots.popitem()

            if slot.deliver(message):
                delivered += 1

        return delivered

    # =========================================================================
    # LIFECYCLE / MONITORING
    # =========================================================================

    def close(self) -> None:
        """
        Cancel every pending slot and refuse new ones.

        Waiting listeners wake up with no message. Called at shutdown.
        """
        with self._lock:
            self._closed = True
            slots, self._slots = self._slots, {}

        for slot in slots.values():
            slot.cancel()

        if slots:
            logger.info(f"Released {len(slots)} waiting listener(s)")

    @property
    def pending(self) -> int:
        """Number of listeners currently waiting."""
        with self._lock:
            return len(self._slots)

    def __len__(self) -> int:
        return self.pending
