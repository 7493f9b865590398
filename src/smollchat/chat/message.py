"""
Chat message value type.
"""

from dataclasses import dataclass
from typing import Dict
import json


@dataclass(frozen=True)
class ChatMessage:
    """
    A single chat message: who said it and what they said.

    Frozen, so the same instance can be handed to every waiting listener
    without copying.

        >>> ChatMessage("alice", "hi there").to_json()
        '{"username":"alice","message":"hi there"}'
    """

    username: str
    text: str

    def to_dict(self) -> Dict[str, str]:
        """Wire shape: the text goes out under the "message" key."""
        return {"username": self.username, "message": self.text}

    def to_json(self) -> str:
        """Compact JSON, the body of a delivered /new-message response."""
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))
