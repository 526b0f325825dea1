"""Core data types for conversation memory."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from reagent.value import SendableValue


class MessageRole(str, Enum):
  USER = "user"
  ASSISTANT = "assistant"
  SYSTEM = "system"
  TOOL = "tool"


@dataclass(frozen=True)
class MemoryMessage:
  """A single message in a conversation.

  Attributes:
    role: Who produced the message.
    content: Text content of the message.
    id: Unique identifier (auto-generated UUID).
    timestamp: Epoch seconds when the message was created.
    metadata: Optional structured data attached to the message.
  """

  role: MessageRole
  content: str
  id: str = field(default_factory=lambda: str(uuid4()))
  timestamp: float = field(default_factory=time.time)
  metadata: Dict[str, SendableValue] = field(default_factory=dict, hash=False, compare=False)

  # ------------------------------------------------------------------
  # Factory helpers
  # ------------------------------------------------------------------

  @classmethod
  def user(cls, content: str, **kwargs: Any) -> "MemoryMessage":
    return cls(role=MessageRole.USER, content=content, **kwargs)

  @classmethod
  def assistant(cls, content: str, **kwargs: Any) -> "MemoryMessage":
    return cls(role=MessageRole.ASSISTANT, content=content, **kwargs)

  @classmethod
  def system(cls, content: str, **kwargs: Any) -> "MemoryMessage":
    return cls(role=MessageRole.SYSTEM, content=content, **kwargs)

  @classmethod
  def tool(cls, content: str, **kwargs: Any) -> "MemoryMessage":
    return cls(role=MessageRole.TOOL, content=content, **kwargs)

  @property
  def formatted(self) -> str:
    """``Role: content`` rendering used in prompts."""
    return f"{self.role.value.capitalize()}: {self.content}"

  def to_dict(self) -> Dict[str, Any]:
    """Serialize to a plain dict."""
    return {
      "id": self.id,
      "role": self.role.value,
      "content": self.content,
      "timestamp": self.timestamp,
      "metadata": {k: v.to_python() for k, v in self.metadata.items()},
    }

  @classmethod
  def from_dict(cls, data: Dict[str, Any]) -> "MemoryMessage":
    """Deserialize from a plain dict."""
    kwargs: Dict[str, Any] = {}
    if data.get("id"):
      kwargs["id"] = data["id"]
    timestamp: Optional[float] = data.get("timestamp")
    if timestamp is not None:
      kwargs["timestamp"] = timestamp
    return cls(
      role=MessageRole(data.get("role", "user")),
      content=data.get("content", ""),
      metadata={k: SendableValue.from_json(v) for k, v in (data.get("metadata") or {}).items()},
      **kwargs,
    )
