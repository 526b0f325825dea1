"""In-process Memory and Session implementations."""

import asyncio
from typing import List, Optional
from uuid import uuid4

from reagent.memory.base import Session
from reagent.memory.types import MemoryMessage


class InMemorySession(Session):
  """Session stored in a Python list, guarded by an ``asyncio.Lock``.

  Args:
    session_id: Conversation identifier. A UUID is generated when omitted.
  """

  def __init__(self, session_id: Optional[str] = None):
    super().__init__(session_id or str(uuid4()))
    self._items: List[MemoryMessage] = []
    self._lock = asyncio.Lock()

  async def item_count(self) -> int:
    async with self._lock:
      return len(self._items)

  async def get_items(self, limit: Optional[int] = None) -> List[MemoryMessage]:
    async with self._lock:
      if limit is None:
        return list(self._items)
      if limit <= 0:
        return []
      return self._items[-limit:]

  async def add_items(self, items: List[MemoryMessage]) -> None:
    async with self._lock:
      self._items.extend(items)

  async def pop_item(self) -> Optional[MemoryMessage]:
    async with self._lock:
      if not self._items:
        return None
      return self._items.pop()

  async def clear_session(self) -> None:
    async with self._lock:
      self._items.clear()


class ConversationMemory:
  """Bounded working memory keeping the most recent *max_messages* messages.

  Args:
    max_messages: Upper bound on retained messages. ``None`` keeps everything.
  """

  def __init__(self, max_messages: Optional[int] = 100):
    if max_messages is not None and max_messages < 1:
      raise ValueError("max_messages must be >= 1")
    self.max_messages = max_messages
    self._messages: List[MemoryMessage] = []

  async def add(self, message: MemoryMessage) -> None:
    self._messages.append(message)
    if self.max_messages is not None and len(self._messages) > self.max_messages:
      del self._messages[: len(self._messages) - self.max_messages]

  async def get_context(self) -> List[MemoryMessage]:
    return list(self._messages)

  async def clear(self) -> None:
    self._messages.clear()

  def __len__(self) -> int:
    return len(self._messages)
