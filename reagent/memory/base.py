"""Memory and Session contracts consumed by the agent engine.

``Memory`` is the in-run working context an agent feeds to its model.
``Session`` is caller-owned conversation history that outlives a single run.

Session implementations must serialise access per ``session_id`` themselves: the
engine calls a session sequentially within one run, but makes no promises about
concurrent runs sharing the same session.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Protocol, runtime_checkable

from reagent.memory.types import MemoryMessage


@runtime_checkable
class Memory(Protocol):
  """Protocol for agent working memory."""

  async def add(self, message: MemoryMessage) -> None: ...

  async def get_context(self) -> List[MemoryMessage]: ...

  async def clear(self) -> None: ...


class Session(ABC):
  """Abstract conversation session.

  Subclasses implement the five primitives; ``add_item``, ``get_all_items`` and
  ``is_empty`` are derived from them.

  Example::

      session = InMemorySession("user-42")
      await session.add_item(MemoryMessage.user("Hello!"))
      recent = await session.get_items(limit=5)
  """

  def __init__(self, session_id: str):
    self._session_id = session_id

  @property
  def session_id(self) -> str:
    """Stable identifier of this conversation."""
    return self._session_id

  @abstractmethod
  async def item_count(self) -> int:
    """Number of messages currently stored."""

  @abstractmethod
  async def get_items(self, limit: Optional[int] = None) -> List[MemoryMessage]:
    """Return messages in chronological order (oldest first).

    Args:
      limit: ``None`` returns every message; a positive value returns the most
        recent *limit* messages (still oldest first); zero or negative returns ``[]``.
    """

  @abstractmethod
  async def add_items(self, items: List[MemoryMessage]) -> None:
    """Append *items* in order."""

  @abstractmethod
  async def pop_item(self) -> Optional[MemoryMessage]:
    """Remove and return the most recent message, or ``None`` when empty."""

  @abstractmethod
  async def clear_session(self) -> None:
    """Remove every message. The session id is unchanged."""

  # ------------------------------------------------------------------
  # Derived helpers
  # ------------------------------------------------------------------

  async def add_item(self, item: MemoryMessage) -> None:
    await self.add_items([item])

  async def get_all_items(self) -> List[MemoryMessage]:
    return await self.get_items(limit=None)

  async def is_empty(self) -> bool:
    return await self.item_count() == 0

  def __repr__(self) -> str:
    return f"{type(self).__name__}(session_id={self._session_id!r})"
