"""
Reagent Memory: conversation history contracts and in-process implementations.

Usage:
    from reagent.memory import InMemorySession, ConversationMemory, MemoryMessage
"""

from reagent.memory.base import Memory, Session
from reagent.memory.in_memory import ConversationMemory, InMemorySession
from reagent.memory.types import MemoryMessage, MessageRole

__all__ = [
  "Memory",
  "Session",
  "InMemorySession",
  "ConversationMemory",
  "MemoryMessage",
  "MessageRole",
]
