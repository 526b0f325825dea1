"""Inference provider contract consumed by the agent engine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, AsyncIterator, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from reagent.value import SendableValue

if TYPE_CHECKING:
  from reagent.tool.base import ToolDefinition


class FinishReason(str, Enum):
  COMPLETED = "completed"
  MAX_TOKENS = "max_tokens"
  TOOL_CALL = "tool_call"
  CONTENT_FILTER = "content_filter"
  CANCELLED = "cancelled"


class InferenceOptions(BaseModel):
  """Sampling options for one model call."""

  model_config = ConfigDict(frozen=True)

  temperature: float = Field(1.0, ge=0.0, le=2.0)
  max_tokens: Optional[int] = Field(None, gt=0)
  top_p: Optional[float] = Field(None, ge=0.0, le=1.0)
  top_k: Optional[int] = Field(None, gt=0)
  stop_sequences: List[str] = Field(default_factory=list)
  presence_penalty: Optional[float] = None
  frequency_penalty: Optional[float] = None


@dataclass(frozen=True)
class ParsedToolCall:
  """A native tool call returned by a provider."""

  name: str
  arguments: Dict[str, SendableValue] = field(default_factory=dict)
  id: Optional[str] = None


@dataclass(frozen=True)
class TokenUsage:
  input_tokens: int = 0
  output_tokens: int = 0

  @property
  def total_tokens(self) -> int:
    return self.input_tokens + self.output_tokens

  def __add__(self, other: "TokenUsage") -> "TokenUsage":
    if not isinstance(other, TokenUsage):
      return NotImplemented
    return TokenUsage(self.input_tokens + other.input_tokens, self.output_tokens + other.output_tokens)

  def to_dict(self) -> Dict[str, int]:
    return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens, "total_tokens": self.total_tokens}


@dataclass(frozen=True)
class InferenceResponse:
  """Result of :meth:`InferenceProvider.generate_with_tools`."""

  content: Optional[str] = None
  tool_calls: List[ParsedToolCall] = field(default_factory=list)
  finish_reason: FinishReason = FinishReason.COMPLETED
  usage: Optional[TokenUsage] = None

  @property
  def has_tool_calls(self) -> bool:
    return bool(self.tool_calls)


@runtime_checkable
class InferenceProvider(Protocol):
  """Language-model backend.

  ``generate`` returns plain text and raises on failure. Adapters map vendor
  errors into :mod:`reagent.exceptions` before they reach the engine.
  Providers that track usage expose it as ``last_usage`` after each call.
  """

  async def generate(self, prompt: str, options: InferenceOptions) -> str: ...

  async def generate_with_tools(
    self,
    prompt: str,
    tools: Sequence["ToolDefinition"],
    options: InferenceOptions,
  ) -> InferenceResponse: ...


@runtime_checkable
class StreamingInferenceProvider(InferenceProvider, Protocol):
  def stream(self, prompt: str, options: InferenceOptions) -> AsyncIterator[str]: ...


def usage_of(provider: object) -> Optional[TokenUsage]:
  """Token usage of the provider's most recent call, when it reports one."""
  usage = getattr(provider, "last_usage", None)
  if usage is None:
    return None
  if isinstance(usage, TokenUsage):
    return usage
  return TokenUsage(getattr(usage, "input_tokens", 0), getattr(usage, "output_tokens", 0))
