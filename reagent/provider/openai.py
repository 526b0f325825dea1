"""OpenAI-compatible inference provider.

Works against the OpenAI API or any OpenAI-compatible endpoint (OpenRouter,
local gateways) through ``base_url``. Vendor errors are mapped into
:mod:`reagent.exceptions`; transient failures are retried with exponential backoff.

Usage::

    from reagent.provider.openai import OpenAIProvider, OpenAIProviderConfig

    provider = OpenAIProvider(OpenAIProviderConfig(model="gpt-4o-mini"))
    text = await provider.generate("Hello", InferenceOptions())
"""

import asyncio
import json
import os
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, FrozenSet, List, Optional, Sequence, TypeVar

from openai import (
  APIConnectionError,
  APIStatusError,
  APITimeoutError,
  AsyncOpenAI,
  AuthenticationError,
  OpenAIError,
  PermissionDeniedError,
  RateLimitError,
)

from reagent.exceptions import (
  AgentError,
  GenerationFailedError,
  InferenceProviderUnavailableError,
  RateLimitExceededError,
)
from reagent.provider.base import FinishReason, InferenceOptions, InferenceResponse, ParsedToolCall, TokenUsage
from reagent.tool.base import ToolDefinition
from reagent.utils.log import log_debug, log_warning
from reagent.value import SendableValue

T = TypeVar("T")

_FINISH_REASONS = {
  "stop": FinishReason.COMPLETED,
  "length": FinishReason.MAX_TOKENS,
  "tool_calls": FinishReason.TOOL_CALL,
  "function_call": FinishReason.TOOL_CALL,
  "content_filter": FinishReason.CONTENT_FILTER,
}


@dataclass(frozen=True)
class RetryStrategy:
  """Exponential backoff policy for transient provider failures."""

  max_retries: int = 3
  base_delay: float = 1.0
  max_delay: float = 30.0
  backoff_multiplier: float = 2.0
  retryable_status_codes: FrozenSet[int] = frozenset({429, 500, 502, 503, 504})

  def __post_init__(self) -> None:
    if self.max_retries < 0:
      raise ValueError("max_retries must not be negative")
    if self.base_delay < 0 or self.max_delay < 0:
      raise ValueError("retry delays must not be negative")

  def delay(self, attempt: int) -> float:
    """Delay before retry number *attempt* (0-based)."""
    return min(self.base_delay * (self.backoff_multiplier**attempt), self.max_delay)

  @staticmethod
  def none() -> "RetryStrategy":
    return RetryStrategy(max_retries=0)


@dataclass(frozen=True)
class OpenAIProviderConfig:
  """
  Connection settings for :class:`OpenAIProvider`.

  ``api_key`` and ``base_url`` fall back to ``OPENAI_API_KEY`` and
  ``OPENAI_BASE_URL`` when not given.
  """

  model: str = "gpt-4o-mini"
  api_key: Optional[str] = None
  base_url: Optional[str] = None
  timeout: float = 60.0
  system_prompt: Optional[str] = None
  retry: RetryStrategy = field(default_factory=RetryStrategy)
  extra_headers: Dict[str, str] = field(default_factory=dict, hash=False)

  def resolved_api_key(self) -> Optional[str]:
    return self.api_key or os.getenv("OPENAI_API_KEY")

  def resolved_base_url(self) -> Optional[str]:
    return self.base_url or os.getenv("OPENAI_BASE_URL")


class OpenAIProvider:
  """:class:`~reagent.provider.base.InferenceProvider` backed by ``AsyncOpenAI`` chat completions.

  Args:
    config: Connection and retry settings.
    client: Pre-built ``AsyncOpenAI`` client (tests inject a fake here).
  """

  def __init__(self, config: Optional[OpenAIProviderConfig] = None, client: Optional[Any] = None):
    self.config = config or OpenAIProviderConfig()
    self._client = client
    self.last_usage: Optional[TokenUsage] = None

  @property
  def client(self) -> Any:
    if self._client is None:
      try:
        self._client = AsyncOpenAI(
          api_key=self.config.resolved_api_key(),
          base_url=self.config.resolved_base_url(),
          timeout=self.config.timeout,
          # Retries are handled here so they can be mapped and logged uniformly.
          max_retries=0,
          default_headers=self.config.extra_headers or None,
        )
      except OpenAIError as exc:
        raise InferenceProviderUnavailableError(str(exc)) from exc
    return self._client

  # ------------------------------------------------------------------
  # InferenceProvider
  # ------------------------------------------------------------------

  async def generate(self, prompt: str, options: InferenceOptions) -> str:
    response = await self._with_retry(
      lambda: self.client.chat.completions.create(model=self.config.model, messages=self._messages(prompt), **self._params(options))
    )
    self.last_usage = _usage(response)
    choice = _first_choice(response)
    content = choice.message.content
    if content is None:
      raise GenerationFailedError(f"Model returned no content (finish_reason={choice.finish_reason})")
    return content

  async def generate_with_tools(
    self,
    prompt: str,
    tools: Sequence[ToolDefinition],
    options: InferenceOptions,
  ) -> InferenceResponse:
    params = self._params(options)
    if tools:
      params["tools"] = [t.to_json_schema() for t in tools]
    response = await self._with_retry(
      lambda: self.client.chat.completions.create(model=self.config.model, messages=self._messages(prompt), **params)
    )
    usage = _usage(response)
    self.last_usage = usage
    choice = _first_choice(response)
    return InferenceResponse(
      content=choice.message.content,
      tool_calls=[_parse_tool_call(call) for call in (choice.message.tool_calls or [])],
      finish_reason=map_finish_reason(choice.finish_reason),
      usage=usage,
    )

  async def stream(self, prompt: str, options: InferenceOptions) -> AsyncIterator[str]:
    """Yield content tokens as they arrive. Only opening the stream is retried."""
    params = self._params(options)
    params["stream"] = True
    chunks = await self._with_retry(
      lambda: self.client.chat.completions.create(model=self.config.model, messages=self._messages(prompt), **params)
    )
    try:
      async for chunk in chunks:
        if not chunk.choices:
          continue
        token = chunk.choices[0].delta.content
        if token:
          yield token
    except OpenAIError as exc:
      raise map_openai_error(exc) from exc

  # ------------------------------------------------------------------
  # Helpers
  # ------------------------------------------------------------------

  def _messages(self, prompt: str) -> List[Dict[str, str]]:
    messages = []
    if self.config.system_prompt:
      messages.append({"role": "system", "content": self.config.system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages

  @staticmethod
  def _params(options: InferenceOptions) -> Dict[str, Any]:
    params: Dict[str, Any] = {"temperature": options.temperature}
    if options.max_tokens is not None:
      params["max_tokens"] = options.max_tokens
    if options.top_p is not None:
      params["top_p"] = options.top_p
    if options.stop_sequences:
      params["stop"] = list(options.stop_sequences)
    if options.presence_penalty is not None:
      params["presence_penalty"] = options.presence_penalty
    if options.frequency_penalty is not None:
      params["frequency_penalty"] = options.frequency_penalty
    # top_k is not part of the chat completions API; OpenRouter accepts it as an extra field.
    if options.top_k is not None:
      params["extra_body"] = {"top_k": options.top_k}
    return params

  async def _with_retry(self, call: Callable[[], Awaitable[T]]) -> T:
    strategy = self.config.retry
    attempt = 0
    while True:
      try:
        return await call()
      except AgentError:
        raise
      except OpenAIError as exc:
        if attempt >= strategy.max_retries or not self._is_retryable(exc):
          raise map_openai_error(exc) from exc
        delay = _retry_after(exc) or strategy.delay(attempt)
        log_warning(f"OpenAI request failed ({type(exc).__name__}); retry {attempt + 1}/{strategy.max_retries} in {delay:.2f}s")
        attempt += 1
        await asyncio.sleep(delay)

  def _is_retryable(self, exc: OpenAIError) -> bool:
    if isinstance(exc, (APITimeoutError, APIConnectionError)):
      return True
    if isinstance(exc, APIStatusError):
      return exc.status_code in self.config.retry.retryable_status_codes
    return False

  def __repr__(self) -> str:
    return f"OpenAIProvider(model={self.config.model!r})"


# ------------------------------------------------------------------
# Mapping
# ------------------------------------------------------------------


def map_finish_reason(reason: Optional[str]) -> FinishReason:
  return _FINISH_REASONS.get(reason or "stop", FinishReason.COMPLETED)


def map_openai_error(exc: OpenAIError) -> AgentError:
  """Translate an ``openai`` SDK error into the agent error taxonomy."""
  if isinstance(exc, RateLimitError):
    return RateLimitExceededError(_retry_after(exc))
  if isinstance(exc, (AuthenticationError, PermissionDeniedError)):
    return InferenceProviderUnavailableError(f"Authentication failed: {exc.message}")
  if isinstance(exc, (APITimeoutError, APIConnectionError)):
    return InferenceProviderUnavailableError(str(exc) or type(exc).__name__)
  if isinstance(exc, APIStatusError):
    return GenerationFailedError(f"HTTP {exc.status_code}: {exc.message}")
  return GenerationFailedError(str(exc))


def _retry_after(exc: OpenAIError) -> Optional[float]:
  response = getattr(exc, "response", None)
  headers = getattr(response, "headers", None)
  if not headers:
    return None
  value = headers.get("retry-after")
  if value is None:
    return None
  try:
    return float(value)
  except ValueError:
    return None


def _first_choice(response: Any) -> Any:
  if not getattr(response, "choices", None):
    raise GenerationFailedError("Model returned no choices")
  return response.choices[0]


def _usage(response: Any) -> Optional[TokenUsage]:
  usage = getattr(response, "usage", None)
  if usage is None:
    return None
  return TokenUsage(input_tokens=usage.prompt_tokens or 0, output_tokens=usage.completion_tokens or 0)


def _parse_tool_call(call: Any) -> ParsedToolCall:
  raw = call.function.arguments or "{}"
  try:
    decoded = json.loads(raw)
  except ValueError as exc:
    raise GenerationFailedError(f"Invalid JSON arguments for tool '{call.function.name}': {exc}") from exc
  if not isinstance(decoded, dict):
    raise GenerationFailedError(f"Tool '{call.function.name}' arguments must be a JSON object")
  log_debug(f"Model requested tool '{call.function.name}'")
  return ParsedToolCall(
    id=call.id,
    name=call.function.name,
    arguments={str(k): SendableValue.from_json(v) for k, v in decoded.items()},
  )
