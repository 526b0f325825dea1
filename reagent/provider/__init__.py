from reagent.provider.base import (
  FinishReason,
  InferenceOptions,
  InferenceProvider,
  InferenceResponse,
  ParsedToolCall,
  StreamingInferenceProvider,
  TokenUsage,
)

__all__ = [
  "FinishReason",
  "InferenceOptions",
  "InferenceProvider",
  "InferenceResponse",
  "ParsedToolCall",
  "StreamingInferenceProvider",
  "TokenUsage",
  "OpenAIProvider",
  "OpenAIProviderConfig",
  "RetryStrategy",
]


# Lazy import so the openai SDK is only loaded when the adapter is used
def __getattr__(name: str):
  if name in ("OpenAIProvider", "OpenAIProviderConfig", "RetryStrategy"):
    from reagent.provider import openai

    return getattr(openai, name)
  raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
