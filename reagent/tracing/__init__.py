from reagent.tracing.context import SpanStatus, TraceContext, TraceSpan, span_for, with_trace

__all__ = ["SpanStatus", "TraceContext", "TraceSpan", "span_for", "with_trace"]
