"""Cooperative cancellation for agent runs."""

from dataclasses import dataclass

from reagent.exceptions import AgentCancelledError


@dataclass
class CancellationToken:
  """Cooperative cancellation token for agent runs.

  Create a token, pass it to ``agent.run(..., cancellation_token=token)``,
  and call ``token.cancel()`` from any coroutine or thread to stop the run.
  ``agent.cancel()`` cancels the tokens of every run in flight.

  The loop checks ``raise_if_cancelled()`` at safe points (start of each
  iteration, before and after each model call and each tool execution) and
  raises ``AgentCancelledError``. In-flight calls are never interrupted.
  """

  _cancelled: bool = False

  def cancel(self) -> None:
    """Request cancellation. Idempotent and thread-safe (single bool write)."""
    self._cancelled = True

  @property
  def is_cancelled(self) -> bool:
    return self._cancelled

  def raise_if_cancelled(self) -> None:
    """Raise ``AgentCancelledError`` if cancellation was requested."""
    if self._cancelled:
      raise AgentCancelledError()
