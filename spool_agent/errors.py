"""Error taxonomy shared by the ingestion, reconciliation and dispatch paths."""

from __future__ import annotations

from typing import Optional, Sequence


class AgentError(RuntimeError):
    """Base class for failures raised by spool-agent components.

    ``step`` names the operation step that failed (``"provision"``,
    ``"store-insert"``, ...) so callers can report where a point operation
    stopped.
    """

    def __init__(self, message: str, *, step: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.step = step

    def as_dict(self) -> dict[str, Optional[str]]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "step": self.step,
        }


class ValidationError(AgentError):
    """Raised when caller input is missing or invalid."""


class NotFoundError(AgentError):
    """Raised when a referenced job or printer is absent or soft-deleted."""


class StaleJobError(NotFoundError):
    """Raised when a job's backing file disappeared before dispatch."""


class ExternalToolError(AgentError):
    """Raised when a spooler or network command fails."""

    def __init__(
        self,
        message: str,
        *,
        step: Optional[str] = None,
        command: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
    ) -> None:
        super().__init__(message, step=step)
        self.command = list(command) if command is not None else None
        self.returncode = returncode


class TransientIOError(AgentError):
    """Raised for filesystem or store hiccups healed by the next sweep."""


class IntegrityError(TransientIOError):
    """Raised when a copied file does not match its source."""


class SweepAlreadyRunning(AgentError):
    """Raised when a sweep is requested while one of the same kind runs."""
