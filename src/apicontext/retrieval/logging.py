"""Abstract logging interface for context filter events."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .models import ContextFilterResult


class ContextLogger(ABC):
    """Abstract interface for per-request context logging."""

    @abstractmethod
    def log_context(self, message: str, result: ContextFilterResult) -> None: ...


class NullLogger(ContextLogger):
    """No-op logger. Default when no logger configured."""

    def log_context(self, message: str, result: ContextFilterResult) -> None:
        pass
