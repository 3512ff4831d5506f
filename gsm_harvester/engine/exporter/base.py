"""Output sink contract."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseExporter(ABC):
    """Append-only record sink fed by the orchestrator.

    ``flush`` returns only once every exported record is durable; a URL is
    marked visited after its record has been flushed.
    """

    @abstractmethod
    def export(self, record: dict) -> None:
        """Append one self-contained record."""

    @abstractmethod
    def flush(self) -> None:
        """Make every exported record durable."""

    @abstractmethod
    def close(self) -> None:
        """Release underlying resources; later calls are no-ops."""

    def __enter__(self) -> "BaseExporter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["BaseExporter"]
