from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from engine.models import Tick


class BacktestError(Exception):
    pass


class ConfigurationError(BacktestError):
    """Raised when a component is constructed with invalid parameters."""


class OutOfOrderTickError(BacktestError):
    def __init__(self, tick: "Tick", current_bucket_start: int) -> None:
        super().__init__(
            f"Tick at {tick.timestamp} precedes current bucket starting at {current_bucket_start}"
        )
        self.tick = tick
        self.current_bucket_start = current_bucket_start


class LedgerInvariantError(BacktestError):
    """Programming-contract violation inside the position ledger."""
