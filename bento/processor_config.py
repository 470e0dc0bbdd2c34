"""Configuration describing how to build a processor."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from bento.stage import Processor

ProcessorFactory = Callable[[Any, Any], Processor]


@dataclass(frozen=True)
class ProcessorConfig:
    """A named processor factory together with its optional arguments."""

    name: str
    factory: ProcessorFactory
    args: Any = None

    def __post_init__(self) -> None:
        if not callable(self.factory):
            raise TypeError(f"processor factory for {self.name!r} is not callable")

    def build_processor(self, db_pool: Any) -> Processor:
        """Create the processor using the given connection pool."""
        return self.factory(db_pool, self.args)