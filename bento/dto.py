"""Response shapes returned by the REST API."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar

T = TypeVar("T")

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"

_MISSING = object()


def _field(model: Any, name: str, default: Any = _MISSING) -> Any:
    if isinstance(model, Mapping):
        if name in model:
            return model[name]
    elif hasattr(model, name):
        return getattr(model, name)
    if default is _MISSING:
        raise ValueError(f"model has no field {name!r}")
    return default


def _format_timestamp(value: Any) -> str:
    if not isinstance(value, datetime):
        raise TypeError(f"timestamp must be a datetime, got {type(value).__name__}")
    return value.strftime(TIMESTAMP_FORMAT)


@dataclass
class BlockDto:
    hash: str
    timestamp: str
    chain_from: int
    chain_to: int
    height: int
    deps: list[str | None]
    nonce: str
    version: str
    dep_state_hash: str
    txs_hash: str
    tx_number: int
    target: str
    main_chain: bool
    ghost_uncles: Any

    @classmethod
    def from_model(cls, model: Any) -> BlockDto:
        """Build from a stored block given as a mapping or an object with attributes."""
        return cls(
            hash=str(_field(model, "hash")),
            timestamp=_format_timestamp(_field(model, "timestamp")),
            chain_from=_field(model, "chain_from"),
            chain_to=_field(model, "chain_to"),
            height=_field(model, "height"),
            deps=list(_field(model, "deps")),
            nonce=_field(model, "nonce"),
            version=_field(model, "version"),
            dep_state_hash=_field(model, "dep_state_hash"),
            txs_hash=_field(model, "txs_hash"),
            tx_number=_field(model, "tx_number"),
            target=_field(model, "target"),
            main_chain=_field(model, "main_chain"),
            ghost_uncles=_field(model, "ghost_uncles"),
        )


@dataclass
class EventDto:
    id: str
    tx_id: str
    contract_address: str
    event_index: int
    fields: Any

    @classmethod
    def from_model(cls, model: Any) -> EventDto:
        """Build from a stored event given as a mapping or an object with attributes."""
        return cls(
            id=_field(model, "id"),
            tx_id=_field(model, "tx_id"),
            contract_address=_field(model, "contract_address"),
            event_index=_field(model, "event_index"),
            fields=_field(model, "fields"),
        )


@dataclass
class TransactionDto:
    tx_hash: str
    unsigned: Any
    script_execution_ok: bool
    contract_inputs: Any
    generated_outputs: Any
    input_signatures: list[str | None]
    script_signatures: list[str | None]
    block_hash: str

    @classmethod
    def from_model(cls, model: Any) -> TransactionDto:
        """Build from a stored transaction; a missing block hash becomes an empty string."""
        block_hash = _field(model, "block_hash", None)
        return cls(
            tx_hash=_field(model, "tx_hash"),
            unsigned=_field(model, "unsigned"),
            script_execution_ok=_field(model, "script_execution_ok"),
            contract_inputs=_field(model, "contract_inputs"),
            generated_outputs=_field(model, "generated_outputs"),
            input_signatures=list(_field(model, "input_signatures")),
            script_signatures=list(_field(model, "script_signatures")),
            block_hash=block_hash if block_hash is not None else "",
        )


@dataclass
class Paginated(Generic[T]):
    """One page of results together with the paging that produced it."""

    data: list[T] = field(default_factory=list)
    limit: int = 0
    offset: int = 0
    total: int = 0