"""Indexer configuration: TOML loading, validation and command-line overrides."""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import Any

ALPH_TOKEN_ID = "0" * 64
DUST_AMOUNT = "1000000000000000"  # 0.001 ALPH

NETWORKS = ("devnet", "testnet", "mainnet")
DEFAULT_CONFIG_PATH = "config.toml"
DEFAULT_CALCULATION_TIME = "01:00"


class ConfigError(Exception):
    """Raised when a configuration file cannot be read or is invalid."""


def _table(data: Mapping[str, Any], key: str, *, optional: bool = False) -> Mapping[str, Any] | None:
    value = data.get(key)
    if value is None:
        if optional:
            return None
        raise ConfigError(f"missing section [{key}]")
    if not isinstance(value, Mapping):
        raise ConfigError(f"[{key}] must be a table")
    return value


def _string(table: Mapping[str, Any], key: str, where: str, *, optional: bool = False) -> str | None:
    value = table.get(key)
    if value is None:
        if optional:
            return None
        raise ConfigError(f"missing field `{key}` in [{where}]")
    if not isinstance(value, str):
        raise ConfigError(f"field `{key}` in [{where}] must be a string")
    return value


def _uint(table: Mapping[str, Any], key: str, where: str) -> int:
    value = table.get(key)
    if value is None:
        raise ConfigError(f"missing field `{key}` in [{where}]")
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"field `{key}` in [{where}] must be a non-negative integer")
    return value


def _number(table: Mapping[str, Any], key: str, where: str) -> float:
    value = table.get(key)
    if value is None:
        raise ConfigError(f"missing field `{key}` in [{where}]")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"field `{key}` in [{where}] must be a number")
    return float(value)


@dataclass
class WorkerConfig:
    database_url: str
    network: str
    request_interval: int
    step: int
    backstep: int
    rpc_url: str | None = None

    @classmethod
    def _from_table(cls, table: Mapping[str, Any]) -> WorkerConfig:
        return cls(
            database_url=_string(table, "database_url", "worker"),
            network=_string(table, "network", "worker"),
            request_interval=_uint(table, "request_interval", "worker"),
            step=_uint(table, "step", "worker"),
            backstep=_uint(table, "backstep", "worker"),
            rpc_url=_string(table, "rpc_url", "worker", optional=True),
        )


@dataclass
class ServerConfig:
    port: str

    @classmethod
    def _from_table(cls, table: Mapping[str, Any]) -> ServerConfig:
        return cls(port=_string(table, "port", "server"))


@dataclass
class BackfillConfig:
    step: int
    backstep: int
    request_interval: int
    workers: int

    @classmethod
    def _from_table(cls, table: Mapping[str, Any]) -> BackfillConfig:
        return cls(
            step=_uint(table, "step", "backfill"),
            backstep=_uint(table, "backstep", "backfill"),
            request_interval=_uint(table, "request_interval", "backfill"),
            workers=_uint(table, "workers", "backfill"),
        )


@dataclass
class PriceServiceConfig:
    linx_api_url: str

    @classmethod
    def _from_table(cls, table: Mapping[str, Any]) -> PriceServiceConfig:
        return cls(linx_api_url=_string(table, "linx_api_url", "price_service"))


@dataclass
class PointsConfig:
    referral_percentage: float
    calculation_time: str = DEFAULT_CALCULATION_TIME

    @classmethod
    def _from_table(cls, table: Mapping[str, Any]) -> PointsConfig:
        calculation_time = _string(table, "calculation_time", "points", optional=True)
        return cls(
            referral_percentage=_number(table, "referral_percentage", "points"),
            calculation_time=calculation_time if calculation_time is not None else DEFAULT_CALCULATION_TIME,
        )


@dataclass
class Config:
    worker: WorkerConfig
    server: ServerConfig
    backfill: BackfillConfig
    processors: dict[str, dict[str, Any]] | None = None
    price_service: PriceServiceConfig | None = None
    points: PointsConfig | None = None
    extra: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Config:
        """Build a validated configuration from a parsed TOML document."""
        if not isinstance(data, Mapping):
            raise ConfigError("configuration must be a table")

        processors_table = _table(data, "processors", optional=True)
        processors: dict[str, dict[str, Any]] | None = None
        if processors_table is not None:
            processors = {}
            for name, settings in processors_table.items():
                if not isinstance(settings, Mapping):
                    raise ConfigError(f"[processors.{name}] must be a table")
                processors[name] = dict(settings)

        price_table = _table(data, "price_service", optional=True)
        points_table = _table(data, "points", optional=True)
        known = {"worker", "server", "backfill", "processors", "price_service", "points"}

        return cls(
            worker=WorkerConfig._from_table(_table(data, "worker")),
            server=ServerConfig._from_table(_table(data, "server")),
            backfill=BackfillConfig._from_table(_table(data, "backfill")),
            processors=processors,
            price_service=PriceServiceConfig._from_table(price_table) if price_table is not None else None,
            points=PointsConfig._from_table(points_table) if points_table is not None else None,
            extra={key: value for key, value in data.items() if key not in known},
        )


def load_config(path: str | PathLike[str]) -> Config:
    """Read and validate a TOML configuration file."""
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read config file: {exc}") from exc
    try:
        return Config.from_dict(tomllib.loads(content))
    except (tomllib.TOMLDecodeError, ConfigError) as exc:
        raise ConfigError(f"Failed to parse config file: {exc}") from exc


def config_from_args(config_path: str | PathLike[str] = DEFAULT_CONFIG_PATH, network: str | None = None) -> Config:
    """Load the configuration and apply a network given on the command line."""
    if network is not None and network not in NETWORKS:
        raise ConfigError(f"invalid network {network!r}, expected one of: {', '.join(NETWORKS)}")
    config = load_config(config_path)
    if network is not None:
        config.worker.network = network
    return config