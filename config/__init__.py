"""
Configuration loading utilities for the price collector.

Values come from config/simulation.yaml, then environment variables
(a local .env file is honoured) override the RPC section.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from core.constants import (
    DEAD_ADDRESS,
    DEFAULT_DECOY_ADDRESS,
    DEFAULT_FUNDING_HEADROOM_WEI,
    DEFAULT_INJECTOR_GROWTH,
    DEFAULT_INJECTOR_RETRIES,
    DEFAULT_READ_GAS_LIMIT,
    DEFAULT_SIMULATION_GAS_LIMIT,
    DEFAULT_SYNTHETIC_GAS_PRICE_WEI,
    DEFAULT_TRADER_ADDRESS,
    UNICRYPT_LOCKER_ADDRESS,
    UNISWAP_V2_ROUTER_ADDRESS,
    WETH_ADDRESS,
    ZERO_ADDRESS,
)
from core.exceptions import ConfigurationError
from simulation.abi import normalize_address

CONFIG_DIR = Path(__file__).parent
DEFAULT_CONFIG_FILE = "simulation.yaml"


def load_yaml(filename: str) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        filename: Name of file in config directory, or a path

    Returns:
        Parsed YAML as dict
    """
    filepath = Path(filename)
    if not filepath.is_absolute() and not filepath.exists():
        filepath = CONFIG_DIR / filename
    if not filepath.exists():
        raise FileNotFoundError(f"Config file not found: {filepath}")

    with open(filepath, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@dataclass(frozen=True)
class SimulationConfig:
    """Fixed inputs of the simulation engine."""

    # Contracts
    router_address: str = UNISWAP_V2_ROUTER_ADDRESS
    weth_address: str = WETH_ADDRESS

    # Synthetic accounts
    trader_address: str = DEFAULT_TRADER_ADDRESS
    decoy_address: str = DEFAULT_DECOY_ADDRESS

    # Gas
    gas_price_wei: int = DEFAULT_SYNTHETIC_GAS_PRICE_WEI
    gas_limit: int = DEFAULT_SIMULATION_GAS_LIMIT
    read_gas_limit: int = DEFAULT_READ_GAS_LIMIT

    # Funding
    funding_headroom_wei: int = DEFAULT_FUNDING_HEADROOM_WEI

    # Balance injector
    injector_retries: int = DEFAULT_INJECTOR_RETRIES
    injector_growth_numerator: int = DEFAULT_INJECTOR_GROWTH[0]
    injector_growth_denominator: int = DEFAULT_INJECTOR_GROWTH[1]

    def validate(self) -> "SimulationConfig":
        """Check invariants; returns self with addresses normalised."""
        addresses = {}
        for name in ("router_address", "weth_address", "trader_address", "decoy_address"):
            try:
                addresses[name] = normalize_address(getattr(self, name))
            except ValueError as e:
                raise ConfigurationError(str(e), details={"field": name}) from e

        if addresses["trader_address"] == addresses["decoy_address"]:
            raise ConfigurationError("Decoy address must differ from trader address")
        if self.gas_price_wei <= 0:
            raise ConfigurationError("gas_price_wei must be positive")
        if self.gas_limit <= 0 or self.read_gas_limit <= 0:
            raise ConfigurationError("Gas limits must be positive")
        if self.funding_headroom_wei <= 0:
            raise ConfigurationError("funding_headroom_wei must be positive")
        if self.injector_retries < 1:
            raise ConfigurationError("injector_retries must be at least 1")
        if self.injector_growth_denominator <= 0 or (
            self.injector_growth_numerator <= self.injector_growth_denominator
        ):
            raise ConfigurationError(
                "Injector growth factor must be greater than 1",
                details={
                    "numerator": self.injector_growth_numerator,
                    "denominator": self.injector_growth_denominator,
                },
            )

        return SimulationConfig(**{**_as_dict(self), **addresses})


@dataclass(frozen=True)
class SamplerConfig:
    """Price-curve sampling grid."""
    buy_step_wei: int = 10**17
    buy_steps: int = 10
    sell_points: int = 20
    max_in_flight: int = 200
    liquidity_holders: tuple[str, ...] = (
        ZERO_ADDRESS,
        DEAD_ADDRESS,
        UNICRYPT_LOCKER_ADDRESS,
    )

    def validate(self) -> "SamplerConfig":
        if self.buy_step_wei <= 0 or self.buy_steps < 1:
            raise ConfigurationError("Buy grid must be non-empty and positive")
        if self.sell_points < 2:
            raise ConfigurationError("sell_points must be at least 2")
        if self.max_in_flight < 1:
            raise ConfigurationError("max_in_flight must be at least 1")
        try:
            holders = tuple(normalize_address(a) for a in self.liquidity_holders)
        except ValueError as e:
            raise ConfigurationError(str(e), details={"field": "liquidity_holders"}) from e
        return SamplerConfig(**{**_as_dict(self), "liquidity_holders": holders})


@dataclass(frozen=True)
class RPCConfig:
    """RPC endpoints and transport settings."""
    urls: tuple[str, ...] = ()
    timeout_seconds: float = 30
    max_connections: int = 100


@dataclass(frozen=True)
class AppConfig:
    """Full configuration."""
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    rpc: RPCConfig = field(default_factory=RPCConfig)
    log_level: str = "INFO"


def _as_dict(instance: Any) -> Dict[str, Any]:
    return {f.name: getattr(instance, f.name) for f in fields(instance)}


def _pick(cls: type, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Keep only keys that are fields of cls; unknown keys are ignored."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in (data or {}).items() if k in names}


def _coerce_int(key: str, value: Any) -> int:
    """Accept 100, "100", "0x64", "1e20" or 1e20 for an integer field."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        if isinstance(value, str):
            try:
                return int(value.replace("_", ""), 0)
            except ValueError:
                value = float(value)
        if isinstance(value, float) and value.is_integer():
            return int(value)
    except ValueError:
        pass
    raise ConfigurationError(f"{key} must be an integer", details={"value": value})


def _int_fields(cls: type, data: Dict[str, Any]) -> Dict[str, Any]:
    """YAML writes big wei amounts as strings or floats; coerce to int."""
    defaults = cls()
    return {
        key: _coerce_int(key, value) if isinstance(getattr(defaults, key), int) else value
        for key, value in data.items()
    }


def load_simulation_config(config_path: Optional[Path] = None) -> AppConfig:
    """
    Load configuration from YAML, then apply environment overrides.

    Args:
        config_path: Path to simulation.yaml (default: config/simulation.yaml);
            a missing file means defaults

    Environment:
        PRICE_RPC_URLS: comma-separated RPC URLs
        PRICE_LOG_LEVEL: log level
    """
    load_dotenv()

    path = Path(config_path) if config_path else CONFIG_DIR / DEFAULT_CONFIG_FILE
    data: Dict[str, Any] = {}
    if path.exists():
        data = load_yaml(str(path))

    simulation = SimulationConfig(
        **_int_fields(SimulationConfig, _pick(SimulationConfig, data.get("simulation")))
    ).validate()

    sampler_data = _int_fields(SamplerConfig, _pick(SamplerConfig, data.get("sampler")))
    if "liquidity_holders" in sampler_data:
        sampler_data["liquidity_holders"] = tuple(sampler_data["liquidity_holders"])
    sampler = SamplerConfig(**sampler_data).validate()

    rpc_data = _pick(RPCConfig, data.get("rpc"))
    env_urls = os.getenv("PRICE_RPC_URLS")
    if env_urls:
        rpc_data["urls"] = [u.strip() for u in env_urls.split(",") if u.strip()]
    rpc = RPCConfig(**{**rpc_data, "urls": tuple(rpc_data.get("urls", ()))})

    log_level = os.getenv("PRICE_LOG_LEVEL") or data.get("log_level", "INFO")

    return AppConfig(
        simulation=simulation,
        sampler=sampler,
        rpc=rpc,
        log_level=str(log_level).upper(),
    )
