"""
config.py - Settings loader (YAML + .env)

Reads a YAML settings file, interpolates ${VAR} references from the
environment (after loading .env), converts human-readable figures to the
engine's fixed-point integers and returns frozen settings dataclasses.

Expected layout:

    protocol:
      admin: ${LENDING_ADMIN}
      identity: lending_pool
      paused: false
    assets:
      collateral: WETH
      borrow: USDC
    parameters:                 # ratios, 0.75 == 75%
      ltv: "0.75"
      liquidation_threshold: "0.80"
      liquidation_bonus: "0.10"
      interest_rate: "0.05"
    prices:                     # USD, optional initial oracle prices
      WETH: "2000"
      USDC: "1"
    logging:
      level: INFO

Ratios become PRECISION (1e18) fixed point, prices PRICE_PRECISION (1e8).
Both are parsed with Decimal so "0.1" converts exactly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging
import os
import re

import yaml
from dotenv import load_dotenv

from .core import PRECISION, PRICE_PRECISION, ProtocolParameters, AssetTransfer, PriceOracle, RewardsDistributor
from .controller import DEFAULT_IDENTITY, ProtocolController
from .logging_setup import configure_logging
from .oracle import StaticPriceOracle

logger = logging.getLogger(__name__)


# ============================================================================
# SETTINGS
# ============================================================================

@dataclass(frozen=True, slots=True)
class LendingSettings:
    """
    Everything needed to build a ProtocolController from configuration.

    Attributes:
        admin: Administrator identity
        identity: Identity the controller presents to collaborators
        collateral_asset: Oracle id of the collateral asset
        borrow_asset: Oracle id of the borrow asset
        parameters: Validated protocol parameters (fixed point)
        prices: Initial USD prices per asset at PRICE_PRECISION
        paused: Start paused
        log_level: Root log level name
    """
    admin: str
    identity: str
    collateral_asset: str
    borrow_asset: str
    parameters: ProtocolParameters
    prices: Dict[str, int] = field(default_factory=dict)
    paused: bool = False
    log_level: str = "INFO"


# ============================================================================
# ENV INTERPOLATION
# ============================================================================

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ============================================================================
# CONVERSIONS
# ============================================================================

def _decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"{name} must be a number, got {value!r}") from None
    if not number.is_finite() or number < 0:
        raise ValueError(f"{name} must be a finite non-negative number, got {value!r}")
    return number


def to_fixed_ratio(value: Any, name: str = "ratio") -> int:
    """Convert a human ratio ("0.75") to PRECISION fixed point."""
    return int(_decimal(value, name) * PRECISION)


def to_fixed_price(value: Any, name: str = "price") -> int:
    """Convert a USD price ("2000.50") to PRICE_PRECISION fixed point."""
    price = int(_decimal(value, name) * PRICE_PRECISION)
    if price <= 0:
        raise ValueError(f"{name} must be positive, got {value!r}")
    return price


def _as_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "yes", "1", "on"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "no", "0", "off", ""):
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' must be a mapping")
    return section


# ============================================================================
# YAML -> DATACLASS BUILDERS
# ============================================================================

def _build_parameters(raw: Dict[str, Any]) -> ProtocolParameters:
    missing = [key for key in ("ltv", "liquidation_threshold", "liquidation_bonus") if key not in raw]
    if missing:
        raise ValueError(f"parameters missing: {', '.join(missing)}")
    return ProtocolParameters(
        ltv=to_fixed_ratio(raw["ltv"], "ltv"),
        liquidation_threshold=to_fixed_ratio(raw["liquidation_threshold"], "liquidation_threshold"),
        liquidation_bonus=to_fixed_ratio(raw["liquidation_bonus"], "liquidation_bonus"),
        interest_rate=to_fixed_ratio(raw.get("interest_rate", 0), "interest_rate"),
    )


def _build_prices(raw: Dict[str, Any]) -> Dict[str, int]:
    return {str(asset): to_fixed_price(price, f"prices.{asset}") for asset, price in raw.items()}


def build_settings(raw: Dict[str, Any]) -> LendingSettings:
    """
    Build validated settings from an already-parsed mapping.

    Raises:
        ValueError: For missing or malformed settings
        ValidationError: If the parameters break the protocol invariants
    """
    if not isinstance(raw, dict):
        raise ValueError("settings must be a mapping")
    protocol = _section(raw, "protocol")
    assets = _section(raw, "assets")

    settings = LendingSettings(
        admin=str(protocol.get("admin", "")).strip(),
        identity=str(protocol.get("identity", DEFAULT_IDENTITY)).strip(),
        collateral_asset=str(assets.get("collateral", "")).strip(),
        borrow_asset=str(assets.get("borrow", "")).strip(),
        parameters=_build_parameters(_section(raw, "parameters")),
        prices=_build_prices(_section(raw, "prices")),
        paused=_as_bool(protocol.get("paused", False), "protocol.paused"),
        log_level=str(_section(raw, "logging").get("level", "INFO")).upper(),
    )
    _validate(settings)
    return settings


def load_settings(config_path: Optional[Union[str, Path]] = None) -> LendingSettings:
    """
    Load settings from YAML + .env.

    Args:
        config_path: Path to the YAML file. Defaults to ``lending.yaml`` in
            the current working directory.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError, ValidationError: See build_settings()
    """
    load_dotenv()

    config_path = Path(config_path) if config_path is not None else Path("lending.yaml")
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    settings = build_settings(_interpolate_env(raw))
    logger.info("Settings loaded from %s", config_path)
    return settings


# ============================================================================
# WIRING
# ============================================================================

def build_oracle(settings: LendingSettings) -> StaticPriceOracle:
    """StaticPriceOracle seeded with the configured prices."""
    return StaticPriceOracle(dict(settings.prices))


def create_controller(
    settings: LendingSettings,
    collateral_token: AssetTransfer,
    borrow_token: AssetTransfer,
    rewards: Optional[RewardsDistributor] = None,
    oracle: Optional[PriceOracle] = None,
    initial_time: Optional[int] = None,
) -> ProtocolController:
    """
    Entry point: apply the configured log level and wire a controller.

    Without an explicit oracle, one is built from settings.prices, which
    must then price both configured assets.

    Example:
        settings = load_settings("lending.yaml")
        pool = create_controller(settings, weth_transfer, usdc_transfer)

    Raises:
        ValueError: If no oracle is given and a configured asset has no price
    """
    configure_logging(settings.log_level)
    if oracle is None:
        missing = [
            asset for asset in (settings.collateral_asset, settings.borrow_asset)
            if asset not in settings.prices
        ]
        if missing:
            raise ValueError(f"prices missing for configured assets: {', '.join(missing)}")
        oracle = build_oracle(settings)
    logger.info("Creating controller %s (%s / %s)", settings.identity,
                settings.collateral_asset, settings.borrow_asset)
    return ProtocolController.from_settings(
        settings, oracle, collateral_token, borrow_token,
        rewards=rewards, initial_time=initial_time,
    )


def _validate(settings: LendingSettings) -> None:
    """Raise on invalid settings."""
    if not settings.admin:
        raise ValueError("protocol.admin must be set")
    if not settings.identity:
        raise ValueError("protocol.identity cannot be empty")
    if not settings.collateral_asset or not settings.borrow_asset:
        raise ValueError("assets.collateral and assets.borrow must both be set")
    if settings.collateral_asset == settings.borrow_asset:
        raise ValueError("collateral and borrow assets must differ")
    settings.parameters.validate()
