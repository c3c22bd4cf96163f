"""
lending - Overcollateralized Lending Engine

A single-pool lending protocol: accounts deposit one collateral asset and
borrow one borrow asset against it, accrue simple interest, and can be
partially liquidated once their health factor drops below 1.0.

Usage:
    from lending import (
        AssetLedger, LedgerAssetTransfer, StaticPriceOracle,
        ProtocolController, ProtocolParameters, PRECISION, usd,
    )

    assets = AssetLedger("tokens")
    assets.register_asset("WETH")
    assets.register_asset("USDC")
    assets.register_wallet("alice")
    assets.mint("WETH", "alice", 10 * PRECISION)

    pool = ProtocolController(
        admin="admin",
        oracle=StaticPriceOracle({"WETH": usd(2000), "USDC": usd(1)}),
        collateral_token=LedgerAssetTransfer(assets, "WETH", "lending_pool"),
        borrow_token=LedgerAssetTransfer(assets, "USDC", "lending_pool"),
        parameters=ProtocolParameters(
            ltv=75 * PRECISION // 100,
            liquidation_threshold=80 * PRECISION // 100,
            liquidation_bonus=10 * PRECISION // 100,
            interest_rate=5 * PRECISION // 100,
        ),
        collateral_asset="WETH",
        borrow_asset="USDC",
    )
    pool.deposit("alice", 10 * PRECISION)
    pool.max_borrowable("alice")        # 15_000 * PRECISION
"""

# Core types
from .core import (
    Position,
    ProtocolParameters,
    PriceOracle,
    AssetTransfer,
    RewardsDistributor,
    AccrualListener,
    ErrorCode,
    LendingError,
    ValidationError,
    StateError,
    RiskError,
    AuthorizationError,
    PausedError,
    ExternalFailure,
    validate_amount,
    validate_account,
    validate_interest_rate,
    PRECISION,
    PRICE_PRECISION,
    SECONDS_PER_YEAR,
    MAX_HEALTH_FACTOR,
    LIQUIDATION_HEALTH_FACTOR,
    MAX_LIQUIDATION_BONUS,
    MAX_INTEREST_RATE,
)

# Position store
from .positions import PositionLedger, ZERO_POSITION

# Interest
from .accrual import AccrualResult, calculate_interest, accrue, project_debt

# Risk
from .risk import (
    Prices,
    RiskAssessment,
    RiskEngine,
    fetch_prices,
    collateral_value_usd,
    debt_value_usd,
    calculate_health_factor,
    calculate_max_borrowable,
    calculate_assessment,
)

# Liquidation
from .liquidation import (
    LiquidationResult,
    LiquidationEngine,
    is_liquidatable,
    max_liquidatable,
    calculate_liquidation,
    apply_liquidation,
)

# Controller
from .controller import ProtocolController, OperationKind, OperationRecord, DEFAULT_IDENTITY

# Reference collaborators
from .assets import (
    AssetLedger,
    LedgerAssetTransfer,
    Transfer,
    AssetLedgerError,
    InsufficientFunds,
    AssetNotRegistered,
    WalletNotRegistered,
    SYSTEM_WALLET,
)
from .oracle import StaticPriceOracle, TimeSeriesPriceOracle, usd
from .rewards import DepositTracker, DepositChange

# Configuration
from .config import (
    LendingSettings, load_settings, build_settings, to_fixed_ratio, to_fixed_price,
    build_oracle, create_controller,
)
from .logging_setup import configure_logging


__all__ = [
    # Core
    'Position', 'ProtocolParameters',
    'PriceOracle', 'AssetTransfer', 'RewardsDistributor', 'AccrualListener',
    'ErrorCode', 'LendingError', 'ValidationError', 'StateError', 'RiskError',
    'AuthorizationError', 'PausedError', 'ExternalFailure',
    'validate_amount', 'validate_account', 'validate_interest_rate',
    'PRECISION', 'PRICE_PRECISION', 'SECONDS_PER_YEAR', 'MAX_HEALTH_FACTOR',
    'LIQUIDATION_HEALTH_FACTOR', 'MAX_LIQUIDATION_BONUS', 'MAX_INTEREST_RATE',
    # Positions
    'PositionLedger', 'ZERO_POSITION',
    # Interest
    'AccrualResult', 'calculate_interest', 'accrue', 'project_debt',
    # Risk
    'Prices', 'RiskAssessment', 'RiskEngine', 'fetch_prices',
    'collateral_value_usd', 'debt_value_usd',
    'calculate_health_factor', 'calculate_max_borrowable', 'calculate_assessment',
    # Liquidation
    'LiquidationResult', 'LiquidationEngine', 'is_liquidatable', 'max_liquidatable',
    'calculate_liquidation', 'apply_liquidation',
    # Controller
    'ProtocolController', 'OperationKind', 'OperationRecord', 'DEFAULT_IDENTITY',
    # Reference collaborators
    'AssetLedger', 'LedgerAssetTransfer', 'Transfer', 'AssetLedgerError',
    'InsufficientFunds', 'AssetNotRegistered', 'WalletNotRegistered', 'SYSTEM_WALLET',
    'StaticPriceOracle', 'TimeSeriesPriceOracle', 'usd',
    'DepositTracker', 'DepositChange',
    # Configuration
    'LendingSettings', 'load_settings', 'build_settings', 'to_fixed_ratio', 'to_fixed_price',
    'build_oracle', 'create_controller',
    'configure_logging',
]

__version__ = '1.0.0'
