"""
assets.py - Reference Fungible-Asset Ledger

In-memory token bookkeeping used as the lending engine's asset-transfer
collaborator. The engine itself only sees the AssetTransfer protocol
(pull/push); this module provides a concrete, auditable backing for it.

Key responsibilities:
    - Integer balances per (wallet, asset)
    - Atomic, validated transfers (rejected transfers change nothing)
    - Issuance from SYSTEM_WALLET, the only wallet allowed to go negative
    - Immutable transfer log and conservation check

LedgerAssetTransfer adapts one asset of an AssetLedger to the pull/push
interface against a custody wallet owned by the lending controller.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Set
import logging

logger = logging.getLogger(__name__)


# Reserved wallet for issuance. Exempt from balance validation.
SYSTEM_WALLET = "system"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class AssetLedgerError(Exception):
    """Base exception for asset ledger errors."""
    pass


class InsufficientFunds(AssetLedgerError):
    """Raised when a transfer would take a wallet balance below zero."""
    pass


class AssetNotRegistered(AssetLedgerError):
    """Raised when operating on an asset that has not been registered."""
    pass


class WalletNotRegistered(AssetLedgerError):
    """Raised when operating on a wallet that has not been registered."""
    pass


# ============================================================================
# TRANSFER RECORD
# ============================================================================

@dataclass(frozen=True, slots=True)
class Transfer:
    """
    A single executed movement of an asset between two wallets.

    Attributes:
        sequence: Monotonic position in the ledger's transfer log
        asset: Asset symbol
        source: Wallet debited
        dest: Wallet credited
        amount: Positive integer amount
        memo: Free-form reason (e.g. "pull", "push")
    """
    sequence: int
    asset: str
    source: str
    dest: str
    amount: int
    memo: str = ""

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Transfer source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Transfer dest cannot be empty")
        if not self.asset or not self.asset.strip():
            raise ValueError("Transfer asset cannot be empty")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValueError(f"Transfer amount must be int, got {type(self.amount)}")
        if self.amount <= 0:
            raise ValueError(f"Transfer amount must be positive, got {self.amount}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Transfer(#{self.sequence} {self.amount} {self.asset}: {self.source}→{self.dest})"


# ============================================================================
# ASSET LEDGER
# ============================================================================

class AssetLedger:
    """
    Integer-balance token ledger with full validation and a transfer log.

    Not thread-safe.

    Example:
        assets = AssetLedger("tokens")
        assets.register_asset("WETH")
        assets.register_wallet("alice")
        assets.mint("WETH", "alice", 10 * 10**18)
        assets.transfer("WETH", "alice", "pool", 10**18)
    """

    def __init__(self, name: str = "assets"):
        self.name = name
        self.assets: Set[str] = set()
        self.registered_wallets: Set[str] = {SYSTEM_WALLET}
        self.balances: Dict[str, Dict[str, int]] = {SYSTEM_WALLET: defaultdict(int)}
        self.transfer_log: List[Transfer] = []

    # ------------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------------

    def register_asset(self, symbol: str) -> None:
        """
        Raises:
            ValueError: If the asset is already registered
        """
        if symbol in self.assets:
            raise ValueError(f"Asset {symbol} already registered")
        self.assets.add(symbol)

    def register_wallet(self, wallet_id: str) -> str:
        """
        Raises:
            ValueError: If the wallet is already registered
        """
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(int)
        return wallet_id

    def ensure_wallet(self, wallet_id: str) -> str:
        """Register wallet_id unless it already exists."""
        if wallet_id not in self.registered_wallets:
            self.register_wallet(wallet_id)
        return wallet_id

    # ------------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------------

    def get_balance(self, wallet_id: str, asset: str) -> int:
        """
        Raises:
            WalletNotRegistered: If wallet is not registered
            AssetNotRegistered: If asset is not registered
        """
        self._check_registered(wallet_id, asset)
        return self.balances[wallet_id].get(asset, 0)

    def total_supply(self, asset: str) -> int:
        """Sum of all wallet balances except the issuing SYSTEM_WALLET."""
        if asset not in self.assets:
            raise AssetNotRegistered(f"Asset {asset} not registered")
        return sum(
            self.balances[w].get(asset, 0)
            for w in sorted(self.registered_wallets)
            if w != SYSTEM_WALLET
        )

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Check that every asset nets to zero across all wallets.

        Issuance debits SYSTEM_WALLET, so the sum over every wallet,
        SYSTEM_WALLET included, is zero at all times.

        Returns:
            Dict with 'valid' (bool) and 'discrepancies' (asset -> net sum)
        """
        discrepancies = {}
        for asset in sorted(self.assets):
            net = sum(self.balances[w].get(asset, 0) for w in self.registered_wallets)
            if net != 0:
                discrepancies[asset] = net
        return {'valid': not discrepancies, 'discrepancies': discrepancies}

    # ------------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------------

    def mint(self, asset: str, wallet_id: str, amount: int) -> Transfer:
        """Issue amount of asset to wallet_id from SYSTEM_WALLET."""
        return self.transfer(asset, SYSTEM_WALLET, wallet_id, amount, memo="mint")

    def transfer(self, asset: str, source: str, dest: str, amount: int, memo: str = "") -> Transfer:
        """
        Move amount of asset from source to dest atomically.

        Validation happens before any balance changes, so a rejected
        transfer leaves the ledger untouched.

        Returns:
            The logged Transfer record

        Raises:
            ValueError: For malformed transfers (zero amount, same wallet)
            AssetNotRegistered, WalletNotRegistered: For unknown ids
            InsufficientFunds: If source (other than SYSTEM_WALLET) cannot cover amount
        """
        self._check_registered(source, asset)
        self._check_registered(dest, asset)
        record = Transfer(
            sequence=len(self.transfer_log),
            asset=asset,
            source=source,
            dest=dest,
            amount=amount,
            memo=memo,
        )
        available = self.balances[source][asset]
        if source != SYSTEM_WALLET and available < amount:
            raise InsufficientFunds(
                f"{source} {asset}: balance {available} < transfer {amount}"
            )

        self.balances[source][asset] = available - amount
        self.balances[dest][asset] += amount
        self.transfer_log.append(record)
        logger.debug("%s applied %r", self.name, record)
        return record

    def _check_registered(self, wallet_id: str, asset: str) -> None:
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if asset not in self.assets:
            raise AssetNotRegistered(f"Asset {asset} not registered")

    def __repr__(self) -> str:
        return (f"AssetLedger({self.name}: {len(self.assets)} assets, "
                f"{len(self.registered_wallets)} wallets, {len(self.transfer_log)} transfers)")


# ============================================================================
# PULL / PUSH ADAPTER
# ============================================================================

class LedgerAssetTransfer:
    """
    AssetTransfer implementation for one asset of an AssetLedger.

    pull() moves funds from an account into custody_wallet; push() moves
    them back out. Ledger errors propagate unchanged; the controller wraps
    them as ExternalFailure.
    """

    def __init__(self, ledger: AssetLedger, asset: str, custody_wallet: str):
        if asset not in ledger.assets:
            raise AssetNotRegistered(f"Asset {asset} not registered")
        self.ledger = ledger
        self.asset = asset
        self.custody_wallet = ledger.ensure_wallet(custody_wallet)

    def pull(self, source: str, amount: int) -> None:
        self.ledger.transfer(self.asset, source, self.custody_wallet, amount, memo="pull")

    def push(self, dest: str, amount: int) -> None:
        self.ledger.transfer(self.asset, self.custody_wallet, dest, amount, memo="push")

    def custody_balance(self) -> int:
        return self.ledger.get_balance(self.custody_wallet, self.asset)

    def __repr__(self) -> str:
        return f"LedgerAssetTransfer({self.asset} via {self.custody_wallet})"
