"""
Pydantic Data Models and Validation Schemas

This module defines the data models of the NFT launchpad engine using Pydantic. Every model that
represents engine state is frozen: engine operations take a snapshot and return a new one via
``model_copy(update=...)``, they never mutate the snapshot they were given.

Key Components:
- CurveConfig / CurveState: Bonding curve parameters and per-collection trading state
- Quote: Buy or sell quote produced by the bonding curve engine
- LiquidityPool / LiquidityPosition / BridgeQuote: Bridge pools, LP shares and swap quotes
- SupportedToken: Tokens the bridge can pay out
- TokenSequence / LockedTokenMetadata: Token ID sequencing state and reservations
- CollectionRecord: Persisted bundle of a collection's curve and sequence, with a store revision
- WalletTradeStats: Per-wallet daily trading counters kept by the trade guard

Units:
- Amounts are integers in the smallest unit of their asset
- Rates and price impact are basis points
- Prices are scaled by ``fixed_point.PRICE_SCALE``

Versioning:
- Every mutable snapshot carries a ``version`` that increments on each committed transition
- Quotes record the version they were computed against so stale commits can be rejected
"""
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from mcp_nft_launchpad.fixed_point import BPS_DENOMINATOR, RoundingBias, checked_mul


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Bonding Curve ---

class TradeSide(str, Enum):
    buy = "buy"
    sell = "sell"


class CurveConfig(_Snapshot):
    virtual_reserve: int = Field(..., gt=0, description="Virtual base-currency reserve")
    virtual_supply: int = Field(..., gt=0, description="Virtual NFT supply")
    reveal_cap: int = Field(..., gt=0, description="Raised amount at which the collection reveals")
    fee_bps: int = Field(0, ge=0, le=BPS_DENOMINATOR)
    creator_fee_bps: int = Field(0, ge=0, le=BPS_DENOMINATOR)
    platform_fee_bps: int = Field(0, ge=0, le=BPS_DENOMINATOR)

    @model_validator(mode="after")
    def _check_fee_split(self) -> "CurveConfig":
        if self.creator_fee_bps + self.platform_fee_bps > self.fee_bps:
            raise ValueError("creator_fee_bps + platform_fee_bps must not exceed fee_bps")
        return self

    @property
    def k(self) -> int:
        """Constant product of the initial virtual reserve and supply."""
        return checked_mul(self.virtual_reserve, self.virtual_supply)


class CurveState(_Snapshot):
    minted: int = 0
    raised: int = 0
    virtual_reserve: int
    virtual_supply: int
    revealed: bool = False
    total_volume: int = 0
    trade_count: int = 0
    creator_fees: int = 0
    platform_fees: int = 0
    version: int = 0


class Quote(_Snapshot):
    side: TradeSide
    input_amount: int
    output_amount: int
    price_impact_bps: int
    fee_amount: int
    creator_fee: int
    platform_fee: int
    net_amount: int
    reserve_before: int
    supply_before: int
    reserve_after: int
    supply_after: int
    state_version: int
    quoted_at: float
    rounding_favors: RoundingBias = RoundingBias.protocol

    @property
    def unallocated_fee(self) -> int:
        """Part of the fee not assigned to the creator or the platform."""
        return self.fee_amount - self.creator_fee - self.platform_fee


class PricePoint(_Snapshot):
    supply: int
    price: int


class CurveMetrics(_Snapshot):
    current_price: int
    market_cap: int
    liquidity: int
    fully_diluted_value: int
    reveal_progress_bps: int
    revealed: bool
    total_volume: int
    trade_count: int


# --- Bridge ---

class PoolStatus(str, Enum):
    uninitialized = "uninitialized"
    active = "active"
    drained = "drained"


class LiquidityPosition(_Snapshot):
    provider: str
    shares: int = Field(..., gt=0)


class LiquidityPool(_Snapshot):
    token_mint: str
    token_symbol: Optional[str] = None
    collection_id: Optional[str] = None
    nft_reserve: int = 0
    token_reserve: int = 0
    total_shares: int = 0
    positions: Tuple[LiquidityPosition, ...] = ()
    total_volume: int = 0
    trade_count: int = 0
    status: PoolStatus = PoolStatus.uninitialized
    version: int = 0

    @property
    def pool_id(self) -> str:
        if self.collection_id:
            return f"{self.collection_id}__{self.token_mint}"
        return self.token_mint

    def position_of(self, provider: str) -> int:
        """Shares held by ``provider`` (0 if none)."""
        for position in self.positions:
            if position.provider == provider:
                return position.shares
        return 0


class BridgeQuote(_Snapshot):
    pool_id: str
    token_mint: str
    nft_amount: int
    token_amount: int
    bridge_fee: int
    net_amount: int
    price_per_nft: int
    price_impact_bps: int
    nft_reserve_before: int
    token_reserve_before: int
    nft_reserve_after: int
    token_reserve_after: int
    pool_version: int
    quoted_at: float
    rounding_favors: RoundingBias = RoundingBias.protocol


class SupportedToken(_Snapshot):
    mint: str
    symbol: str
    name: str
    decimals: int = Field(..., ge=0, le=18)
    is_active: bool = True


class TokenVolume(_Snapshot):
    token_mint: str
    symbol: Optional[str]
    volume: int
    trades: int


class BridgeStatistics(_Snapshot):
    total_volume: int
    total_trades: int
    total_nft_liquidity: int
    active_pools: int
    top_tokens: List[TokenVolume]


# --- Token Sequencing ---

class TokenAttributes(_Snapshot):
    token_id: int
    collection: str
    mint_timestamp: float
    blockchain_reference: str


class LockedTokenMetadata(_Snapshot):
    token_id: int
    collection_name: str
    mint_address: str
    metadata_uri: str
    attributes: TokenAttributes
    locked_at: float
    locked_by: str


class TokenSequence(_Snapshot):
    collection_name: str
    next_token_id: int = 1
    total_supply: int = Field(..., gt=0)
    locked: bool = False
    locked_by: Optional[str] = None
    lock_timestamp: Optional[float] = None
    max_mints_per_wallet: Optional[int] = Field(None, gt=0)
    reservations: Tuple[LockedTokenMetadata, ...] = ()
    version: int = 0

    @property
    def reserved_count(self) -> int:
        return len(self.reservations)


class ConsistencyReport(_Snapshot):
    valid: bool
    issues: List[str]
    reserved_count: int
    next_token_id: int
    total_supply: int


# --- Persistence ---

class CollectionRecord(_Snapshot):
    collection_id: str = Field(..., min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_\-]+$")
    name: str
    symbol: str
    creator: str
    curve: CurveConfig
    state: CurveState
    sequence: TokenSequence
    created_at: float
    metadata: Dict[str, str] = Field(default_factory=dict)
    revision: int = 0


# --- Trade Guard ---

class WalletTradeStats(_Snapshot):
    wallet: str
    last_trade_time: float = 0
    daily_volume: int = 0
    daily_trade_count: int = 0
    cooldown_active: bool = False
    paused: bool = False


class SuspiciousWallet(_Snapshot):
    wallet: str
    stats: WalletTradeStats
    risk_score: int
