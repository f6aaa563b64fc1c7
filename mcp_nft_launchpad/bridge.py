"""
NFT Bridge: Post-Reveal Exchange of NFTs for Supported Tokens

Once a collection has revealed, holders can exchange NFTs for any supported token through a
per-token liquidity pool. Pools price swaps with the same constant-product rule as the bonding
curve's sell path, applied to ``(nft_reserve, token_reserve)``, and charge a fixed bridge fee on
the token side. Liquidity providers seed pools with both assets and receive shares.

Pool Lifecycle:
- uninitialized: created for a token, never seeded, cannot be quoted
- active: both reserves positive, swaps and liquidity changes allowed
- drained: every share withdrawn, quoting fails until the pool is seeded again

Liquidity Accounting:
- First seeding issues ``isqrt(token_amount * nft_amount)`` shares
- Later seedings must match the pool ratio within a slippage tolerance and issue the smaller of
  the two proportional share amounts
- Withdrawals are pro-rata and rounded down in the pool's favour
- The bridge fee stays in the pool, so the constant product never decreases across swaps

The supported-token registry and bridge statistics helpers round out the module. Whether a
collection has revealed is a precondition the caller checks before quoting.
"""
import time
from typing import Iterable, List, Optional, Tuple

from mcp_nft_launchpad import config
from mcp_nft_launchpad.errors import (
    InsufficientLiquidityError,
    InvalidInputError,
    SlippageExceededError,
    StaleStateError,
)
from mcp_nft_launchpad.fixed_point import (
    PRICE_SCALE,
    Rounding,
    apply_bps,
    checked_add,
    checked_div,
    checked_isqrt,
    checked_mul,
    checked_sub,
    mul_div,
    ratio_bps,
    require_amount,
    scaled_price,
)
from mcp_nft_launchpad.schemas import (
    BridgeQuote,
    BridgeStatistics,
    LiquidityPool,
    LiquidityPosition,
    PoolStatus,
    SupportedToken,
    TokenVolume,
)
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SUPPORTED_TOKENS: Tuple[SupportedToken, ...] = (
    SupportedToken(mint="So11111111111111111111111111111111111111112", symbol="SOL", name="Solana", decimals=9),
    SupportedToken(mint="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", symbol="USDC", name="USD Coin", decimals=6),
    SupportedToken(mint="ANAL2R8pvMvd4NLmesbJgFjNxbTC13RDwQPbwSBomrQ6", symbol="LOL", name="LOL Token", decimals=6),
    SupportedToken(mint="Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", symbol="USDT", name="Tether USD", decimals=6),
)


# --- Supported Tokens ---

def find_token(registry: Iterable[SupportedToken], mint: str) -> Optional[SupportedToken]:
    for token in registry:
        if token.mint == mint:
            return token
    return None


def active_tokens(registry: Iterable[SupportedToken]) -> List[SupportedToken]:
    return [token for token in registry if token.is_active]


def register_token(registry: Tuple[SupportedToken, ...], token: SupportedToken) -> Tuple[SupportedToken, ...]:
    """Adds ``token`` to the registry, replacing (and reactivating) an entry with the same mint."""
    others = tuple(existing for existing in registry if existing.mint != token.mint)
    logger.info(f"Registered bridge token {token.symbol} ({token.mint})")
    return others + (token.model_copy(update={"is_active": True}),)


def deactivate_token(registry: Tuple[SupportedToken, ...], mint: str) -> Tuple[SupportedToken, ...]:
    """Marks a token inactive. Its record is kept for accounting."""
    if find_token(registry, mint) is None:
        raise InvalidInputError(f"Token {mint} is not registered")
    logger.info(f"Deactivated bridge token {mint}")
    return tuple(
        token.model_copy(update={"is_active": False}) if token.mint == mint else token
        for token in registry
    )


# --- Pools ---

def new_pool(token_mint: str, token_symbol: Optional[str] = None, collection_id: Optional[str] = None) -> LiquidityPool:
    """Creates an uninitialized pool record for ``token_mint``."""
    if not token_mint:
        raise InvalidInputError("token_mint must be a non-empty string")
    return LiquidityPool(token_mint=token_mint, token_symbol=token_symbol, collection_id=collection_id)


def _require_active(pool: LiquidityPool) -> None:
    if pool.status != PoolStatus.active or pool.nft_reserve == 0 or pool.token_reserve == 0:
        raise InsufficientLiquidityError(f"Pool for {pool.token_mint} is {pool.status.value} and cannot be quoted")


def pool_price(pool: LiquidityPool) -> int:
    """Spot price of one NFT unit in token units, scaled by ``PRICE_SCALE``."""
    _require_active(pool)
    return scaled_price(pool.token_reserve, pool.nft_reserve)


def quote_swap(
    pool: LiquidityPool,
    nft_amount: int,
    bridge_fee_bps: Optional[int] = None,
    now: Optional[float] = None,
) -> BridgeQuote:
    """
    Quotes the tokens paid out for ``nft_amount`` NFT units.

    Args:
        pool: Current pool snapshot.
        nft_amount: NFT units the trader hands to the pool.
        bridge_fee_bps: Fee taken from the token output; defaults to ``config.BRIDGE_FEE_BPS``.
        now: Quote timestamp; defaults to the current time.

    Returns:
        A BridgeQuote with the gross token output, bridge fee and net amount.

    Raises:
        InvalidInputError: If ``nft_amount`` is not positive or buys nothing.
        InsufficientLiquidityError: If the pool is not active.
    """
    require_amount(nft_amount, "nft_amount")
    _require_active(pool)
    if bridge_fee_bps is None:
        bridge_fee_bps = config.BRIDGE_FEE_BPS

    nft_reserve, token_reserve = pool.nft_reserve, pool.token_reserve
    k = checked_mul(nft_reserve, token_reserve)
    new_nft_reserve = checked_add(nft_reserve, nft_amount)
    new_token_reserve = checked_div(k, new_nft_reserve, Rounding.up)
    token_amount = checked_sub(token_reserve, new_token_reserve)
    if token_amount == 0:
        raise InvalidInputError(f"Swapping {nft_amount} NFT units returns no tokens")

    bridge_fee = apply_bps(token_amount, bridge_fee_bps, Rounding.up)
    net_amount = token_amount - bridge_fee
    # (P_before - P_after) / P_before with P = token / nft
    before = checked_mul(token_reserve, new_nft_reserve)
    after = checked_mul(new_token_reserve, nft_reserve)
    impact = ratio_bps(before - after, before, Rounding.up)

    logger.debug(f"Bridge quote for {pool.token_mint}: nft_in={nft_amount}, out={token_amount}, "
                 f"fee={bridge_fee}, impact={impact}bps, version={pool.version}")
    return BridgeQuote(
        pool_id=pool.pool_id,
        token_mint=pool.token_mint,
        nft_amount=nft_amount,
        token_amount=token_amount,
        bridge_fee=bridge_fee,
        net_amount=net_amount,
        price_per_nft=mul_div(token_amount, PRICE_SCALE, nft_amount),
        price_impact_bps=impact,
        nft_reserve_before=nft_reserve,
        token_reserve_before=token_reserve,
        nft_reserve_after=new_nft_reserve,
        token_reserve_after=token_reserve - net_amount,
        pool_version=pool.version,
        quoted_at=time.time() if now is None else now,
    )


def commit_swap(pool: LiquidityPool, quote: BridgeQuote, bridge_fee_bps: Optional[int] = None) -> LiquidityPool:
    """
    Applies an accepted swap after the trader's NFTs reached the pool.

    The NFT reserve grows by ``nft_amount`` and the token reserve shrinks by what the trader
    receives; the bridge fee stays in the pool. The quote is re-derived from ``nft_amount`` at
    ``bridge_fee_bps`` (defaults to ``config.BRIDGE_FEE_BPS``) and must match field for field.

    Raises:
        InvalidInputError: If the quote belongs to another token or its amounts were altered.
        StaleStateError: If the quote was computed against another pool, pool version or reserves.
    """
    if quote.token_mint != pool.token_mint:
        raise InvalidInputError(f"Quote for {quote.token_mint} cannot be applied to pool {pool.token_mint}")
    if quote.pool_id != pool.pool_id:
        raise StaleStateError(f"Quote was made against pool {quote.pool_id}, not {pool.pool_id}")
    if quote.pool_version != pool.version:
        raise StaleStateError(
            f"Quote was made against pool version {quote.pool_version}, current version is {pool.version}"
        )
    if quote.nft_reserve_before != pool.nft_reserve or quote.token_reserve_before != pool.token_reserve:
        raise StaleStateError("Quote reserves do not match the current pool state")
    _require_active(pool)

    expected = quote_swap(pool, quote.nft_amount, bridge_fee_bps, now=quote.quoted_at)
    if expected != quote:
        logger.warning(f"Rejected tampered bridge quote on {pool.pool_id}: net {quote.net_amount}, "
                       f"expected {expected.net_amount}")
        raise InvalidInputError("Bridge quote does not match the pool for its NFT amount")

    new_pool_state = pool.model_copy(update={
        "nft_reserve": expected.nft_reserve_after,
        "token_reserve": expected.token_reserve_after,
        "total_volume": checked_add(pool.total_volume, expected.token_amount),
        "trade_count": pool.trade_count + 1,
        "version": pool.version + 1,
    })
    logger.info(f"Committed bridge swap on {pool.pool_id}: {quote.nft_amount} NFT units -> "
                f"{quote.net_amount} tokens, version={new_pool_state.version}")
    return new_pool_state


def _adjust_position(positions: Tuple[LiquidityPosition, ...], provider: str, delta: int) -> Tuple[LiquidityPosition, ...]:
    updated = []
    found = False
    for position in positions:
        if position.provider == provider:
            found = True
            shares = position.shares + delta
            if shares > 0:
                updated.append(LiquidityPosition(provider=provider, shares=shares))
        else:
            updated.append(position)
    if not found and delta > 0:
        updated.append(LiquidityPosition(provider=provider, shares=delta))
    return tuple(updated)


def add_liquidity(
    pool: LiquidityPool,
    provider: str,
    token_amount: int,
    nft_amount: int,
    slippage_bps: Optional[int] = None,
) -> Tuple[LiquidityPool, int]:
    """
    Adds both assets to a pool and issues shares to ``provider``.

    Returns:
        The new pool snapshot and the number of shares issued.

    Raises:
        InvalidInputError: If either amount is not positive or the contribution earns no shares.
        SlippageExceededError: If the contribution ratio deviates from the pool ratio beyond
            ``slippage_bps`` (defaults to ``config.DEFAULT_SLIPPAGE_BPS``).
    """
    if not provider:
        raise InvalidInputError("provider must be a non-empty string")
    require_amount(token_amount, "token_amount")
    require_amount(nft_amount, "nft_amount")
    if slippage_bps is None:
        slippage_bps = config.DEFAULT_SLIPPAGE_BPS

    if pool.total_shares == 0:
        shares = checked_isqrt(checked_mul(token_amount, nft_amount))
        logger.info(f"Seeding pool {pool.token_mint}: tokens={token_amount}, nfts={nft_amount}, shares={shares}")
    else:
        # Compare token_amount / nft_amount against token_reserve / nft_reserve
        offered = checked_mul(token_amount, pool.nft_reserve)
        implied = checked_mul(nft_amount, pool.token_reserve)
        deviation = ratio_bps(abs(offered - implied), implied, Rounding.up)
        if deviation > slippage_bps:
            raise SlippageExceededError(
                f"Contribution ratio deviates {deviation}bps from the pool ratio (tolerance {slippage_bps}bps)"
            )
        shares = min(
            mul_div(token_amount, pool.total_shares, pool.token_reserve),
            mul_div(nft_amount, pool.total_shares, pool.nft_reserve),
        )
        if shares == 0:
            raise InvalidInputError("Contribution is too small to earn any shares")

    new_pool_state = pool.model_copy(update={
        "nft_reserve": checked_add(pool.nft_reserve, nft_amount),
        "token_reserve": checked_add(pool.token_reserve, token_amount),
        "total_shares": checked_add(pool.total_shares, shares),
        "positions": _adjust_position(pool.positions, provider, shares),
        "status": PoolStatus.active,
        "version": pool.version + 1,
    })
    logger.info(f"Added liquidity to {pool.token_mint} for {provider}: shares={shares}, "
                f"total_shares={new_pool_state.total_shares}")
    return new_pool_state, shares


def remove_liquidity(pool: LiquidityPool, provider: str, shares: int) -> Tuple[LiquidityPool, int, int]:
    """
    Withdraws ``shares`` worth of both reserves for ``provider``.

    Returns:
        The new pool snapshot, the token amount and the NFT amount withdrawn.

    Raises:
        InsufficientLiquidityError: If ``shares`` exceed the provider's position.
        InvalidInputError: If ``shares`` is not positive or too small to withdraw anything.
    """
    require_amount(shares, "shares")
    held = pool.position_of(provider)
    if shares > held:
        raise InsufficientLiquidityError(f"{provider} holds {held} shares, cannot remove {shares}")

    token_out = mul_div(pool.token_reserve, shares, pool.total_shares)
    nft_out = mul_div(pool.nft_reserve, shares, pool.total_shares)
    if token_out == 0 and nft_out == 0:
        raise InvalidInputError(f"Removing {shares} shares would withdraw nothing")

    total_shares = pool.total_shares - shares
    token_reserve = pool.token_reserve - token_out
    nft_reserve = pool.nft_reserve - nft_out
    drained = total_shares == 0 or token_reserve == 0 or nft_reserve == 0
    if drained:
        logger.warning(f"Pool {pool.token_mint} drained by {provider}")

    new_pool_state = pool.model_copy(update={
        "nft_reserve": nft_reserve,
        "token_reserve": token_reserve,
        "total_shares": total_shares,
        "positions": _adjust_position(pool.positions, provider, -shares),
        "status": PoolStatus.drained if drained else PoolStatus.active,
        "version": pool.version + 1,
    })
    logger.info(f"Removed liquidity from {pool.token_mint} for {provider}: shares={shares}, "
                f"tokens={token_out}, nfts={nft_out}")
    return new_pool_state, token_out, nft_out


def bridge_statistics(pools: Iterable[LiquidityPool], top_n: int = 5) -> BridgeStatistics:
    """Aggregates volume, trades and liquidity across pools, with the busiest tokens first."""
    pools = list(pools)
    ranked = sorted(pools, key=lambda pool: (pool.total_volume, pool.trade_count), reverse=True)
    return BridgeStatistics(
        total_volume=sum(pool.total_volume for pool in pools),
        total_trades=sum(pool.trade_count for pool in pools),
        total_nft_liquidity=sum(pool.nft_reserve for pool in pools),
        active_pools=sum(1 for pool in pools if pool.status == PoolStatus.active),
        top_tokens=[
            TokenVolume(token_mint=pool.token_mint, symbol=pool.token_symbol,
                        volume=pool.total_volume, trades=pool.trade_count)
            for pool in ranked[:top_n]
        ],
    )
