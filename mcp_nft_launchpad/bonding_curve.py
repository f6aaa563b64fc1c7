"""
NFT Pricing Engine with a Constant-Product Bonding Curve

This module prices NFT mints against a virtual reserve of the base currency. The curve holds
``virtual_reserve * virtual_supply`` constant across trades: buying adds base currency to the
virtual reserve and removes NFTs from the virtual supply, selling does the opposite. A collection
"reveals" once the cumulative gross amount raised reaches its reveal cap.

Key Features:
- Marginal price at any real supply, derived from the initial constant product
- Buy and sell quotes with price impact and creator/platform fee split
- Pure commit transitions that return a new CurveState snapshot
- Reveal tracking that is monotonic on the raised-total axis
- Lazy, restartable price curve preview for charting
- Collection metrics (market cap, liquidity, fully diluted value, progress)

Quote and Commit Process:
1. Caller loads the current CurveConfig and CurveState snapshot
2. ``quote_buy``/``quote_sell`` compute the trade without touching state
3. Caller moves funds through the external ledger
4. ``commit_buy``/``commit_sell`` re-derive the quote and apply it, rejecting quotes made against
   another version or altered in transit

Numeric Semantics:
- All amounts are integers in their smallest unit, no floating point is used
- Rounding always favours the protocol (see ``fixed_point``)
- Prices are scaled by ``PRICE_SCALE``; price impact is reported in basis points

Open Accounting Note:
- ``raised`` grows by the gross input of each buy, fees included, so reveal progress tracks what
  traders paid rather than what the protocol keeps after distributing fees
"""
import time
from typing import Iterator, Optional

from mcp_nft_launchpad.errors import InsufficientLiquidityError, InvalidInputError, StaleStateError
from mcp_nft_launchpad.fixed_point import (
    BPS_DENOMINATOR,
    PRICE_SCALE,
    Rounding,
    apply_bps,
    checked_add,
    checked_div,
    checked_mul,
    checked_sub,
    mul_div,
    ratio_bps,
    require_amount,
    scaled_price,
)
from mcp_nft_launchpad.schemas import CurveConfig, CurveMetrics, CurveState, PricePoint, Quote, TradeSide
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)


def initial_state(config: CurveConfig) -> CurveState:
    """Creates the state of a freshly configured collection (nothing minted, nothing raised)."""
    return CurveState(virtual_reserve=config.virtual_reserve, virtual_supply=config.virtual_supply)


def current_price(config: CurveConfig, real_supply: int) -> int:
    """
    Calculates the marginal NFT price once ``real_supply`` NFTs are in circulation.

    The curve is inverted at ``virtual_supply - real_supply`` outstanding NFTs: the virtual reserve
    at that point is ``k / outstanding`` and the price is the reserve-per-NFT ratio.

    Args:
        config: The collection's curve configuration.
        real_supply: The number of NFT units already minted.

    Returns:
        The price of one NFT unit in base units, scaled by ``PRICE_SCALE``.

    Raises:
        InsufficientLiquidityError: If ``real_supply`` has reached the virtual supply.
    """
    require_amount(real_supply, "real_supply", allow_zero=True)
    if real_supply >= config.virtual_supply:
        raise InsufficientLiquidityError(
            f"Real supply {real_supply} has reached the virtual supply {config.virtual_supply}"
        )
    outstanding = config.virtual_supply - real_supply
    reserve = checked_div(config.k, outstanding, Rounding.up)
    return scaled_price(reserve, outstanding, Rounding.up)


def _price_impact_bps(reserve_before: int, supply_before: int, reserve_after: int, supply_after: int) -> int:
    # (Ra/Sa - Rb/Sb) / (Rb/Sb), cross-multiplied to stay in integers
    before = checked_mul(reserve_before, supply_after)
    after = checked_mul(reserve_after, supply_before)
    return ratio_bps(abs(after - before), before, Rounding.up)


def _split_fees(config: CurveConfig, amount: int):
    fee = apply_bps(amount, config.fee_bps, Rounding.up)
    creator_fee = apply_bps(amount, config.creator_fee_bps, Rounding.down)
    platform_fee = apply_bps(amount, config.platform_fee_bps, Rounding.down)
    return fee, creator_fee, platform_fee


def quote_buy(config: CurveConfig, state: CurveState, base_currency_in: int, now: Optional[float] = None) -> Quote:
    """
    Quotes how many NFT units ``base_currency_in`` buys at the current state.

    The gross input is added to the virtual reserve and the constant product is solved for the new
    virtual supply (rounded up, so the NFT output rounds down). The fee is ``base_currency_in``
    times the fee rate, rounded up, and is split into creator and platform components.

    Raises:
        InvalidInputError: If the input is not positive or too small to buy any NFT unit.
        InsufficientLiquidityError: If the output would exceed the remaining virtual supply.
    """
    require_amount(base_currency_in, "base_currency_in")
    reserve, supply = state.virtual_reserve, state.virtual_supply
    k = checked_mul(reserve, supply)

    reserve_after = checked_add(reserve, base_currency_in)
    supply_after = checked_div(k, reserve_after, Rounding.up)
    nft_out = checked_sub(supply, supply_after)
    if nft_out == 0:
        raise InvalidInputError(f"Input of {base_currency_in} is too small to buy any NFT units")

    remaining = config.virtual_supply - state.minted
    if nft_out > remaining:
        raise InsufficientLiquidityError(f"Output of {nft_out} NFT units exceeds remaining supply {remaining}")

    fee, creator_fee, platform_fee = _split_fees(config, base_currency_in)
    impact = _price_impact_bps(reserve, supply, reserve_after, supply_after)

    logger.debug(f"Buy quote: in={base_currency_in}, nft_out={nft_out}, fee={fee}, "
                 f"impact={impact}bps, version={state.version}")
    return Quote(
        side=TradeSide.buy,
        input_amount=base_currency_in,
        output_amount=nft_out,
        price_impact_bps=impact,
        fee_amount=fee,
        creator_fee=creator_fee,
        platform_fee=platform_fee,
        net_amount=base_currency_in - fee,
        reserve_before=reserve,
        supply_before=supply,
        reserve_after=reserve_after,
        supply_after=supply_after,
        state_version=state.version,
        quoted_at=time.time() if now is None else now,
    )


def quote_sell(config: CurveConfig, state: CurveState, nft_in: int, now: Optional[float] = None) -> Quote:
    """
    Quotes how much base currency selling ``nft_in`` NFT units returns.

    The NFTs go back into the virtual supply and the constant product is solved for the new
    virtual reserve (rounded up, so the payout rounds down). Fees are taken from the payout, since
    the NFT input cannot be fractionally charged.

    Raises:
        InvalidInputError: If ``nft_in`` is not positive or returns nothing.
        InsufficientLiquidityError: If more NFTs are sold than are in circulation.
    """
    require_amount(nft_in, "nft_in")
    if nft_in > state.minted:
        raise InsufficientLiquidityError(f"Cannot sell {nft_in} NFT units, only {state.minted} are in circulation")

    reserve, supply = state.virtual_reserve, state.virtual_supply
    k = checked_mul(reserve, supply)

    supply_after = checked_add(supply, nft_in)
    reserve_after = checked_div(k, supply_after, Rounding.up)
    base_out = checked_sub(reserve, reserve_after)
    if base_out == 0:
        raise InvalidInputError(f"Selling {nft_in} NFT units returns nothing")

    fee, creator_fee, platform_fee = _split_fees(config, base_out)
    impact = _price_impact_bps(reserve, supply, reserve_after, supply_after)

    logger.debug(f"Sell quote: nft_in={nft_in}, out={base_out}, fee={fee}, "
                 f"impact={impact}bps, version={state.version}")
    return Quote(
        side=TradeSide.sell,
        input_amount=nft_in,
        output_amount=base_out,
        price_impact_bps=impact,
        fee_amount=fee,
        creator_fee=creator_fee,
        platform_fee=platform_fee,
        net_amount=base_out - fee,
        reserve_before=reserve,
        supply_before=supply,
        reserve_after=reserve_after,
        supply_after=supply_after,
        state_version=state.version,
        quoted_at=time.time() if now is None else now,
    )


def _check_quote(config: CurveConfig, state: CurveState, quote: Quote, side: TradeSide) -> None:
    """
    Verifies that ``quote`` is exactly what this engine quotes for its input at ``state``.

    Quotes travel through callers as plain data, so every economic field is re-derived from
    ``input_amount`` rather than trusted.
    """
    if quote.side != side:
        raise InvalidInputError(f"Expected a {side.value} quote, got a {quote.side.value} quote")
    if quote.state_version != state.version:
        raise StaleStateError(
            f"Quote was made against state version {quote.state_version}, current version is {state.version}"
        )
    if quote.reserve_before != state.virtual_reserve or quote.supply_before != state.virtual_supply:
        raise StaleStateError("Quote reserves do not match the current curve state")

    requote = quote_buy if side == TradeSide.buy else quote_sell
    expected = requote(config, state, quote.input_amount, now=quote.quoted_at)
    if expected != quote:
        logger.warning(f"Rejected tampered {side.value} quote for input {quote.input_amount}: "
                       f"output {quote.output_amount}, expected {expected.output_amount}")
        raise InvalidInputError(f"{side.value.capitalize()} quote does not match the curve for its input amount")


def commit_buy(config: CurveConfig, state: CurveState, quote: Quote) -> CurveState:
    """
    Applies an accepted buy quote after the buyer's payment has settled.

    The minted count grows by the NFT output and ``raised`` grows by the gross input. ``revealed``
    turns true once ``raised`` reaches the reveal cap and never turns back. Minting stays allowed
    after the reveal as long as supply remains. The engine does not deduplicate: each quote must be
    committed exactly once, which the version check enforces for sequential callers.

    Raises:
        InvalidInputError: If ``quote`` is not a buy quote or its amounts were altered.
        StaleStateError: If ``quote`` was computed against a different snapshot.
        InsufficientLiquidityError: If the output no longer fits the virtual supply.
    """
    _check_quote(config, state, quote, TradeSide.buy)
    minted = checked_add(state.minted, quote.output_amount)
    if minted > config.virtual_supply:
        raise InsufficientLiquidityError(f"Minted count {minted} would exceed virtual supply {config.virtual_supply}")

    raised = checked_add(state.raised, quote.input_amount)
    revealed = state.revealed or raised >= config.reveal_cap
    if revealed and not state.revealed:
        logger.info(f"Reveal threshold reached: raised={raised}, cap={config.reveal_cap}")

    new_state = state.model_copy(update={
        "minted": minted,
        "raised": raised,
        "virtual_reserve": quote.reserve_after,
        "virtual_supply": quote.supply_after,
        "revealed": revealed,
        "total_volume": checked_add(state.total_volume, quote.input_amount),
        "trade_count": state.trade_count + 1,
        "creator_fees": checked_add(state.creator_fees, quote.creator_fee),
        "platform_fees": checked_add(state.platform_fees, quote.platform_fee),
        "version": state.version + 1,
    })
    logger.info(f"Committed buy: +{quote.output_amount} NFT units for {quote.input_amount}, "
                f"minted={minted}, raised={raised}, version={new_state.version}")
    return new_state


def commit_sell(config: CurveConfig, state: CurveState, quote: Quote) -> CurveState:
    """
    Applies an accepted sell quote after the seller's NFTs have been returned.

    The minted count shrinks by the NFT input and ``raised`` by the gross payout (never below
    zero). A revealed collection stays revealed.
    """
    _check_quote(config, state, quote, TradeSide.sell)
    minted = checked_sub(state.minted, quote.input_amount)
    raised = max(state.raised - quote.output_amount, 0)

    new_state = state.model_copy(update={
        "minted": minted,
        "raised": raised,
        "virtual_reserve": quote.reserve_after,
        "virtual_supply": quote.supply_after,
        "total_volume": checked_add(state.total_volume, quote.output_amount),
        "trade_count": state.trade_count + 1,
        "creator_fees": checked_add(state.creator_fees, quote.creator_fee),
        "platform_fees": checked_add(state.platform_fees, quote.platform_fee),
        "version": state.version + 1,
    })
    logger.info(f"Committed sell: -{quote.input_amount} NFT units for {quote.output_amount}, "
                f"minted={minted}, raised={raised}, version={new_state.version}")
    return new_state


class PriceCurvePreview:
    """Finite, restartable sequence of ``PricePoint`` samples, computed lazily on iteration."""

    def __init__(self, config: CurveConfig, sample_count: int, max_supply: Optional[int] = None):
        require_amount(sample_count, "sample_count")
        if max_supply is None:
            max_supply = config.virtual_supply - 1
        require_amount(max_supply, "max_supply", allow_zero=True)
        if max_supply >= config.virtual_supply:
            raise InsufficientLiquidityError(f"max_supply must be below the virtual supply {config.virtual_supply}")
        self.config = config
        self.sample_count = sample_count
        self.max_supply = max_supply

    def __len__(self) -> int:
        return self.sample_count

    def __iter__(self) -> Iterator[PricePoint]:
        last = self.sample_count - 1
        for index in range(self.sample_count):
            supply = self.max_supply * index // last if last else 0
            yield PricePoint(supply=supply, price=current_price(self.config, supply))


def preview_price_curve(config: CurveConfig, sample_count: int, max_supply: Optional[int] = None) -> PriceCurvePreview:
    """Samples the curve's price at ``sample_count`` evenly spaced supplies from 0 to ``max_supply``."""
    return PriceCurvePreview(config, sample_count, max_supply)


def reveal_progress_bps(config: CurveConfig, state: CurveState) -> int:
    """Progress toward the reveal cap in basis points, capped at 100%."""
    return min(ratio_bps(state.raised, config.reveal_cap), BPS_DENOMINATOR)


def curve_metrics(config: CurveConfig, state: CurveState) -> CurveMetrics:
    price = scaled_price(state.virtual_reserve, state.virtual_supply, Rounding.up)
    return CurveMetrics(
        current_price=price,
        market_cap=state.raised,
        liquidity=state.virtual_reserve,
        fully_diluted_value=mul_div(price, config.virtual_supply, PRICE_SCALE),
        reveal_progress_bps=reveal_progress_bps(config, state),
        revealed=state.revealed,
        total_volume=state.total_volume,
        trade_count=state.trade_count,
    )
