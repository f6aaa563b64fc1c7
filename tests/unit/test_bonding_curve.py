import pytest
from pydantic import ValidationError

from mcp_nft_launchpad import bonding_curve
from mcp_nft_launchpad.errors import InsufficientLiquidityError, InvalidInputError, StaleStateError
from mcp_nft_launchpad.fixed_point import RoundingBias
from mcp_nft_launchpad.schemas import CurveConfig, CurveState, TradeSide


@pytest.fixture
def curve():
    return CurveConfig(
        virtual_reserve=30_000_000,
        virtual_supply=1_000_000_000,
        reveal_cap=10_000_000,
        fee_bps=100,
        creator_fee_bps=50,
        platform_fee_bps=50,
    )


@pytest.fixture
def state(curve):
    return bonding_curve.initial_state(curve)


def test_fee_split_cannot_exceed_total_fee():
    with pytest.raises(ValidationError):
        CurveConfig(virtual_reserve=1, virtual_supply=1, reveal_cap=1, fee_bps=100,
                    creator_fee_bps=80, platform_fee_bps=50)


def test_zero_virtual_reserve_is_rejected():
    with pytest.raises(ValidationError):
        CurveConfig(virtual_reserve=0, virtual_supply=1, reveal_cap=1)


def test_current_price_at_launch(curve):
    # 30,000,000 / 1,000,000,000 base units per NFT unit, scaled by 1e9
    assert bonding_curve.current_price(curve, 0) == 30_000_000


def test_current_price_rises_with_supply(curve):
    prices = [bonding_curve.current_price(curve, s) for s in (0, 100_000_000, 500_000_000, 900_000_000)]
    assert prices == sorted(prices)
    assert len(set(prices)) == len(prices)


def test_current_price_fails_at_virtual_supply(curve):
    with pytest.raises(InsufficientLiquidityError):
        bonding_curve.current_price(curve, curve.virtual_supply)


def test_quote_buy_matches_constant_product(curve, state):
    quote = bonding_curve.quote_buy(curve, state, 1_000_000, now=1_700_000_000)

    assert quote.side == TradeSide.buy
    assert quote.reserve_after == 31_000_000
    # ceil(3e16 / 31,000,000) = 967,741,936
    assert quote.supply_after == 967_741_936
    assert quote.output_amount == 32_258_064
    assert quote.fee_amount == 10_000
    assert quote.creator_fee == 5_000
    assert quote.platform_fee == 5_000
    assert quote.unallocated_fee == 0
    assert quote.net_amount == 990_000
    assert quote.price_impact_bps == 678
    assert quote.state_version == 0
    assert quote.quoted_at == 1_700_000_000
    assert quote.rounding_favors == RoundingBias.protocol


def test_quote_does_not_touch_state(curve, state):
    bonding_curve.quote_buy(curve, state, 1_000_000)
    assert state == bonding_curve.initial_state(curve)


def test_quote_buy_rejects_zero_input(curve, state):
    with pytest.raises(InvalidInputError):
        bonding_curve.quote_buy(curve, state, 0)


def test_quote_buy_rejects_input_too_small_for_one_unit():
    expensive = CurveConfig(virtual_reserve=10**12, virtual_supply=1000, reveal_cap=1)
    with pytest.raises(InvalidInputError):
        bonding_curve.quote_buy(expensive, bonding_curve.initial_state(expensive), 1)


def test_quote_buy_rejects_output_past_remaining_supply():
    small = CurveConfig(virtual_reserve=1000, virtual_supply=1000, reveal_cap=1)
    inconsistent = CurveState(minted=999, virtual_reserve=1000, virtual_supply=1000)
    with pytest.raises(InsufficientLiquidityError):
        bonding_curve.quote_buy(small, inconsistent, 10**9)


def test_commit_buy_advances_state(curve, state):
    quote = bonding_curve.quote_buy(curve, state, 1_000_000)
    new_state = bonding_curve.commit_buy(curve, state, quote)

    assert new_state.minted == 32_258_064
    assert new_state.raised == 1_000_000
    assert new_state.virtual_reserve == 31_000_000
    assert new_state.virtual_supply == 967_741_936
    assert new_state.revealed is False
    assert new_state.trade_count == 1
    assert new_state.creator_fees == 5_000
    assert new_state.platform_fees == 5_000
    assert new_state.version == state.version + 1
    # Snapshots are never mutated
    assert state.minted == 0


def test_constant_product_never_decreases(curve, state):
    k = state.virtual_reserve * state.virtual_supply
    for amount in (1_000_000, 7, 2_500_000, 123_457):
        quote = bonding_curve.quote_buy(curve, state, amount)
        state = bonding_curve.commit_buy(curve, state, quote)
        new_k = state.virtual_reserve * state.virtual_supply
        assert new_k >= k
        k = new_k


def test_stale_quote_is_rejected(curve, state):
    first = bonding_curve.quote_buy(curve, state, 1_000_000)
    second = bonding_curve.quote_buy(curve, state, 1_000_000)
    state = bonding_curve.commit_buy(curve, state, first)

    with pytest.raises(StaleStateError) as excinfo:
        bonding_curve.commit_buy(curve, state, second)
    assert excinfo.value.retryable is True


def test_commit_buy_rejects_sell_quote(curve, state):
    state = bonding_curve.commit_buy(curve, state, bonding_curve.quote_buy(curve, state, 1_000_000))
    sell = bonding_curve.quote_sell(curve, state, 1_000)
    with pytest.raises(InvalidInputError):
        bonding_curve.commit_buy(curve, state, sell)


def test_buy_then_sell_never_profits(curve, state):
    buy = bonding_curve.quote_buy(curve, state, 1_000_000)
    state = bonding_curve.commit_buy(curve, state, buy)

    sell = bonding_curve.quote_sell(curve, state, buy.output_amount)
    assert sell.output_amount == 999_999
    assert sell.net_amount < buy.input_amount

    state = bonding_curve.commit_sell(curve, state, sell)
    assert state.minted == 0
    assert state.raised == 1


def test_quote_sell_rejects_more_than_minted(curve, state):
    with pytest.raises(InsufficientLiquidityError):
        bonding_curve.quote_sell(curve, state, 1)


def test_reveal_is_monotonic(curve, state):
    quote = bonding_curve.quote_buy(curve, state, 10_000_000)
    state = bonding_curve.commit_buy(curve, state, quote)
    assert state.minted == 250_000_000
    assert state.revealed is True

    sell = bonding_curve.quote_sell(curve, state, 1_000)
    state = bonding_curve.commit_sell(curve, state, sell)
    assert state.raised < curve.reveal_cap
    assert state.revealed is True


def test_minting_continues_after_reveal(curve, state):
    state = bonding_curve.commit_buy(curve, state, bonding_curve.quote_buy(curve, state, 10_000_000))
    follow_up = bonding_curve.quote_buy(curve, state, 1_000_000)
    state = bonding_curve.commit_buy(curve, state, follow_up)
    assert state.revealed is True
    assert state.raised == 11_000_000


def test_preview_is_lazy_and_restartable(curve):
    preview = bonding_curve.preview_price_curve(curve, 5)

    assert len(preview) == 5
    first_pass = list(preview)
    assert first_pass == list(preview)
    assert [point.supply for point in first_pass] == [0, 249_999_999, 499_999_999, 749_999_999, 999_999_999]
    assert first_pass[0].price == 30_000_000
    prices = [point.price for point in first_pass]
    assert prices == sorted(prices)


def test_preview_single_sample(curve):
    points = list(bonding_curve.preview_price_curve(curve, 1))
    assert len(points) == 1
    assert points[0].supply == 0


def test_preview_rejects_bad_arguments(curve):
    with pytest.raises(InvalidInputError):
        bonding_curve.preview_price_curve(curve, 0)
    with pytest.raises(InsufficientLiquidityError):
        bonding_curve.preview_price_curve(curve, 3, max_supply=curve.virtual_supply)


def test_curve_metrics(curve, state):
    metrics = bonding_curve.curve_metrics(curve, state)
    assert metrics.current_price == 30_000_000
    assert metrics.fully_diluted_value == 30_000_000
    assert metrics.reveal_progress_bps == 0

    state = bonding_curve.commit_buy(curve, state, bonding_curve.quote_buy(curve, state, 1_000_000))
    metrics = bonding_curve.curve_metrics(curve, state)
    assert metrics.reveal_progress_bps == 1_000
    assert metrics.market_cap == 1_000_000
    assert metrics.liquidity == 31_000_000
    assert metrics.trade_count == 1


def test_reveal_progress_is_capped(curve, state):
    state = state.model_copy(update={"raised": curve.reveal_cap * 3})
    assert bonding_curve.reveal_progress_bps(curve, state) == 10_000


def test_constant_product_holds_across_sells(curve, state):
    state = bonding_curve.commit_buy(curve, state, bonding_curve.quote_buy(curve, state, 5_000_000))
    k = state.virtual_reserve * state.virtual_supply
    for amount in (1_000, 123_457, 10_000_000, 50_000):
        quote = bonding_curve.quote_sell(curve, state, amount)
        state = bonding_curve.commit_sell(curve, state, quote)
        new_k = state.virtual_reserve * state.virtual_supply
        assert new_k >= k
        k = new_k


def test_zero_fee_round_trip_never_profits():
    curve = CurveConfig(virtual_reserve=30_000_000, virtual_supply=1_000_000_000, reveal_cap=10_000_000,
                        fee_bps=0, creator_fee_bps=0, platform_fee_bps=0)
    state = bonding_curve.initial_state(curve)

    buy = bonding_curve.quote_buy(curve, state, 1_000_000)
    assert buy.fee_amount == 0
    state = bonding_curve.commit_buy(curve, state, buy)

    sell = bonding_curve.quote_sell(curve, state, buy.output_amount)
    assert sell.fee_amount == 0
    # Rounding toward the curve keeps one base unit
    assert sell.net_amount == 999_999
    assert sell.net_amount <= buy.input_amount


def test_commit_buy_rejects_altered_quote(curve, state):
    quote = bonding_curve.quote_buy(curve, state, 1)
    inflated = quote.model_copy(update={"output_amount": 900_000_000, "supply_after": 100_000_000})

    with pytest.raises(InvalidInputError):
        bonding_curve.commit_buy(curve, state, inflated)
    assert state.minted == 0

    discounted = quote.model_copy(update={"fee_amount": 0, "creator_fee": 0, "platform_fee": 0})
    with pytest.raises(InvalidInputError):
        bonding_curve.commit_buy(curve, state, discounted)


def test_commit_sell_rejects_altered_quote(curve, state):
    state = bonding_curve.commit_buy(curve, state, bonding_curve.quote_buy(curve, state, 1_000_000))
    quote = bonding_curve.quote_sell(curve, state, 1_000)
    inflated = quote.model_copy(update={"output_amount": 1_000_000, "net_amount": 990_000,
                                        "reserve_after": state.virtual_reserve - 1_000_000})

    with pytest.raises(InvalidInputError):
        bonding_curve.commit_sell(curve, state, inflated)
    # The untouched quote still commits
    assert bonding_curve.commit_sell(curve, state, quote).minted == state.minted - 1_000


def test_quote_with_foreign_reserves_is_stale(curve, state):
    quote = bonding_curve.quote_buy(curve, state, 1_000_000)
    moved = quote.model_copy(update={"reserve_before": state.virtual_reserve + 1})
    with pytest.raises(StaleStateError):
        bonding_curve.commit_buy(curve, state, moved)
