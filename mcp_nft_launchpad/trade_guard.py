"""
Trade Guard: Rate Limiting and Trade Protection

This module protects the bonding curve against abuse by limiting how often a wallet may trade,
how large a single trade may be, and how much a wallet may trade per day. It is used by the
server around each commit; the pricing engine itself stays free of these policies.

Key Features:
- Per-wallet sliding window rate limiting (60-second windows)
- Minimum trade size to reject dust trades
- Maximum trade size: the smaller of an absolute cap and a share of the virtual supply
- Maximum price impact per trade
- Cooldown between large trades (more than half the maximum size) of the same wallet
- Per-wallet daily volume and trade count limits, reset at the UTC day boundary
- Emergency pause, reset and statistics for administrators
- Automatic cleanup of expired rate limit entries

Rate Limiting Algorithm:
- Tracks request count and first request timestamp per wallet
- Resets the counter once the window has expired
- OrderedDict keeps entries in LRU order for cheap cleanup

Usage:
- ``check_rate_limit`` returns False when the wallet is over its limit
- ``check_trade`` raises TradeLimitExceededError when a trade breaks a limit
- ``record_trade`` must be called after every committed trade so daily limits and cooldowns apply
"""
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from mcp_nft_launchpad import config
from mcp_nft_launchpad.errors import TradeLimitExceededError
from mcp_nft_launchpad.fixed_point import apply_bps
from mcp_nft_launchpad.schemas import SuspiciousWallet, WalletTradeStats
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

WINDOW_SECONDS = 60
MAX_TRACKED_WALLETS = 1000
SUSPICIOUS_RISK_SCORE = 3


def _utc_day(timestamp: float):
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).date()


class TradeGuard:
    def __init__(
        self,
        trades_per_minute: int = config.RATE_LIMIT_PER_MINUTE,
        max_trade_size_bps: int = config.MAX_TRADE_SIZE_BPS,
        max_price_impact_bps: int = config.MAX_PRICE_IMPACT_BPS,
        min_trade_size: int = config.MIN_TRADE_SIZE,
        max_trade_size_absolute: int = config.MAX_TRADE_SIZE_ABSOLUTE,
        cooldown_seconds: int = config.LARGE_TRADE_COOLDOWN_SECONDS,
        max_daily_volume: int = config.MAX_DAILY_VOLUME_PER_WALLET,
        max_daily_trades: int = config.MAX_DAILY_TRADES_PER_WALLET,
    ):
        self.trades_per_minute = trades_per_minute
        self.max_trade_size_bps = max_trade_size_bps
        self.max_price_impact_bps = max_price_impact_bps
        self.min_trade_size = min_trade_size
        self.max_trade_size_absolute = max_trade_size_absolute
        self.cooldown_seconds = cooldown_seconds
        self.max_daily_volume = max_daily_volume
        self.max_daily_trades = max_daily_trades
        # {wallet: (count, first_request_timestamp_in_window)}
        self.rate_limit_cache: "OrderedDict[str, Tuple[int, int]]" = OrderedDict()
        self.wallet_stats: Dict[str, WalletTradeStats] = {}

    # --- Rate Limiting ---

    def check_rate_limit(self, wallet: str, now: Optional[int] = None) -> bool:
        """
        Checks if the given wallet has exceeded the rate limit.

        Args:
            wallet: The trading wallet (or client identifier).
            now: Current Unix time; defaults to ``time.time()``.

        Returns:
            True if the request is allowed, False if rate limit exceeded.
        """
        now = int(time.time()) if now is None else int(now)

        if len(self.rate_limit_cache) > MAX_TRACKED_WALLETS:
            self.cleanup_old_entries(now - WINDOW_SECONDS)

        if wallet in self.rate_limit_cache:
            count, timestamp = self.rate_limit_cache[wallet]
            if now - timestamp >= WINDOW_SECONDS:
                self.rate_limit_cache[wallet] = (1, now)
                self.rate_limit_cache.move_to_end(wallet)
                logger.debug(f"Rate limit window reset for wallet: {wallet}")
                return True
            if count >= self.trades_per_minute:
                logger.warning(f"Rate limit exceeded for wallet: {wallet}. Count: {count}, Limit: {self.trades_per_minute}")
                return False
            self.rate_limit_cache[wallet] = (count + 1, timestamp)
            self.rate_limit_cache.move_to_end(wallet)
            logger.debug(f"Rate limit check passed for wallet: {wallet}. Count: {count + 1}")
            return True

        self.rate_limit_cache[wallet] = (1, now)
        self.rate_limit_cache.move_to_end(wallet)
        logger.debug(f"Rate limit initiated for wallet: {wallet}")
        return True

    def cleanup_old_entries(self, cutoff_time: int) -> None:
        """Removes entries whose window started before ``cutoff_time``."""
        to_remove = [wallet for wallet, (_, timestamp) in self.rate_limit_cache.items() if timestamp < cutoff_time]
        for wallet in to_remove:
            del self.rate_limit_cache[wallet]
        if to_remove:
            logger.debug(f"Cleaned up {len(to_remove)} old rate limit entries")

    # --- Trade Limits ---

    def max_trade_size(self, virtual_supply: int) -> int:
        return min(self.max_trade_size_absolute, apply_bps(virtual_supply, self.max_trade_size_bps))

    def _current_stats(self, wallet: str, now: float) -> WalletTradeStats:
        stats = self.wallet_stats.get(wallet) or WalletTradeStats(wallet=wallet)
        if stats.last_trade_time and _utc_day(stats.last_trade_time) != _utc_day(now):
            # Pauses outlive the day boundary, counters and cooldowns do not
            stats = stats.model_copy(update={"daily_volume": 0, "daily_trade_count": 0, "cooldown_active": False})
        return stats

    def check_trade(
        self,
        wallet: str,
        nft_amount: int,
        virtual_supply: int,
        price_impact_bps: int,
        trade_value: int,
        now: Optional[float] = None,
    ) -> None:
        """
        Validates a trade against the wallet's limits before it is committed.

        Args:
            wallet: The trading wallet.
            nft_amount: NFT units the trade moves.
            virtual_supply: The curve's virtual supply, which bounds the relative size limit.
            price_impact_bps: The quoted price impact.
            trade_value: Base currency the trade moves, counted against the daily volume.
            now: Current Unix time; defaults to ``time.time()``.

        Raises:
            TradeLimitExceededError: If the wallet is paused, the trade is too small, too large or
                moves the price too much, a large-trade cooldown is running, or a daily limit
                would be exceeded.
        """
        now = time.time() if now is None else now
        stats = self._current_stats(wallet, now)

        if stats.paused:
            raise TradeLimitExceededError(f"Trading is paused for wallet {wallet}")
        if nft_amount < self.min_trade_size:
            raise TradeLimitExceededError(f"Trade size too small. Minimum: {self.min_trade_size} NFT units")
        max_size = self.max_trade_size(virtual_supply)
        if nft_amount > max_size:
            raise TradeLimitExceededError(
                f"Trade size too large. Maximum: {max_size} NFT units ({self.max_trade_size_bps}bps of supply)"
            )
        if price_impact_bps > self.max_price_impact_bps:
            raise TradeLimitExceededError(
                f"Price impact {price_impact_bps}bps exceeds the maximum of {self.max_price_impact_bps}bps"
            )
        if nft_amount * 2 > max_size and stats.cooldown_active:
            remaining = self.cooldown_seconds - (now - stats.last_trade_time)
            if remaining > 0:
                raise TradeLimitExceededError(f"Large trade cooldown active. Wait {int(remaining) + 1} seconds")
        if stats.daily_volume + trade_value > self.max_daily_volume:
            raise TradeLimitExceededError(
                f"Daily volume limit exceeded. Current: {stats.daily_volume}, Limit: {self.max_daily_volume}"
            )
        if stats.daily_trade_count >= self.max_daily_trades:
            raise TradeLimitExceededError(f"Daily trade limit exceeded. Maximum: {self.max_daily_trades} trades per day")

    def record_trade(
        self,
        wallet: str,
        nft_amount: int,
        trade_value: int,
        virtual_supply: int,
        now: Optional[float] = None,
    ) -> WalletTradeStats:
        """Counts a committed trade toward the wallet's daily limits and large-trade cooldown."""
        now = time.time() if now is None else now
        stats = self._current_stats(wallet, now)
        large = nft_amount * 2 > self.max_trade_size(virtual_supply)
        stats = stats.model_copy(update={
            "last_trade_time": now,
            "daily_volume": stats.daily_volume + trade_value,
            "daily_trade_count": stats.daily_trade_count + 1,
            "cooldown_active": stats.cooldown_active or large,
        })
        self.wallet_stats[wallet] = stats
        logger.info(f"Trade recorded for {wallet}: {nft_amount} NFT units, value {trade_value}, "
                    f"daily_volume={stats.daily_volume}, daily_trades={stats.daily_trade_count}")
        return stats

    # --- Administration ---

    def get_wallet_stats(self, wallet: str) -> Optional[WalletTradeStats]:
        return self.wallet_stats.get(wallet)

    def reset_wallet_limits(self, wallet: str) -> None:
        """Forgets a wallet's counters, cooldown and pause."""
        self.wallet_stats.pop(wallet, None)
        logger.info(f"Reset trade limits for wallet: {wallet}")

    def emergency_pause_wallet(self, wallet: str, now: Optional[float] = None) -> WalletTradeStats:
        """Blocks every trade of ``wallet`` until its limits are reset."""
        now = time.time() if now is None else now
        stats = self._current_stats(wallet, now).model_copy(update={
            "paused": True,
            "cooldown_active": True,
            "last_trade_time": now,
        })
        self.wallet_stats[wallet] = stats
        logger.warning(f"EMERGENCY PAUSE: Trading suspended for wallet {wallet}")
        return stats

    def get_suspicious_wallets(self) -> List[SuspiciousWallet]:
        """Wallets with high daily volume or trade frequency, riskiest first."""
        suspicious = []
        for wallet, stats in self.wallet_stats.items():
            risk_score = 0
            if stats.daily_volume * 2 > self.max_daily_volume:
                risk_score += 3
            elif stats.daily_volume * 4 > self.max_daily_volume:
                risk_score += 2
            elif stats.daily_volume * 10 > self.max_daily_volume:
                risk_score += 1

            if stats.daily_trade_count * 2 > self.max_daily_trades:
                risk_score += 2
            elif stats.daily_trade_count * 5 > self.max_daily_trades:
                risk_score += 1

            if stats.cooldown_active:
                risk_score += 1

            if risk_score >= SUSPICIOUS_RISK_SCORE:
                suspicious.append(SuspiciousWallet(wallet=wallet, stats=stats, risk_score=risk_score))
        return sorted(suspicious, key=lambda entry: entry.risk_score, reverse=True)
