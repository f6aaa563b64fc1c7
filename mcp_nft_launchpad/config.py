import os
import logging
from typing import List, Optional
from dotenv import load_dotenv

# Import custom errors
from mcp_nft_launchpad.errors import ConfigurationError

"""
Configuration Management for the NFT Launchpad Server

This module handles all configuration loading, validation, and management for the launchpad engine
and its MCP server. It loads settings from environment variables with sensible defaults and provides
validation to ensure the engine is configured correctly.

Configuration Sources (in order of precedence):
1. Environment variables
2. Default values defined in this module
3. Configuration validation and type conversion

Units:
- Amounts are integers in the smallest unit of their asset
- Rates are basis points (1 bps = 0.01%, 10000 bps = 100%)

Environment Variables:
    DEFAULT_VIRTUAL_RESERVE: Virtual base-currency reserve for new curves
    DEFAULT_VIRTUAL_SUPPLY: Virtual NFT supply for new curves
    DEFAULT_REVEAL_CAP: Raised amount at which a collection reveals
    DEFAULT_FEE_BPS: Total trading fee on the bonding curve
    DEFAULT_CREATOR_FEE_BPS: Creator share of the trading fee
    DEFAULT_PLATFORM_FEE_BPS: Platform share of the trading fee
    DEFAULT_TOTAL_SUPPLY: Token ID ceiling for new sequences
    BRIDGE_FEE_BPS: Fee taken from bridge swap outputs
    DEFAULT_SLIPPAGE_BPS: Ratio tolerance for liquidity contributions
    BASE_CURRENCY_SYMBOL: Display symbol of the base currency
    BASE_CURRENCY_DECIMALS: Decimals of the base currency (0-18)
    QUOTE_TTL_SECONDS: Age after which a quote must be refreshed
    RATE_LIMIT_PER_MINUTE: Trades allowed per wallet per minute
    MAX_TRADE_SIZE_BPS: Largest trade as a share of the virtual supply
    MAX_PRICE_IMPACT_BPS: Largest price impact a single trade may cause
    MIN_TRADE_SIZE: Smallest NFT amount a trade may move
    MAX_TRADE_SIZE_ABSOLUTE: Largest NFT amount a single trade may move
    LARGE_TRADE_COOLDOWN_SECONDS: Wait after a large trade before the next large trade
    MAX_DAILY_VOLUME_PER_WALLET: Base currency a wallet may trade per UTC day
    MAX_DAILY_TRADES_PER_WALLET: Trades a wallet may make per UTC day
    METADATA_BASE_URI: Base URI for locked token metadata
    STATE_DIR: Directory for persisted collection and pool state
    ADMIN_WALLETS: Comma-separated wallets allowed to force-unlock sequences and pause or reset trading wallets
"""

# Set up logger
logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()


def _get_env_str(key: str, default: str, required: bool = False) -> str:
    """Get environment variable as string with validation."""
    value = os.getenv(key, default)
    if required and not value:
        raise ConfigurationError(f"Required environment variable {key} is not set")
    return value


def _get_env_int(key: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
    """Get environment variable as integer with validation."""
    try:
        value = int(os.getenv(key, str(default)))
    except ValueError:
        raise ConfigurationError(f"Environment variable {key} must be a valid integer")
    if min_val is not None and value < min_val:
        raise ConfigurationError(f"Environment variable {key} must be >= {min_val}")
    if max_val is not None and value > max_val:
        raise ConfigurationError(f"Environment variable {key} must be <= {max_val}")
    return value


def _get_env_list(key: str, default: str = "") -> List[str]:
    """Get environment variable as a list of non-empty comma-separated values."""
    raw = os.getenv(key, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


try:
    # --- Bonding Curve Defaults ---
    DEFAULT_VIRTUAL_RESERVE = _get_env_int("DEFAULT_VIRTUAL_RESERVE", 30_000_000, min_val=1)
    DEFAULT_VIRTUAL_SUPPLY = _get_env_int("DEFAULT_VIRTUAL_SUPPLY", 1_000_000_000, min_val=1)
    DEFAULT_REVEAL_CAP = _get_env_int("DEFAULT_REVEAL_CAP", 10_000_000, min_val=1)
    DEFAULT_FEE_BPS = _get_env_int("DEFAULT_FEE_BPS", 100, min_val=0, max_val=10_000)
    DEFAULT_CREATOR_FEE_BPS = _get_env_int("DEFAULT_CREATOR_FEE_BPS", 50, min_val=0, max_val=10_000)
    DEFAULT_PLATFORM_FEE_BPS = _get_env_int("DEFAULT_PLATFORM_FEE_BPS", 50, min_val=0, max_val=10_000)
    if DEFAULT_CREATOR_FEE_BPS + DEFAULT_PLATFORM_FEE_BPS > DEFAULT_FEE_BPS:
        raise ConfigurationError("DEFAULT_CREATOR_FEE_BPS + DEFAULT_PLATFORM_FEE_BPS must not exceed DEFAULT_FEE_BPS")

    # --- Token Sequence Defaults ---
    DEFAULT_TOTAL_SUPPLY = _get_env_int("DEFAULT_TOTAL_SUPPLY", 2222, min_val=1)
    METADATA_BASE_URI = _get_env_str("METADATA_BASE_URI", "https://metadata.launchonlos.fun", required=True)

    # --- Bridge Configuration ---
    BRIDGE_FEE_BPS = _get_env_int("BRIDGE_FEE_BPS", 50, min_val=0, max_val=10_000)
    DEFAULT_SLIPPAGE_BPS = _get_env_int("DEFAULT_SLIPPAGE_BPS", 100, min_val=0, max_val=10_000)

    # --- Base Currency ---
    BASE_CURRENCY_SYMBOL = _get_env_str("BASE_CURRENCY_SYMBOL", "LOS", required=True)
    BASE_CURRENCY_DECIMALS = _get_env_int("BASE_CURRENCY_DECIMALS", 9, min_val=0, max_val=18)

    # --- Quotes & Trade Limits ---
    QUOTE_TTL_SECONDS = _get_env_int("QUOTE_TTL_SECONDS", 30, min_val=1)
    RATE_LIMIT_PER_MINUTE = _get_env_int("RATE_LIMIT_PER_MINUTE", 10, min_val=1, max_val=1000)
    MAX_TRADE_SIZE_BPS = _get_env_int("MAX_TRADE_SIZE_BPS", 500, min_val=1, max_val=10_000)
    MAX_PRICE_IMPACT_BPS = _get_env_int("MAX_PRICE_IMPACT_BPS", 5000, min_val=1)
    MIN_TRADE_SIZE = _get_env_int("MIN_TRADE_SIZE", 1, min_val=1)
    MAX_TRADE_SIZE_ABSOLUTE = _get_env_int("MAX_TRADE_SIZE_ABSOLUTE", 100_000_000, min_val=1)
    LARGE_TRADE_COOLDOWN_SECONDS = _get_env_int("LARGE_TRADE_COOLDOWN_SECONDS", 300, min_val=0)
    MAX_DAILY_VOLUME_PER_WALLET = _get_env_int("MAX_DAILY_VOLUME_PER_WALLET", 100_000 * 10**9, min_val=1)
    MAX_DAILY_TRADES_PER_WALLET = _get_env_int("MAX_DAILY_TRADES_PER_WALLET", 100, min_val=1)

    # --- Persistence & Access ---
    STATE_DIR = _get_env_str("STATE_DIR", "launchpad_state", required=True)
    ADMIN_WALLETS = _get_env_list("ADMIN_WALLETS")

    logger.info("Configuration loaded successfully")

except ConfigurationError as e:
    logger.error(f"Configuration error: {e}")
    raise
except Exception as e:
    logger.error(f"Unexpected error loading configuration: {e}")
    raise ConfigurationError(f"Failed to load configuration: {e}")
