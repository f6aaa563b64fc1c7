"""
NFT Launchpad Server - MCP Server Implementation

This module exposes the launchpad's pricing and sequencing engine as Model Context Protocol tools.
It is the engine's caller: it loads snapshots from the state store, serializes commits per
collection and per pool, makes authorization decisions, and reports quotes and results as JSON.

Key Features:
- Collection creation with bonding curve and token sequence defaults from configuration
- Quote-then-commit minting and selling against the bonding curve
- Token ID reservation, locking and consistency audits
- Bridge liquidity provision and post-reveal NFT-to-token swaps
- Rate limiting, trade size protection and daily limits per wallet
- Administrator tools to pause, reset and inspect trading wallets

Concurrency:
- Quotes are read-only and may be computed concurrently
- Every commit runs under an asyncio lock keyed by the collection or pool it changes
- Stores are saved with compare-and-swap on the loaded revision/version
- Quotes older than QUOTE_TTL_SECONDS or made against another version are refused as stale

Transfers:
- The server never moves funds. Commit tools take the signature of the transfer the caller already
  settled on-chain; it is format-checked and echoed, not verified against the ledger.
"""

import asyncio
import json
import time
from typing import Dict, Optional

from pydantic import Field, ValidationError

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_nft_launchpad import bonding_curve
from mcp_nft_launchpad import bridge
from mcp_nft_launchpad import config
from mcp_nft_launchpad import sequencer
from mcp_nft_launchpad.errors import (
    InvalidInputError,
    LaunchpadError,
    RateLimitExceededError,
    StaleStateError,
    UnauthorizedError,
)
from mcp_nft_launchpad.schemas import BridgeQuote, CollectionRecord, CurveConfig, Quote, TradeSide
from mcp_nft_launchpad.state_store import StateStore, resolve_state_dir
from mcp_nft_launchpad.trade_guard import TradeGuard
from mcp_nft_launchpad.utils import (
    format_bps,
    format_price,
    format_token_amount,
    validate_pubkey,
    validate_signature,
)

logger = get_logger(__name__)

# Constants
MAX_COLLECTION_ID_LENGTH = 100
MAX_CONFIG_JSON_LENGTH = 10000
MAX_PREVIEW_SAMPLES = 1000

# --- Server Setup ---
mcp = FastMCP(name="NFT Launchpad Server")

store = StateStore(resolve_state_dir(config.STATE_DIR))
store.load()
trade_guard = TradeGuard()
supported_tokens = bridge.DEFAULT_SUPPORTED_TOKENS

_entity_locks: Dict[str, asyncio.Lock] = {}


def _entity_lock(key: str) -> asyncio.Lock:
    """Returns the lock serializing commits against one collection or pool."""
    return _entity_locks.setdefault(key, asyncio.Lock())


# --- Helper Functions ---

def validate_collection_id(collection_id: str) -> None:
    if not collection_id or not isinstance(collection_id, str):
        raise InvalidInputError("Collection ID must be a non-empty string")
    if len(collection_id) > MAX_COLLECTION_ID_LENGTH:
        raise InvalidInputError("Collection ID is too long")


def ensure_fresh(quoted_at: float) -> None:
    """Refuses quotes older than the configured staleness window."""
    age = time.time() - quoted_at
    if age > config.QUOTE_TTL_SECONDS:
        raise StaleStateError(f"Quote is {age:.1f}s old, maximum age is {config.QUOTE_TTL_SECONDS}s")


def check_rate_limit(wallet: str) -> None:
    if not trade_guard.check_rate_limit(wallet):
        raise RateLimitExceededError(f"Rate limit exceeded for wallet: {wallet}")


def pool_id_for(collection_id: str, token_mint: str) -> str:
    return bridge.new_pool(token_mint, collection_id=collection_id).pool_id


def to_json(payload) -> str:
    return json.dumps(payload, indent=2)


def log_operation_error(operation: str, entity_id: str, error: Exception, duration: float) -> None:
    """Log operation error with structured information."""
    logger.error(f"{operation} failed for '{entity_id}': {error}, duration: {duration:.3f}s")


def error_response(operation: str, entity_id: str, error: Exception, start_time: float) -> str:
    """Converts an engine failure into a user-facing message."""
    duration = time.time() - start_time
    if isinstance(error, StaleStateError):
        log_operation_error(operation, entity_id, error, duration)
        return f"Stale quote or state: {error}. Please request a new quote."
    if isinstance(error, LaunchpadError):
        log_operation_error(operation, entity_id, error, duration)
        return f"Error ({error.code}): {error}"
    if isinstance(error, ValidationError):
        log_operation_error(operation, entity_id, error, duration)
        return f"Error: Invalid input - {error}"
    logger.exception(f"Unexpected error during {operation} for '{entity_id}': {error}")
    return "An unexpected server error occurred"


def _collection_or_none(collection_id: str) -> Optional[CollectionRecord]:
    validate_collection_id(collection_id)
    record = store.get_collection(collection_id)
    if record is None:
        logger.warning(f"Collection not found: {collection_id}")
    return record


def _require_revealed(record: CollectionRecord) -> None:
    if not record.state.revealed:
        raise InvalidInputError(f"Collection {record.collection_id} has not revealed yet; the bridge is closed")


# --- Collection Tools ---

@mcp.tool()
async def create_collection(
    context: Context,
    config_json: str = Field(..., description="The collection configuration as a JSON string."),
) -> str:
    """
    Creates a new collection with its bonding curve and token sequence.

    The JSON must contain ``collection_id``, ``name``, ``symbol`` and ``creator``. Optional keys:
    ``curve`` (any CurveConfig fields, the rest default from configuration), ``total_supply`` and
    ``max_mints_per_wallet`` for the token sequence.
    """
    start_time = time.time()
    collection_id = "<unknown>"
    try:
        if not config_json or not isinstance(config_json, str):
            raise InvalidInputError("Configuration JSON must be a non-empty string")
        if len(config_json) > MAX_CONFIG_JSON_LENGTH:
            raise InvalidInputError("Configuration JSON is too large (max 10KB)")

        data = json.loads(config_json)
        if not isinstance(data, dict):
            raise InvalidInputError("Configuration JSON must be an object")
        collection_id = data.get("collection_id", collection_id)
        validate_pubkey(data.get("creator", ""), "creator")

        curve_data = {
            "virtual_reserve": config.DEFAULT_VIRTUAL_RESERVE,
            "virtual_supply": config.DEFAULT_VIRTUAL_SUPPLY,
            "reveal_cap": config.DEFAULT_REVEAL_CAP,
            "fee_bps": config.DEFAULT_FEE_BPS,
            "creator_fee_bps": config.DEFAULT_CREATOR_FEE_BPS,
            "platform_fee_bps": config.DEFAULT_PLATFORM_FEE_BPS,
        }
        curve_data.update(data.get("curve") or {})
        curve = CurveConfig.model_validate(curve_data)

        record = CollectionRecord(
            collection_id=collection_id,
            name=data.get("name", ""),
            symbol=data.get("symbol", ""),
            creator=data["creator"],
            curve=curve,
            state=bonding_curve.initial_state(curve),
            sequence=sequencer.new_sequence(
                data.get("name") or collection_id,
                data.get("total_supply", config.DEFAULT_TOTAL_SUPPLY),
                data.get("max_mints_per_wallet"),
            ),
            created_at=time.time(),
        )

        async with _entity_lock(f"collection:{collection_id}"):
            if store.get_collection(collection_id) is not None:
                return f"Error: Collection '{collection_id}' already exists."
            store.save_collection(record, expected_revision=None)

        logger.info(f"Collection '{collection_id}' created by {record.creator}")
        return f"Collection '{collection_id}' created successfully."

    except json.JSONDecodeError as e:
        logger.error(f"Error decoding JSON for create_collection request: {e}")
        return "Error: Invalid JSON format provided. Please check your JSON syntax."
    except KeyError as e:
        logger.error(f"Missing field in create_collection request: {e}")
        return f"Error: Missing required field {e}"
    except Exception as e:
        return error_response("Collection creation", collection_id, e, start_time)


@mcp.tool()
async def get_collection_info(
    context: Context,
    collection_id: str = Field(..., description="The collection ID."),
) -> str:
    """Get a collection's curve, trading state, metrics and token sequence status."""
    start_time = time.time()
    try:
        record = _collection_or_none(collection_id)
        if record is None:
            return f"Collection with id {collection_id} not found."

        info = record.model_dump(mode="json", exclude={"sequence": {"reservations"}})
        info["metrics"] = bonding_curve.curve_metrics(record.curve, record.state).model_dump(mode="json")
        info["sequence"]["reserved_count"] = record.sequence.reserved_count
        return to_json(info)
    except Exception as e:
        return error_response("Collection lookup", collection_id, e, start_time)


@mcp.tool()
async def preview_price_curve(
    context: Context,
    collection_id: str = Field(..., description="The collection ID."),
    sample_count: int = Field(..., description="Number of evenly spaced samples (1-1000)."),
) -> str:
    """Samples the collection's bonding curve price for charting."""
    start_time = time.time()
    try:
        record = _collection_or_none(collection_id)
        if record is None:
            return f"Collection with id {collection_id} not found."
        if sample_count > MAX_PREVIEW_SAMPLES:
            raise InvalidInputError(f"sample_count must be at most {MAX_PREVIEW_SAMPLES}")

        preview = bonding_curve.preview_price_curve(record.curve, sample_count)
        return to_json([point.model_dump(mode="json") for point in preview])
    except Exception as e:
        return error_response("Price curve preview", collection_id, e, start_time)


# --- Bonding Curve Tools ---

@mcp.tool()
async def quote_mint(
    context: Context,
    collection_id: str = Field(..., description="The collection ID."),
    base_amount: int = Field(..., description="Base currency to spend (in base units)."),
) -> str:
    """Quotes how many NFT units ``base_amount`` buys. Pass the returned JSON to ``mint_nft``."""
    start_time = time.time()
    try:
        record = _collection_or_none(collection_id)
        if record is None:
            return f"Collection with id {collection_id} not found."
        quote = bonding_curve.quote_buy(record.curve, record.state, base_amount)
        return quote.model_dump_json(indent=2)
    except Exception as e:
        return error_response("Mint quote", collection_id, e, start_time)


@mcp.tool()
async def quote_sell(
    context: Context,
    collection_id: str = Field(..., description="The collection ID."),
    nft_amount: int = Field(..., description="NFT units to sell back to the curve."),
) -> str:
    """Quotes how much base currency selling ``nft_amount`` returns. Pass the JSON to ``sell_nft``."""
    start_time = time.time()
    try:
        record = _collection_or_none(collection_id)
        if record is None:
            return f"Collection with id {collection_id} not found."
        quote = bonding_curve.quote_sell(record.curve, record.state, nft_amount)
        return quote.model_dump_json(indent=2)
    except Exception as e:
        return error_response("Sell quote", collection_id, e, start_time)


@mcp.tool()
async def mint_nft(
    context: Context,
    collection_id: str = Field(..., description="The collection ID."),
    quote_json: str = Field(..., description="The buy quote returned by quote_mint."),
    mint_address: str = Field(..., description="Address of the NFT mint being created."),
    wallet: str = Field(..., description="The buyer's wallet."),
    payment_transaction: str = Field(..., description="Signature of the settled base currency payment."),
) -> str:
    """
    Commits a buy quote: reserves the next token ID and advances the bonding curve.

    The payment must already have settled on-chain; its signature is recorded, not verified.
    A quote that is too old, or was made before another trade committed, is refused and must be
    requested again.
    """
    start_time = time.time()
    try:
        validate_collection_id(collection_id)
        validate_pubkey(wallet, "wallet")
        validate_pubkey(mint_address, "mint_address")
        validate_signature(payment_transaction, "payment transaction")
        check_rate_limit(wallet)

        quote = Quote.model_validate_json(quote_json)
        if quote.side != TradeSide.buy:
            raise InvalidInputError("mint_nft requires a buy quote")
        ensure_fresh(quote.quoted_at)
        if _collection_or_none(collection_id) is None:
            return f"Collection with id {collection_id} not found."

        async with _entity_lock(f"collection:{collection_id}"):
            record = store.get_collection(collection_id)
            trade_guard.check_trade(wallet, quote.output_amount, record.curve.virtual_supply,
                                    quote.price_impact_bps, trade_value=quote.input_amount)
            new_sequence, metadata = sequencer.reserve(record.sequence, mint_address, wallet)
            new_state = bonding_curve.commit_buy(record.curve, record.state, quote)
            store.save_collection(
                record.model_copy(update={"state": new_state, "sequence": new_sequence}),
                expected_revision=record.revision,
            )
            trade_guard.record_trade(wallet, quote.output_amount, quote.input_amount, record.curve.virtual_supply)

        duration = time.time() - start_time
        cost = format_token_amount(quote.input_amount, config.BASE_CURRENCY_DECIMALS, config.BASE_CURRENCY_SYMBOL)
        logger.info(f"Mint completed for '{collection_id}': token_id={metadata.token_id}, "
                    f"nft_units={quote.output_amount}, cost={cost}, "
                    f"payment_tx={payment_transaction[:8]}..., duration={duration:.3f}s")
        reveal_note = " The collection is revealed!" if new_state.revealed else ""
        return (f"Successfully minted token #{metadata.token_id} ({quote.output_amount} NFT units) "
                f"for {cost}. Fee: {quote.fee_amount}. Metadata: {metadata.metadata_uri}. "
                f"Payment received (txid: {payment_transaction}).{reveal_note}")

    except Exception as e:
        return error_response("Mint", collection_id, e, start_time)


@mcp.tool()
async def sell_nft(
    context: Context,
    collection_id: str = Field(..., description="The collection ID."),
    quote_json: str = Field(..., description="The sell quote returned by quote_sell."),
    wallet: str = Field(..., description="The seller's wallet."),
    transfer_transaction: str = Field(..., description="Signature of the settled NFT transfer to the curve."),
) -> str:
    """Commits a sell quote after the seller's NFTs were returned to the curve."""
    start_time = time.time()
    try:
        validate_collection_id(collection_id)
        validate_pubkey(wallet, "wallet")
        validate_signature(transfer_transaction, "transfer transaction")
        check_rate_limit(wallet)

        quote = Quote.model_validate_json(quote_json)
        if quote.side != TradeSide.sell:
            raise InvalidInputError("sell_nft requires a sell quote")
        ensure_fresh(quote.quoted_at)
        if _collection_or_none(collection_id) is None:
            return f"Collection with id {collection_id} not found."

        async with _entity_lock(f"collection:{collection_id}"):
            record = store.get_collection(collection_id)
            trade_guard.check_trade(wallet, quote.input_amount, record.curve.virtual_supply,
                                    quote.price_impact_bps, trade_value=quote.output_amount)
            new_state = bonding_curve.commit_sell(record.curve, record.state, quote)
            store.save_collection(record.model_copy(update={"state": new_state}), expected_revision=record.revision)
            trade_guard.record_trade(wallet, quote.input_amount, quote.output_amount, record.curve.virtual_supply)

        proceeds = format_token_amount(quote.net_amount, config.BASE_CURRENCY_DECIMALS, config.BASE_CURRENCY_SYMBOL)
        logger.info(f"Sell completed for '{collection_id}': nft_units={quote.input_amount}, proceeds={proceeds}")
        return (f"Successfully sold {quote.input_amount} NFT units for {proceeds} "
                f"(fee {quote.fee_amount}, price impact {format_bps(quote.price_impact_bps)}). "
                f"Transfer received (txid: {transfer_transaction}).")

    except Exception as e:
        return error_response("Sell", collection_id, e, start_time)


# --- Token Sequence Tools ---

@mcp.tool()
async def lock_token_sequence(
    context: Context,
    collection_id: str = Field(..., description="The collection ID."),
    wallet: str = Field(..., description="Wallet requesting the lock (must be the creator)."),
) -> str:
    """Freezes new token ID issuance for a collection."""
    start_time = time.time()
    try:
        if _collection_or_none(collection_id) is None:
            return f"Collection with id {collection_id} not found."

        async with _entity_lock(f"collection:{collection_id}"):
            record = store.get_collection(collection_id)
            new_sequence = sequencer.lock(record.sequence, wallet, authorized=wallet == record.creator)
            if new_sequence is not record.sequence:
                store.save_collection(record.model_copy(update={"sequence": new_sequence}),
                                      expected_revision=record.revision)
        return f"Token sequence for '{collection_id}' is locked at next ID {new_sequence.next_token_id}."
    except Exception as e:
        return error_response("Sequence lock", collection_id, e, start_time)


@mcp.tool()
async def force_unlock_token_sequence(
    context: Context,
    collection_id: str = Field(..., description="The collection ID."),
    admin_wallet: str = Field(..., description="Administrator wallet (must be listed in ADMIN_WALLETS)."),
) -> str:
    """Reopens a locked token sequence. Administrator only."""
    start_time = time.time()
    try:
        if _collection_or_none(collection_id) is None:
            return f"Collection with id {collection_id} not found."

        async with _entity_lock(f"collection:{collection_id}"):
            record = store.get_collection(collection_id)
            new_sequence = sequencer.force_unlock(
                record.sequence, admin_wallet, authorized=admin_wallet in config.ADMIN_WALLETS
            )
            store.save_collection(record.model_copy(update={"sequence": new_sequence}),
                                  expected_revision=record.revision)
        return f"Token sequence for '{collection_id}' unlocked by {admin_wallet}."
    except Exception as e:
        return error_response("Sequence unlock", collection_id, e, start_time)


@mcp.tool()
async def update_total_supply(
    context: Context,
    collection_id: str = Field(..., description="The collection ID."),
    wallet: str = Field(..., description="Wallet requesting the change (must be the creator)."),
    new_total: int = Field(..., description="New token ID ceiling."),
) -> str:
    """Changes the token supply ceiling of an unlocked collection."""
    start_time = time.time()
    try:
        if _collection_or_none(collection_id) is None:
            return f"Collection with id {collection_id} not found."

        async with _entity_lock(f"collection:{collection_id}"):
            record = store.get_collection(collection_id)
            new_sequence = sequencer.update_total_supply(
                record.sequence, new_total, authorized=wallet == record.creator
            )
            store.save_collection(record.model_copy(update={"sequence": new_sequence}),
                                  expected_revision=record.revision)
        return f"Total supply for '{collection_id}' updated to {new_total}."
    except Exception as e:
        return error_response("Total supply update", collection_id, e, start_time)


@mcp.tool()
async def validate_token_sequence(
    context: Context,
    collection_id: str = Field(..., description="The collection ID."),
) -> str:
    """Audits a collection's token sequence and reports any inconsistencies."""
    start_time = time.time()
    try:
        record = _collection_or_none(collection_id)
        if record is None:
            return f"Collection with id {collection_id} not found."
        return sequencer.validate_consistency(record.sequence).model_dump_json(indent=2)
    except Exception as e:
        return error_response("Sequence validation", collection_id, e, start_time)


@mcp.tool()
async def get_token_metadata(
    context: Context,
    collection_id: str = Field(..., description="The collection ID."),
    token_id: int = Field(..., description="The token ID."),
) -> str:
    """Get the locked metadata of a reserved token ID."""
    start_time = time.time()
    try:
        record = _collection_or_none(collection_id)
        if record is None:
            return f"Collection with id {collection_id} not found."
        metadata = sequencer.get_locked_metadata(record.sequence, token_id)
        if metadata is None:
            return f"Token #{token_id} has not been reserved in '{collection_id}'."
        return metadata.model_dump_json(indent=2)
    except Exception as e:
        return error_response("Token metadata lookup", collection_id, e, start_time)


# --- Trade Guard Tools ---

def _require_admin(admin_wallet: str) -> None:
    if admin_wallet not in config.ADMIN_WALLETS:
        raise UnauthorizedError(f"Wallet {admin_wallet} is not an administrator")


@mcp.tool()
async def get_wallet_trade_stats(
    context: Context,
    wallet: str = Field(..., description="The trading wallet."),
) -> str:
    """Get a wallet's daily volume, trade count, cooldown and pause status."""
    start_time = time.time()
    try:
        validate_pubkey(wallet, "wallet")
        stats = trade_guard.get_wallet_stats(wallet)
        if stats is None:
            return f"No trades recorded for wallet {wallet}."
        return stats.model_dump_json(indent=2)
    except Exception as e:
        return error_response("Wallet stats lookup", wallet, e, start_time)


@mcp.tool()
async def pause_wallet_trading(
    context: Context,
    admin_wallet: str = Field(..., description="Administrator wallet (must be listed in ADMIN_WALLETS)."),
    wallet: str = Field(..., description="The wallet to pause."),
) -> str:
    """Suspends every trade of a wallet until its limits are reset. Administrator only."""
    start_time = time.time()
    try:
        validate_pubkey(wallet, "wallet")
        _require_admin(admin_wallet)
        trade_guard.emergency_pause_wallet(wallet)
        return f"Trading paused for wallet {wallet}."
    except Exception as e:
        return error_response("Wallet pause", wallet, e, start_time)


@mcp.tool()
async def reset_wallet_trade_limits(
    context: Context,
    admin_wallet: str = Field(..., description="Administrator wallet (must be listed in ADMIN_WALLETS)."),
    wallet: str = Field(..., description="The wallet to reset."),
) -> str:
    """Clears a wallet's daily counters, cooldown and pause. Administrator only."""
    start_time = time.time()
    try:
        validate_pubkey(wallet, "wallet")
        _require_admin(admin_wallet)
        trade_guard.reset_wallet_limits(wallet)
        return f"Trade limits reset for wallet {wallet}."
    except Exception as e:
        return error_response("Wallet limit reset", wallet, e, start_time)


@mcp.tool()
async def list_suspicious_wallets(
    context: Context,
    admin_wallet: str = Field(..., description="Administrator wallet (must be listed in ADMIN_WALLETS)."),
) -> str:
    """Lists wallets with unusually high daily volume or trade frequency. Administrator only."""
    start_time = time.time()
    try:
        _require_admin(admin_wallet)
        return to_json([entry.model_dump(mode="json") for entry in trade_guard.get_suspicious_wallets()])
    except Exception as e:
        return error_response("Suspicious wallet listing", admin_wallet, e, start_time)


# --- Bridge Tools ---

@mcp.tool()
async def list_bridge_tokens(context: Context) -> str:
    """Lists the tokens revealed NFTs can be bridged to."""
    return to_json([token.model_dump(mode="json") for token in bridge.active_tokens(supported_tokens)])


def _supported_token(token_mint: str):
    validate_pubkey(token_mint, "token_mint")
    token = bridge.find_token(supported_tokens, token_mint)
    if token is None or not token.is_active:
        raise InvalidInputError(f"Token {token_mint} is not supported by the bridge")
    return token


@mcp.tool()
async def add_bridge_liquidity(
    context: Context,
    collection_id: str = Field(..., description="The revealed collection whose NFTs are pooled."),
    token_mint: str = Field(..., description="The supported token mint."),
    provider: str = Field(..., description="The liquidity provider's wallet."),
    token_amount: int = Field(..., description="Tokens contributed (in base units)."),
    nft_amount: int = Field(..., description="NFT units contributed."),
    slippage_bps: int = Field(..., description="Allowed deviation from the pool ratio, in basis points."),
) -> str:
    """Adds liquidity to a collection's bridge pool for ``token_mint`` and issues shares."""
    start_time = time.time()
    pool_id = f"{collection_id}__{token_mint}"
    try:
        validate_pubkey(provider, "provider")
        token = _supported_token(token_mint)
        record = _collection_or_none(collection_id)
        if record is None:
            return f"Collection with id {collection_id} not found."
        _require_revealed(record)

        pool_id = pool_id_for(collection_id, token_mint)
        async with _entity_lock(f"pool:{pool_id}"):
            current = store.get_pool(pool_id)
            pool = current or bridge.new_pool(token_mint, token.symbol, collection_id)
            new_pool_state, shares = bridge.add_liquidity(pool, provider, token_amount, nft_amount, slippage_bps)
            store.save_pool(new_pool_state, expected_version=current.version if current else None)

        return f"Added liquidity to {token.symbol} pool of '{collection_id}': {shares} shares issued to {provider}."
    except Exception as e:
        return error_response("Add liquidity", pool_id, e, start_time)


@mcp.tool()
async def remove_bridge_liquidity(
    context: Context,
    collection_id: str = Field(..., description="The collection ID."),
    token_mint: str = Field(..., description="The supported token mint."),
    provider: str = Field(..., description="The liquidity provider's wallet."),
    shares: int = Field(..., description="Shares to redeem."),
) -> str:
    """Redeems pool shares for a pro-rata part of both reserves."""
    start_time = time.time()
    pool_id = f"{collection_id}__{token_mint}"
    try:
        validate_collection_id(collection_id)
        pool_id = pool_id_for(collection_id, token_mint)
        if store.get_pool(pool_id) is None:
            return f"Bridge pool {pool_id} not found."

        async with _entity_lock(f"pool:{pool_id}"):
            pool = store.get_pool(pool_id)
            new_pool_state, token_out, nft_out = bridge.remove_liquidity(pool, provider, shares)
            store.save_pool(new_pool_state, expected_version=pool.version)

        return (f"Removed {shares} shares from {pool_id}: {token_out} tokens and {nft_out} NFT units "
                f"returned to {provider}.")
    except Exception as e:
        return error_response("Remove liquidity", pool_id, e, start_time)


@mcp.tool()
async def quote_bridge_swap(
    context: Context,
    collection_id: str = Field(..., description="The revealed collection ID."),
    token_mint: str = Field(..., description="The token to receive."),
    nft_amount: int = Field(..., description="NFT units to exchange."),
) -> str:
    """Quotes the tokens received for exchanging revealed NFTs. Pass the JSON to ``bridge_swap``."""
    start_time = time.time()
    pool_id = f"{collection_id}__{token_mint}"
    try:
        _supported_token(token_mint)
        record = _collection_or_none(collection_id)
        if record is None:
            return f"Collection with id {collection_id} not found."
        _require_revealed(record)

        pool_id = pool_id_for(collection_id, token_mint)
        pool = store.get_pool(pool_id)
        if pool is None:
            return f"Bridge pool {pool_id} not found."
        return bridge.quote_swap(pool, nft_amount).model_dump_json(indent=2)
    except Exception as e:
        return error_response("Bridge quote", pool_id, e, start_time)


@mcp.tool()
async def bridge_swap(
    context: Context,
    collection_id: str = Field(..., description="The revealed collection ID."),
    quote_json: str = Field(..., description="The quote returned by quote_bridge_swap."),
    wallet: str = Field(..., description="The trader's wallet."),
    nft_transfer_transaction: str = Field(..., description="Signature of the settled NFT transfer to the pool."),
) -> str:
    """Commits a bridge swap quote after the trader's NFTs reached the pool."""
    start_time = time.time()
    pool_id = collection_id
    try:
        validate_pubkey(wallet, "wallet")
        validate_signature(nft_transfer_transaction, "NFT transfer transaction")
        check_rate_limit(wallet)

        quote = BridgeQuote.model_validate_json(quote_json)
        token = _supported_token(quote.token_mint)
        ensure_fresh(quote.quoted_at)
        record = _collection_or_none(collection_id)
        if record is None:
            return f"Collection with id {collection_id} not found."
        _require_revealed(record)

        pool_id = pool_id_for(collection_id, quote.token_mint)
        if store.get_pool(pool_id) is None:
            return f"Bridge pool {pool_id} not found."

        async with _entity_lock(f"pool:{pool_id}"):
            pool = store.get_pool(pool_id)
            new_pool_state = bridge.commit_swap(pool, quote)
            store.save_pool(new_pool_state, expected_version=pool.version)

        received = format_token_amount(quote.net_amount, token.decimals, token.symbol)
        logger.info(f"Bridge swap completed on {pool_id}: nft_units={quote.nft_amount}, received={received}")
        return (f"Successfully bridged {quote.nft_amount} NFT units for {received} "
                f"(bridge fee {quote.bridge_fee}, price per NFT {format_price(quote.price_per_nft)}). "
                f"NFT transfer received (txid: {nft_transfer_transaction}).")
    except Exception as e:
        return error_response("Bridge swap", pool_id, e, start_time)


@mcp.tool()
async def get_bridge_statistics(
    context: Context,
    collection_id: str = Field(..., description="The collection ID."),
) -> str:
    """Get volume, trade and liquidity statistics across a collection's bridge pools."""
    start_time = time.time()
    try:
        validate_collection_id(collection_id)
        stats = bridge.bridge_statistics(store.list_pools(collection_id))
        return stats.model_dump_json(indent=2)
    except Exception as e:
        return error_response("Bridge statistics", collection_id, e, start_time)


# --- Main Execution ---
if __name__ == "__main__":
    logger.info(f"Starting NFT Launchpad MCP Server with {len(store.collections)} collection(s) "
                f"and {len(store.pools)} pool(s)...")
    try:
        mcp.run(transport="stdio")
    except KeyboardInterrupt:
        logger.info("Server shutdown requested by user")
