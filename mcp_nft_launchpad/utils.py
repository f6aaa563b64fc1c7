from decimal import Decimal

from solders.pubkey import Pubkey
from solders.signature import Signature

from mcp_nft_launchpad.errors import InvalidInputError
from mcp_nft_launchpad.fixed_point import BPS_DENOMINATOR, PRICE_SCALE


def validate_pubkey(value: str, field_name: str) -> Pubkey:
    """Parses a base58 wallet or mint address."""
    try:
        return Pubkey.from_string(value)
    except (ValueError, TypeError) as e:
        raise InvalidInputError(f"{field_name} must be a valid public key: {e}")


def validate_signature(value: str, field_name: str) -> Signature:
    """Parses a base58 transaction signature."""
    try:
        return Signature.from_string(value)
    except (ValueError, TypeError) as e:
        raise InvalidInputError(f"Invalid {field_name} signature format: {e}")


def format_token_amount(amount: int, decimals: int, symbol: str) -> str:
    """Format token amount with proper decimal places and symbol."""
    token_amount_ui = Decimal(amount).scaleb(-decimals)
    return f"{token_amount_ui:.{decimals}f} {symbol}"


def format_price(price: int) -> str:
    """Format a ``PRICE_SCALE``-scaled price for display."""
    return f"{Decimal(price) / PRICE_SCALE:f}"


def format_bps(bps: int) -> str:
    return f"{Decimal(bps) * 100 / BPS_DENOMINATOR:.2f}%"
