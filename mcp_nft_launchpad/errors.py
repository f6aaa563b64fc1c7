"""
Custom Exception Classes for the NFT Launchpad Engine

This module defines the typed failures raised by the pricing and sequencing engine. Every failure
carries a stable ``code`` so that callers can tell them apart and decide whether to re-quote and
retry, reject the request, or escalate.

Exception Categories:
- Input Errors: Non-positive amounts, malformed configuration, slippage beyond tolerance
- Liquidity Errors: Curve or pool cannot satisfy the requested size
- Arithmetic Errors: Fixed-point bounds exceeded or division by zero
- State Errors: Commits against an out-of-date snapshot
- Sequencer Errors: Locked sequences, exhausted supply, per-wallet mint limits
- Access Errors: Transitions the caller was not authorized to perform
- Service Errors: Rate and trade limits, configuration problems

Usage:
    Engine functions raise these exceptions instead of returning sentinel values. Nothing inside
    the engine retries; ``retryable`` only tells the caller that re-quoting against a fresh
    snapshot may succeed.
"""


class LaunchpadError(Exception):
    """Base class for all engine failures."""

    code = "LaunchpadError"
    retryable = False


class InvalidInputError(LaunchpadError):
    """Raised for non-positive amounts, malformed configs or quotes of the wrong kind."""

    code = "InvalidInput"


class SlippageExceededError(InvalidInputError):
    """Raised when a liquidity contribution deviates from the pool ratio beyond tolerance."""

    code = "SlippageExceeded"


class InsufficientLiquidityError(LaunchpadError):
    """Raised when a curve or pool cannot satisfy the requested size."""

    code = "InsufficientLiquidity"


class MathOverflowError(LaunchpadError):
    """Raised when a fixed-point operation leaves the representable range."""

    code = "Overflow"


class DivideByZeroError(MathOverflowError):
    """Raised when a fixed-point division has a zero divisor."""


class StaleStateError(LaunchpadError):
    """Raised when a commit is applied to a snapshot other than the one it was quoted against."""

    code = "StaleState"
    retryable = True


class SequenceLockedError(LaunchpadError):
    """Raised when a locked token sequence is asked to issue or resize."""

    code = "SequenceLocked"


class SupplyExceededError(LaunchpadError):
    """Raised when a reservation would go past the sequence's total supply."""

    code = "SupplyExceeded"


class WalletLimitExceededError(LaunchpadError):
    """Raised when a wallet has already reserved its maximum number of token IDs."""

    code = "WalletLimitExceeded"


class UnauthorizedError(LaunchpadError):
    """Raised when a privileged transition is requested without authorization."""

    code = "Unauthorized"


class TradeLimitExceededError(LaunchpadError):
    """Raised when a trade breaks a size, price impact, cooldown or daily limit, or the wallet is paused."""

    code = "TradeLimitExceeded"


class RateLimitExceededError(LaunchpadError):
    """Raised when the rate limit is exceeded for a wallet or client."""

    code = "RateLimitExceeded"
    retryable = True


class ConfigurationError(LaunchpadError):
    """Raised when there are configuration-related errors."""

    code = "ConfigurationError"
