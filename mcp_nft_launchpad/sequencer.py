"""
Token ID Sequencer

Hands out strictly increasing, gap-free token identifiers per collection and records who reserved
each one. Reserved IDs always form the contiguous range ``[1, next_token_id - 1]``. A sequence can
be locked to freeze new issuance; locking never invalidates IDs that were already reserved, and
only an authorized caller can force it open again.

Operations:
- ``reserve``: assign the next ID and lock its metadata
- ``lock`` / ``force_unlock``: freeze or reopen issuance
- ``update_total_supply``: resize an unlocked sequence
- ``validate_consistency``: O(n) audit of the contiguity invariant, reported but never repaired

All operations return new TokenSequence snapshots. Authorization is decided by the caller and passed
in as a boolean; the sequencer only refuses transitions it was not authorized to make.
"""
import re
import time
from typing import List, Optional, Tuple

from mcp_nft_launchpad import config
from mcp_nft_launchpad.errors import (
    InvalidInputError,
    SequenceLockedError,
    SupplyExceededError,
    UnauthorizedError,
    WalletLimitExceededError,
)
from mcp_nft_launchpad.fixed_point import require_amount
from mcp_nft_launchpad.schemas import ConsistencyReport, LockedTokenMetadata, TokenAttributes, TokenSequence
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)


def new_sequence(
    collection_name: str,
    total_supply: int,
    max_mints_per_wallet: Optional[int] = None,
) -> TokenSequence:
    """Creates an empty, unlocked sequence starting at token ID 1."""
    if not collection_name:
        raise InvalidInputError("collection_name must be a non-empty string")
    require_amount(total_supply, "total_supply")
    if max_mints_per_wallet is not None:
        require_amount(max_mints_per_wallet, "max_mints_per_wallet")
    return TokenSequence(
        collection_name=collection_name,
        total_supply=total_supply,
        max_mints_per_wallet=max_mints_per_wallet,
    )


def metadata_uri(collection_name: str, token_id: int, base_uri: Optional[str] = None) -> str:
    """Builds the stable metadata URI for a token, e.g. ``<base>/los_bros/7.json``."""
    base = (base_uri or config.METADATA_BASE_URI).rstrip("/")
    slug = re.sub(r"\s+", "_", collection_name.strip().lower())
    return f"{base}/{slug}/{token_id}.json"


def wallet_mint_count(sequence: TokenSequence, wallet: str) -> int:
    return sum(1 for reservation in sequence.reservations if reservation.locked_by == wallet)


def get_locked_metadata(sequence: TokenSequence, token_id: int) -> Optional[LockedTokenMetadata]:
    """Looks up a reservation by token ID (IDs are contiguous from 1)."""
    if 1 <= token_id <= sequence.reserved_count:
        reservation = sequence.reservations[token_id - 1]
        if reservation.token_id == token_id:
            return reservation
    for reservation in sequence.reservations:
        if reservation.token_id == token_id:
            return reservation
    return None


def reserve(
    sequence: TokenSequence,
    mint_address: str,
    reserved_by: str,
    now: Optional[float] = None,
) -> Tuple[TokenSequence, LockedTokenMetadata]:
    """
    Reserves the next token ID for ``mint_address`` on behalf of ``reserved_by``.

    Args:
        sequence: Current sequence snapshot.
        mint_address: On-chain address of the NFT being minted.
        reserved_by: Wallet that owns the reservation.
        now: Reservation timestamp; defaults to the current time.

    Returns:
        The advanced sequence and the locked metadata of the reserved token.

    Raises:
        SequenceLockedError: If the sequence is locked and has already issued IDs.
        SupplyExceededError: If the next ID is past the total supply.
        WalletLimitExceededError: If ``reserved_by`` reached the per-wallet limit.
        InvalidInputError: If the mint address or wallet is empty.
    """
    if not mint_address or not reserved_by:
        raise InvalidInputError("mint_address and reserved_by must be non-empty strings")

    token_id = sequence.next_token_id
    if sequence.locked and token_id > 1:
        logger.warning(f"Reservation refused on locked sequence {sequence.collection_name} at ID {token_id}")
        raise SequenceLockedError(f"Token sequence for {sequence.collection_name} is locked")
    if token_id > sequence.total_supply:
        logger.warning(f"Supply exhausted for {sequence.collection_name}: total_supply={sequence.total_supply}")
        raise SupplyExceededError(
            f"Token ID {token_id} exceeds total supply {sequence.total_supply} for {sequence.collection_name}"
        )
    if sequence.max_mints_per_wallet is not None:
        minted_by_wallet = wallet_mint_count(sequence, reserved_by)
        if minted_by_wallet >= sequence.max_mints_per_wallet:
            raise WalletLimitExceededError(
                f"{reserved_by} already reserved {minted_by_wallet} of {sequence.max_mints_per_wallet} allowed tokens"
            )

    timestamp = time.time() if now is None else now
    metadata = LockedTokenMetadata(
        token_id=token_id,
        collection_name=sequence.collection_name,
        mint_address=mint_address,
        metadata_uri=metadata_uri(sequence.collection_name, token_id),
        attributes=TokenAttributes(
            token_id=token_id,
            collection=sequence.collection_name,
            mint_timestamp=timestamp,
            blockchain_reference=f"mint_{mint_address}_token_{token_id}",
        ),
        locked_at=timestamp,
        locked_by=reserved_by,
    )
    new_seq = sequence.model_copy(update={
        "next_token_id": token_id + 1,
        "reservations": sequence.reservations + (metadata,),
        "version": sequence.version + 1,
    })
    logger.info(f"Token ID {token_id} reserved for {sequence.collection_name} by {reserved_by}")
    return new_seq, metadata


def lock(sequence: TokenSequence, locked_by: str, authorized: bool = True, now: Optional[float] = None) -> TokenSequence:
    """Freezes new issuance. Locking an already locked sequence is a no-op."""
    if not authorized:
        raise UnauthorizedError(f"{locked_by} is not allowed to lock {sequence.collection_name}")
    if sequence.locked:
        logger.warning(f"Token sequence already locked for {sequence.collection_name}")
        return sequence
    logger.info(f"Token sequence locked for {sequence.collection_name} by {locked_by}")
    return sequence.model_copy(update={
        "locked": True,
        "locked_by": locked_by,
        "lock_timestamp": time.time() if now is None else now,
        "version": sequence.version + 1,
    })


def force_unlock(sequence: TokenSequence, by: str, authorized: bool) -> TokenSequence:
    """Reopens a locked sequence. The caller decides whether ``by`` may do this."""
    if not authorized:
        raise UnauthorizedError(f"{by} is not allowed to unlock {sequence.collection_name}")
    logger.warning(f"Token sequence force unlocked for {sequence.collection_name} by {by}")
    return sequence.model_copy(update={
        "locked": False,
        "locked_by": None,
        "lock_timestamp": None,
        "version": sequence.version + 1,
    })


def update_total_supply(sequence: TokenSequence, new_total: int, authorized: bool = True) -> TokenSequence:
    """
    Changes the supply ceiling of an unlocked sequence.

    Raises:
        UnauthorizedError: If the caller was not authorized.
        SequenceLockedError: If the sequence is locked.
        InvalidInputError: If ``new_total`` is below the number of reserved IDs.
    """
    if not authorized:
        raise UnauthorizedError(f"Not allowed to resize {sequence.collection_name}")
    require_amount(new_total, "new_total")
    if sequence.locked:
        raise SequenceLockedError(f"Cannot update total supply for locked collection {sequence.collection_name}")
    if new_total < sequence.reserved_count:
        raise InvalidInputError(
            f"New total supply {new_total} cannot be less than reserved tokens {sequence.reserved_count}"
        )
    logger.info(f"Total supply updated for {sequence.collection_name}: {sequence.total_supply} -> {new_total}")
    return sequence.model_copy(update={"total_supply": new_total, "version": sequence.version + 1})


def validate_consistency(sequence: TokenSequence) -> ConsistencyReport:
    """Audits the sequence and lists every violated invariant."""
    issues: List[str] = []
    ids = sorted(reservation.token_id for reservation in sequence.reservations)

    for index, token_id in enumerate(ids):
        expected = index + 1
        if token_id != expected:
            issues.append(f"Token ID gap detected: expected {expected}, found {token_id}")
            break
    if len(set(ids)) != len(ids):
        issues.append("Duplicate token IDs reserved")

    expected_next = len(ids) + 1
    if sequence.next_token_id != expected_next:
        issues.append(f"Next token ID mismatch: expected {expected_next}, found {sequence.next_token_id}")
    if len(ids) > sequence.total_supply:
        issues.append(f"Reserved tokens ({len(ids)}) exceed total supply ({sequence.total_supply})")
    if sequence.next_token_id - 1 > sequence.total_supply:
        issues.append(f"Next token ID {sequence.next_token_id} is past total supply {sequence.total_supply}")

    if issues:
        logger.warning(f"Consistency issues for {sequence.collection_name}: {issues}")
    return ConsistencyReport(
        valid=not issues,
        issues=issues,
        reserved_count=len(ids),
        next_token_id=sequence.next_token_id,
        total_supply=sequence.total_supply,
    )
