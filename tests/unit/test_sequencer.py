import random

import pytest

from mcp_nft_launchpad import sequencer
from mcp_nft_launchpad.errors import (
    InvalidInputError,
    SequenceLockedError,
    SupplyExceededError,
    UnauthorizedError,
    WalletLimitExceededError,
)


def reserve_many(sequence, count, wallet="wallet_a"):
    for index in range(count):
        sequence, _ = sequencer.reserve(sequence, f"mint_{sequence.next_token_id}", wallet, now=1_700_000_000 + index)
    return sequence


def test_reservations_are_sequential_until_supply_runs_out():
    sequence = sequencer.new_sequence("Los Bros", 3)

    issued = []
    for mint in ("MintA", "MintB", "MintC"):
        sequence, metadata = sequencer.reserve(sequence, mint, "wallet_a", now=1_700_000_000)
        issued.append(metadata.token_id)
    assert issued == [1, 2, 3]

    with pytest.raises(SupplyExceededError):
        sequencer.reserve(sequence, "MintD", "wallet_a")
    assert sequence.next_token_id == 4


def test_reservation_metadata():
    sequence = sequencer.new_sequence("Los Bros", 10)
    sequence, metadata = sequencer.reserve(sequence, "MintA", "wallet_a", now=1_700_000_000)

    assert metadata.token_id == 1
    assert metadata.collection_name == "Los Bros"
    assert metadata.metadata_uri == "https://metadata.launchonlos.fun/los_bros/1.json"
    assert metadata.attributes.blockchain_reference == "mint_MintA_token_1"
    assert metadata.attributes.mint_timestamp == 1_700_000_000
    assert metadata.locked_by == "wallet_a"
    assert sequencer.get_locked_metadata(sequence, 1) == metadata
    assert sequencer.get_locked_metadata(sequence, 2) is None


def test_locking_freezes_issuance_but_keeps_reservations():
    sequence = reserve_many(sequencer.new_sequence("Los Bros", 10), 2)
    sequence = sequencer.lock(sequence, "creator")

    assert sequence.locked is True
    assert sequence.locked_by == "creator"
    with pytest.raises(SequenceLockedError):
        sequencer.reserve(sequence, "MintC", "wallet_a")
    assert sequencer.get_locked_metadata(sequence, 1).token_id == 1
    assert sequencer.get_locked_metadata(sequence, 2).token_id == 2


def test_lock_before_first_reservation_still_allows_token_one():
    sequence = sequencer.lock(sequencer.new_sequence("Los Bros", 10), "creator")

    sequence, metadata = sequencer.reserve(sequence, "MintA", "wallet_a")
    assert metadata.token_id == 1
    with pytest.raises(SequenceLockedError):
        sequencer.reserve(sequence, "MintB", "wallet_a")


def test_lock_is_idempotent():
    sequence = sequencer.lock(sequencer.new_sequence("Los Bros", 10), "creator")
    assert sequencer.lock(sequence, "someone_else") is sequence


def test_lock_requires_authorization():
    with pytest.raises(UnauthorizedError):
        sequencer.lock(sequencer.new_sequence("Los Bros", 10), "stranger", authorized=False)


def test_force_unlock():
    sequence = sequencer.lock(reserve_many(sequencer.new_sequence("Los Bros", 10), 2), "creator")

    with pytest.raises(UnauthorizedError):
        sequencer.force_unlock(sequence, "stranger", authorized=False)

    sequence = sequencer.force_unlock(sequence, "admin", authorized=True)
    assert sequence.locked is False
    assert sequence.locked_by is None
    sequence, metadata = sequencer.reserve(sequence, "MintC", "wallet_a")
    assert metadata.token_id == 3


def test_wallet_limit():
    sequence = reserve_many(sequencer.new_sequence("Los Bros", 10, max_mints_per_wallet=2), 2, "wallet_a")

    with pytest.raises(WalletLimitExceededError):
        sequencer.reserve(sequence, "MintC", "wallet_a")
    sequence, metadata = sequencer.reserve(sequence, "MintC", "wallet_b")
    assert metadata.token_id == 3
    assert sequencer.wallet_mint_count(sequence, "wallet_a") == 2


def test_update_total_supply():
    sequence = reserve_many(sequencer.new_sequence("Los Bros", 10), 3)

    sequence = sequencer.update_total_supply(sequence, 3)
    assert sequence.total_supply == 3
    with pytest.raises(InvalidInputError):
        sequencer.update_total_supply(sequence, 2)
    with pytest.raises(UnauthorizedError):
        sequencer.update_total_supply(sequence, 20, authorized=False)
    with pytest.raises(SequenceLockedError):
        sequencer.update_total_supply(sequencer.lock(sequence, "creator"), 20)


def test_new_sequence_validation():
    with pytest.raises(InvalidInputError):
        sequencer.new_sequence("", 10)
    with pytest.raises(InvalidInputError):
        sequencer.new_sequence("Los Bros", 0)
    with pytest.raises(InvalidInputError):
        sequencer.new_sequence("Los Bros", 10, max_mints_per_wallet=0)


def test_consistency_report_for_healthy_sequence():
    sequence = reserve_many(sequencer.new_sequence("Los Bros", 10), 4)
    report = sequencer.validate_consistency(sequence)

    assert report.valid is True
    assert report.issues == []
    assert report.reserved_count == 4
    assert report.next_token_id == 5


def test_consistency_report_flags_tampered_counter():
    sequence = reserve_many(sequencer.new_sequence("Los Bros", 10), 2)
    tampered = sequence.model_copy(update={"next_token_id": 5})
    report = sequencer.validate_consistency(tampered)

    assert report.valid is False
    assert any("Next token ID mismatch" in issue for issue in report.issues)


def test_consistency_report_flags_gaps():
    sequence = reserve_many(sequencer.new_sequence("Los Bros", 10), 3)
    gapped = sequence.model_copy(update={"reservations": sequence.reservations[:1] + sequence.reservations[2:]})
    report = sequencer.validate_consistency(gapped)

    assert report.valid is False
    assert any("gap" in issue for issue in report.issues)


def test_metadata_uri_slug():
    assert sequencer.metadata_uri("  Los   Bros ", 7, "https://example.com/") == "https://example.com/los_bros/7.json"


def test_hundred_reservations_exhaust_supply_of_hundred():
    sequence = reserve_many(sequencer.new_sequence("Los Bros", 100), 100)

    assert [reservation.token_id for reservation in sequence.reservations] == list(range(1, 101))
    with pytest.raises(SupplyExceededError):
        sequencer.reserve(sequence, "MintOverflow", "wallet_a")
    assert sequence.next_token_id == 101
    assert sequencer.validate_consistency(sequence).valid is True


def test_force_unlock_resumes_at_locked_position():
    sequence = reserve_many(sequencer.new_sequence("Los Bros", 10), 4)
    assert sequence.next_token_id == 5

    sequence = sequencer.lock(sequence, "creator")
    with pytest.raises(SequenceLockedError):
        sequencer.reserve(sequence, "MintE", "wallet_a")
    assert sequence.next_token_id == 5

    sequence = sequencer.force_unlock(sequence, "admin", authorized=True)
    sequence, metadata = sequencer.reserve(sequence, "MintE", "wallet_a")
    assert metadata.token_id == 5


@pytest.mark.parametrize("seed", [1, 7, 42, 2024])
def test_mixed_operations_keep_ids_contiguous(seed):
    rng = random.Random(seed)
    sequence = sequencer.new_sequence("Los Bros", 20)

    for step in range(200):
        action = rng.choice(["reserve", "reserve", "reserve", "lock", "unlock", "resize"])
        try:
            if action == "reserve":
                sequence, _ = sequencer.reserve(sequence, f"mint_{step}", f"wallet_{rng.randint(1, 5)}")
            elif action == "lock":
                sequence = sequencer.lock(sequence, "creator")
            elif action == "unlock":
                sequence = sequencer.force_unlock(sequence, "admin", authorized=True)
            else:
                sequence = sequencer.update_total_supply(sequence, rng.randint(1, 40))
        except (SequenceLockedError, SupplyExceededError, InvalidInputError):
            pass

        report = sequencer.validate_consistency(sequence)
        assert report.valid is True, report.issues
        ids = [reservation.token_id for reservation in sequence.reservations]
        assert ids == list(range(1, len(ids) + 1))
        assert sequence.next_token_id == len(ids) + 1
