import pytest

from mcp_nft_launchpad import bonding_curve, bridge, sequencer
from mcp_nft_launchpad.errors import StaleStateError
from mcp_nft_launchpad.schemas import CollectionRecord, CurveConfig
from mcp_nft_launchpad.state_store import MODULE_DIR, StateStore, resolve_state_dir

USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def make_record(collection_id="los_bros"):
    curve = CurveConfig(virtual_reserve=30_000_000, virtual_supply=1_000_000_000, reveal_cap=10_000_000)
    return CollectionRecord(
        collection_id=collection_id,
        name="Los Bros",
        symbol="BROS",
        creator="creator_wallet",
        curve=curve,
        state=bonding_curve.initial_state(curve),
        sequence=sequencer.new_sequence("Los Bros", 100),
        created_at=1_700_000_000,
    )


def test_save_and_reload_collection(tmp_path):
    store = StateStore(tmp_path)
    stored = store.save_collection(make_record(), expected_revision=None)
    assert stored.revision == 0

    reloaded = StateStore(tmp_path)
    reloaded.load()
    assert reloaded.get_collection("los_bros") == stored
    assert [record.collection_id for record in reloaded.list_collections()] == ["los_bros"]


def test_collection_saves_are_compare_and_swap(tmp_path):
    store = StateStore(tmp_path)
    record = store.save_collection(make_record(), expected_revision=None)

    sequence, _ = sequencer.reserve(record.sequence, "MintA", "wallet_a")
    updated = store.save_collection(record.model_copy(update={"sequence": sequence}), expected_revision=0)
    assert updated.revision == 1

    # A writer that loaded revision 0 lost the race
    with pytest.raises(StaleStateError):
        store.save_collection(record, expected_revision=0)
    # Creating over an existing record is refused too
    with pytest.raises(StaleStateError):
        store.save_collection(make_record(), expected_revision=None)
    assert store.get_collection("los_bros").sequence.next_token_id == 2


def test_save_and_reload_pool(tmp_path):
    store = StateStore(tmp_path)
    pool, _ = bridge.add_liquidity(bridge.new_pool(USDC, "USDC", "los_bros"), "lp_one", 1_000, 10)
    store.save_pool(pool, expected_version=None)

    with pytest.raises(StaleStateError):
        store.save_pool(pool, expected_version=None)

    reloaded = StateStore(tmp_path)
    reloaded.load()
    assert reloaded.get_pool(pool.pool_id) == pool
    assert reloaded.list_pools("los_bros") == [pool]
    assert reloaded.list_pools("other") == []


def test_load_skips_invalid_files(tmp_path):
    store = StateStore(tmp_path)
    store.save_collection(make_record(), expected_revision=None)
    (tmp_path / "collections" / "broken.json").write_text("{not json")
    (tmp_path / "collections" / "invalid.json").write_text('{"collection_id": "x"}')

    reloaded = StateStore(tmp_path)
    reloaded.load()
    assert list(reloaded.collections) == ["los_bros"]


def test_load_from_missing_directory(tmp_path):
    store = StateStore(tmp_path / "missing")
    store.load()
    assert store.collections == {}
    assert store.pools == {}


def test_resolve_state_dir(tmp_path):
    assert resolve_state_dir("launchpad_state") == MODULE_DIR / "launchpad_state"
    assert resolve_state_dir(tmp_path) == tmp_path
