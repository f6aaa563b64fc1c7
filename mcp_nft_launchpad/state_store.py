import json
import os
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import ValidationError

from mcp_nft_launchpad.errors import StaleStateError
from mcp_nft_launchpad.schemas import CollectionRecord, LiquidityPool
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

# Determine the absolute path to the directory containing this file
MODULE_DIR = Path(__file__).parent.resolve()

COLLECTIONS_SUBDIR = "collections"
POOLS_SUBDIR = "pools"


def resolve_state_dir(state_dir: Union[str, Path]) -> Path:
    """Relative state directories are resolved against this module's location."""
    path = Path(state_dir)
    return path if path.is_absolute() else MODULE_DIR / path


class StateStore:
    """
    JSON-file persistence for collection records and bridge pools.

    Each collection record and each pool is stored in its own file. Saves are optimistic
    compare-and-swap operations: the caller passes the revision (collections) or version (pools)
    it loaded, and the save is refused with StaleStateError if someone else saved in between.
    """

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir)
        self.collections: Dict[str, CollectionRecord] = {}
        self.pools: Dict[str, LiquidityPool] = {}

    # --- Loading ---

    def load(self) -> None:
        """Loads every stored collection and pool, skipping files that fail validation."""
        self.collections = {
            record.collection_id: record
            for record in self._load_dir(self.base_dir / COLLECTIONS_SUBDIR, CollectionRecord)
        }
        self.pools = {pool.pool_id: pool for pool in self._load_dir(self.base_dir / POOLS_SUBDIR, LiquidityPool)}
        logger.info(f"Finished loading state. Collections: {len(self.collections)}, pools: {len(self.pools)}")

    def _load_dir(self, path: Path, model) -> List:
        if not path.is_dir():
            logger.warning(f"State directory not found: {path}. Nothing loaded.")
            return []

        loaded = []
        for file_path in sorted(path.glob("*.json")):
            try:
                with open(file_path, "r") as f:
                    loaded.append(model.model_validate(json.load(f)))
            except json.JSONDecodeError:
                logger.error(f"Error decoding JSON from file: {file_path}")
            except ValidationError as e:
                logger.error(f"Invalid state in file {file_path}: {e}")
        return loaded

    def _write(self, subdir: str, name: str, payload: dict) -> None:
        directory = self.base_dir / subdir
        directory.mkdir(parents=True, exist_ok=True)
        file_path = directory / f"{name}.json"
        tmp_path = file_path.with_suffix(".json.tmp")
        with open(tmp_path, "w") as f:
            json.dump(payload, f, indent=4)
        os.replace(tmp_path, file_path)
        logger.debug(f"Saved state to {file_path}")

    # --- Collections ---

    def get_collection(self, collection_id: str) -> Optional[CollectionRecord]:
        return self.collections.get(collection_id)

    def list_collections(self) -> List[CollectionRecord]:
        return list(self.collections.values())

    def save_collection(self, record: CollectionRecord, expected_revision: Optional[int]) -> CollectionRecord:
        """
        Stores ``record`` if the stored revision still equals ``expected_revision``.

        Pass ``expected_revision=None`` to create a record that must not exist yet.

        Returns:
            The stored record with its new revision.

        Raises:
            StaleStateError: If the stored revision differs from ``expected_revision``.
        """
        current = self.collections.get(record.collection_id)
        current_revision = current.revision if current else None
        if current_revision != expected_revision:
            raise StaleStateError(
                f"Collection {record.collection_id} is at revision {current_revision}, expected {expected_revision}"
            )

        stored = record.model_copy(update={"revision": 0 if current is None else current.revision + 1})
        self._write(COLLECTIONS_SUBDIR, stored.collection_id, stored.model_dump(mode="json"))
        self.collections[stored.collection_id] = stored
        logger.info(f"Saved collection {stored.collection_id} at revision {stored.revision}")
        return stored

    # --- Pools ---

    def get_pool(self, pool_id: str) -> Optional[LiquidityPool]:
        return self.pools.get(pool_id)

    def list_pools(self, collection_id: Optional[str] = None) -> List[LiquidityPool]:
        return [
            pool for pool in self.pools.values()
            if collection_id is None or pool.collection_id == collection_id
        ]

    def save_pool(self, pool: LiquidityPool, expected_version: Optional[int]) -> LiquidityPool:
        """
        Stores ``pool`` if the stored pool is still at ``expected_version``.

        Raises:
            StaleStateError: If another save happened since ``expected_version`` was loaded.
        """
        current = self.pools.get(pool.pool_id)
        current_version = current.version if current else None
        if current_version != expected_version:
            raise StaleStateError(f"Pool {pool.pool_id} is at version {current_version}, expected {expected_version}")

        self._write(POOLS_SUBDIR, pool.pool_id, pool.model_dump(mode="json"))
        self.pools[pool.pool_id] = pool
        logger.info(f"Saved pool {pool.pool_id} at version {pool.version}")
        return pool
