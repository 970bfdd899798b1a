"""
Store Map - per-store identifier ledger

Every synced entity keeps JSON maps keyed by store id (product ids, handles,
variant ids, inventory item ids, ...). Writes to these maps are collected as
MapUpdate objects and merged into the current column value in one assignment
per entity, so keys belonging to other stores are never overwritten.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set, Union
import logging

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def store_key(store_id: Any) -> str:
    """Map keys are always the string form of the store id"""
    return str(store_id)


class MapUpdate:
    """Pending set/delete operations for one JSON map column"""

    def __init__(self):
        self._sets: Dict[str, Any] = {}
        self._deletes: Set[str] = set()

    def set(self, store_id: Any, value: Any) -> "MapUpdate":
        key = store_key(store_id)
        self._sets[key] = value
        self._deletes.discard(key)
        return self

    def delete(self, store_id: Any) -> "MapUpdate":
        key = store_key(store_id)
        self._sets.pop(key, None)
        self._deletes.add(key)
        return self

    def is_empty(self) -> bool:
        return not self._sets and not self._deletes

    def merge(self, current: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Return a new map: current value with this update applied"""
        merged = dict(current or {})
        for key in self._deletes:
            merged.pop(key, None)
        merged.update(self._sets)
        return merged

    def __repr__(self) -> str:
        return f"MapUpdate(sets={self._sets}, deletes={sorted(self._deletes)})"


class EntityLedger:
    """All pending map updates for one entity"""

    def __init__(self, entity: Any):
        self.entity = entity
        self.columns: Dict[str, MapUpdate] = {}

    def column(self, name: str) -> MapUpdate:
        if name not in self.columns:
            self.columns[name] = MapUpdate()
        return self.columns[name]

    def set(self, name: str, store_id: Any, value: Any) -> "EntityLedger":
        self.column(name).set(store_id, value)
        return self

    def delete(self, name: str, store_id: Any) -> "EntityLedger":
        self.column(name).delete(store_id)
        return self

    def apply(self, db: Optional[Session] = None) -> List[str]:
        """
        Read-merge-write every touched column.
        With a session the current values are re-read first.
        """
        touched = [name for name, update in self.columns.items() if not update.is_empty()]
        if not touched:
            return []

        if db is not None and self.entity in db and self.entity.id is not None:
            db.flush()
            db.refresh(self.entity, attribute_names=touched)

        for name in touched:
            setattr(self.entity, name, self.columns[name].merge(getattr(self.entity, name)))
        self.columns.clear()
        return touched


class LedgerBatch:
    """Collects EntityLedgers for a sync pass and applies them together"""

    def __init__(self):
        self._ledgers: Dict[int, EntityLedger] = {}

    def __len__(self) -> int:
        return len(self._ledgers)

    def for_entity(self, entity: Any) -> EntityLedger:
        key = id(entity)
        if key not in self._ledgers:
            self._ledgers[key] = EntityLedger(entity)
        return self._ledgers[key]

    def apply(self, db: Optional[Session] = None) -> int:
        applied = 0
        for ledger in self._ledgers.values():
            if ledger.apply(db):
                applied += 1
        self._ledgers.clear()
        logger.debug(f"Applied store map updates to {applied} entities")
        return applied


def apply_now(db: Session, entity: Any, name: str, store_id: Any, value: Any) -> None:
    """Single-key write outside a batch"""
    EntityLedger(entity).set(name, store_id, value).apply(db)


def merge_store_ids(current: Optional[Iterable[Any]], new_ids: Iterable[Any]) -> List[str]:
    """Ordered union of store id lists"""
    merged: List[str] = []
    for store_id in list(current or []) + list(new_ids):
        key = store_key(store_id)
        if key not in merged:
            merged.append(key)
    return merged


# ========== Sync State ==========

@dataclass(frozen=True)
class NotSynced:
    pass


@dataclass(frozen=True)
class Synced:
    remote_id: str
    remote_handle: Optional[str] = None
    remote_status: Optional[str] = None


@dataclass(frozen=True)
class Failed:
    error_message: str
    attempted_at: Optional[str] = None
    # A failure after the remote product was created keeps its id
    remote_id: Optional[str] = None


SyncState = Union[NotSynced, Synced, Failed]


def product_sync_state(product: Any, store_id: Any) -> SyncState:
    """Explicit sync state of a product on one store"""
    key = store_key(store_id)
    remote_id = (product.shopify_product_ids or {}).get(key)
    status = (product.sync_statuses or {}).get(key)

    if status == "failed":
        error = (product.sync_errors or {}).get(key) or {}
        if isinstance(error, str):
            error = {"message": error}
        return Failed(
            error_message=error.get("message") or "",
            attempted_at=error.get("attemptedAt"),
            remote_id=remote_id,
        )
    if remote_id:
        return Synced(
            remote_id=remote_id,
            remote_handle=(product.shopify_handles or {}).get(key),
            remote_status=(product.shopify_statuses or {}).get(key),
        )
    return NotSynced()


def remote_id_of(state: SyncState) -> Optional[str]:
    return getattr(state, "remote_id", None)
