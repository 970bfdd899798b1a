# tests/test_store_map.py
from types import SimpleNamespace

from app.services.store_map import (
    EntityLedger, Failed, LedgerBatch, MapUpdate, NotSynced, Synced,
    merge_store_ids, product_sync_state, remote_id_of,
)


def test_map_update_merge_keeps_other_store_keys():
    current = {"s1": "gid://1", "s2": "gid://2"}
    merged = MapUpdate().set("s3", "gid://3").merge(current)

    assert merged == {"s1": "gid://1", "s2": "gid://2", "s3": "gid://3"}
    assert current == {"s1": "gid://1", "s2": "gid://2"}


def test_map_update_delete_and_set_last_wins():
    update = MapUpdate().set("s1", "a").delete("s1")
    assert update.merge({"s1": "old", "s2": "b"}) == {"s2": "b"}

    update = MapUpdate().delete("s1").set("s1", "new")
    assert update.merge({"s1": "old"}) == {"s1": "new"}


def test_map_update_keys_are_strings():
    assert MapUpdate().set(7, "x").merge(None) == {"7": "x"}


def test_entity_ledger_applies_one_assignment_per_column():
    entity = SimpleNamespace(shopify_product_ids={"s1": "p1"}, sync_statuses=None)
    ledger = EntityLedger(entity)
    ledger.set("shopify_product_ids", "s2", "p2").set("sync_statuses", "s2", "synced")

    touched = ledger.apply()

    assert sorted(touched) == ["shopify_product_ids", "sync_statuses"]
    assert entity.shopify_product_ids == {"s1": "p1", "s2": "p2"}
    assert entity.sync_statuses == {"s2": "synced"}
    assert ledger.apply() == []


def test_ledger_batch_groups_by_entity():
    a = SimpleNamespace(m=None)
    b = SimpleNamespace(m={"x": 1})
    batch = LedgerBatch()
    batch.for_entity(a).set("m", "s1", 1)
    batch.for_entity(a).set("m", "s2", 2)
    batch.for_entity(b).delete("m", "x")

    assert len(batch) == 2
    assert batch.apply() == 2
    assert a.m == {"s1": 1, "s2": 2}
    assert b.m == {}


def test_merge_store_ids_is_ordered_union():
    assert merge_store_ids(["a", "b"], ["b", "c"]) == ["a", "b", "c"]
    assert merge_store_ids(None, ["a", "a"]) == ["a"]


def _product(**maps):
    fields = dict(shopify_product_ids={}, shopify_handles={}, shopify_statuses={}, sync_statuses={}, sync_errors={})
    fields.update(maps)
    return SimpleNamespace(**fields)


def test_product_sync_state_variants():
    assert product_sync_state(_product(), "s1") == NotSynced()

    synced = product_sync_state(_product(
        shopify_product_ids={"s1": "gid://p"}, shopify_handles={"s1": "shirt"}, sync_statuses={"s1": "synced"},
    ), "s1")
    assert synced == Synced(remote_id="gid://p", remote_handle="shirt", remote_status=None)

    failed = product_sync_state(_product(
        shopify_product_ids={"s1": "gid://p"},
        sync_statuses={"s1": "failed"},
        sync_errors={"s1": {"message": "boom", "attemptedAt": "2026-01-01T00:00:00"}},
    ), "s1")
    assert isinstance(failed, Failed)
    assert failed.error_message == "boom"
    assert remote_id_of(failed) == "gid://p"


def test_failed_before_creation_has_no_remote_id():
    state = product_sync_state(_product(sync_statuses={"s1": "failed"}, sync_errors={"s1": "legacy text"}), "s1")
    assert state == Failed(error_message="legacy text")
    assert remote_id_of(state) is None
    assert remote_id_of(NotSynced()) is None
