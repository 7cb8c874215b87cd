"""Test the node store adapter: loading, write-through and remote changes."""

import pytest

from fulfillment import (
    SHARES_FIELD,
    Arena,
    ArenaPeerLookup,
    ChainedPeerLookup,
    StorePeerLookup,
    FulfillmentEngine,
    MemoryStore,
    StoreSync,
    StructuralError,
    StructuralErrorKind,
)


@pytest.fixture
def store():
    return MemoryStore()


def seed_store(store):
    """Write a small tree straight into the store, as a remote replica would."""
    records = [
        {"id": "alice", "name": "alice", "points": 0, "parent_id": None, "children": [], "types": []},
        {"id": "me", "name": "me", "points": 0, "parent_id": None, "children": ["food", "rest"], "types": []},
        {"id": "food", "name": "food", "points": 30, "parent_id": "me", "children": [], "types": ["alice"]},
        {"id": "rest", "name": "rest", "points": 10, "parent_id": "me", "children": [], "types": []},
    ]
    for record in records:
        store.put_record(record)


def test_memory_store_delivers_every_put(store):
    seen = []
    unsubscribe = store.subscribe("n1", lambda node_id, field, value: seen.append((field, value)))

    store.put("n1", "points", 5)
    store.put("n1", "points", 5)
    assert seen == [("points", 5), ("points", 5)], "Delivery repeats unchanged values"
    assert store.get("n1") == {"id": "n1", "points": 5}

    unsubscribe()
    store.put("n1", "points", 6)
    assert len(seen) == 2


def test_load_tree(store, settings):
    seed_store(store)
    engine = FulfillmentEngine(settings=settings, store=store)

    assert engine.load("alice") == 1
    assert engine.load("me") == 3
    assert engine.is_contribution("food")
    assert engine.fulfilled("me") == pytest.approx(0.75)
    assert engine.arena.instances("me", "alice") == {"food"}


def test_load_rejects_mismatched_parent(store):
    seed_store(store)
    store.put("rest", "parent_id", "someone-else")
    sync = StoreSync(store, Arena())

    with pytest.raises(StructuralError) as info:
        sync.load("me")
    assert info.value.kind == StructuralErrorKind.NOT_A_CHILD


def test_load_drops_missing_children(store):
    seed_store(store)
    store.delete("rest")
    arena = Arena()
    StoreSync(store, arena).load("me")
    assert arena.get("me").children == ["food"]


def test_local_mutations_write_through(store, settings):
    engine = FulfillmentEngine(settings=settings, store=store)
    root = engine.add_root("me", node_id="me")
    child = engine.add_child(root, "food", points=5, node_id="food")

    assert store.get("me")["children"] == ["food"]
    assert store.get("food")["points"] == 5
    assert store.get("food")["parent_id"] == "me"

    engine.set_points(child, 8)
    engine.set_manual_fulfillment(child, 0.3)
    engine.add_type(child, "category:meals")
    assert store.get("food")["points"] == 8
    assert store.get("food")["manual_fulfillment"] == 0.3
    assert store.get("food")["types"] == ["category:meals"]

    engine.remove_child(root, child)
    assert store.get("food") is None
    assert store.get("me")["children"] == []


def test_echoes_do_not_invalidate(store, settings):
    """Our own writes come back through the subscription without a version bump."""
    engine = FulfillmentEngine(settings=settings, store=store)
    root = engine.add_root("me", node_id="me")
    engine.add_child(root, "food", points=5, node_id="food")
    version = engine.arena.version

    engine.set_points("food", 9)
    assert engine.arena.version == version + 1

    # Redelivery of the same value
    store.put("food", "points", 9)
    assert engine.arena.version == version + 1


def test_remote_changes_invalidate(store, settings):
    seed_store(store)
    engine = FulfillmentEngine(settings=settings, store=store)
    engine.load("alice")
    engine.load("me")
    assert engine.fulfilled("me") == pytest.approx(0.75)

    # Another replica rebalances points
    store.put("rest", "points", 30)
    assert engine.arena.get("rest").points == 30
    assert engine.fulfilled("me") == pytest.approx(0.5)

    # ... tags the remaining need
    store.put("rest", "types", ["alice"])
    assert engine.fulfilled("me") == pytest.approx(1.0)
    assert engine.arena.instances("me", "alice") == {"food", "rest"}

    # ... and adds a new sub-need under a fresh node
    store.put_record({"id": "sleep", "name": "sleep", "points": 20, "parent_id": "me", "children": [], "types": []})
    store.put("me", "children", ["food", "rest", "sleep"])
    assert "sleep" in engine.arena
    assert engine.fulfilled("me") == pytest.approx(60 / 80)


def test_remote_removal(store, settings):
    seed_store(store)
    engine = FulfillmentEngine(settings=settings, store=store)
    engine.load("alice")
    engine.load("me")

    store.put("me", "children", ["food"])
    assert "rest" not in engine.arena
    assert engine.fulfilled("me") == pytest.approx(1.0)


def test_remote_invalid_values(store, settings):
    seed_store(store)
    engine = FulfillmentEngine(settings=settings, store=store)
    engine.load("me")

    store.put("rest", "points", -4)
    assert engine.arena.get("rest").points == 10, "Negative remote points are ignored"

    store.put("me", "manual_fulfillment", 3.0)
    assert engine.arena.get("me").manual_fulfillment == 1.0

    store.put("me", "manual_fulfillment", float("nan"))
    assert engine.arena.get("me").manual_fulfillment == 1.0, "NaN remote fulfillment is ignored"


def test_remote_child_with_invalid_record_is_skipped(store, settings):
    seed_store(store)
    engine = FulfillmentEngine(settings=settings, store=store)
    engine.load("me")

    store.put_record({"id": "bad", "name": "bad", "points": -5, "parent_id": "me", "children": [], "types": []})
    store.put_record({"id": "extra", "name": "extra", "points": 5, "parent_id": "me", "children": [], "types": []})
    store.put("me", "children", ["food", "rest", "bad", "extra"])

    assert "bad" not in engine.arena
    assert engine.arena.get("extra").points == 5
    assert engine.arena.get("me").children == ["food", "rest", "extra"]


@pytest.mark.asyncio
async def test_publish_shares_feeds_store_lookup(settings):
    """Shares published by one engine are the remote half for another."""
    shared = MemoryStore()

    bob_engine = FulfillmentEngine(settings=settings, store=shared)
    bob_engine.add_root("alice", node_id="alice")
    bob = bob_engine.add_root("bob", node_id="bob")
    bob_engine.add_child(bob, "to alice", points=1, type_ids=["alice"])
    bob_engine.add_child(bob, "unmet", points=3)
    assert bob_engine.publish_shares(bob) == pytest.approx({"alice": 0.25})
    assert shared.get("bob")[SHARES_FIELD] == pytest.approx({"alice": 0.25})

    # Alice's side holds her own tree and only a stub root for bob
    arena = Arena()
    lookup = ChainedPeerLookup(ArenaPeerLookup(arena), StorePeerLookup(shared))
    alice_engine = FulfillmentEngine(arena=arena, settings=settings, peer_lookup=lookup)
    alice_engine.add_root("bob", node_id="bob")
    alice = alice_engine.add_root("alice", node_id="alice")
    alice_engine.add_child(alice, "to bob", points=1, type_ids=["bob"])

    assert await alice_engine.mutual_fulfillment(alice, "bob") == pytest.approx(0.25)
    assert await alice_engine.mutual_fulfillment_distribution(alice) == pytest.approx({"bob": 1.0})


@pytest.mark.asyncio
async def test_store_lookup_without_published_shares(settings):
    lookup = StorePeerLookup(MemoryStore())
    assert await lookup.share_of_general_contribution("bob", "alice") is None


@pytest.mark.asyncio
async def test_store_lookup_ignores_malformed_shares(settings):
    shared = MemoryStore()
    shared.put("bob", SHARES_FIELD, [0.5])
    lookup = StorePeerLookup(shared)
    assert await lookup.share_of_general_contribution("bob", "alice") is None

    arena = Arena()
    chained = ChainedPeerLookup(ArenaPeerLookup(arena), lookup)
    engine = FulfillmentEngine(arena=arena, settings=settings, peer_lookup=chained)
    engine.add_root("bob", node_id="bob")
    alice = engine.add_root("alice", node_id="alice")
    engine.add_child(alice, "to bob", points=1, type_ids=["bob"])
    assert await engine.mutual_fulfillment(alice, "bob") == 0.0
