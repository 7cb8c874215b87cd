"""
Pytest configuration and shared trees for the fulfillment tests.
"""

import pytest

from fulfillment import Arena, FulfillmentEngine, Settings


@pytest.fixture
def settings():
    """Short peer timeout so fail-open tests finish quickly."""
    return Settings(remote_lookup_timeout=0.05, social_distribution_depth=5)


@pytest.fixture
def arena():
    return Arena()


@pytest.fixture
def engine(arena, settings):
    return FulfillmentEngine(arena=arena, settings=settings)


@pytest.fixture
def worked_example(engine):
    """
    R has need1 (50 points, typed alice) and need2 (30 points, typed bob).
    Both are contribution leaves.
    """
    alice = engine.add_root("alice", node_id="alice")
    bob = engine.add_root("bob", node_id="bob")
    root = engine.add_root("R", node_id="R")
    need1 = engine.add_child(root, "need1", points=50, type_ids=[alice], node_id="need1")
    need2 = engine.add_child(root, "need2", points=30, type_ids=[bob], node_id="need2")
    return {"alice": alice, "bob": bob, "R": root, "need1": need1, "need2": need2}


@pytest.fixture
def reciprocal(engine):
    """
    Two contributors who allocate toward each other, plus a third who
    only receives.

        alice: 60 -> bob, 40 -> carol
        bob:   30 -> alice, 70 unfulfilled need
        carol: nothing
    """
    alice = engine.add_root("alice", node_id="alice")
    bob = engine.add_root("bob", node_id="bob")
    carol = engine.add_root("carol", node_id="carol")

    engine.add_child(alice, "to bob", points=60, type_ids=[bob], node_id="a_bob")
    engine.add_child(alice, "to carol", points=40, type_ids=[carol], node_id="a_carol")

    engine.add_child(bob, "to alice", points=30, type_ids=[alice], node_id="b_alice")
    engine.add_child(bob, "unmet", points=70, node_id="b_unmet")
    return {"alice": alice, "bob": bob, "carol": carol}
