"""Test the transitive social distribution."""

import numpy as np
import pytest


@pytest.fixture
def chain(engine):
    """
    alice <-> bob <-> carol, with alice and carol not recognizing each other.

        alice: 100 -> bob
        bob:   50 -> alice, 50 -> carol
        carol: 100 -> bob
    """
    for name in ("alice", "bob", "carol"):
        engine.add_root(name, node_id=name)
    engine.add_child("alice", "to bob", points=100, type_ids=["bob"])
    engine.add_child("bob", "to alice", points=50, type_ids=["alice"])
    engine.add_child("bob", "to carol", points=50, type_ids=["carol"])
    engine.add_child("carol", "to bob", points=100, type_ids=["bob"])
    return engine


@pytest.mark.asyncio
async def test_direct_only_at_depth_zero(chain):
    assert await chain.social_distribution("alice", max_depth=0) == pytest.approx({"bob": 1.0})


@pytest.mark.asyncio
async def test_transitive_reach(chain):
    """alice reaches carol through bob's half-share to carol."""
    distribution = await chain.social_distribution("alice", max_depth=2)

    # direct bob = 1.0, carol via bob = 1.0 * 0.5, alice itself is never revisited
    assert set(distribution) == {"bob", "carol"}
    assert distribution["bob"] == pytest.approx(1.0 / 1.5)
    assert distribution["carol"] == pytest.approx(0.5 / 1.5)
    assert np.isclose(sum(distribution.values()), 1.0)


@pytest.mark.asyncio
async def test_cycles_terminate(chain):
    distribution = await chain.social_distribution("bob", max_depth=10)
    assert distribution == pytest.approx({"alice": 0.5, "carol": 0.5})


@pytest.mark.asyncio
async def test_default_depth_from_settings(chain):
    assert chain.settings.social_distribution_depth == 5
    assert await chain.social_distribution("alice") == pytest.approx(
        await chain.social_distribution("alice", max_depth=5)
    )


@pytest.mark.asyncio
async def test_isolated_contributor(engine):
    engine.add_root("hermit", node_id="hermit")
    assert await engine.social_distribution("hermit") == {}
