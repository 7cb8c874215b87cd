"""
Example: fulfillment and mutual recognition in a small community.

Three participants declare their needs as trees, tag the parts other
participants help with, and end up with a social distribution that only
counts recognition both sides share.
"""

import asyncio
import logging

from fulfillment import FulfillmentEngine, MemoryStore, configure_logging


def build_sample_community(engine: FulfillmentEngine):
    """
    Build a three-person community.

    - Maya cooks and needs help with childcare and repairs
    - Theo fixes things and needs meals and some quiet time
    - Ines looks after children and needs repairs
    """

    maya = engine.add_root("Maya", node_id="maya")
    theo = engine.add_root("Theo", node_id="theo")
    ines = engine.add_root("Ines", node_id="ines")

    # Maya's needs
    childcare = engine.add_child(maya, "Childcare", points=50)
    engine.add_child(childcare, "School pickups", points=30, type_ids=[ines])
    engine.add_child(childcare, "Evening babysitting", points=20)
    engine.add_child(maya, "Kitchen repairs", points=30, type_ids=[theo])
    engine.add_child(maya, "Rest", points=20)

    # Theo's needs, with a subjective rating of how well meals are going
    meals = engine.add_child(theo, "Meals", points=60, manual_fulfillment=0.8)
    engine.add_child(meals, "Weeknight dinners", points=40, type_ids=[maya])
    engine.add_child(meals, "Groceries", points=20)
    engine.add_child(theo, "Quiet time", points=40)

    # Ines's needs
    engine.add_child(ines, "Bike repairs", points=70, type_ids=[theo])
    engine.add_child(ines, "Shared meals", points=30, type_ids=[maya])

    return maya, theo, ines


async def report(engine: FulfillmentEngine, participants):
    for root_id in participants:
        name = engine.arena.get(root_id).name
        print(f"\n--- {name} ---")
        print(f"  Fulfillment: {engine.fulfilled(root_id):.3f}  Desire: {engine.desire(root_id):.3f}")

        print("  Needs:")
        for node in engine.arena.descendants(root_id)[1:]:
            depth = len(engine.arena.ancestors(node.id)) - 1
            marker = " (contribution)" if engine.is_contribution(node.id) else ""
            print(f"  {'  ' * depth}{node.name}: weight {engine.weight(node.id):.3f}, "
                  f"fulfilled {engine.fulfilled(node.id):.3f}{marker}")

        shares = engine.share_of_general_contribution_distribution(root_id)
        print("  Recognition given:")
        for type_id, share in shares.items():
            print(f"    -> {engine.arena.get(type_id).name}: {share:.3f}")

        mutual = await engine.mutual_fulfillment_distribution(root_id)
        print("  Mutual fulfillment distribution:")
        for type_id, share in mutual.items():
            print(f"    <-> {engine.arena.get(type_id).name}: {share:.1%}")

        social = await engine.social_distribution(root_id)
        print("  Social distribution (transitive):")
        for type_id, share in social.items():
            print(f"    ~ {engine.arena.get(type_id).name}: {share:.1%}")


def main():
    configure_logging()
    logging.getLogger("fulfillment").setLevel(logging.WARNING)

    print("=" * 60)
    print("MUTUAL FULFILLMENT EXAMPLE")
    print("=" * 60)

    store = MemoryStore()
    engine = FulfillmentEngine(store=store)
    participants = build_sample_community(engine)
    print(f"\nArena: {engine.arena!r}, store records: {len(store)}")

    asyncio.run(report(engine, participants))

    print("\n" + "=" * 60)
    print("After Maya's babysitting is covered by Ines")
    print("=" * 60)
    node = next(n for n in engine.arena.nodes.values() if n.name == "Evening babysitting")
    engine.add_type(node.id, "ines")
    asyncio.run(report(engine, participants[:1]))

    for root_id in participants:
        engine.publish_shares(root_id)
    print(f"\nPublished shares for {len(participants)} participants.")

    print("\n" + "=" * 60)
    print("DONE")
    print("=" * 60)


if __name__ == "__main__":
    main()
