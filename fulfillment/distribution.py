"""
Social distribution - mutual recognition followed through the network.

Starting from a contributor's own mutual fulfillment distribution, walk
breadth-first into the distributions of the contributors it recognizes.
Each hop multiplies the proportion along the path:

    direct:     result[b]  = mutual_distribution(a)[b]
    transitive: result[c] += result-path(b) * mutual_distribution(b)[c]

Contributors are visited once, so cycles terminate. Contributors whose
trees aren't held locally end the path at themselves.
"""

from collections import deque
from typing import TYPE_CHECKING, Optional
import logging

from .recognition import normalize

if TYPE_CHECKING:
    from .engine import FulfillmentEngine

logger = logging.getLogger(__name__)


async def social_distribution(
    engine: "FulfillmentEngine",
    root_id: str,
    max_depth: Optional[int] = None,
    min_share: Optional[float] = None,
) -> dict[str, float]:
    if max_depth is None:
        max_depth = engine.settings.social_distribution_depth
    if min_share is None:
        min_share = engine.settings.min_distribution_share

    arena = engine.arena
    root_id = arena.root_of(root_id)

    result: dict[str, float] = {}
    visited = {root_id}
    queue: deque[tuple[str, float]] = deque()

    direct = await engine.mutual_fulfillment_distribution(root_id)
    for node_id, proportion in direct.items():
        if proportion < min_share:
            continue
        result[node_id] = proportion
        visited.add(node_id)
        if arena.is_contributor(node_id):
            queue.append((node_id, proportion))

    level = 0
    while queue and level < max_depth:
        for _ in range(len(queue)):
            node_id, path_multiplier = queue.popleft()
            next_distribution = await engine.mutual_fulfillment_distribution(node_id)

            for next_id, proportion in next_distribution.items():
                if next_id in visited or proportion < min_share:
                    continue
                transitive = path_multiplier * proportion
                result[next_id] = result.get(next_id, 0.0) + transitive
                visited.add(next_id)
                if arena.is_contributor(next_id):
                    queue.append((next_id, transitive))
        level += 1

    logger.debug("Social distribution of %s: %d entries over %d levels", root_id, len(result), level)
    return normalize(result)
