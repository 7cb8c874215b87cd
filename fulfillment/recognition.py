"""
Recognition - how much of one tree is allocated toward a contributor, and
how much of that is reciprocated.

    share(A, T)   = Σ over instances i of T in A's type index of
                    fulfilled(i) * weight(i) / (number of contributor types on i)
    mutual(A, B)  = min(share(A, B), share(B, A))

share(A, B) is computed locally. share(B, A) belongs to B and may live on
another machine, so it goes through a `PeerLookup` with a timeout. A peer
that is slow, missing, cancelled or broken counts as 0: mutual recognition
degrades to "no recognition" and the distribution stays computable.
"""

from typing import TYPE_CHECKING, Optional
import asyncio
import logging
import math

import numpy as np

from .calculations import Evaluation
from .errors import FulfillmentError, RemoteLookupTimeout

if TYPE_CHECKING:
    from .peers import PeerLookup

logger = logging.getLogger(__name__)


def share_of_general_contribution(evaluation: Evaluation, from_root_id: str, type_id: str) -> float:
    """How much of `from_root_id`'s tree is allocated toward `type_id`."""
    arena = evaluation.arena
    root_id = arena.root_of(from_root_id)

    total = 0.0
    for instance_id in sorted(arena.instances(root_id, type_id)):
        share = evaluation.fulfillment_weight(instance_id)
        contributor_types = arena.contributor_type_count(instance_id)
        total += share / contributor_types if contributor_types > 0 else share
    return total


def share_of_general_contribution_distribution(evaluation: Evaluation, root_id: str) -> dict[str, float]:
    """Every type in the tree with a positive share, unnormalized."""
    root_id = evaluation.arena.root_of(root_id)
    shares = {}
    for type_id in sorted(evaluation.arena.type_index(root_id).types()):
        value = share_of_general_contribution(evaluation, root_id, type_id)
        if value > 0:
            shares[type_id] = value
    return shares


def normalize(values: dict[str, float]) -> dict[str, float]:
    """Drop non-positive entries and scale the rest to sum to 1."""
    positive = {k: v for k, v in values.items() if v > 0}
    if not positive:
        return {}
    weights = np.fromiter(positive.values(), dtype=float, count=len(positive))
    total = weights.sum()
    if total <= 0:
        return {}
    return dict(zip(positive.keys(), (weights / total).tolist()))


async def fetch_remote_share(
    lookup: "PeerLookup",
    other_root_id: str,
    self_id: str,
    timeout: float,
) -> float:
    """
    Ask a peer for share(other_root_id, self_id).

    Missing or malformed answers are 0. A timeout raises RemoteLookupTimeout.
    """
    try:
        value = await asyncio.wait_for(
            lookup.share_of_general_contribution(other_root_id, self_id),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        raise RemoteLookupTimeout(other_root_id, self_id, timeout) from exc

    if value is None:
        return 0.0
    try:
        value = float(value)
    except (TypeError, ValueError):
        logger.warning("Peer %s reported non-numeric share %r for %s", other_root_id, value, self_id)
        return 0.0
    if not math.isfinite(value) or value < 0:
        logger.warning("Peer %s reported unusable share %r for %s", other_root_id, value, self_id)
        return 0.0
    return value


async def _remote_share_or_zero(
    lookup: "PeerLookup",
    other_root_id: str,
    self_id: str,
    timeout: float,
) -> float:
    try:
        return await fetch_remote_share(lookup, other_root_id, self_id, timeout)
    except RemoteLookupTimeout as exc:
        logger.warning("%s; counting as no recognition", exc)
    except asyncio.CancelledError:
        task = asyncio.current_task()
        if task is not None and task.cancelling():
            raise
        logger.warning("Peer lookup (%s, %s) was cancelled; counting as no recognition", other_root_id, self_id)
    except (FulfillmentError, OSError) as exc:
        logger.warning("Peer lookup (%s, %s) failed: %s; counting as no recognition", other_root_id, self_id, exc)
    return 0.0


async def mutual_fulfillment(
    evaluation: Evaluation,
    root_id: str,
    type_id: str,
    lookup: "PeerLookup",
    timeout: float,
) -> float:
    """min(share(root, type), share(type, root)), with the remote half failing open."""
    root_id = evaluation.arena.root_of(root_id)
    recognition_from_here = share_of_general_contribution(evaluation, root_id, type_id)
    if recognition_from_here <= 0:
        # Nothing to reciprocate; skip the round trip
        return 0.0

    recognition_from_there = await _remote_share_or_zero(lookup, type_id, root_id, timeout)
    return min(recognition_from_here, recognition_from_there)


async def mutual_fulfillment_distribution(
    evaluation: Evaluation,
    root_id: str,
    lookup: "PeerLookup",
    timeout: float,
    types: Optional[list[str]] = None,
) -> dict[str, float]:
    """
    Normalized mutual fulfillment toward every type with an instance in the tree.

    Peer lookups run concurrently, each under its own timeout. Returns an
    empty dict when nothing is reciprocated.
    """
    root_id = evaluation.arena.root_of(root_id)
    if types is None:
        types = sorted(evaluation.arena.type_index(root_id).types())

    # Local halves first, so the whole snapshot is read before any suspension
    local = {t: share_of_general_contribution(evaluation, root_id, t) for t in types}
    recognized = [t for t in types if local[t] > 0]

    remote = await asyncio.gather(
        *(_remote_share_or_zero(lookup, t, root_id, timeout) for t in recognized)
    )
    return normalize({t: min(local[t], there) for t, there in zip(recognized, remote)})
