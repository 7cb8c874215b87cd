"""
Peer lookups - where the remote half of mutual fulfillment comes from.

A lookup answers share(other_root_id, self_id): how much of the other
contributor's tree is allocated toward us. None means "no data", which the
recognition engine treats the same as 0.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional
import asyncio
import logging

from .calculations import Evaluation
from .model import Arena
from .recognition import share_of_general_contribution

logger = logging.getLogger(__name__)

# Store field under which a root publishes its shares toward each type
SHARES_FIELD = "shares_of_general_contribution"


class PeerLookup(ABC):
    """Source of other contributors' self-reported recognition."""

    @abstractmethod
    async def share_of_general_contribution(self, other_root_id: str, self_id: str) -> Optional[float]:
        """share(other_root_id, self_id), or None if unknown."""


class ArenaPeerLookup(PeerLookup):
    """
    Answers from trees held in the same arena.

    `evaluate` supplies the evaluation pass to read from, so the engine can
    share its cached pass with the lookup.
    """

    def __init__(self, arena: Arena, evaluate: Optional[Callable[[], Evaluation]] = None):
        self.arena = arena
        self.evaluate = evaluate or (lambda: Evaluation(arena))

    async def share_of_general_contribution(self, other_root_id: str, self_id: str) -> Optional[float]:
        if not self.arena.is_contributor(other_root_id):
            return None
        # A childless root is a stand-in for a remote contributor, not their tree
        if self.arena.get(other_root_id).is_leaf:
            return None
        return share_of_general_contribution(self.evaluate(), other_root_id, self_id)


class StorePeerLookup(PeerLookup):
    """
    Answers from shares a peer published into a node store.

    The store read is synchronous, so it runs in a worker thread to keep the
    event loop free while the timeout runs.
    """

    def __init__(self, store):
        self.store = store

    async def share_of_general_contribution(self, other_root_id: str, self_id: str) -> Optional[float]:
        record = await asyncio.to_thread(self.store.get, other_root_id)
        if record is None:
            return None
        shares = record.get(SHARES_FIELD)
        if not isinstance(shares, dict):
            return None
        return shares.get(self_id)


class ChainedPeerLookup(PeerLookup):
    """Ask each lookup in turn and return the first answer that isn't None."""

    def __init__(self, *lookups: PeerLookup):
        self.lookups = list(lookups)

    async def share_of_general_contribution(self, other_root_id: str, self_id: str) -> Optional[float]:
        for lookup in self.lookups:
            value = await lookup.share_of_general_contribution(other_root_id, self_id)
            if value is not None:
                return value
        return None
