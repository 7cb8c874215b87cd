"""
Engine - the single entry point collaborators talk to.

Wraps an arena with the read accessors (weight, fulfillment, recognition)
and the mutators, and optionally keeps it in step with an external node
store. Weight and fulfillment are cached per arena version: any mutation
anywhere starts a fresh evaluation pass.
"""

from typing import Iterable, Optional
import logging

from . import recognition
from .calculations import Evaluation
from .config import Settings, get_settings
from .distribution import social_distribution
from .model import Arena
from .peers import SHARES_FIELD, ArenaPeerLookup, ChainedPeerLookup, PeerLookup, StorePeerLookup
from .store import NodeStore, StoreSync

logger = logging.getLogger(__name__)


class FulfillmentEngine:
    """
    Weight, fulfillment and mutual recognition over an arena of trees.

    Args:
        arena: Node table to evaluate. A fresh one is created if omitted.
        peer_lookup: Source of other contributors' recognition of us.
            Defaults to trees in the same arena, then shares published in
            the store when one is given.
        settings: Engine settings (defaults to environment settings).
        store: External node store to load from and write through to.
    """

    def __init__(
        self,
        arena: Optional[Arena] = None,
        peer_lookup: Optional[PeerLookup] = None,
        settings: Optional[Settings] = None,
        store: Optional[NodeStore] = None,
    ):
        self.arena = arena if arena is not None else Arena()
        self.settings = settings or get_settings()
        self._evaluation: Optional[Evaluation] = None

        self.sync = StoreSync(store, self.arena) if store is not None else None
        if self.sync is not None:
            self.sync.attach()

        if peer_lookup is None:
            peer_lookup = ArenaPeerLookup(self.arena, self.evaluation)
            if store is not None:
                peer_lookup = ChainedPeerLookup(peer_lookup, StorePeerLookup(store))
        self.peer_lookup = peer_lookup

    def evaluation(self) -> Evaluation:
        """The evaluation pass for the current arena version."""
        if self._evaluation is None or self._evaluation.is_stale:
            self._evaluation = Evaluation(self.arena)
        return self._evaluation

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def weight(self, node_id: str) -> float:
        return self.evaluation().weight(node_id)

    def fulfilled(self, node_id: str) -> float:
        return self.evaluation().fulfilled(node_id)

    def desire(self, node_id: str) -> float:
        return self.evaluation().desire(node_id)

    def share_of_parent(self, node_id: str) -> float:
        return self.evaluation().share_of_parent(node_id)

    def fulfillment_weight(self, node_id: str) -> float:
        return self.evaluation().fulfillment_weight(node_id)

    def is_contributor(self, node_id: str) -> bool:
        return self.arena.is_contributor(node_id)

    def is_contribution(self, node_id: str) -> bool:
        return self.arena.is_contribution(node_id)

    def _checked_root(self, node_id: str) -> str:
        root_id = self.arena.root_of(node_id)
        if self.settings.verify_type_index and not self.arena.verify_type_index(root_id):
            logger.warning("Type index of %s drifted from its tree; rebuilding", root_id)
            self.arena.rebuild_type_index(root_id)
        return root_id

    def share_of_general_contribution(self, root_id: str, type_id: str) -> float:
        root_id = self._checked_root(root_id)
        return recognition.share_of_general_contribution(self.evaluation(), root_id, type_id)

    def share_of_general_contribution_distribution(self, root_id: str) -> dict[str, float]:
        root_id = self._checked_root(root_id)
        return recognition.share_of_general_contribution_distribution(self.evaluation(), root_id)

    async def mutual_fulfillment(self, root_id: str, type_id: str) -> float:
        root_id = self._checked_root(root_id)
        return await recognition.mutual_fulfillment(
            self.evaluation(),
            root_id,
            type_id,
            self.peer_lookup,
            self.settings.remote_lookup_timeout,
        )

    async def mutual_fulfillment_distribution(self, node_id: str) -> dict[str, float]:
        root_id = self._checked_root(node_id)
        return await recognition.mutual_fulfillment_distribution(
            self.evaluation(),
            root_id,
            self.peer_lookup,
            self.settings.remote_lookup_timeout,
        )

    async def social_distribution(self, root_id: str, max_depth: Optional[int] = None) -> dict[str, float]:
        return await social_distribution(self, root_id, max_depth=max_depth)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_root(self, name: str = "", node_id: Optional[str] = None) -> str:
        return self.arena.add_root(name, node_id=node_id)

    def add_child(
        self,
        parent_id: str,
        name: str = "",
        points: float = 0.0,
        type_ids: Iterable[str] = (),
        manual_fulfillment: Optional[float] = None,
        node_id: Optional[str] = None,
    ) -> str:
        return self.arena.add_child(
            parent_id,
            name=name,
            points=points,
            type_ids=type_ids,
            manual_fulfillment=manual_fulfillment,
            node_id=node_id,
        )

    def remove_child(self, parent_id: str, child_id: str):
        self.arena.remove_child(parent_id, child_id)

    def set_points(self, node_id: str, value: float):
        self.arena.set_points(node_id, value)

    def set_manual_fulfillment(self, node_id: str, value: Optional[float]):
        self.arena.set_manual_fulfillment(node_id, value)

    def add_type(self, node_id: str, type_id: str):
        self.arena.add_type(node_id, type_id)

    def remove_type(self, node_id: str, type_id: str):
        self.arena.remove_type(node_id, type_id)

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    def load(self, root_id: str) -> int:
        """Pull a tree from the attached store into the arena."""
        if self.sync is None:
            raise RuntimeError("No store attached")
        return self.sync.load(root_id)

    def publish_shares(self, root_id: str) -> dict[str, float]:
        """
        Compute this tree's share toward every type and publish it.

        Peers read the published map back through `StorePeerLookup` as the
        remote half of their mutual fulfillment with us.
        """
        root_id = self._checked_root(root_id)
        evaluation = self.evaluation()
        shares = {
            type_id: recognition.share_of_general_contribution(evaluation, root_id, type_id)
            for type_id in sorted(self.arena.type_index(root_id).types())
        }
        if self.sync is not None:
            self.sync.publish(root_id, SHARES_FIELD, shares)
        return shares

    def detach(self):
        if self.sync is not None:
            self.sync.detach()

    def __repr__(self):
        return f"FulfillmentEngine({self.arena!r})"
